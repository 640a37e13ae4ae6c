"""
优惠券数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from bookproof.core.database import Base


class CouponDB(Base):
    """优惠券数据库表"""

    __tablename__ = "coupons"

    # 主键和基本信息
    coupon_id = Column(String(50), primary_key=True, comment="优惠券ID")
    code = Column(String(50), nullable=False, unique=True, index=True, comment="优惠券代码（大写）")
    coupon_type = Column(String(20), nullable=False, comment="优惠券类型")
    applies_to = Column(String(30), nullable=False, default="CREDITS", comment="适用范围")

    # 折扣信息（百分比与固定金额二选一）
    discount_percent = Column(Numeric(5, 2), comment="折扣百分比")
    discount_amount = Column(Numeric(10, 2), comment="固定折扣金额")

    # 使用门槛
    minimum_purchase = Column(Numeric(10, 2), comment="最低消费金额")
    minimum_credits = Column(Integer, comment="最低积分数量")

    # 使用限制
    max_uses = Column(Integer, comment="总使用次数限制")
    max_uses_per_user = Column(Integer, nullable=False, default=1, comment="单用户使用次数限制")
    current_uses = Column(Integer, nullable=False, default=0, comment="已使用次数")

    # 有效期
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")
    valid_from = Column(DateTime, nullable=False, index=True, comment="有效开始时间")
    valid_until = Column(DateTime, index=True, comment="有效结束时间")

    # 其他信息
    created_by = Column(String(50), comment="创建管理员ID")
    purpose = Column(Text, comment="发放用途")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '优惠券信息表'}
    )


class CouponUsageDB(Base):
    """优惠券使用记录表"""

    __tablename__ = "coupon_usages"

    # 主键和关联信息
    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    coupon_id = Column(String(50), nullable=False, index=True, comment="优惠券ID")
    user_id = Column(String(50), nullable=False, index=True, comment="使用用户ID")
    user_email = Column(String(255), comment="用户邮箱")

    # 关联订单
    credit_purchase_id = Column(String(50), comment="关联积分购买ID")
    keyword_research_id = Column(String(50), comment="关联关键词调研ID")

    # 使用详情
    discount_applied = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣金额")
    used_at = Column(DateTime, server_default=func.now(), index=True, comment="使用时间")

    # 同一购买重复核销由唯一约束兜底
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", "credit_purchase_id", name="uq_coupon_usage_purchase"),
        {'comment': '优惠券使用记录表'}
    )
