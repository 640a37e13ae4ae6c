"""
积分相关数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from bookproof.core.database import Base


class CreditPurchaseDB(Base):
    """积分购买记录表（历史账本，不删除）"""

    __tablename__ = "credit_purchases"

    # 主键和归属
    purchase_id = Column(String(50), primary_key=True, comment="购买记录ID")
    author_profile_id = Column(String(50), nullable=False, index=True, comment="作者档案ID")
    package_tier_id = Column(String(50), comment="套餐ID")

    # 金额与积分
    credits = Column(Integer, nullable=False, comment="购买积分数")
    amount_paid = Column(Numeric(10, 2), nullable=False, comment="实付金额")
    currency = Column(String(3), nullable=False, default="USD", comment="币种")

    # 有效期与激活
    validity_days = Column(Integer, nullable=False, comment="激活窗口天数")
    purchase_date = Column(DateTime, nullable=False, server_default=func.now(), comment="购买时间")
    activation_window_expires_at = Column(DateTime, nullable=False, index=True, comment="激活窗口截止时间")
    activated = Column(Boolean, nullable=False, default=False, comment="是否已激活")
    activated_at = Column(DateTime, comment="激活时间")

    # 支付信息
    payment_status = Column(String(20), nullable=False, default="PENDING", index=True, comment="支付状态")
    payment_reference = Column(String(100), unique=True, comment="支付网关流水号")
    coupon_id = Column(String(50), comment="使用的优惠券ID")
    discount_applied = Column(Numeric(10, 2), comment="优惠金额")

    admin_notes = Column(Text, comment="管理员备注")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    usages = relationship("CreditUsageDB", back_populates="purchase")

    __table_args__ = (
        {'comment': '积分购买记录表'}
    )


class CreditUsageDB(Base):
    """积分消耗记录表"""

    __tablename__ = "credit_usages"

    usage_id = Column(String(50), primary_key=True, comment="消耗记录ID")
    author_profile_id = Column(String(50), nullable=False, index=True, comment="作者档案ID")
    credit_purchase_id = Column(
        String(50), ForeignKey("credit_purchases.purchase_id"), nullable=False, index=True, comment="来源购买记录ID"
    )
    credits = Column(Integer, nullable=False, comment="消耗积分数")
    book_id = Column(String(50), comment="书籍活动ID")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")

    purchase = relationship("CreditPurchaseDB", back_populates="usages")

    __table_args__ = (
        {'comment': '积分消耗记录表'}
    )
