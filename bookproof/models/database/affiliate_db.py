"""
联盟推广数据库模型
"""

from sqlalchemy import Column, String, Numeric, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from bookproof.core.database import Base


class AffiliateProfileDB(Base):
    """推广者档案表"""

    __tablename__ = "affiliate_profiles"

    affiliate_profile_id = Column(String(50), primary_key=True, comment="推广者档案ID")
    user_id = Column(String(50), nullable=False, unique=True, comment="用户ID")
    referral_code = Column(String(50), unique=True, index=True, comment="推荐码")
    commission_rate = Column(Numeric(5, 2), comment="自定义佣金比例")
    is_approved = Column(Boolean, nullable=False, default=False, comment="是否审核通过")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")

    __table_args__ = (
        {'comment': '推广者档案表'}
    )


class AffiliateReferralDB(Base):
    """推荐关系表"""

    __tablename__ = "affiliate_referrals"

    referral_id = Column(String(50), primary_key=True, comment="推荐记录ID")
    affiliate_profile_id = Column(
        String(50), ForeignKey("affiliate_profiles.affiliate_profile_id"), nullable=False, index=True
    )
    referred_author_id = Column(String(50), nullable=False, unique=True, comment="被推荐作者档案ID")
    first_purchase_at = Column(DateTime, comment="首次购买时间")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")

    __table_args__ = (
        {'comment': '推荐关系表'}
    )


class AffiliateCommissionDB(Base):
    """佣金记录表"""

    __tablename__ = "affiliate_commissions"

    commission_id = Column(String(50), primary_key=True, comment="佣金ID")
    affiliate_profile_id = Column(
        String(50), ForeignKey("affiliate_profiles.affiliate_profile_id"), nullable=False, index=True
    )
    credit_purchase_id = Column(String(50), nullable=False, unique=True, comment="积分购买ID")
    referred_author_id = Column(String(50), nullable=False, index=True, comment="被推荐作者ID")

    purchase_amount = Column(Numeric(10, 2), nullable=False, comment="购买金额")
    commission_amount = Column(Numeric(10, 2), nullable=False, comment="佣金金额")
    commission_rate = Column(Numeric(5, 2), nullable=False, comment="佣金比例")

    status = Column(String(20), nullable=False, default="PENDING", index=True, comment="佣金状态")
    pending_until = Column(DateTime, index=True, comment="冻结期截止时间")
    approved_at = Column(DateTime, comment="解冻时间")
    paid_at = Column(DateTime, comment="支付时间")
    cancelled_at = Column(DateTime, comment="取消时间")
    cancellation_reason = Column(Text, comment="取消原因")
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")

    __table_args__ = (
        {'comment': '佣金记录表'}
    )


class AffiliatePayoutDB(Base):
    """提现申请表"""

    __tablename__ = "affiliate_payouts"

    payout_id = Column(String(50), primary_key=True, comment="提现ID")
    affiliate_profile_id = Column(
        String(50), ForeignKey("affiliate_profiles.affiliate_profile_id"), nullable=False, index=True
    )
    amount = Column(Numeric(10, 2), nullable=False, comment="提现金额")
    payment_method = Column(String(30), nullable=False, comment="提现方式")
    payment_details = Column(String(500), nullable=False, comment="支付信息（脱敏）")
    status = Column(String(20), nullable=False, default="REQUESTED", index=True, comment="提现状态")
    transaction_id = Column(String(200), comment="支付流水号")
    notes = Column(Text, comment="备注")
    rejection_reason = Column(Text, comment="拒绝原因")
    processed_by = Column(String(50), comment="处理管理员ID")
    requested_at = Column(DateTime, server_default=func.now(), comment="申请时间")
    processed_at = Column(DateTime, comment="处理时间")
    paid_at = Column(DateTime, comment="打款时间")

    __table_args__ = (
        {'comment': '提现申请表'}
    )
