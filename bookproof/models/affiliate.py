"""
联盟推广佣金与提现相关数据模型
"""

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from bookproof.core.clock import UtcDateTime, utcnow


class CommissionStatus(str, Enum):
    """佣金状态枚举"""
    PENDING = "PENDING"  # 冻结期内
    APPROVED = "APPROVED"  # 可提现
    PAID = "PAID"  # 已支付（终态）
    CANCELLED = "CANCELLED"  # 已取消（终态）


class CommissionEvent(str, Enum):
    """驱动佣金状态流转的事件"""
    HOLDING_PERIOD_ELAPSED = "HOLDING_PERIOD_ELAPSED"
    REFUNDED = "REFUNDED"
    ADMIN_APPROVE = "ADMIN_APPROVE"
    ADMIN_PAY = "ADMIN_PAY"
    ADMIN_CANCEL = "ADMIN_CANCEL"


class PayoutStatus(str, Enum):
    """提现申请状态"""
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class PayoutAction(str, Enum):
    """管理员处理动作"""
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    COMPLETE = "COMPLETE"


class PayoutMethod(str, Enum):
    """提现方式"""
    PAYPAL = "PAYPAL"
    BANK_TRANSFER = "BANK_TRANSFER"
    WISE = "WISE"
    CRYPTO = "CRYPTO"


class AffiliateProfile(BaseModel):
    """联盟推广者档案"""

    affiliate_profile_id: str
    user_id: str
    referral_code: Optional[str] = None
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="自定义佣金比例，为空使用平台默认")
    is_approved: bool = False
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)


class CommissionCalculation(BaseModel):
    """佣金计算结果"""

    purchase_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    status: CommissionStatus = CommissionStatus.PENDING


class AffiliateCommission(BaseModel):
    """佣金记录"""

    commission_id: str = Field(..., description="佣金ID")
    affiliate_profile_id: str = Field(..., description="推广者档案ID")
    credit_purchase_id: str = Field(..., description="积分购买ID")
    referred_author_id: str = Field(..., description="被推荐作者ID")
    purchase_amount: Decimal = Field(..., ge=0)
    commission_amount: Decimal = Field(..., ge=0)
    commission_rate: Decimal = Field(..., ge=0, le=100)
    status: CommissionStatus = CommissionStatus.PENDING
    pending_until: Optional[UtcDateTime] = Field(None, description="冻结期截止时间")
    approved_at: Optional[UtcDateTime] = None
    paid_at: Optional[UtcDateTime] = None
    cancelled_at: Optional[UtcDateTime] = None
    cancellation_reason: Optional[str] = None
    created_at: UtcDateTime = Field(default_factory=utcnow)

    model_config = ConfigDict(from_attributes=True)


class AffiliateEarnings(BaseModel):
    """佣金收益汇总"""

    total_earnings: Decimal = Decimal("0")  # 不含已取消
    pending_earnings: Decimal = Decimal("0")
    approved_earnings: Decimal = Decimal("0")
    paid_earnings: Decimal = Decimal("0")


class CommissionApprovalSummary(BaseModel):
    """批量解冻结果"""

    approved_count: int = 0
    total_amount: Decimal = Decimal("0")


class CommissionCancelRequest(BaseModel):
    credit_purchase_id: str
    reason: str = Field(..., min_length=1, max_length=500)


class PayoutRequestCreate(BaseModel):
    """提现申请"""

    amount: Decimal = Field(..., description="提现金额")
    payment_method: PayoutMethod
    payment_details: str = Field(..., min_length=1, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)


class PayoutProcessRequest(BaseModel):
    """管理员处理提现"""

    action: PayoutAction
    notes: Optional[str] = Field(None, max_length=1000)
    rejection_reason: Optional[str] = Field(None, max_length=1000)
    transaction_id: Optional[str] = Field(None, max_length=200)


class AffiliatePayout(BaseModel):
    """提现记录（支付信息已脱敏）"""

    payout_id: str
    affiliate_profile_id: str
    amount: Decimal
    payment_method: PayoutMethod
    payment_details: str
    status: PayoutStatus = PayoutStatus.REQUESTED
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    processed_by: Optional[str] = None
    requested_at: UtcDateTime = Field(default_factory=utcnow)
    processed_at: Optional[UtcDateTime] = None
    paid_at: Optional[UtcDateTime] = None

    model_config = ConfigDict(from_attributes=True)
