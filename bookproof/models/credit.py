"""
积分购买与消耗相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from bookproof.core.clock import UtcDateTime, to_naive_utc, utcnow


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "PENDING"  # 待支付
    COMPLETED = "COMPLETED"  # 已确认
    FAILED = "FAILED"  # 支付失败
    REFUNDED = "REFUNDED"  # 已退款


class CreditPurchase(BaseModel):
    """积分购买记录"""

    purchase_id: str = Field(..., description="购买记录ID")
    author_profile_id: str = Field(..., description="作者档案ID")
    package_tier_id: Optional[str] = Field(None, description="套餐ID")
    credits: int = Field(..., ge=0, description="购买积分数")
    amount_paid: Decimal = Field(..., ge=0, description="实付金额")
    currency: str = Field(default="USD", description="币种")
    validity_days: int = Field(..., ge=0, description="激活窗口天数")
    purchase_date: UtcDateTime = Field(..., description="购买时间")
    activation_window_expires_at: UtcDateTime = Field(..., description="激活窗口截止时间")
    activated: bool = Field(default=False, description="是否已激活")
    activated_at: Optional[UtcDateTime] = Field(None, description="激活时间")
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="支付状态")
    payment_reference: Optional[str] = Field(None, description="支付网关流水号")
    coupon_id: Optional[str] = Field(None, description="使用的优惠券ID")
    discount_applied: Optional[Decimal] = Field(None, ge=0, description="优惠金额")

    model_config = ConfigDict(from_attributes=True)

    def is_current(self, now: datetime) -> bool:
        """已激活、已确认支付、且在窗口内激活并未过期"""
        if not self.activated or self.payment_status != PaymentStatus.COMPLETED:
            return False
        now = to_naive_utc(now)
        if self.activation_window_expires_at <= now:
            return False
        if self.activated_at is not None and self.activated_at > self.activation_window_expires_at:
            return False
        return True

    def is_pending_activation(self, now: datetime) -> bool:
        """已确认支付但尚未激活，且窗口仍开放"""
        return (
            not self.activated and
            self.payment_status == PaymentStatus.COMPLETED and
            self.activation_window_expires_at > to_naive_utc(now)
        )


class CreditUsage(BaseModel):
    """积分消耗记录"""

    usage_id: str = Field(..., description="消耗记录ID")
    author_profile_id: str = Field(..., description="作者档案ID")
    credit_purchase_id: str = Field(..., description="扣减来源购买记录ID")
    credits: int = Field(..., ge=0, description="消耗积分数")
    book_id: Optional[str] = Field(None, description="分配到的书籍活动ID")
    created_at: UtcDateTime = Field(default_factory=utcnow)

    model_config = ConfigDict(from_attributes=True)


class CreditBalance(BaseModel):
    """积分余额汇总"""

    total_purchased: int = 0
    total_used: int = 0
    available: int = 0
    active_purchases: int = 0
    expiring_count: int = 0
    expiring_credits: int = 0
    next_expiration_date: Optional[UtcDateTime] = None
    pending_activation_count: int = 0
    pending_activation_credits: int = 0


class CreditAllocation(BaseModel):
    """单条购买记录上的扣减计划"""

    credit_purchase_id: str
    credits: int


class AllocateCreditsRequest(BaseModel):
    """积分分配请求"""

    credits: int = Field(..., description="分配积分数")
    book_id: str = Field(..., description="书籍活动ID")


class CreditQuoteRequest(BaseModel):
    """积分购买报价请求"""

    base_price: Decimal = Field(..., description="套餐原价")
    credits: int = Field(..., description="套餐积分数")
    coupon_code: Optional[str] = Field(None, description="优惠券代码")


class CreditCheckoutQuote(BaseModel):
    """积分购买报价"""

    base_price: Decimal
    credits: int
    discount_amount: Decimal = Decimal("0")
    final_price: Decimal
    coupon_id: Optional[str] = None
    coupon_code: Optional[str] = None


class CompletedPurchaseRecord(BaseModel):
    """支付确认后的购买入账请求（来自支付回调）"""

    author_profile_id: str
    user_id: str
    user_email: Optional[str] = None
    package_tier_id: Optional[str] = None
    credits: int = Field(..., ge=1)
    amount_paid: Decimal = Field(..., ge=0)
    currency: str = "USD"
    validity_days: int = Field(..., ge=1)
    payment_reference: str = Field(..., min_length=1)
    coupon_id: Optional[str] = None
    discount_applied: Optional[Decimal] = Field(None, ge=0)
