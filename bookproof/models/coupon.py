"""
优惠券相关数据模型
"""

from decimal import Decimal
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from bookproof.core.clock import UtcDateTime, utcnow


class CouponType(str, Enum):
    """优惠券类型枚举"""
    PERCENTAGE = "PERCENTAGE"  # 百分比折扣券
    FIXED_AMOUNT = "FIXED_AMOUNT"  # 固定金额折扣券
    FREE_ADDON = "FREE_ADDON"  # 免费附加服务券，不产生金额折扣


class CouponAppliesTo(str, Enum):
    """优惠券适用范围"""
    CREDITS = "CREDITS"  # 积分购买
    KEYWORD_RESEARCH = "KEYWORD_RESEARCH"  # 关键词调研订单
    ALL = "ALL"


class CouponErrorReason(str, Enum):
    """优惠券校验失败原因（封闭集合）"""
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"
    NOT_YET_VALID = "NOT_YET_VALID"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    PER_USER_LIMIT_REACHED = "PER_USER_LIMIT_REACHED"
    MINIMUM_NOT_MET = "MINIMUM_NOT_MET"
    MINIMUM_CREDITS_NOT_MET = "MINIMUM_CREDITS_NOT_MET"


# 面向用户的提示文案
COUPON_ERROR_MESSAGES: Dict[CouponErrorReason, str] = {
    CouponErrorReason.NOT_FOUND: "Invalid coupon code",
    CouponErrorReason.INACTIVE: "This coupon is no longer active",
    CouponErrorReason.EXPIRED: "This coupon has expired",
    CouponErrorReason.NOT_YET_VALID: "This coupon is not yet valid",
    CouponErrorReason.USAGE_LIMIT_REACHED: "This coupon has reached its maximum usage limit",
    CouponErrorReason.PER_USER_LIMIT_REACHED: "You have already used this coupon the maximum number of times",
    CouponErrorReason.MINIMUM_NOT_MET: "Minimum purchase of ${minimum} required",
    CouponErrorReason.MINIMUM_CREDITS_NOT_MET: "Minimum {minimum} credits required",
}


class Coupon(BaseModel):
    """优惠券基础模型"""

    coupon_id: str = Field(..., description="优惠券ID")
    code: str = Field(..., min_length=1, max_length=50, description="优惠券代码（大写存储）")
    coupon_type: CouponType = Field(..., description="优惠券类型")
    applies_to: CouponAppliesTo = Field(default=CouponAppliesTo.CREDITS, description="适用范围")
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100, description="折扣百分比(0-100)")
    discount_amount: Optional[Decimal] = Field(None, ge=0, description="固定折扣金额")
    minimum_purchase: Optional[Decimal] = Field(None, ge=0, description="最低消费金额")
    minimum_credits: Optional[int] = Field(None, ge=0, description="最低积分数量")
    max_uses: Optional[int] = Field(None, ge=1, description="总使用次数限制")
    max_uses_per_user: int = Field(default=1, ge=1, description="单用户使用次数限制")
    current_uses: int = Field(default=0, ge=0, description="已使用次数")
    is_active: bool = Field(default=True, description="是否启用")
    valid_from: UtcDateTime = Field(..., description="有效开始时间")
    valid_until: Optional[UtcDateTime] = Field(None, description="有效结束时间，为空表示长期有效")
    created_by: Optional[str] = Field(None, description="创建管理员ID")
    purpose: Optional[str] = Field(None, max_length=500, description="发放用途")
    created_at: UtcDateTime = Field(default_factory=utcnow)
    updated_at: UtcDateTime = Field(default_factory=utcnow)

    def applies_to_target(self, target: CouponAppliesTo) -> bool:
        """检查是否适用于指定业务"""
        return self.applies_to == CouponAppliesTo.ALL or self.applies_to == target


class FieldError(BaseModel):
    """字段级校验错误"""

    field: str
    message: str


class CouponCreate(BaseModel):
    """创建优惠券模型"""

    code: str = Field(..., min_length=1, max_length=50)
    coupon_type: CouponType = Field(...)
    applies_to: CouponAppliesTo = Field(default=CouponAppliesTo.CREDITS)
    discount_percent: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    minimum_purchase: Optional[Decimal] = None
    minimum_credits: Optional[int] = None
    max_uses: Optional[int] = None
    max_uses_per_user: int = 1
    is_active: bool = True
    valid_from: UtcDateTime = Field(default_factory=utcnow)
    valid_until: Optional[UtcDateTime] = None
    purpose: Optional[str] = Field(None, max_length=500)


class CouponUpdate(BaseModel):
    """更新优惠券模型"""

    coupon_type: Optional[CouponType] = None
    applies_to: Optional[CouponAppliesTo] = None
    discount_percent: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    minimum_purchase: Optional[Decimal] = None
    minimum_credits: Optional[int] = None
    max_uses: Optional[int] = None
    max_uses_per_user: Optional[int] = None
    is_active: Optional[bool] = None
    valid_from: Optional[UtcDateTime] = None
    valid_until: Optional[UtcDateTime] = None
    purpose: Optional[str] = Field(None, max_length=500)


class CouponValidationRules:
    """优惠券字段校验规则"""

    MAX_PERCENT = Decimal("100")
    CODE_MAX_LENGTH = 50
    # 数据库中不可为空的字段，更新时不允许显式置空
    REQUIRED_FIELDS = ("code", "coupon_type", "applies_to", "max_uses_per_user", "is_active", "valid_from")


def validate_coupon_data(data: Dict[str, Any]) -> List[FieldError]:
    """
    校验优惠券数据的字段组合

    返回字段级错误列表，空列表表示校验通过。
    """
    errors: List[FieldError] = []

    for field_name in CouponValidationRules.REQUIRED_FIELDS:
        if field_name in data and data[field_name] is None:
            errors.append(FieldError(field=field_name, message=f"{field_name} must not be null"))

    code = data.get("code")
    if code is not None and (not str(code).strip() or len(code) > CouponValidationRules.CODE_MAX_LENGTH):
        errors.append(FieldError(field="code", message="code must be 1-50 characters"))

    coupon_type = data.get("coupon_type")
    percent = data.get("discount_percent")
    amount = data.get("discount_amount")

    if coupon_type == CouponType.PERCENTAGE:
        if percent is None:
            errors.append(FieldError(
                field="discount_percent",
                message="discount_percent is required for PERCENTAGE type coupons"
            ))
        elif percent <= 0 or percent > CouponValidationRules.MAX_PERCENT:
            errors.append(FieldError(
                field="discount_percent",
                message="discount_percent must be greater than 0 and at most 100"
            ))
        if amount is not None:
            errors.append(FieldError(
                field="discount_amount",
                message="discount_amount should not be set for PERCENTAGE type coupons"
            ))
    elif coupon_type == CouponType.FIXED_AMOUNT:
        if amount is None:
            errors.append(FieldError(
                field="discount_amount",
                message="discount_amount is required for FIXED_AMOUNT type coupons"
            ))
        elif amount <= 0:
            errors.append(FieldError(field="discount_amount", message="discount_amount must be positive"))
        if percent is not None:
            errors.append(FieldError(
                field="discount_percent",
                message="discount_percent should not be set for FIXED_AMOUNT type coupons"
            ))
    elif coupon_type == CouponType.FREE_ADDON:
        if percent is not None or amount is not None:
            errors.append(FieldError(
                field="coupon_type",
                message="FREE_ADDON type coupons should not have discount values"
            ))

    valid_from = data.get("valid_from")
    valid_until = data.get("valid_until")
    if valid_from and valid_until and valid_from >= valid_until:
        errors.append(FieldError(field="valid_until", message="valid_until must be after valid_from"))

    for field_name in ("max_uses", "max_uses_per_user"):
        value = data.get(field_name)
        if value is not None and value < 1:
            errors.append(FieldError(field=field_name, message=f"{field_name} must be at least 1"))

    for field_name in ("minimum_purchase", "minimum_credits"):
        value = data.get(field_name)
        if value is not None and value < 0:
            errors.append(FieldError(field=field_name, message=f"{field_name} must not be negative"))

    return errors


class CouponValidateRequest(BaseModel):
    """优惠券校验请求"""

    code: str = Field(..., description="优惠券代码")
    purchase_amount: Optional[Decimal] = Field(None, description="候选购买金额")
    credits: Optional[int] = Field(None, description="候选积分数量")


class CouponEvaluation(BaseModel):
    """优惠券校验结果"""

    valid: bool = Field(..., description="是否有效")
    coupon: Optional[Coupon] = Field(None, description="优惠券信息")
    discount_amount: Optional[Decimal] = Field(None, description="折扣金额")
    final_price: Optional[Decimal] = Field(None, description="折后价格")
    error_reason: Optional[CouponErrorReason] = Field(None, description="失败原因")
    error_message: Optional[str] = Field(None, description="失败提示")


class CouponUsage(BaseModel):
    """优惠券使用记录"""

    usage_id: str = Field(..., description="使用记录ID")
    coupon_id: str = Field(..., description="优惠券ID")
    user_id: str = Field(..., description="使用用户ID")
    user_email: Optional[str] = Field(None, description="用户邮箱")
    discount_applied: Decimal = Field(..., ge=0, description="折扣金额")
    credit_purchase_id: Optional[str] = Field(None, description="关联积分购买ID")
    keyword_research_id: Optional[str] = Field(None, description="关联关键词调研ID")
    used_at: UtcDateTime = Field(default_factory=utcnow, description="使用时间")

    model_config = ConfigDict(from_attributes=True)


class CouponRedemption(BaseModel):
    """优惠券核销结果"""

    redeemed: bool
    usage: Optional[CouponUsage] = None
    error_reason: Optional[CouponErrorReason] = None


class CouponUsageStats(BaseModel):
    """优惠券使用统计"""

    coupon_id: str
    code: str
    total_uses: int
    unique_users: int
    total_discount_given: Decimal
    usage_by_date: Dict[str, int] = Field(default_factory=dict)
    recent_usages: List[CouponUsage] = Field(default_factory=list)


class ManualApplyRequest(BaseModel):
    """管理员手动应用优惠券"""

    coupon_code: str
    user_id: str
    user_email: Optional[str] = None
    credit_purchase_id: Optional[str] = None
    keyword_research_id: Optional[str] = None
    purchase_amount: Optional[Decimal] = Field(None, ge=0, description="订单金额，用于计算折扣")
    admin_note: Optional[str] = Field(None, max_length=500)
