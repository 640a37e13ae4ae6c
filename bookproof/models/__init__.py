"""
数据模型包初始化文件
"""

from .coupon import (
    Coupon,
    CouponCreate,
    CouponUpdate,
    CouponType,
    CouponAppliesTo,
    CouponErrorReason,
    CouponEvaluation,
    CouponUsage,
    CouponRedemption,
    FieldError,
    validate_coupon_data
)
from .credit import (
    CreditPurchase,
    CreditUsage,
    CreditBalance,
    PaymentStatus
)
from .affiliate import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateProfile,
    CommissionStatus,
    CommissionEvent,
    PayoutStatus,
    PayoutAction
)

__all__ = [
    "Coupon",
    "CouponCreate",
    "CouponUpdate",
    "CouponType",
    "CouponAppliesTo",
    "CouponErrorReason",
    "CouponEvaluation",
    "CouponUsage",
    "CouponRedemption",
    "FieldError",
    "validate_coupon_data",
    "CreditPurchase",
    "CreditUsage",
    "CreditBalance",
    "PaymentStatus",
    "AffiliateCommission",
    "AffiliatePayout",
    "AffiliateProfile",
    "CommissionStatus",
    "CommissionEvent",
    "PayoutStatus",
    "PayoutAction"
]
