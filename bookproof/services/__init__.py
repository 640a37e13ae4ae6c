"""
业务服务层
"""

from .coupon_service import CouponService
from .credit_service import CreditService
from .commission_service import CommissionService
from .payout_service import PayoutService

__all__ = [
    "CouponService",
    "CreditService",
    "CommissionService",
    "PayoutService"
]
