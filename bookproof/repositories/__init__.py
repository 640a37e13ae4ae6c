"""
数据访问层
"""

from .coupon_repository import CouponRepository
from .credit_repository import CreditRepository
from .affiliate_repository import AffiliateRepository

__all__ = [
    "CouponRepository",
    "CreditRepository",
    "AffiliateRepository"
]
