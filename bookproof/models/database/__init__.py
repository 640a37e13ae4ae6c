"""
数据库模型包初始化文件
"""

from .coupon_db import CouponDB, CouponUsageDB
from .credit_db import CreditPurchaseDB, CreditUsageDB
from .affiliate_db import AffiliateProfileDB, AffiliateReferralDB, AffiliateCommissionDB, AffiliatePayoutDB

__all__ = [
    "CouponDB",
    "CouponUsageDB",
    "CreditPurchaseDB",
    "CreditUsageDB",
    "AffiliateProfileDB",
    "AffiliateReferralDB",
    "AffiliateCommissionDB",
    "AffiliatePayoutDB"
]
