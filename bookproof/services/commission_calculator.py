"""
联盟佣金计算与状态流转
"""

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Tuple

from bookproof.core.clock import to_naive_utc
from bookproof.core.exceptions import InvalidInputError
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliateEarnings,
    CommissionCalculation,
    CommissionEvent,
    CommissionStatus
)

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")

# 允许的状态流转，未列出的组合保持原状态
_TRANSITIONS: Dict[Tuple[CommissionStatus, CommissionEvent], CommissionStatus] = {
    (CommissionStatus.PENDING, CommissionEvent.HOLDING_PERIOD_ELAPSED): CommissionStatus.APPROVED,
    (CommissionStatus.PENDING, CommissionEvent.ADMIN_APPROVE): CommissionStatus.APPROVED,
    (CommissionStatus.PENDING, CommissionEvent.REFUNDED): CommissionStatus.CANCELLED,
    (CommissionStatus.PENDING, CommissionEvent.ADMIN_CANCEL): CommissionStatus.CANCELLED,
    (CommissionStatus.APPROVED, CommissionEvent.ADMIN_PAY): CommissionStatus.PAID,
    (CommissionStatus.APPROVED, CommissionEvent.REFUNDED): CommissionStatus.CANCELLED,
    (CommissionStatus.APPROVED, CommissionEvent.ADMIN_CANCEL): CommissionStatus.CANCELLED,
}

TERMINAL_STATUSES = frozenset({CommissionStatus.PAID, CommissionStatus.CANCELLED})


def resolve_commission_rate(custom_rate: Optional[Decimal], default_rate: Optional[Decimal]) -> Decimal:
    """推广者自定义比例优先，否则使用平台默认比例"""
    rate = custom_rate if custom_rate is not None else default_rate
    if rate is None:
        raise InvalidInputError("commission rate is required")
    return rate


def compute_commission(purchase_amount: Decimal, rate: Decimal) -> CommissionCalculation:
    """
    计算佣金金额

    commission = purchase_amount × rate / 100，四舍五入到分；初始状态为 PENDING
    """
    if purchase_amount is None or purchase_amount < 0:
        raise InvalidInputError("purchase_amount must be a non-negative amount")
    if rate is None:
        raise InvalidInputError("commission rate is required")
    if rate < 0 or rate > HUNDRED:
        raise InvalidInputError("commission rate must be between 0 and 100")

    amount = (purchase_amount * rate / HUNDRED).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    return CommissionCalculation(
        purchase_amount=purchase_amount,
        commission_rate=rate,
        commission_amount=amount,
        status=CommissionStatus.PENDING
    )


def pending_until(created_at: datetime, holding_days: int) -> datetime:
    """冻结期截止时间"""
    if holding_days < 0:
        raise InvalidInputError("holding_days must not be negative")
    return to_naive_utc(created_at) + timedelta(days=holding_days)


def next_commission_status(current: CommissionStatus, event: CommissionEvent) -> CommissionStatus:
    """
    佣金状态机

    PENDING -> APPROVED -> PAID；PENDING/APPROVED -> CANCELLED。
    PAID 与 CANCELLED 为终态，不允许的事件返回当前状态。
    """
    return _TRANSITIONS.get((current, event), current)


def summarize_earnings(commissions: Iterable[AffiliateCommission]) -> AffiliateEarnings:
    """按状态汇总佣金，总额不含已取消"""
    earnings = AffiliateEarnings()
    for commission in commissions:
        amount = commission.commission_amount
        if commission.status == CommissionStatus.PENDING:
            earnings.pending_earnings += amount
        elif commission.status == CommissionStatus.APPROVED:
            earnings.approved_earnings += amount
        elif commission.status == CommissionStatus.PAID:
            earnings.paid_earnings += amount
        else:
            continue
        earnings.total_earnings += amount
    return earnings
