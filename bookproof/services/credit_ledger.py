"""
积分账本计算
根据购买记录和消耗记录计算可用余额、即将过期情况以及扣减计划
"""

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from bookproof.core.clock import resolve_now
from bookproof.core.exceptions import InvalidInputError
from bookproof.models.credit import (
    CreditPurchase,
    CreditUsage,
    CreditBalance,
    CreditAllocation,
    PaymentStatus
)


def _usage_by_purchase(usage_records: Iterable[CreditUsage]) -> Dict[str, int]:
    """按购买记录汇总已消耗积分"""
    used: Dict[str, int] = defaultdict(int)
    for usage in usage_records:
        used[usage.credit_purchase_id] += usage.credits
    return used


def _current_purchases(purchases: Iterable[CreditPurchase], now: datetime) -> List[CreditPurchase]:
    """已激活且有效的购买记录，按过期时间升序"""
    current = [p for p in purchases if p.is_current(now)]
    current.sort(key=lambda p: (p.activation_window_expires_at, p.purchase_date))
    return current


def compute_credit_balance(
    purchases: Sequence[CreditPurchase],
    usage_records: Sequence[CreditUsage],
    look_ahead_days: int,
    now: Optional[datetime] = None
) -> CreditBalance:
    """
    计算作者的积分余额

    只有已激活、已确认支付、窗口未过期且在窗口内激活的购买计入可用余额。
    未在激活窗口内激活的积分视为作废，即使 purchase_date + validity_days 尚未到期。
    """
    if look_ahead_days < 0:
        raise InvalidInputError("look_ahead_days must not be negative")

    now = resolve_now(now)

    used = _usage_by_purchase(usage_records)
    look_ahead_limit = now + timedelta(days=look_ahead_days)

    balance = CreditBalance(
        total_purchased=sum(
            p.credits for p in purchases if p.payment_status == PaymentStatus.COMPLETED
        ),
        total_used=sum(used.values())
    )

    current = _current_purchases(purchases, now)
    for purchase in current:
        remaining = max(purchase.credits - used.get(purchase.purchase_id, 0), 0)
        balance.available += remaining
        balance.active_purchases += 1
        if purchase.activation_window_expires_at <= look_ahead_limit:
            balance.expiring_count += 1
            balance.expiring_credits += remaining

    if current:
        balance.next_expiration_date = current[0].activation_window_expires_at

    for purchase in purchases:
        if purchase.is_pending_activation(now):
            balance.pending_activation_count += 1
            balance.pending_activation_credits += purchase.credits

    return balance


def plan_credit_allocation(
    purchases: Sequence[CreditPurchase],
    usage_records: Sequence[CreditUsage],
    credits: int,
    now: Optional[datetime] = None
) -> List[CreditAllocation]:
    """
    规划积分扣减

    从有效购买中按过期时间先后扣减，最早过期的优先。余额不足时抛出异常。
    """
    if credits <= 0:
        raise InvalidInputError("credits must be positive")

    now = resolve_now(now)

    used = _usage_by_purchase(usage_records)
    plan: List[CreditAllocation] = []
    outstanding = credits

    for purchase in _current_purchases(purchases, now):
        remaining = purchase.credits - used.get(purchase.purchase_id, 0)
        if remaining <= 0:
            continue
        take = min(remaining, outstanding)
        plan.append(CreditAllocation(credit_purchase_id=purchase.purchase_id, credits=take))
        outstanding -= take
        if outstanding == 0:
            return plan

    raise InvalidInputError(
        f"Insufficient credits: requested {credits}, available {credits - outstanding}",
        details={"requested": credits, "available": credits - outstanding}
    )
