"""
佣金计算与状态机测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta

from bookproof.core.exceptions import InvalidInputError
from bookproof.models.affiliate import AffiliateCommission, CommissionEvent, CommissionStatus
from bookproof.services.commission_calculator import (
    compute_commission,
    next_commission_status,
    pending_until,
    resolve_commission_rate,
    summarize_earnings
)


class TestComputeCommission:

    def test_default_rate_on_250(self):
        result = compute_commission(Decimal("250"), Decimal("20"))

        assert result.commission_amount == Decimal("50.00")
        assert result.status == CommissionStatus.PENDING

    @pytest.mark.parametrize("amount,rate,expected", [
        ("33.33", "15", "5.00"),  # 4.9995
        ("0.05", "10", "0.01"),  # 0.005
        ("0.04", "10", "0.00"),
        ("199.99", "12.5", "25.00"),
    ])
    def test_rounds_half_up_to_cents(self, amount, rate, expected):
        assert compute_commission(Decimal(amount), Decimal(rate)).commission_amount == Decimal(expected)

    def test_monotonic_in_purchase_amount(self):
        amounts = [Decimal(a) for a in ("0", "0.01", "0.99", "10", "49.95", "250", "1000.01")]
        commissions = [compute_commission(a, Decimal("17.5")).commission_amount for a in amounts]
        assert commissions == sorted(commissions)

    @pytest.mark.parametrize("amount,rate", [
        (Decimal("-1"), Decimal("20")),
        (Decimal("100"), None),
        (Decimal("100"), Decimal("-5")),
        (Decimal("100"), Decimal("101")),
    ])
    def test_malformed_input(self, amount, rate):
        with pytest.raises(InvalidInputError):
            compute_commission(amount, rate)


class TestResolveRate:

    def test_custom_rate_wins(self):
        assert resolve_commission_rate(Decimal("25"), Decimal("20")) == Decimal("25")

    def test_zero_custom_rate_is_respected(self):
        assert resolve_commission_rate(Decimal("0"), Decimal("20")) == Decimal("0")

    def test_falls_back_to_default(self):
        assert resolve_commission_rate(None, Decimal("20")) == Decimal("20")

    def test_missing_rate(self):
        with pytest.raises(InvalidInputError):
            resolve_commission_rate(None, None)


class TestCommissionStateMachine:

    @pytest.mark.parametrize("event", list(CommissionEvent))
    @pytest.mark.parametrize("terminal", [CommissionStatus.PAID, CommissionStatus.CANCELLED])
    def test_terminal_statuses_never_change(self, terminal, event):
        assert next_commission_status(terminal, event) == terminal

    @pytest.mark.parametrize("current,event,expected", [
        (CommissionStatus.PENDING, CommissionEvent.HOLDING_PERIOD_ELAPSED, CommissionStatus.APPROVED),
        (CommissionStatus.PENDING, CommissionEvent.ADMIN_APPROVE, CommissionStatus.APPROVED),
        (CommissionStatus.PENDING, CommissionEvent.REFUNDED, CommissionStatus.CANCELLED),
        (CommissionStatus.PENDING, CommissionEvent.ADMIN_CANCEL, CommissionStatus.CANCELLED),
        (CommissionStatus.PENDING, CommissionEvent.ADMIN_PAY, CommissionStatus.PENDING),
        (CommissionStatus.APPROVED, CommissionEvent.ADMIN_PAY, CommissionStatus.PAID),
        (CommissionStatus.APPROVED, CommissionEvent.REFUNDED, CommissionStatus.CANCELLED),
        (CommissionStatus.APPROVED, CommissionEvent.ADMIN_CANCEL, CommissionStatus.CANCELLED),
        (CommissionStatus.APPROVED, CommissionEvent.HOLDING_PERIOD_ELAPSED, CommissionStatus.APPROVED),
    ])
    def test_transitions(self, current, event, expected):
        assert next_commission_status(current, event) == expected


def test_pending_until_adds_holding_days():
    created = datetime(2024, 1, 31, 9, 30)
    assert pending_until(created, 30) == created + timedelta(days=30)


def test_summarize_earnings_excludes_cancelled():
    def commission(cid, amount, status):
        return AffiliateCommission(
            commission_id=cid,
            affiliate_profile_id="aff_1",
            credit_purchase_id=f"purchase_{cid}",
            referred_author_id="author_1",
            purchase_amount=Decimal("100"),
            commission_amount=Decimal(amount),
            commission_rate=Decimal("20"),
            status=status
        )

    earnings = summarize_earnings([
        commission("c1", "10.00", CommissionStatus.PENDING),
        commission("c2", "20.00", CommissionStatus.APPROVED),
        commission("c3", "30.00", CommissionStatus.PAID),
        commission("c4", "40.00", CommissionStatus.CANCELLED),
    ])

    assert earnings.pending_earnings == Decimal("10.00")
    assert earnings.approved_earnings == Decimal("20.00")
    assert earnings.paid_earnings == Decimal("30.00")
    assert earnings.total_earnings == Decimal("60.00")
