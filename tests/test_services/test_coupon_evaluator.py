"""
优惠券校验与折扣计算测试
"""

import pytest
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timedelta, timezone

from bookproof.core.exceptions import InvalidInputError
from bookproof.models.coupon import Coupon, CouponErrorReason, CouponType
from bookproof.services.coupon_evaluator import evaluate_coupon, calculate_discount


class TestEvaluateCoupon:
    """校验顺序与结果"""

    def test_summer_coupon_discounts_twenty_percent(self, summer_coupon, now):
        result = evaluate_coupon(summer_coupon, 0, purchase_amount=Decimal("150"), now=now)

        assert result.valid is True
        assert result.discount_amount == Decimal("30.00")
        assert result.final_price == Decimal("120.00")
        assert result.error_reason is None

    def test_summer_coupon_below_minimum(self, summer_coupon, now):
        result = evaluate_coupon(summer_coupon, 0, purchase_amount=Decimal("50"), now=now)

        assert result.valid is False
        assert result.error_reason == CouponErrorReason.MINIMUM_NOT_MET
        assert result.error_message == "Minimum purchase of $100 required"
        assert result.discount_amount is None

    def test_missing_coupon(self, now):
        result = evaluate_coupon(None, 0, purchase_amount=Decimal("150"), now=now)

        assert result.valid is False
        assert result.error_reason == CouponErrorReason.NOT_FOUND
        assert result.error_message == "Invalid coupon code"

    def test_inactive_wins_over_expired(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={
            "is_active": False,
            "valid_until": now - timedelta(days=1)
        })
        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=now)
        assert result.error_reason == CouponErrorReason.INACTIVE

    def test_not_yet_valid(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"valid_from": now + timedelta(hours=1)})
        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=now)
        assert result.error_reason == CouponErrorReason.NOT_YET_VALID

    def test_expired(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"valid_until": now - timedelta(seconds=1)})
        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=now)
        assert result.error_reason == CouponErrorReason.EXPIRED

    def test_valid_until_is_inclusive(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"valid_until": now})
        assert evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=now).valid is True

    def test_open_ended_coupon(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"valid_until": None})
        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=now + timedelta(days=3650))
        assert result.valid is True

    def test_usage_limit_checked_before_per_user_limit(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"max_uses": 10, "current_uses": 10})
        result = evaluate_coupon(coupon, 1, purchase_amount=Decimal("150"), now=now)
        assert result.error_reason == CouponErrorReason.USAGE_LIMIT_REACHED

    def test_per_user_limit(self, summer_coupon, now):
        result = evaluate_coupon(summer_coupon, 1, purchase_amount=Decimal("150"), now=now)
        assert result.error_reason == CouponErrorReason.PER_USER_LIMIT_REACHED

    def test_anonymous_evaluation_skips_per_user_limit(self, summer_coupon, now):
        result = evaluate_coupon(summer_coupon, None, purchase_amount=Decimal("150"), now=now)
        assert result.valid is True

    def test_minimum_credits(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"minimum_credits": 50})
        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), credit_quantity=25, now=now)

        assert result.error_reason == CouponErrorReason.MINIMUM_CREDITS_NOT_MET
        assert result.error_message == "Minimum 50 credits required"

    def test_without_amount_returns_no_discount(self, summer_coupon, now):
        result = evaluate_coupon(summer_coupon, 0, now=now)

        assert result.valid is True
        assert result.discount_amount is None
        assert result.final_price is None

    def test_evaluation_does_not_touch_usage_count(self, summer_coupon, now):
        for _ in range(3):
            evaluate_coupon(summer_coupon, 0, purchase_amount=Decimal("150"), now=now)
        assert summer_coupon.current_uses == 0

    @pytest.mark.parametrize("field,value", [
        ("purchase_amount", Decimal("-1")),
        ("credit_quantity", -5),
        ("prior_usage_count", -1),
    ])
    def test_negative_input_is_rejected(self, summer_coupon, now, field, value):
        kwargs = {"prior_usage_count": 0, "purchase_amount": Decimal("150"), "now": now}
        kwargs[field] = value
        with pytest.raises(InvalidInputError):
            evaluate_coupon(summer_coupon, **kwargs)


class TestCalculateDiscount:
    """折扣金额计算"""

    @pytest.mark.parametrize("percent", ["0", "1", "12.5", "33.33", "50", "100"])
    @pytest.mark.parametrize("amount", ["0", "0.01", "9.99", "150", "1234.56"])
    def test_percentage_never_exceeds_amount(self, summer_coupon, now, percent, amount):
        coupon = summer_coupon.model_copy(update={"discount_percent": Decimal(percent)})
        purchase = Decimal(amount)

        discount = calculate_discount(coupon, purchase)

        expected = (purchase * Decimal(percent) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        assert discount <= purchase
        assert discount == expected

    def test_fixed_amount_capped_at_purchase(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={
            "coupon_type": CouponType.FIXED_AMOUNT,
            "discount_percent": None,
            "discount_amount": Decimal("25"),
            "minimum_purchase": None
        })

        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("10"), now=now)

        assert result.discount_amount == Decimal("10.00")
        assert result.final_price == Decimal("0.00")

    def test_fixed_amount_below_purchase(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={
            "coupon_type": CouponType.FIXED_AMOUNT,
            "discount_percent": None,
            "discount_amount": Decimal("25")
        })

        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("199.99"), now=now)

        assert result.discount_amount == Decimal("25.00")
        assert result.final_price == Decimal("174.99")

    def test_free_addon_gives_no_money_off(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={
            "coupon_type": CouponType.FREE_ADDON,
            "discount_percent": None
        })
        assert calculate_discount(coupon, Decimal("150")) == Decimal("0.00")


class TestTimezoneHandling:
    """带时区与不带时区的时间混用"""

    def test_aware_now_against_naive_window(self, summer_coupon, now):
        aware_now = now.replace(tzinfo=timezone.utc)

        result = evaluate_coupon(summer_coupon, 0, purchase_amount=Decimal("150"), now=aware_now)

        assert result.valid is True
        assert result.discount_amount == Decimal("30.00")

    def test_aware_now_is_converted_to_utc(self, summer_coupon, now):
        coupon = summer_coupon.model_copy(update={"valid_until": now})
        # 北京时间 19:00 即 UTC 11:00，仍在截止时间之前
        beijing_now = datetime(2024, 6, 15, 19, 0, 0, tzinfo=timezone(timedelta(hours=8)))

        result = evaluate_coupon(coupon, 0, purchase_amount=Decimal("150"), now=beijing_now)

        assert result.valid is True

    def test_aware_window_against_default_now(self, summer_coupon):
        coupon = Coupon.model_validate({
            **summer_coupon.model_dump(),
            "valid_from": "2000-01-01T00:00:00Z",
            "valid_until": "2999-01-01T00:00:00+08:00"
        })

        assert coupon.valid_from.tzinfo is None
        assert coupon.valid_until == datetime(2998, 12, 31, 16, 0, 0)
        assert evaluate_coupon(coupon, 0, purchase_amount=Decimal("150")).valid is True
