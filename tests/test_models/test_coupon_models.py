"""
优惠券数据模型测试
"""

import pytest
from decimal import Decimal
from datetime import datetime

from bookproof.models.coupon import (
    Coupon,
    CouponAppliesTo,
    CouponCreate,
    CouponType,
    validate_coupon_data
)


def error_fields(data):
    return [error.field for error in validate_coupon_data(data)]


class TestValidateCouponData:
    """优惠券字段组合校验"""

    def test_valid_percentage_coupon(self):
        assert validate_coupon_data({
            "code": "SUMMER2024",
            "coupon_type": CouponType.PERCENTAGE,
            "discount_percent": Decimal("20")
        }) == []

    def test_valid_fixed_amount_coupon(self):
        assert error_fields({
            "code": "TENOFF",
            "coupon_type": CouponType.FIXED_AMOUNT,
            "discount_amount": Decimal("10")
        }) == []

    def test_percentage_requires_percent(self):
        assert error_fields({"code": "X", "coupon_type": CouponType.PERCENTAGE}) == ["discount_percent"]

    @pytest.mark.parametrize("percent", [Decimal("0"), Decimal("-5"), Decimal("100.01")])
    def test_percent_out_of_range(self, percent):
        assert error_fields({
            "code": "X",
            "coupon_type": CouponType.PERCENTAGE,
            "discount_percent": percent
        }) == ["discount_percent"]

    def test_fixed_amount_rejects_percent(self):
        assert error_fields({
            "code": "X",
            "coupon_type": CouponType.FIXED_AMOUNT,
            "discount_amount": Decimal("10"),
            "discount_percent": Decimal("10")
        }) == ["discount_percent"]

    def test_free_addon_has_no_discount_values(self):
        assert error_fields({
            "code": "BONUS",
            "coupon_type": CouponType.FREE_ADDON,
            "discount_amount": Decimal("1")
        }) == ["coupon_type"]

    def test_validity_window_order(self):
        assert error_fields({
            "code": "X",
            "coupon_type": CouponType.FREE_ADDON,
            "valid_from": datetime(2024, 6, 1),
            "valid_until": datetime(2024, 6, 1)
        }) == ["valid_until"]

    def test_limits_and_minimums(self):
        fields = error_fields({
            "code": "X",
            "coupon_type": CouponType.FREE_ADDON,
            "max_uses": 0,
            "max_uses_per_user": 0,
            "minimum_purchase": Decimal("-1"),
            "minimum_credits": -1
        })
        assert fields == ["max_uses", "max_uses_per_user", "minimum_purchase", "minimum_credits"]

    def test_blank_code(self):
        assert error_fields({"code": "   ", "coupon_type": CouponType.FREE_ADDON}) == ["code"]

    def test_explicit_null_for_required_field(self):
        assert error_fields({
            "code": "X",
            "coupon_type": CouponType.FREE_ADDON,
            "max_uses_per_user": None,
            "valid_from": None
        }) == ["max_uses_per_user", "valid_from"]

    def test_missing_optional_fields_are_not_null_errors(self):
        assert error_fields({"coupon_type": CouponType.FREE_ADDON, "valid_until": None}) == []


class TestCouponTimestamps:

    def test_aware_input_is_stored_as_naive_utc(self):
        coupon = CouponCreate.model_validate({
            "code": "TZ",
            "coupon_type": "FREE_ADDON",
            "valid_from": "2024-06-01T08:00:00+08:00",
            "valid_until": "2024-07-01T00:00:00Z"
        })

        assert coupon.valid_from == datetime(2024, 6, 1, 0, 0, 0)
        assert coupon.valid_until == datetime(2024, 7, 1, 0, 0, 0)
        assert validate_coupon_data(coupon.model_dump()) == []


class TestCouponScope:

    @pytest.mark.parametrize("applies_to,target,expected", [
        (CouponAppliesTo.CREDITS, CouponAppliesTo.CREDITS, True),
        (CouponAppliesTo.CREDITS, CouponAppliesTo.KEYWORD_RESEARCH, False),
        (CouponAppliesTo.ALL, CouponAppliesTo.KEYWORD_RESEARCH, True),
        (CouponAppliesTo.KEYWORD_RESEARCH, CouponAppliesTo.CREDITS, False),
    ])
    def test_applies_to_target(self, applies_to, target, expected):
        coupon = Coupon(
            coupon_id="c1",
            code="SCOPE",
            coupon_type=CouponType.FREE_ADDON,
            applies_to=applies_to,
            valid_from=datetime(2024, 1, 1)
        )
        assert coupon.applies_to_target(target) is expected
