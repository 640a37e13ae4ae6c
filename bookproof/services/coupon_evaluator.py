"""
优惠券校验与折扣计算
纯计算逻辑，不做任何I/O；调用方负责查询优惠券和用户历史使用次数
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from bookproof.core.clock import resolve_now
from bookproof.core.exceptions import InvalidInputError
from bookproof.models.coupon import (
    Coupon,
    CouponType,
    CouponErrorReason,
    CouponEvaluation,
    COUPON_ERROR_MESSAGES
)

TWO_PLACES = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _failure(
    reason: CouponErrorReason,
    coupon: Optional[Coupon] = None,
    minimum: Optional[object] = None
) -> CouponEvaluation:
    """构造校验失败结果"""
    message = COUPON_ERROR_MESSAGES[reason]
    if minimum is not None:
        message = message.format(minimum=minimum)
    return CouponEvaluation(
        valid=False,
        coupon=coupon,
        error_reason=reason,
        error_message=message
    )


def calculate_discount(coupon: Coupon, purchase_amount: Decimal) -> Decimal:
    """
    计算折扣金额

    百分比券按比例计算，固定金额券取面额；两者都不会超过购买金额。
    """
    if purchase_amount < 0:
        raise InvalidInputError("purchase_amount must not be negative")

    if coupon.coupon_type == CouponType.PERCENTAGE:
        percent = coupon.discount_percent or Decimal("0")
        discount = _money(purchase_amount * percent / Decimal("100"))
    elif coupon.coupon_type == CouponType.FIXED_AMOUNT:
        discount = coupon.discount_amount or Decimal("0")
    else:
        # 附加服务券不产生金额折扣
        discount = Decimal("0")

    return _money(min(discount, purchase_amount))


def evaluate_coupon(
    coupon: Optional[Coupon],
    prior_usage_count: Optional[int],
    purchase_amount: Optional[Decimal] = None,
    credit_quantity: Optional[int] = None,
    now: Optional[datetime] = None
) -> CouponEvaluation:
    """
    按固定顺序校验优惠券，第一个失败即返回

    1. 存在  2. 启用  3. 有效期  4. 总次数  5. 单用户次数
    6. 最低金额  7. 最低积分

    按代码查找优惠券和统计用户已用次数由调用方（CouponService）完成：
    coupon 为 None 即代码查不到，返回 NOT_FOUND。
    带时区的 now 先转换为 UTC。
    prior_usage_count 为空表示匿名校验，跳过单用户次数检查；
    未提供金额/积分时跳过对应门槛，也不计算折扣。
    校验失败以数据形式返回，畸形输入抛出 InvalidInputError。
    """
    if prior_usage_count is not None and prior_usage_count < 0:
        raise InvalidInputError("prior_usage_count must not be negative")
    if purchase_amount is not None and purchase_amount < 0:
        raise InvalidInputError("purchase_amount must not be negative")
    if credit_quantity is not None and credit_quantity < 0:
        raise InvalidInputError("credit_quantity must not be negative")

    now = resolve_now(now)

    if coupon is None:
        return _failure(CouponErrorReason.NOT_FOUND)

    if not coupon.is_active:
        return _failure(CouponErrorReason.INACTIVE, coupon)

    if now < coupon.valid_from:
        return _failure(CouponErrorReason.NOT_YET_VALID, coupon)
    if coupon.valid_until is not None and now > coupon.valid_until:
        return _failure(CouponErrorReason.EXPIRED, coupon)

    if coupon.max_uses is not None and coupon.current_uses >= coupon.max_uses:
        return _failure(CouponErrorReason.USAGE_LIMIT_REACHED, coupon)

    if prior_usage_count is not None and prior_usage_count >= coupon.max_uses_per_user:
        return _failure(CouponErrorReason.PER_USER_LIMIT_REACHED, coupon)

    if (
        coupon.minimum_purchase is not None and
        purchase_amount is not None and
        purchase_amount < coupon.minimum_purchase
    ):
        return _failure(CouponErrorReason.MINIMUM_NOT_MET, coupon, minimum=coupon.minimum_purchase)

    if (
        coupon.minimum_credits is not None and
        credit_quantity is not None and
        credit_quantity < coupon.minimum_credits
    ):
        return _failure(CouponErrorReason.MINIMUM_CREDITS_NOT_MET, coupon, minimum=coupon.minimum_credits)

    if purchase_amount is None:
        return CouponEvaluation(valid=True, coupon=coupon)

    discount = calculate_discount(coupon, purchase_amount)
    final_price = _money(max(purchase_amount - discount, Decimal("0")))

    return CouponEvaluation(
        valid=True,
        coupon=coupon,
        discount_amount=discount,
        final_price=final_price
    )
