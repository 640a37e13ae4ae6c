"""
优惠券业务服务层
提供优惠券校验、核销和后台管理相关的业务逻辑处理
"""

from collections import Counter
from typing import List, Optional, Dict, Any
from decimal import Decimal
from datetime import datetime
from enum import Enum

import structlog

from bookproof.core.exceptions import ConflictError, InvalidInputError, NotFoundError
from bookproof.models.coupon import (
    Coupon,
    CouponAppliesTo,
    CouponCreate,
    CouponUpdate,
    CouponErrorReason,
    CouponEvaluation,
    CouponRedemption,
    CouponUsage,
    CouponUsageStats,
    ManualApplyRequest,
    validate_coupon_data
)
from bookproof.repositories.coupon_repository import CouponRepository
from bookproof.services.common_cache import coupon_cache
from bookproof.services.coupon_evaluator import evaluate_coupon, calculate_discount

logger = structlog.get_logger()

RECENT_USAGE_LIMIT = 10


def _db_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """枚举转为字符串，便于写入数据库"""
    return {key: value.value if isinstance(value, Enum) else value for key, value in data.items()}


def _raise_for_field_errors(data: Dict[str, Any]) -> None:
    errors = validate_coupon_data(data)
    if errors:
        raise InvalidInputError(
            errors[0].message,
            details={"errors": [error.model_dump() for error in errors]}
        )


class CouponService:
    """优惠券业务服务"""

    def __init__(self, coupon_repo: CouponRepository):
        self.coupon_repo = coupon_repo
        self.cache = coupon_cache
        self.cache_prefix = "coupon"
        self.cache_ttl = 1800  # 30分钟缓存

    async def get_coupon_by_code(self, code: str, use_cache: bool = True) -> Optional[Coupon]:
        """根据优惠券代码获取优惠券"""
        normalized = code.strip().upper()
        cache_key = f"{self.cache_prefix}:code:{normalized}"

        if use_cache:
            cached_coupon = await self.cache.get(cache_key)
            if cached_coupon:
                return Coupon(**cached_coupon)

        db_coupon = await self.coupon_repo.get_by_code(normalized)
        if not db_coupon:
            return None

        coupon = self.coupon_repo.to_model(db_coupon)

        if use_cache:
            await self.cache.set(cache_key, coupon.model_dump(mode="json"), ttl=self.cache_ttl)

        return coupon

    async def get_coupon(self, coupon_id: str) -> Coupon:
        db_coupon = await self.coupon_repo.get_by_coupon_id(coupon_id)
        if not db_coupon:
            raise NotFoundError(f"Coupon {coupon_id} not found")
        return self.coupon_repo.to_model(db_coupon)

    async def evaluate(
        self,
        code: str,
        user_id: Optional[str] = None,
        purchase_amount: Optional[Decimal] = None,
        credits: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> CouponEvaluation:
        """
        校验优惠券并计算折扣

        优惠券校验不使用缓存，确保实时性；校验本身不会修改使用次数。
        """
        db_coupon = await self.coupon_repo.get_by_code(code)
        coupon = self.coupon_repo.to_model(db_coupon) if db_coupon else None

        prior_usage_count = None
        if coupon and user_id:
            prior_usage_count = await self.coupon_repo.get_user_usage_count(coupon.coupon_id, user_id)

        return evaluate_coupon(
            coupon,
            prior_usage_count,
            purchase_amount=purchase_amount,
            credit_quantity=credits,
            now=now
        )

    async def redeem(
        self,
        code: str,
        user_id: str,
        discount_applied: Decimal,
        user_email: Optional[str] = None,
        credit_purchase_id: Optional[str] = None,
        keyword_research_id: Optional[str] = None,
        purchase_amount: Optional[Decimal] = None,
        credits: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> CouponRedemption:
        """
        核销优惠券（支付确认后调用）

        在调用方事务内锁定优惠券行，重新校验后条件自增使用次数并写入使用记录；
        同一购买的重复核销由 (coupon, user, purchase) 唯一约束拒绝。
        """
        if discount_applied < 0:
            raise InvalidInputError("discount_applied must not be negative")

        db_coupon = await self.coupon_repo.get_by_code(code, for_update=True)
        coupon = self.coupon_repo.to_model(db_coupon) if db_coupon else None

        prior_usage_count = 0
        if coupon:
            prior_usage_count = await self.coupon_repo.get_user_usage_count(coupon.coupon_id, user_id)

        evaluation = evaluate_coupon(
            coupon,
            prior_usage_count,
            purchase_amount=purchase_amount,
            credit_quantity=credits,
            now=now
        )
        if not evaluation.valid:
            logger.info(
                "优惠券核销被拒绝",
                code=code,
                user_id=user_id,
                reason=evaluation.error_reason.value
            )
            return CouponRedemption(redeemed=False, error_reason=evaluation.error_reason)

        if not await self.coupon_repo.increment_usage(coupon.coupon_id):
            return CouponRedemption(redeemed=False, error_reason=CouponErrorReason.USAGE_LIMIT_REACHED)

        db_usage = await self.coupon_repo.add_usage(
            coupon_id=coupon.coupon_id,
            user_id=user_id,
            discount_applied=discount_applied,
            user_email=user_email,
            credit_purchase_id=credit_purchase_id,
            keyword_research_id=keyword_research_id,
            used_at=now
        )

        await self._clear_coupon_caches(coupon.code)
        logger.info(
            "优惠券核销成功",
            coupon_id=coupon.coupon_id,
            user_id=user_id,
            discount_applied=str(discount_applied),
            credit_purchase_id=credit_purchase_id
        )

        return CouponRedemption(redeemed=True, usage=self.coupon_repo.usage_to_model(db_usage))

    async def create_coupon(self, coupon_data: CouponCreate, created_by: Optional[str] = None) -> Coupon:
        """创建优惠券"""
        data = coupon_data.model_dump()
        _raise_for_field_errors(data)

        db_coupon = await self.coupon_repo.create(_db_values(data), created_by=created_by)
        logger.info("优惠券已创建", coupon_id=db_coupon.coupon_id, code=db_coupon.code, created_by=created_by)
        return self.coupon_repo.to_model(db_coupon)

    async def update_coupon(self, coupon_id: str, update_data: CouponUpdate) -> Coupon:
        """更新优惠券，按合并后的完整数据重新校验"""
        existing = await self.get_coupon(coupon_id)

        changes = update_data.model_dump(exclude_unset=True)
        merged = {**existing.model_dump(), **changes}
        _raise_for_field_errors(merged)

        db_coupon = await self.coupon_repo.update(coupon_id, _db_values(changes))
        if not db_coupon:
            raise NotFoundError(f"Coupon {coupon_id} not found")

        await self._clear_coupon_caches(existing.code)
        return self.coupon_repo.to_model(db_coupon)

    async def deactivate_coupon(self, coupon_id: str) -> Coupon:
        """停用优惠券（软删除）"""
        existing = await self.get_coupon(coupon_id)
        db_coupon = await self.coupon_repo.update(coupon_id, {"is_active": False})

        await self._clear_coupon_caches(existing.code)
        logger.info("优惠券已停用", coupon_id=coupon_id)
        return self.coupon_repo.to_model(db_coupon)

    async def list_coupons(
        self,
        is_active: Optional[bool] = None,
        applies_to: Optional[CouponAppliesTo] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Coupon]:
        db_coupons = await self.coupon_repo.list_coupons(
            is_active=is_active,
            applies_to=applies_to,
            limit=limit,
            offset=offset
        )
        return [self.coupon_repo.to_model(db_coupon) for db_coupon in db_coupons]

    async def get_usage_stats(self, coupon_id: str) -> CouponUsageStats:
        """获取优惠券使用统计"""
        coupon = await self.get_coupon(coupon_id)
        stats = await self.coupon_repo.get_usage_stats(coupon_id)
        usages = [
            self.coupon_repo.usage_to_model(db_usage)
            for db_usage in await self.coupon_repo.get_usages(coupon_id)
        ]

        usage_by_date = Counter(usage.used_at.date().isoformat() for usage in usages)

        return CouponUsageStats(
            coupon_id=coupon.coupon_id,
            code=coupon.code,
            total_uses=stats["total_uses"],
            unique_users=stats["unique_users"],
            total_discount_given=stats["total_discount"],
            usage_by_date=dict(sorted(usage_by_date.items())),
            recent_usages=usages[:RECENT_USAGE_LIMIT]
        )

    async def manual_apply(self, request: ManualApplyRequest, admin_id: str) -> CouponUsage:
        """
        管理员手动应用优惠券

        不带金额校验优惠券，拒绝重复应用到同一订单，按订单金额计算折扣后核销。
        """
        evaluation = await self.evaluate(request.coupon_code, user_id=request.user_id)
        if not evaluation.valid:
            raise InvalidInputError(
                evaluation.error_message,
                details={"reason": evaluation.error_reason.value}
            )
        coupon = evaluation.coupon

        if await self.coupon_repo.has_usage_for_purchase(
            coupon.coupon_id,
            request.user_id,
            credit_purchase_id=request.credit_purchase_id,
            keyword_research_id=request.keyword_research_id
        ):
            raise ConflictError("Coupon has already been applied to this purchase")

        discount = Decimal("0")
        if request.purchase_amount is not None:
            discount = calculate_discount(coupon, request.purchase_amount)

        redemption = await self.redeem(
            coupon.code,
            request.user_id,
            discount,
            user_email=request.user_email,
            credit_purchase_id=request.credit_purchase_id,
            keyword_research_id=request.keyword_research_id
        )
        if not redemption.redeemed:
            raise InvalidInputError(
                f"Coupon could not be applied: {redemption.error_reason.value}",
                details={"reason": redemption.error_reason.value}
            )

        logger.info(
            "管理员手动应用优惠券",
            coupon_id=coupon.coupon_id,
            user_id=request.user_id,
            admin_id=admin_id,
            note=request.admin_note
        )
        return redemption.usage

    async def _clear_coupon_caches(self, code: str) -> None:
        """清除优惠券相关缓存"""
        await self.cache.delete(f"{self.cache_prefix}:code:{code.upper()}")
