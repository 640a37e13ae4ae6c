"""
积分业务服务层
提供积分余额、购买报价、支付入账、激活与扣减等业务逻辑
"""

from typing import List, Optional
from decimal import Decimal
from datetime import datetime

import structlog

from bookproof.core.clock import resolve_now
from bookproof.core.config import settings
from bookproof.core.exceptions import (
    BusinessException,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError
)
from bookproof.models.coupon import CouponAppliesTo
from bookproof.models.credit import (
    CompletedPurchaseRecord,
    CreditAllocation,
    CreditBalance,
    CreditCheckoutQuote,
    CreditPurchase,
    PaymentStatus
)
from bookproof.repositories.credit_repository import CreditRepository
from bookproof.services.common_cache import credit_cache
from bookproof.services.commission_service import CommissionService
from bookproof.services.coupon_service import CouponService
from bookproof.services.credit_ledger import compute_credit_balance, plan_credit_allocation

logger = structlog.get_logger()


class CreditService:
    """积分业务服务"""

    def __init__(
        self,
        credit_repo: CreditRepository,
        coupon_service: CouponService,
        commission_service: CommissionService
    ):
        self.credit_repo = credit_repo
        self.coupon_service = coupon_service
        self.commission_service = commission_service
        self.cache = credit_cache
        self.cache_prefix = "credit"
        self.cache_ttl = 300  # 5分钟缓存，余额随时间变化

    async def get_balance(
        self,
        author_profile_id: str,
        now: Optional[datetime] = None,
        use_cache: bool = True
    ) -> CreditBalance:
        """获取作者积分余额"""
        cache_key = f"{self.cache_prefix}:balance:{author_profile_id}"
        # 指定时间点的查询不走缓存
        use_cache = use_cache and now is None

        if use_cache:
            cached_balance = await self.cache.get(cache_key)
            if cached_balance:
                return CreditBalance(**cached_balance)

        purchases = [self.credit_repo.to_model(p) for p in await self.credit_repo.list_purchases(author_profile_id)]
        usages = [self.credit_repo.usage_to_model(u) for u in await self.credit_repo.list_usages(author_profile_id)]

        balance = compute_credit_balance(
            purchases,
            usages,
            settings.credit_expiry_look_ahead_days,
            now=now
        )

        if use_cache:
            await self.cache.set(cache_key, balance.model_dump(mode="json"), ttl=self.cache_ttl)

        return balance

    async def get_purchase_history(
        self,
        author_profile_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> List[CreditPurchase]:
        db_purchases = await self.credit_repo.list_purchases(author_profile_id, limit=limit, offset=offset)
        return [self.credit_repo.to_model(p) for p in db_purchases]

    async def quote_credit_purchase(
        self,
        user_id: str,
        base_price: Decimal,
        credits: int,
        coupon_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> CreditCheckoutQuote:
        """
        计算积分购买报价

        优惠券无效或不适用于积分购买时直接拒绝。
        """
        if base_price < 0:
            raise InvalidInputError("base_price must not be negative")
        if credits < 1:
            raise InvalidInputError("credits must be at least 1")

        if not coupon_code:
            return CreditCheckoutQuote(base_price=base_price, credits=credits, final_price=base_price)

        evaluation = await self.coupon_service.evaluate(
            coupon_code,
            user_id=user_id,
            purchase_amount=base_price,
            credits=credits,
            now=now
        )
        if not evaluation.valid:
            raise InvalidInputError(
                evaluation.error_message,
                details={"reason": evaluation.error_reason.value}
            )

        coupon = evaluation.coupon
        if not coupon.applies_to_target(CouponAppliesTo.CREDITS):
            raise InvalidInputError("This coupon cannot be used for credit purchases")

        return CreditCheckoutQuote(
            base_price=base_price,
            credits=credits,
            discount_amount=evaluation.discount_amount,
            final_price=evaluation.final_price,
            coupon_id=coupon.coupon_id,
            coupon_code=coupon.code
        )

    async def record_completed_purchase(
        self,
        record: CompletedPurchaseRecord,
        now: Optional[datetime] = None
    ) -> CreditPurchase:
        """
        支付确认后入账

        以支付流水号幂等；优惠券核销和佣金创建失败只记录日志，不影响入账。
        """
        now = resolve_now(now)

        existing = await self.credit_repo.get_by_payment_reference(record.payment_reference)
        if existing:
            logger.info("支付已入账，跳过重复处理", payment_reference=record.payment_reference)
            return self.credit_repo.to_model(existing)

        db_purchase = await self.credit_repo.create_purchase(
            author_profile_id=record.author_profile_id,
            credits=record.credits,
            amount_paid=record.amount_paid,
            validity_days=record.validity_days,
            payment_reference=record.payment_reference,
            purchase_date=now,
            currency=record.currency,
            package_tier_id=record.package_tier_id,
            payment_status=PaymentStatus.COMPLETED,
            coupon_id=record.coupon_id,
            discount_applied=record.discount_applied
        )
        purchase = self.credit_repo.to_model(db_purchase)

        if record.coupon_id:
            await self._redeem_purchase_coupon(record, purchase, now)

        if settings.feature_affiliate_program:
            try:
                await self.commission_service.create_commission_for_purchase(purchase, now=now)
            except BusinessException as e:
                logger.error(
                    "佣金创建失败",
                    credit_purchase_id=purchase.purchase_id,
                    error=e.message
                )

        await self._clear_credit_caches(record.author_profile_id)
        logger.info(
            "积分购买已入账",
            credit_purchase_id=purchase.purchase_id,
            author_profile_id=record.author_profile_id,
            credits=record.credits,
            amount_paid=str(record.amount_paid)
        )
        return purchase

    async def activate_purchase(
        self,
        author_profile_id: str,
        purchase_id: str,
        now: Optional[datetime] = None
    ) -> CreditPurchase:
        """在激活窗口内激活积分，已激活的重复调用不做变更"""
        now = resolve_now(now)

        db_purchase = await self.credit_repo.get_purchase(purchase_id, for_update=True)
        if not db_purchase or db_purchase.author_profile_id != author_profile_id:
            raise NotFoundError(f"Credit purchase {purchase_id} not found")

        if db_purchase.activated:
            return self.credit_repo.to_model(db_purchase)

        if db_purchase.payment_status != PaymentStatus.COMPLETED.value:
            raise InvalidStateTransitionError("Credits cannot be activated before payment is confirmed")
        if db_purchase.activation_window_expires_at <= now:
            raise InvalidStateTransitionError("Activation window has expired; these credits are forfeited")

        db_purchase = await self.credit_repo.mark_activated(db_purchase, now)

        await self._clear_credit_caches(author_profile_id)
        logger.info(
            "积分已激活",
            credit_purchase_id=purchase_id,
            author_profile_id=author_profile_id,
            credits=db_purchase.credits
        )
        return self.credit_repo.to_model(db_purchase)

    async def allocate_credits(
        self,
        author_profile_id: str,
        credits: int,
        book_id: str,
        now: Optional[datetime] = None
    ) -> List[CreditAllocation]:
        """按最早过期优先从有效购买中扣减积分"""
        now = resolve_now(now)

        await self.credit_repo.lock_author_purchases(author_profile_id)
        purchases = [self.credit_repo.to_model(p) for p in await self.credit_repo.list_purchases(author_profile_id)]
        usages = [self.credit_repo.usage_to_model(u) for u in await self.credit_repo.list_usages(author_profile_id)]

        plan = plan_credit_allocation(purchases, usages, credits, now=now)
        await self.credit_repo.add_usages(
            author_profile_id,
            [(allocation.credit_purchase_id, allocation.credits) for allocation in plan],
            book_id=book_id,
            created_at=now
        )

        await self._clear_credit_caches(author_profile_id)
        logger.info(
            "积分已分配",
            author_profile_id=author_profile_id,
            book_id=book_id,
            credits=credits,
            purchases=len(plan)
        )
        return plan

    async def _redeem_purchase_coupon(
        self,
        record: CompletedPurchaseRecord,
        purchase: CreditPurchase,
        now: datetime
    ) -> None:
        discount = record.discount_applied or Decimal("0")
        try:
            coupon = await self.coupon_service.get_coupon(record.coupon_id)
            redemption = await self.coupon_service.redeem(
                coupon.code,
                record.user_id,
                discount,
                user_email=record.user_email,
                credit_purchase_id=purchase.purchase_id,
                purchase_amount=record.amount_paid + discount,
                credits=record.credits,
                now=now
            )
        except BusinessException as e:
            logger.error("优惠券核销失败", coupon_id=record.coupon_id, error=e.message)
            return

        if not redemption.redeemed:
            logger.warning(
                "优惠券核销未通过校验",
                coupon_id=record.coupon_id,
                credit_purchase_id=purchase.purchase_id,
                reason=redemption.error_reason.value
            )

    async def _clear_credit_caches(self, author_profile_id: str) -> None:
        await self.cache.delete(f"{self.cache_prefix}:balance:{author_profile_id}")
