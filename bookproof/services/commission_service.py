"""
联盟佣金业务服务层
负责推荐购买产生佣金、冻结期解冻、退款取消以及收益汇总
"""

from typing import List, Optional
from decimal import Decimal
from datetime import datetime

import structlog

from bookproof.core.clock import resolve_now
from bookproof.core.config import settings
from bookproof.core.exceptions import InvalidStateTransitionError, NotFoundError
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliateEarnings,
    CommissionApprovalSummary,
    CommissionEvent,
    CommissionStatus
)
from bookproof.models.credit import CreditPurchase, PaymentStatus
from bookproof.repositories.affiliate_repository import AffiliateRepository
from bookproof.services.common_cache import affiliate_cache
from bookproof.services.commission_calculator import (
    compute_commission,
    next_commission_status,
    pending_until,
    resolve_commission_rate,
    summarize_earnings
)

logger = structlog.get_logger()


class CommissionService:
    """联盟佣金业务服务"""

    def __init__(self, affiliate_repo: AffiliateRepository):
        self.affiliate_repo = affiliate_repo
        self.cache = affiliate_cache
        self.cache_prefix = "commission"
        self.cache_ttl = 600  # 10分钟缓存

    async def create_commission_for_purchase(
        self,
        purchase: CreditPurchase,
        now: Optional[datetime] = None
    ) -> Optional[AffiliateCommission]:
        """
        为被推荐作者的购买创建佣金

        无推荐关系、推广者未启用、支付未完成或已有佣金时不创建，返回 None。
        """
        now = resolve_now(now)

        if purchase.payment_status != PaymentStatus.COMPLETED:
            return None

        referral = await self.affiliate_repo.get_referral_for_author(purchase.author_profile_id)
        if not referral:
            return None

        profile = await self.affiliate_repo.get_profile(referral.affiliate_profile_id)
        if not profile or not profile.is_active or not profile.is_approved:
            logger.info(
                "推广者不可用，跳过佣金",
                affiliate_profile_id=referral.affiliate_profile_id,
                credit_purchase_id=purchase.purchase_id
            )
            return None

        if await self.affiliate_repo.get_commission_by_purchase(purchase.purchase_id):
            return None

        rate = resolve_commission_rate(profile.commission_rate, settings.affiliate_commission_percentage)
        calculation = compute_commission(purchase.amount_paid, rate)

        db_commission = await self.affiliate_repo.create_commission(
            affiliate_profile_id=profile.affiliate_profile_id,
            credit_purchase_id=purchase.purchase_id,
            referred_author_id=purchase.author_profile_id,
            purchase_amount=calculation.purchase_amount,
            commission_amount=calculation.commission_amount,
            commission_rate=calculation.commission_rate,
            status=calculation.status,
            pending_until=pending_until(now, settings.commission_holding_days),
            created_at=now
        )
        await self.affiliate_repo.mark_first_purchase(referral, purchase.purchase_date)

        await self._clear_affiliate_caches(profile.affiliate_profile_id)
        logger.info(
            "佣金已创建",
            commission_id=db_commission.commission_id,
            affiliate_profile_id=profile.affiliate_profile_id,
            commission_amount=str(calculation.commission_amount),
            commission_rate=str(rate)
        )
        return self.affiliate_repo.commission_to_model(db_commission)

    async def approve_pending_commissions(self, now: Optional[datetime] = None) -> CommissionApprovalSummary:
        """解冻所有冻结期已满的佣金"""
        now = resolve_now(now)

        summary = CommissionApprovalSummary()
        touched_profiles = set()

        for db_commission in await self.affiliate_repo.list_due_pending_commissions(now):
            new_status = next_commission_status(
                CommissionStatus(db_commission.status),
                CommissionEvent.HOLDING_PERIOD_ELAPSED
            )
            if new_status != CommissionStatus.APPROVED:
                continue

            db_commission.status = new_status.value
            db_commission.approved_at = now
            await self.affiliate_repo.save_commission(db_commission)

            summary.approved_count += 1
            summary.total_amount += Decimal(str(db_commission.commission_amount))
            touched_profiles.add(db_commission.affiliate_profile_id)

        for affiliate_profile_id in touched_profiles:
            await self._clear_affiliate_caches(affiliate_profile_id)

        logger.info(
            "冻结期佣金解冻完成",
            approved_count=summary.approved_count,
            total_amount=str(summary.total_amount)
        )
        return summary

    async def cancel_commission_for_refund(
        self,
        credit_purchase_id: str,
        reason: str,
        now: Optional[datetime] = None
    ) -> AffiliateCommission:
        """购买退款时取消佣金，已支付的佣金不可取消"""
        now = resolve_now(now)

        db_commission = await self.affiliate_repo.get_commission_by_purchase(credit_purchase_id)
        if not db_commission:
            raise NotFoundError(f"No commission found for purchase {credit_purchase_id}")

        current = CommissionStatus(db_commission.status)
        new_status = next_commission_status(current, CommissionEvent.REFUNDED)
        if new_status == current:
            if current == CommissionStatus.PAID:
                raise InvalidStateTransitionError("Cannot cancel a commission that has already been paid")
            raise InvalidStateTransitionError(f"Commission is already {current.value.lower()}")

        db_commission.status = new_status.value
        db_commission.cancelled_at = now
        db_commission.cancellation_reason = reason
        await self.affiliate_repo.save_commission(db_commission)

        await self._clear_affiliate_caches(db_commission.affiliate_profile_id)
        logger.info(
            "佣金已取消",
            commission_id=db_commission.commission_id,
            credit_purchase_id=credit_purchase_id,
            previous_status=current.value,
            reason=reason
        )
        return self.affiliate_repo.commission_to_model(db_commission)

    async def list_commissions(
        self,
        affiliate_profile_id: str,
        status: Optional[CommissionStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[AffiliateCommission]:
        db_commissions = await self.affiliate_repo.list_commissions(
            affiliate_profile_id,
            status=status,
            limit=limit,
            offset=offset
        )
        return [self.affiliate_repo.commission_to_model(c) for c in db_commissions]

    async def get_earnings(self, affiliate_profile_id: str, use_cache: bool = True) -> AffiliateEarnings:
        """获取推广者收益汇总"""
        cache_key = f"{self.cache_prefix}:earnings:{affiliate_profile_id}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return AffiliateEarnings(**cached)

        db_commissions = await self.affiliate_repo.list_commissions(affiliate_profile_id)
        earnings = summarize_earnings(
            self.affiliate_repo.commission_to_model(c) for c in db_commissions
        )

        if use_cache:
            await self.cache.set(cache_key, earnings.model_dump(mode="json"), ttl=self.cache_ttl)

        return earnings

    async def _clear_affiliate_caches(self, affiliate_profile_id: str) -> None:
        await self.cache.delete(f"{self.cache_prefix}:earnings:{affiliate_profile_id}")
