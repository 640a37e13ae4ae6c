"""
推广者提现业务服务层
"""

from typing import Dict, List, Optional, Sequence, Tuple
from decimal import Decimal
from datetime import datetime

import structlog

from bookproof.core.clock import resolve_now
from bookproof.core.config import settings
from bookproof.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError
)
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliatePayout,
    CommissionEvent,
    CommissionStatus,
    PayoutAction,
    PayoutProcessRequest,
    PayoutRequestCreate,
    PayoutStatus
)
from bookproof.repositories.affiliate_repository import AffiliateRepository
from bookproof.services.common_cache import affiliate_cache
from bookproof.services.commission_calculator import next_commission_status

logger = structlog.get_logger()

MASK_PREFIX = "****"

_PAYOUT_TRANSITIONS: Dict[Tuple[PayoutStatus, PayoutAction], PayoutStatus] = {
    (PayoutStatus.REQUESTED, PayoutAction.APPROVE): PayoutStatus.APPROVED,
    (PayoutStatus.REQUESTED, PayoutAction.REJECT): PayoutStatus.REJECTED,
    (PayoutStatus.APPROVED, PayoutAction.REJECT): PayoutStatus.REJECTED,
    (PayoutStatus.APPROVED, PayoutAction.COMPLETE): PayoutStatus.COMPLETED,
}


def mask_payment_details(details: str) -> str:
    """支付信息脱敏，只保留末4位"""
    details = details.strip()
    if len(details) <= 4:
        return MASK_PREFIX
    return f"{MASK_PREFIX}{details[-4:]}"


def next_payout_status(current: PayoutStatus, action: PayoutAction) -> PayoutStatus:
    """提现状态流转，不允许的动作抛出异常"""
    new_status = _PAYOUT_TRANSITIONS.get((current, action))
    if new_status is None:
        raise InvalidStateTransitionError(
            f"Cannot {action.value.lower()} a payout that is {current.value.lower()}"
        )
    return new_status


def select_commissions_for_payout(
    commissions: Sequence[AffiliateCommission],
    amount: Decimal
) -> List[AffiliateCommission]:
    """按解冻时间先后选取可提现佣金，直到覆盖提现金额"""
    selected: List[AffiliateCommission] = []
    covered = Decimal("0")

    ordered = sorted(
        (c for c in commissions if c.status == CommissionStatus.APPROVED),
        key=lambda c: (c.approved_at or c.created_at, c.created_at)
    )
    for commission in ordered:
        if covered >= amount:
            break
        selected.append(commission)
        covered += commission.commission_amount

    if covered < amount:
        raise InvalidInputError(
            f"Approved commissions ({covered}) do not cover payout amount {amount}"
        )
    return selected


class PayoutService:
    """提现业务服务"""

    def __init__(self, affiliate_repo: AffiliateRepository):
        self.affiliate_repo = affiliate_repo
        self.cache = affiliate_cache
        self.cache_prefix = "commission"

    async def request_payout(
        self,
        affiliate_profile_id: str,
        request: PayoutRequestCreate,
        now: Optional[datetime] = None
    ) -> AffiliatePayout:
        """
        推广者申请提现

        金额不低于最低提现额、不超过可提现佣金总额，且同时只能有一笔处理中的申请。
        """
        now = resolve_now(now)

        profile = await self.affiliate_repo.get_profile(affiliate_profile_id)
        if not profile:
            raise NotFoundError("Affiliate profile not found")
        if not profile.is_approved or not profile.is_active:
            raise ForbiddenError("Affiliate account is not approved or inactive")

        if request.amount < settings.minimum_payout_amount:
            raise InvalidInputError(f"Minimum payout amount is ${settings.minimum_payout_amount}")

        approved_total = await self.affiliate_repo.get_approved_total(affiliate_profile_id)
        if request.amount > approved_total:
            raise InvalidInputError(
                f"Requested amount exceeds approved earnings of ${approved_total}",
                details={"approved_total": str(approved_total)}
            )

        if await self.affiliate_repo.count_open_payouts(affiliate_profile_id) > 0:
            raise ConflictError("You already have a pending payout request")

        db_payout = await self.affiliate_repo.create_payout(
            affiliate_profile_id=affiliate_profile_id,
            amount=request.amount,
            payment_method=request.payment_method.value,
            payment_details=mask_payment_details(request.payment_details),
            notes=request.notes,
            requested_at=now
        )

        logger.info(
            "提现申请已创建",
            payout_id=db_payout.payout_id,
            affiliate_profile_id=affiliate_profile_id,
            amount=str(request.amount)
        )
        return self.affiliate_repo.payout_to_model(db_payout)

    async def process_payout(
        self,
        payout_id: str,
        request: PayoutProcessRequest,
        admin_id: str,
        now: Optional[datetime] = None
    ) -> AffiliatePayout:
        """管理员处理提现：批准、拒绝或完成打款"""
        now = resolve_now(now)

        db_payout = await self.affiliate_repo.get_payout(payout_id, for_update=True)
        if not db_payout:
            raise NotFoundError(f"Payout {payout_id} not found")

        if request.action == PayoutAction.REJECT and not request.rejection_reason:
            raise InvalidInputError("Rejection reason is required")

        new_status = next_payout_status(PayoutStatus(db_payout.status), request.action)

        if new_status == PayoutStatus.COMPLETED:
            await self._mark_commissions_paid(db_payout.affiliate_profile_id, Decimal(str(db_payout.amount)), now)
            db_payout.paid_at = now
            if request.transaction_id:
                db_payout.transaction_id = request.transaction_id
        elif new_status == PayoutStatus.REJECTED:
            db_payout.rejection_reason = request.rejection_reason

        db_payout.status = new_status.value
        db_payout.processed_by = admin_id
        db_payout.processed_at = now
        if request.notes:
            db_payout.notes = request.notes
        await self.affiliate_repo.save_payout(db_payout)

        logger.info(
            "提现已处理",
            payout_id=payout_id,
            action=request.action.value,
            status=new_status.value,
            admin_id=admin_id
        )
        return self.affiliate_repo.payout_to_model(db_payout)

    async def list_payouts(
        self,
        affiliate_profile_id: Optional[str] = None,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[AffiliatePayout]:
        db_payouts = await self.affiliate_repo.list_payouts(
            affiliate_profile_id=affiliate_profile_id,
            status=status,
            limit=limit,
            offset=offset
        )
        return [self.affiliate_repo.payout_to_model(p) for p in db_payouts]

    async def _mark_commissions_paid(self, affiliate_profile_id: str, amount: Decimal, now: datetime) -> None:
        """把覆盖提现金额的佣金标记为已支付"""
        db_commissions = await self.affiliate_repo.list_approved_commissions(affiliate_profile_id)
        by_id = {c.commission_id: c for c in db_commissions}

        selected = select_commissions_for_payout(
            [self.affiliate_repo.commission_to_model(c) for c in db_commissions],
            amount
        )
        for commission in selected:
            db_commission = by_id[commission.commission_id]
            db_commission.status = next_commission_status(commission.status, CommissionEvent.ADMIN_PAY).value
            db_commission.paid_at = now
            await self.affiliate_repo.save_commission(db_commission)

        await self.cache.delete(f"{self.cache_prefix}:earnings:{affiliate_profile_id}")
