"""
联盟推广数据库操作层
"""

import uuid
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, and_, asc, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookproof.core.exceptions import ConflictError
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliatePayout,
    AffiliateProfile,
    CommissionStatus,
    PayoutStatus
)
from bookproof.models.database.affiliate_db import (
    AffiliateProfileDB,
    AffiliateReferralDB,
    AffiliateCommissionDB,
    AffiliatePayoutDB
)

OPEN_PAYOUT_STATUSES = (PayoutStatus.REQUESTED.value, PayoutStatus.APPROVED.value)


class AffiliateRepository:
    """联盟推广数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # 推广者档案

    async def get_profile(self, affiliate_profile_id: str) -> Optional[AffiliateProfileDB]:
        result = await self.db.execute(
            select(AffiliateProfileDB).where(AffiliateProfileDB.affiliate_profile_id == affiliate_profile_id)
        )
        return result.scalar_one_or_none()

    async def get_referral_for_author(self, referred_author_id: str) -> Optional[AffiliateReferralDB]:
        """获取作者的推荐关系"""
        result = await self.db.execute(
            select(AffiliateReferralDB).where(AffiliateReferralDB.referred_author_id == referred_author_id)
        )
        return result.scalar_one_or_none()

    async def mark_first_purchase(self, referral: AffiliateReferralDB, purchased_at: datetime) -> None:
        """记录被推荐作者首次购买时间"""
        if referral.first_purchase_at is None:
            referral.first_purchase_at = purchased_at
            await self.db.flush()

    # 佣金

    async def get_commission_by_purchase(self, credit_purchase_id: str) -> Optional[AffiliateCommissionDB]:
        result = await self.db.execute(
            select(AffiliateCommissionDB).where(AffiliateCommissionDB.credit_purchase_id == credit_purchase_id)
        )
        return result.scalar_one_or_none()

    async def create_commission(
        self,
        affiliate_profile_id: str,
        credit_purchase_id: str,
        referred_author_id: str,
        purchase_amount: Decimal,
        commission_amount: Decimal,
        commission_rate: Decimal,
        status: CommissionStatus,
        pending_until: datetime,
        created_at: datetime
    ) -> AffiliateCommissionDB:
        """创建佣金记录，每笔购买只产生一条"""
        db_commission = AffiliateCommissionDB(
            commission_id=str(uuid.uuid4()),
            affiliate_profile_id=affiliate_profile_id,
            credit_purchase_id=credit_purchase_id,
            referred_author_id=referred_author_id,
            purchase_amount=purchase_amount,
            commission_amount=commission_amount,
            commission_rate=commission_rate,
            status=status.value,
            pending_until=pending_until,
            created_at=created_at
        )
        self.db.add(db_commission)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Commission for purchase {credit_purchase_id} already exists") from e
        return db_commission

    async def list_due_pending_commissions(self, now: datetime) -> List[AffiliateCommissionDB]:
        """冻结期已过的待解冻佣金"""
        result = await self.db.execute(
            select(AffiliateCommissionDB).where(
                and_(
                    AffiliateCommissionDB.status == CommissionStatus.PENDING.value,
                    AffiliateCommissionDB.pending_until <= now
                )
            ).with_for_update()
        )
        return list(result.scalars().all())

    async def list_commissions(
        self,
        affiliate_profile_id: str,
        status: Optional[CommissionStatus] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[AffiliateCommissionDB]:
        """获取推广者的佣金记录"""
        conditions = [AffiliateCommissionDB.affiliate_profile_id == affiliate_profile_id]
        if status is not None:
            conditions.append(AffiliateCommissionDB.status == status.value)

        query = select(AffiliateCommissionDB).where(and_(*conditions)).order_by(
            desc(AffiliateCommissionDB.created_at)
        )
        if limit:
            query = query.limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_approved_commissions(self, affiliate_profile_id: str) -> List[AffiliateCommissionDB]:
        """可提现佣金，按解冻时间升序"""
        result = await self.db.execute(
            select(AffiliateCommissionDB).where(
                and_(
                    AffiliateCommissionDB.affiliate_profile_id == affiliate_profile_id,
                    AffiliateCommissionDB.status == CommissionStatus.APPROVED.value
                )
            ).order_by(asc(AffiliateCommissionDB.approved_at)).with_for_update()
        )
        return list(result.scalars().all())

    async def get_approved_total(self, affiliate_profile_id: str) -> Decimal:
        """可提现佣金总额"""
        result = await self.db.execute(
            select(func.sum(AffiliateCommissionDB.commission_amount)).where(
                and_(
                    AffiliateCommissionDB.affiliate_profile_id == affiliate_profile_id,
                    AffiliateCommissionDB.status == CommissionStatus.APPROVED.value
                )
            )
        )
        return Decimal(str(result.scalar() or 0))

    async def save_commission(self, db_commission: AffiliateCommissionDB) -> AffiliateCommissionDB:
        await self.db.flush()
        return db_commission

    # 提现

    async def get_payout(self, payout_id: str, for_update: bool = False) -> Optional[AffiliatePayoutDB]:
        query = select(AffiliatePayoutDB).where(AffiliatePayoutDB.payout_id == payout_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def count_open_payouts(self, affiliate_profile_id: str) -> int:
        """处理中的提现申请数"""
        result = await self.db.execute(
            select(func.count(AffiliatePayoutDB.payout_id)).where(
                and_(
                    AffiliatePayoutDB.affiliate_profile_id == affiliate_profile_id,
                    AffiliatePayoutDB.status.in_(OPEN_PAYOUT_STATUSES)
                )
            )
        )
        return result.scalar() or 0

    async def create_payout(
        self,
        affiliate_profile_id: str,
        amount: Decimal,
        payment_method: str,
        payment_details: str,
        notes: Optional[str],
        requested_at: datetime
    ) -> AffiliatePayoutDB:
        db_payout = AffiliatePayoutDB(
            payout_id=str(uuid.uuid4()),
            affiliate_profile_id=affiliate_profile_id,
            amount=amount,
            payment_method=payment_method,
            payment_details=payment_details,
            status=PayoutStatus.REQUESTED.value,
            notes=notes,
            requested_at=requested_at
        )
        self.db.add(db_payout)
        await self.db.flush()
        return db_payout

    async def save_payout(self, db_payout: AffiliatePayoutDB) -> AffiliatePayoutDB:
        await self.db.flush()
        return db_payout

    async def list_payouts(
        self,
        affiliate_profile_id: Optional[str] = None,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[AffiliatePayoutDB]:
        """获取提现记录，可按推广者和状态筛选"""
        conditions = []
        if affiliate_profile_id:
            conditions.append(AffiliatePayoutDB.affiliate_profile_id == affiliate_profile_id)
        if status is not None:
            conditions.append(AffiliatePayoutDB.status == status.value)

        query = select(AffiliatePayoutDB)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(AffiliatePayoutDB.requested_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def profile_to_model(self, db_profile: AffiliateProfileDB) -> AffiliateProfile:
        return AffiliateProfile.model_validate(db_profile)

    def commission_to_model(self, db_commission: AffiliateCommissionDB) -> AffiliateCommission:
        """转换为Pydantic模型"""
        return AffiliateCommission.model_validate(db_commission)

    def payout_to_model(self, db_payout: AffiliatePayoutDB) -> AffiliatePayout:
        return AffiliatePayout.model_validate(db_payout)
