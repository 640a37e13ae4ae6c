"""
积分购买与消耗数据库操作层
"""

import uuid
from typing import List, Optional
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select, and_, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookproof.core.clock import to_naive_utc, utcnow
from bookproof.core.exceptions import ConflictError
from bookproof.models.credit import CreditPurchase, CreditUsage, PaymentStatus
from bookproof.models.database.credit_db import CreditPurchaseDB, CreditUsageDB


class CreditRepository:
    """积分数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_purchase(self, purchase_id: str, for_update: bool = False) -> Optional[CreditPurchaseDB]:
        """根据ID获取购买记录"""
        query = select(CreditPurchaseDB).where(CreditPurchaseDB.purchase_id == purchase_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_payment_reference(self, payment_reference: str) -> Optional[CreditPurchaseDB]:
        """根据支付流水号获取购买记录"""
        result = await self.db.execute(
            select(CreditPurchaseDB).where(CreditPurchaseDB.payment_reference == payment_reference)
        )
        return result.scalar_one_or_none()

    async def list_purchases(
        self,
        author_profile_id: str,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> List[CreditPurchaseDB]:
        """获取作者的全部购买记录，最新在前"""
        query = select(CreditPurchaseDB).where(
            CreditPurchaseDB.author_profile_id == author_profile_id
        ).order_by(desc(CreditPurchaseDB.purchase_date))
        if limit:
            query = query.limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_usages(self, author_profile_id: str) -> List[CreditUsageDB]:
        """获取作者的全部消耗记录"""
        result = await self.db.execute(
            select(CreditUsageDB).where(CreditUsageDB.author_profile_id == author_profile_id)
        )
        return list(result.scalars().all())

    async def create_purchase(
        self,
        author_profile_id: str,
        credits: int,
        amount_paid: Decimal,
        validity_days: int,
        payment_reference: str,
        purchase_date: datetime,
        currency: str = "USD",
        package_tier_id: Optional[str] = None,
        payment_status: PaymentStatus = PaymentStatus.COMPLETED,
        coupon_id: Optional[str] = None,
        discount_applied: Optional[Decimal] = None
    ) -> CreditPurchaseDB:
        """创建购买记录，激活窗口 = 购买时间 + 有效天数"""
        purchase_date = to_naive_utc(purchase_date)
        db_purchase = CreditPurchaseDB(
            purchase_id=str(uuid.uuid4()),
            author_profile_id=author_profile_id,
            package_tier_id=package_tier_id,
            credits=credits,
            amount_paid=amount_paid,
            currency=currency,
            validity_days=validity_days,
            purchase_date=purchase_date,
            activation_window_expires_at=purchase_date + timedelta(days=validity_days),
            activated=False,
            payment_status=payment_status.value,
            payment_reference=payment_reference,
            coupon_id=coupon_id,
            discount_applied=discount_applied
        )
        self.db.add(db_purchase)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Payment {payment_reference} has already been recorded") from e
        return db_purchase

    async def mark_activated(self, db_purchase: CreditPurchaseDB, activated_at: datetime) -> CreditPurchaseDB:
        """标记为已激活"""
        db_purchase.activated = True
        db_purchase.activated_at = to_naive_utc(activated_at)
        await self.db.flush()
        return db_purchase

    async def add_usages(
        self,
        author_profile_id: str,
        allocations: List[tuple],
        book_id: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> List[CreditUsageDB]:
        """批量写入消耗记录，allocations 为 (购买ID, 积分数) 列表"""
        created_at = to_naive_utc(created_at) or utcnow()
        usages = [
            CreditUsageDB(
                usage_id=str(uuid.uuid4()),
                author_profile_id=author_profile_id,
                credit_purchase_id=purchase_id,
                credits=credits,
                book_id=book_id,
                created_at=created_at
            )
            for purchase_id, credits in allocations
        ]
        self.db.add_all(usages)
        await self.db.flush()
        return usages

    async def lock_author_purchases(self, author_profile_id: str) -> None:
        """锁定作者的有效购买记录，串行化并发扣减"""
        await self.db.execute(
            select(CreditPurchaseDB.purchase_id).where(
                and_(
                    CreditPurchaseDB.author_profile_id == author_profile_id,
                    CreditPurchaseDB.activated.is_(True)
                )
            ).with_for_update()
        )

    def to_model(self, db_purchase: CreditPurchaseDB) -> CreditPurchase:
        """转换为Pydantic模型"""
        return CreditPurchase.model_validate(db_purchase)

    def usage_to_model(self, db_usage: CreditUsageDB) -> CreditUsage:
        return CreditUsage.model_validate(db_usage)
