"""
优惠券数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookproof.core.clock import to_naive_utc, utcnow
from bookproof.core.exceptions import ConflictError
from bookproof.models.coupon import Coupon, CouponAppliesTo, CouponUsage
from bookproof.models.database.coupon_db import CouponDB, CouponUsageDB


class CouponRepository:
    """优惠券数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str, for_update: bool = False) -> Optional[CouponDB]:
        """根据优惠券代码获取优惠券（大小写不敏感）"""
        query = select(CouponDB).where(CouponDB.code == code.strip().upper())
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_coupon_id(self, coupon_id: str) -> Optional[CouponDB]:
        """根据优惠券ID获取优惠券"""
        result = await self.db.execute(
            select(CouponDB).where(CouponDB.coupon_id == coupon_id)
        )
        return result.scalar_one_or_none()

    async def create(self, coupon_data: Dict[str, Any], created_by: Optional[str] = None) -> CouponDB:
        """创建优惠券，代码统一大写存储"""
        now = utcnow()
        db_coupon = CouponDB(
            coupon_id=str(uuid.uuid4()),
            created_by=created_by,
            current_uses=0,
            created_at=now,
            updated_at=now,
            **{**coupon_data, "code": coupon_data["code"].strip().upper()}
        )
        self.db.add(db_coupon)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(f"Coupon code {db_coupon.code} already exists") from e
        await self.db.refresh(db_coupon)
        return db_coupon

    async def update(self, coupon_id: str, update_data: Dict[str, Any]) -> Optional[CouponDB]:
        """更新优惠券"""
        if update_data:
            update_data["updated_at"] = utcnow()
            await self.db.execute(
                update(CouponDB)
                .where(CouponDB.coupon_id == coupon_id)
                .values(**update_data)
            )
            await self.db.flush()

        db_coupon = await self.get_by_coupon_id(coupon_id)
        if db_coupon:
            await self.db.refresh(db_coupon)
        return db_coupon

    async def list_coupons(
        self,
        is_active: Optional[bool] = None,
        applies_to: Optional[CouponAppliesTo] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[CouponDB]:
        """按状态和适用范围筛选优惠券"""
        conditions = []
        if is_active is not None:
            conditions.append(CouponDB.is_active == is_active)
        if applies_to is not None:
            conditions.append(CouponDB.applies_to == applies_to.value)

        query = select(CouponDB)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(CouponDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_user_usage_count(self, coupon_id: str, user_id: str) -> int:
        """获取用户对特定优惠券的使用次数"""
        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(
                and_(
                    CouponUsageDB.coupon_id == coupon_id,
                    CouponUsageDB.user_id == user_id
                )
            )
        )
        return result.scalar() or 0

    async def has_usage_for_purchase(
        self,
        coupon_id: str,
        user_id: str,
        credit_purchase_id: Optional[str] = None,
        keyword_research_id: Optional[str] = None
    ) -> bool:
        """检查同一订单是否已核销过该优惠券"""
        conditions = [CouponUsageDB.coupon_id == coupon_id, CouponUsageDB.user_id == user_id]
        if credit_purchase_id:
            conditions.append(CouponUsageDB.credit_purchase_id == credit_purchase_id)
        elif keyword_research_id:
            conditions.append(CouponUsageDB.keyword_research_id == keyword_research_id)
        else:
            return False

        result = await self.db.execute(
            select(func.count(CouponUsageDB.usage_id)).where(and_(*conditions))
        )
        return (result.scalar() or 0) > 0

    async def increment_usage(self, coupon_id: str) -> bool:
        """
        条件自增使用次数

        仅当未达到总次数上限时才会更新，返回是否更新成功。
        """
        result = await self.db.execute(
            update(CouponDB)
            .where(
                and_(
                    CouponDB.coupon_id == coupon_id,
                    (CouponDB.max_uses.is_(None)) | (CouponDB.current_uses < CouponDB.max_uses)
                )
            )
            .values(
                current_uses=CouponDB.current_uses + 1,
                updated_at=utcnow()
            )
        )
        return result.rowcount == 1

    async def add_usage(
        self,
        coupon_id: str,
        user_id: str,
        discount_applied: Decimal,
        user_email: Optional[str] = None,
        credit_purchase_id: Optional[str] = None,
        keyword_research_id: Optional[str] = None,
        used_at: Optional[datetime] = None
    ) -> CouponUsageDB:
        """写入使用记录，重复核销由唯一约束拒绝"""
        usage = CouponUsageDB(
            usage_id=str(uuid.uuid4()),
            coupon_id=coupon_id,
            user_id=user_id,
            user_email=user_email,
            discount_applied=discount_applied,
            credit_purchase_id=credit_purchase_id,
            keyword_research_id=keyword_research_id,
            used_at=to_naive_utc(used_at) or utcnow()
        )
        self.db.add(usage)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ConflictError("Coupon has already been applied to this purchase") from e
        return usage

    async def get_usage_stats(self, coupon_id: str) -> Dict[str, Any]:
        """获取优惠券使用统计"""
        usage_stats = await self.db.execute(
            select(
                func.count(CouponUsageDB.usage_id).label("total_uses"),
                func.sum(CouponUsageDB.discount_applied).label("total_discount"),
                func.count(func.distinct(CouponUsageDB.user_id)).label("unique_users")
            ).where(CouponUsageDB.coupon_id == coupon_id)
        )
        stats_row = usage_stats.fetchone()

        return {
            "total_uses": stats_row.total_uses or 0,
            "unique_users": stats_row.unique_users or 0,
            "total_discount": Decimal(str(stats_row.total_discount or 0))
        }

    async def get_usages(self, coupon_id: str, limit: Optional[int] = None) -> List[CouponUsageDB]:
        """获取使用记录，按时间倒序"""
        query = select(CouponUsageDB).where(
            CouponUsageDB.coupon_id == coupon_id
        ).order_by(desc(CouponUsageDB.used_at))
        if limit:
            query = query.limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def to_model(self, db_coupon: CouponDB) -> Coupon:
        """转换为Pydantic模型"""
        return Coupon(
            coupon_id=db_coupon.coupon_id,
            code=db_coupon.code,
            coupon_type=db_coupon.coupon_type,
            applies_to=db_coupon.applies_to,
            discount_percent=db_coupon.discount_percent,
            discount_amount=db_coupon.discount_amount,
            minimum_purchase=db_coupon.minimum_purchase,
            minimum_credits=db_coupon.minimum_credits,
            max_uses=db_coupon.max_uses,
            max_uses_per_user=db_coupon.max_uses_per_user,
            current_uses=db_coupon.current_uses,
            is_active=db_coupon.is_active,
            valid_from=db_coupon.valid_from,
            valid_until=db_coupon.valid_until,
            created_by=db_coupon.created_by,
            purpose=db_coupon.purpose,
            created_at=db_coupon.created_at or utcnow(),
            updated_at=db_coupon.updated_at or utcnow()
        )

    def usage_to_model(self, db_usage: CouponUsageDB) -> CouponUsage:
        return CouponUsage.model_validate(db_usage)
