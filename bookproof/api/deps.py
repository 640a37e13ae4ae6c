"""
路由依赖：数据库会话、仓储、服务与访问控制
"""

from typing import Iterable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bookproof.core.database import get_db_session
from bookproof.core.exceptions import ForbiddenError
from bookproof.core.permissions import AdminRole, Principal, UserRole, is_authorized
from bookproof.repositories.affiliate_repository import AffiliateRepository
from bookproof.repositories.coupon_repository import CouponRepository
from bookproof.repositories.credit_repository import CreditRepository
from bookproof.services.commission_service import CommissionService
from bookproof.services.coupon_service import CouponService
from bookproof.services.credit_service import CreditService
from bookproof.services.payout_service import PayoutService


def get_coupon_service(db: AsyncSession = Depends(get_db_session)) -> CouponService:
    return CouponService(CouponRepository(db))


def get_commission_service(db: AsyncSession = Depends(get_db_session)) -> CommissionService:
    return CommissionService(AffiliateRepository(db))


def get_payout_service(db: AsyncSession = Depends(get_db_session)) -> PayoutService:
    return PayoutService(AffiliateRepository(db))


def get_credit_service(db: AsyncSession = Depends(get_db_session)) -> CreditService:
    """积分服务依赖同一会话上的优惠券与佣金服务"""
    return CreditService(
        CreditRepository(db),
        CouponService(CouponRepository(db)),
        CommissionService(AffiliateRepository(db))
    )


def get_current_principal(request: Request) -> Optional[Principal]:
    """认证中间件写入 request.state.principal"""
    return getattr(request.state, "principal", None)


def require_access(
    roles: Optional[Iterable[UserRole]] = None,
    admin_roles: Optional[Iterable[AdminRole]] = None,
    permissions: Optional[Iterable[str]] = None
):
    """生成访问控制依赖，不满足时返回403"""
    roles = frozenset(roles or ())
    admin_roles = frozenset(admin_roles or ())
    permissions = frozenset(permissions or ())

    def dependency(principal: Optional[Principal] = Depends(get_current_principal)) -> Principal:
        if not is_authorized(principal, roles=roles, admin_roles=admin_roles, permissions=permissions):
            raise ForbiddenError("You do not have permission to access this resource")
        return principal

    return dependency


def require_profile(principal: Principal) -> str:
    """当前主体的作者/推广者档案ID"""
    if not principal.profile_id:
        raise ForbiddenError("No profile is associated with this account")
    return principal.profile_id
