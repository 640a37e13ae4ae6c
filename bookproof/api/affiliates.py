from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from bookproof.api.deps import get_commission_service, get_payout_service, require_access, require_profile
from bookproof.core.permissions import AdminRole, Principal, UserRole
from bookproof.models.affiliate import (
    AffiliateCommission,
    AffiliateEarnings,
    AffiliatePayout,
    CommissionApprovalSummary,
    CommissionCancelRequest,
    CommissionStatus,
    PayoutProcessRequest,
    PayoutRequestCreate,
    PayoutStatus
)
from bookproof.services.commission_service import CommissionService
from bookproof.services.payout_service import PayoutService

router = APIRouter(prefix="/affiliates", tags=["联盟推广"])

affiliate_only = require_access(roles=[UserRole.AFFILIATE])
admin_only = require_access(roles=[UserRole.ADMIN])
# 财务操作仅限超级管理员
finance_admin = require_access(roles=[UserRole.ADMIN], admin_roles=[AdminRole.SUPER_ADMIN])


@router.get("/commissions", response_model=List[AffiliateCommission])
async def list_commissions(
    status: Optional[CommissionStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(affiliate_only),
    service: CommissionService = Depends(get_commission_service)
):
    return await service.list_commissions(require_profile(principal), status=status, limit=limit, offset=offset)


@router.get("/earnings", response_model=AffiliateEarnings)
async def get_earnings(
    principal: Principal = Depends(affiliate_only),
    service: CommissionService = Depends(get_commission_service)
):
    return await service.get_earnings(require_profile(principal))


@router.post("/payouts", response_model=AffiliatePayout, status_code=201)
async def request_payout(
    request: PayoutRequestCreate,
    principal: Principal = Depends(affiliate_only),
    service: PayoutService = Depends(get_payout_service)
):
    return await service.request_payout(require_profile(principal), request)


@router.get("/payouts", response_model=List[AffiliatePayout])
async def list_my_payouts(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(affiliate_only),
    service: PayoutService = Depends(get_payout_service)
):
    return await service.list_payouts(affiliate_profile_id=require_profile(principal), limit=limit, offset=offset)


@router.post("/commissions/approve-pending", response_model=CommissionApprovalSummary)
async def approve_pending_commissions(
    principal: Principal = Depends(admin_only),
    service: CommissionService = Depends(get_commission_service)
):
    """解冻冻结期已满的佣金（定时任务也调用此接口）"""
    return await service.approve_pending_commissions()


@router.post("/commissions/cancel", response_model=AffiliateCommission)
async def cancel_commission(
    request: CommissionCancelRequest,
    principal: Principal = Depends(admin_only),
    service: CommissionService = Depends(get_commission_service)
):
    """购买退款后取消佣金"""
    return await service.cancel_commission_for_refund(request.credit_purchase_id, request.reason)


@router.get("/admin/payouts", response_model=List[AffiliatePayout])
async def list_all_payouts(
    status: Optional[PayoutStatus] = None,
    affiliate_profile_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(finance_admin),
    service: PayoutService = Depends(get_payout_service)
):
    return await service.list_payouts(
        affiliate_profile_id=affiliate_profile_id,
        status=status,
        limit=limit,
        offset=offset
    )


@router.post("/admin/payouts/{payout_id}/process", response_model=AffiliatePayout)
async def process_payout(
    payout_id: str,
    request: PayoutProcessRequest,
    principal: Principal = Depends(finance_admin),
    service: PayoutService = Depends(get_payout_service)
):
    return await service.process_payout(payout_id, request, admin_id=principal.user_id)
