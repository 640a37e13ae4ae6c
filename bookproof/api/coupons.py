from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from bookproof.api.deps import get_coupon_service, get_current_principal, require_access
from bookproof.core.exceptions import NotFoundError
from bookproof.core.permissions import Principal, UserRole
from bookproof.models.coupon import (
    Coupon,
    CouponAppliesTo,
    CouponCreate,
    CouponEvaluation,
    CouponUpdate,
    CouponUsage,
    CouponUsageStats,
    CouponValidateRequest,
    ManualApplyRequest
)
from bookproof.services.coupon_service import CouponService

router = APIRouter(prefix="/coupons", tags=["优惠券"])

admin_only = require_access(roles=[UserRole.ADMIN])


@router.post("/validate", response_model=CouponEvaluation)
async def validate_coupon(
    request: CouponValidateRequest,
    principal: Optional[Principal] = Depends(get_current_principal),
    service: CouponService = Depends(get_coupon_service)
):
    """校验优惠券并预估折扣，不会占用使用次数"""
    return await service.evaluate(
        request.code,
        user_id=principal.user_id if principal else None,
        purchase_amount=request.purchase_amount,
        credits=request.credits
    )


@router.post("", response_model=Coupon, status_code=201)
async def create_coupon(
    coupon_data: CouponCreate,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    return await service.create_coupon(coupon_data, created_by=principal.user_id)


@router.get("", response_model=List[Coupon])
async def list_coupons(
    is_active: Optional[bool] = None,
    applies_to: Optional[CouponAppliesTo] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    return await service.list_coupons(is_active=is_active, applies_to=applies_to, limit=limit, offset=offset)


@router.post("/manual-apply", response_model=CouponUsage, status_code=201)
async def manual_apply_coupon(
    request: ManualApplyRequest,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    """管理员为指定用户手动应用优惠券"""
    return await service.manual_apply(request, admin_id=principal.user_id)


@router.get("/code/{code}", response_model=Coupon)
async def get_coupon_by_code(
    code: str,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    """按代码查询优惠券（走缓存）"""
    coupon = await service.get_coupon_by_code(code)
    if not coupon:
        raise NotFoundError(f"Coupon {code.strip().upper()} not found")
    return coupon


@router.get("/{coupon_id}", response_model=Coupon)
async def get_coupon(
    coupon_id: str,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    return await service.get_coupon(coupon_id)


@router.patch("/{coupon_id}", response_model=Coupon)
async def update_coupon(
    coupon_id: str,
    update_data: CouponUpdate,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    return await service.update_coupon(coupon_id, update_data)


@router.delete("/{coupon_id}", response_model=Coupon)
async def deactivate_coupon(
    coupon_id: str,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    """停用优惠券，记录保留"""
    return await service.deactivate_coupon(coupon_id)


@router.get("/{coupon_id}/stats", response_model=CouponUsageStats)
async def get_coupon_stats(
    coupon_id: str,
    principal: Principal = Depends(admin_only),
    service: CouponService = Depends(get_coupon_service)
):
    return await service.get_usage_stats(coupon_id)
