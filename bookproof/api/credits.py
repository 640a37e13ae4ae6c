from typing import List

from fastapi import APIRouter, Depends, Query

from bookproof.api.deps import get_credit_service, require_access, require_profile
from bookproof.core.permissions import Principal, UserRole
from bookproof.models.credit import (
    AllocateCreditsRequest,
    CompletedPurchaseRecord,
    CreditAllocation,
    CreditBalance,
    CreditCheckoutQuote,
    CreditPurchase,
    CreditQuoteRequest
)
from bookproof.services.credit_service import CreditService

router = APIRouter(prefix="/credits", tags=["积分"])

author_only = require_access(roles=[UserRole.AUTHOR])
# 支付回调由持有该权限的内部服务账号调用
payment_recorder = require_access(permissions=["payments:record"])


@router.get("/balance", response_model=CreditBalance)
async def get_balance(
    principal: Principal = Depends(author_only),
    service: CreditService = Depends(get_credit_service)
):
    return await service.get_balance(require_profile(principal))


@router.get("/purchases", response_model=List[CreditPurchase])
async def get_purchase_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(author_only),
    service: CreditService = Depends(get_credit_service)
):
    return await service.get_purchase_history(require_profile(principal), limit=limit, offset=offset)


@router.post("/purchases/{purchase_id}/activate", response_model=CreditPurchase)
async def activate_purchase(
    purchase_id: str,
    principal: Principal = Depends(author_only),
    service: CreditService = Depends(get_credit_service)
):
    """在激活窗口内激活积分"""
    return await service.activate_purchase(require_profile(principal), purchase_id)


@router.post("/allocate", response_model=List[CreditAllocation])
async def allocate_credits(
    request: AllocateCreditsRequest,
    principal: Principal = Depends(author_only),
    service: CreditService = Depends(get_credit_service)
):
    return await service.allocate_credits(require_profile(principal), request.credits, request.book_id)


@router.post("/quote", response_model=CreditCheckoutQuote)
async def quote_purchase(
    request: CreditQuoteRequest,
    principal: Principal = Depends(author_only),
    service: CreditService = Depends(get_credit_service)
):
    """积分购买报价（含优惠券折扣）"""
    return await service.quote_credit_purchase(
        principal.user_id,
        request.base_price,
        request.credits,
        coupon_code=request.coupon_code
    )


@router.post("/purchases", response_model=CreditPurchase, status_code=201)
async def record_completed_purchase(
    record: CompletedPurchaseRecord,
    principal: Principal = Depends(payment_recorder),
    service: CreditService = Depends(get_credit_service)
):
    """支付确认后入账，按支付流水号幂等"""
    return await service.record_completed_purchase(record)
