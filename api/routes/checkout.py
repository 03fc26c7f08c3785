"""
结账 API - 价格试算、下单并创建支付意图、客户端确认、优惠券校验
"""
from fastapi import APIRouter, Depends, status

from api.dependencies import get_checkout_service, get_current_principal
from application.dtos.checkout import (
    ApplyCouponRequest,
    ApplyCouponResponse,
    CheckoutConfirmRequest,
    CheckoutInitiateRequest,
    CheckoutInitiateResponse,
    CheckoutSummaryRequest,
    PriceBreakdownOut,
)
from application.dtos.orders import OrderOut
from application.services.checkout_service import CheckoutService
from core.response import Response as ApiResponse, success_response
from domain.common.principal import Principal

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/summary", summary="价格试算", response_model=ApiResponse[PriceBreakdownOut])
async def checkout_summary(
    body: CheckoutSummaryRequest,
    _principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(get_checkout_service),
):
    """计算小计、税费、运费、折扣与总额；不写库，不消耗优惠券"""
    breakdown = await service.summary(body)
    return success_response(data=breakdown)


@router.post(
    "/initiate",
    summary="下单并创建支付意图",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[CheckoutInitiateResponse],
)
async def checkout_initiate(
    body: CheckoutInitiateRequest,
    principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.initiate(principal, body)
    return success_response(data=result, message="Checkout initiated")


@router.post("/confirm", summary="客户端确认支付", response_model=ApiResponse[OrderOut])
async def checkout_confirm(
    body: CheckoutConfirmRequest,
    principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    与 webhook 互为幂等：订单已由 webhook 确认时直接返回当前订单
    """
    order = await service.confirm(principal, body)
    return success_response(data=order, message="Order confirmed")


@router.post("/apply-coupon", summary="校验优惠券", response_model=ApiResponse[ApplyCouponResponse])
async def apply_coupon(
    body: ApplyCouponRequest,
    _principal: Principal = Depends(get_current_principal),
    service: CheckoutService = Depends(get_checkout_service),
):
    result = await service.apply_coupon(body)
    return success_response(data=result)
