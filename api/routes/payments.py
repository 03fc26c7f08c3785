"""
Payments API routes.

Thin layer over PaymentService; no SDK details here.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import PageParams, get_current_principal, get_page_params, get_payment_service
from application.dtos.orders import CreateIntentRequest, CreateIntentResponse, PaymentOut
from application.services.payment_service import PaymentService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.payment.entity import PaymentStatus

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post(
    "/create-intent",
    summary="为订单创建新的支付意图",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[CreateIntentResponse],
)
async def create_intent(
    body: CreateIntentRequest,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    """已支付订单返回 409；非 PENDING 订单返回 422"""
    result = await service.create_intent(principal, body)
    return success_response(data=result, message="Payment intent created")


@router.get("", summary="支付列表", response_model=ApiResponse[PaginatedData[PaymentOut]])
async def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    items, total = await service.list(
        principal, page=pagination.page, size=pagination.size, status=status_filter
    )
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/order/{order_id}", summary="订单的支付记录", response_model=ApiResponse[list[PaymentOut]])
async def list_order_payments(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.list_by_order(principal, order_id)
    return success_response(data=payments)


@router.get("/{payment_id}", summary="支付详情", response_model=ApiResponse[PaymentOut])
async def get_payment(
    payment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get(principal, payment_id)
    return success_response(data=payment)
