"""
退款 API - 管理员发起，webhook 结算
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import (
    PageParams,
    get_current_principal,
    get_page_params,
    get_refund_service,
    require_admin,
)
from application.dtos.orders import RefundCreateRequest, RefundOut
from application.services.refund_service import RefundService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.payment.entity import RefundStatus

router = APIRouter(prefix="/refunds", tags=["Refunds"])


@router.post("", summary="发起退款", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[RefundOut])
async def create_refund(
    body: RefundCreateRequest,
    principal: Principal = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    """退款以 PENDING 状态记录，网关确认后由 webhook 更新为 SUCCEEDED"""
    refund = await service.create(principal, body)
    return success_response(data=refund, message="Refund created")


@router.get("", summary="退款列表", response_model=ApiResponse[PaginatedData[RefundOut]])
async def list_refunds(
    status_filter: Optional[RefundStatus] = Query(None, alias="status"),
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    items, total = await service.list(
        principal, page=pagination.page, size=pagination.size, status=status_filter
    )
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/payment/{payment_id}", summary="支付的退款记录", response_model=ApiResponse[list[RefundOut]])
async def list_payment_refunds(
    payment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: RefundService = Depends(get_refund_service),
):
    refunds = await service.list_by_payment(principal, payment_id)
    return success_response(data=refunds)


@router.get("/{refund_id}", summary="退款详情", response_model=ApiResponse[RefundOut])
async def get_refund(
    refund_id: str,
    principal: Principal = Depends(get_current_principal),
    service: RefundService = Depends(get_refund_service),
):
    refund = await service.get(principal, refund_id)
    return success_response(data=refund)
