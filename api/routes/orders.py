"""
订单 API
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import PageParams, get_current_principal, get_order_service, get_page_params
from application.dtos.orders import OrderCreate, OrderOut, OrderStatusUpdate
from application.services.order_service import OrderService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.order.entity import OrderStatus

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", summary="创建订单", status_code=status.HTTP_201_CREATED, response_model=ApiResponse[OrderOut])
async def create_order(
    body: OrderCreate,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
):
    """创建待支付订单；支付稍后通过 /payments/create-intent 发起"""
    order = await service.create(principal, body)
    return success_response(data=order, message="Order created")


@router.get("", summary="订单列表", response_model=ApiResponse[PaginatedData[OrderOut]])
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
):
    """普通用户只能看到自己的订单，管理员可以看到全部"""
    items, total = await service.list(
        principal, page=pagination.page, size=pagination.size, status=status_filter
    )
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/{order_id}", summary="订单详情", response_model=ApiResponse[OrderOut])
async def get_order(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get(principal, order_id)
    return success_response(data=order)


@router.patch("/{order_id}", summary="更新订单状态", response_model=ApiResponse[OrderOut])
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
):
    """
    - CANCELLED: 订单所有者或管理员
    - CONFIRMED: 仅管理员（需已有成功支付）
    """
    order = await service.update_status(principal, order_id, body)
    return success_response(data=order, message="Order updated")


@router.delete("/{order_id}", summary="取消订单", response_model=ApiResponse[OrderOut])
async def cancel_order(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel(principal, order_id)
    return success_response(data=order, message="Order cancelled")
