"""
运费与发货 API
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import (
    get_current_principal,
    get_shipment_service,
    get_shipping_rate_service,
    require_admin,
)
from application.dtos.pricing import ShippingRateCreate, ShippingRateOut, ShippingRateUpdate
from application.dtos.shipping import ShipmentCreate, ShipmentOut, ShipmentUpdate
from application.services.pricing_service import ShippingRateService
from application.services.shipping_service import ShipmentService
from core.response import Response as ApiResponse, success_response
from domain.common.exceptions import ValidationException
from domain.common.principal import Principal

router = APIRouter(prefix="/shipping", tags=["Shipping"])


# ---- 运费规则 ----

@router.get("/rates", summary="可用运费规则", response_model=ApiResponse[list[ShippingRateOut]])
async def list_shipping_rates(
    country: Optional[str] = Query(None, description="ISO 3166-1 alpha-2 国家代码"),
    order_amount: Optional[int] = Query(None, alias="orderAmount", ge=0, description="订单金额（最小货币单位）"),
    _principal: Principal = Depends(get_current_principal),
    service: ShippingRateService = Depends(get_shipping_rate_service),
):
    if not country or not country.strip():
        raise ValidationException("country is required", field="country")
    rates = await service.list_for_country(country.strip().upper(), order_amount)
    return success_response(data=rates)


@router.post(
    "/rates",
    summary="创建运费规则",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ShippingRateOut],
)
async def create_shipping_rate(
    body: ShippingRateCreate,
    principal: Principal = Depends(require_admin),
    service: ShippingRateService = Depends(get_shipping_rate_service),
):
    rate = await service.create(principal, body)
    return success_response(data=rate, message="Shipping rate created")


@router.patch("/rates/{rate_id}", summary="更新运费规则", response_model=ApiResponse[ShippingRateOut])
async def update_shipping_rate(
    rate_id: str,
    body: ShippingRateUpdate,
    principal: Principal = Depends(require_admin),
    service: ShippingRateService = Depends(get_shipping_rate_service),
):
    rate = await service.update(principal, rate_id, body)
    return success_response(data=rate, message="Shipping rate updated")


# ---- 发货单（放在 /rates 之后注册，避免 /{shipment_id} 抢先匹配） ----

@router.post(
    "",
    summary="创建发货单",
    status_code=status.HTTP_201_CREATED,
    response_model=ApiResponse[ShipmentOut],
)
async def create_shipment(
    body: ShipmentCreate,
    principal: Principal = Depends(require_admin),
    service: ShipmentService = Depends(get_shipment_service),
):
    """仅已确认订单可以发货"""
    shipment = await service.create(principal, body)
    return success_response(data=shipment, message="Shipment created")


@router.get("/order/{order_id}", summary="订单的发货单", response_model=ApiResponse[list[ShipmentOut]])
async def list_order_shipments(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: ShipmentService = Depends(get_shipment_service),
):
    shipments = await service.list_by_order(principal, order_id)
    return success_response(data=shipments)


@router.get("/{shipment_id}", summary="发货单详情", response_model=ApiResponse[ShipmentOut])
async def get_shipment(
    shipment_id: str,
    principal: Principal = Depends(get_current_principal),
    service: ShipmentService = Depends(get_shipment_service),
):
    shipment = await service.get(principal, shipment_id)
    return success_response(data=shipment)


@router.patch("/{shipment_id}", summary="更新发货单", response_model=ApiResponse[ShipmentOut])
async def update_shipment(
    shipment_id: str,
    body: ShipmentUpdate,
    principal: Principal = Depends(require_admin),
    service: ShipmentService = Depends(get_shipment_service),
):
    shipment = await service.update(principal, shipment_id, body)
    return success_response(data=shipment, message="Shipment updated")
