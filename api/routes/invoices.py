"""
发票 API
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from api.dependencies import (
    PageParams,
    get_current_principal,
    get_invoice_service,
    get_page_params,
    require_admin,
)
from api.utils.headers import attachment_disposition
from application.dtos.invoices import InvoiceOut
from application.services.invoice_service import InvoiceService
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.common.principal import Principal
from domain.invoice.entity import InvoiceStatus

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("", summary="发票列表", response_model=ApiResponse[PaginatedData[InvoiceOut]])
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    pagination: PageParams = Depends(get_page_params),
    principal: Principal = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    items, total = await service.list(
        principal, page=pagination.page, size=pagination.size, status=status_filter
    )
    return paginated_response(items=items, total=total, page=pagination.page, size=pagination.size)


@router.get("/order/{order_id}", summary="订单发票", response_model=ApiResponse[InvoiceOut])
async def get_order_invoice(
    order_id: str,
    principal: Principal = Depends(get_current_principal),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get_by_order(principal, order_id)
    return success_response(data=invoice)


@router.get("/{invoice_id}", summary="发票详情", response_model=ApiResponse[InvoiceOut])
async def get_invoice(
    invoice_id: str,
    principal: Principal = Depends(get_current_principal),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.get(principal, invoice_id)
    return success_response(data=invoice)


@router.get("/{invoice_id}/download", summary="下载发票")
async def download_invoice(
    invoice_id: str,
    principal: Principal = Depends(get_current_principal),
    service: InvoiceService = Depends(get_invoice_service),
):
    """以 HTML 附件形式返回发票，不经过统一响应封装"""
    filename, document = await service.download(principal, invoice_id)
    return Response(
        content=document,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": attachment_disposition(filename, fallback="invoice.html")},
    )


@router.patch("/{invoice_id}/void", summary="作废发票", response_model=ApiResponse[InvoiceOut])
async def void_invoice(
    invoice_id: str,
    principal: Principal = Depends(require_admin),
    service: InvoiceService = Depends(get_invoice_service),
):
    invoice = await service.void(principal, invoice_id)
    return success_response(data=invoice, message="Invoice voided")
