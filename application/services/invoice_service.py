"""
发票应用服务

- issue_invoice: 订单进入 CONFIRMED + PAID 时在同一事务内开具发票
- InvoiceService: 查询 / 作废 / 下载（HTML）
"""
from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import Callable, Optional

from application.dtos.invoices import InvoiceOut
from core.config import settings
from core.logging_config import get_logger
from domain.common.events import EventCollector, Topics
from domain.common.exceptions import NotFoundException
from domain.common.principal import Principal
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import Invoice, InvoiceStatus, format_invoice_number
from domain.order.entity import Order
from application.ports.event_publisher import EventPublisher, publish_events


logger = get_logger(__name__)


async def issue_invoice(uow: AbstractUnitOfWork, order: Order, events: EventCollector) -> Invoice:
    """为已确认且已支付的订单开具发票；已存在则直接返回"""
    existing = await uow.invoices.get_by_order_id(order.id)
    if existing is not None:
        return existing

    year = datetime.now(timezone.utc).year
    sequence = await uow.invoices.next_sequence(year)
    number = format_invoice_number(
        settings.invoice.prefix, year, sequence, settings.invoice.sequence_width
    )
    invoice = Invoice.snapshot(order, invoice_number=number, due_days=settings.invoice.due_days)
    invoice = await uow.invoices.create(invoice)
    events.record(
        Topics.INVOICE_ISSUED,
        invoice.id,
        orderId=order.id,
        invoiceNumber=number,
        totalAmount=invoice.total_amount,
        currency=invoice.currency,
    )
    logger.info("invoice_issued", invoice_id=invoice.id, order_id=order.id, invoice_number=number)
    return invoice


def _money(amount: int, currency: str) -> str:
    return f"{currency} {amount / 100:,.2f}"


def render_invoice_html(invoice: Invoice) -> str:
    """渲染自包含的 HTML 发票文档"""
    address = invoice.billing_address or {}
    address_lines = [
        address.get("recipient"),
        address.get("line1"),
        address.get("line2"),
        " ".join(p for p in (address.get("city"), address.get("region"), address.get("postcode")) if p),
        address.get("country"),
    ]
    rows = "\n".join(
        "<tr><td>{name}</td><td class=\"num\">{qty}</td><td class=\"num\">{unit}</td><td class=\"num\">{total}</td></tr>".format(
            name=escape(str(item.get("name") or item.get("productId") or "")),
            qty=int(item.get("quantity") or 0),
            unit=escape(_money(int(item.get("unitPrice") or 0), invoice.currency)),
            total=escape(_money(int(item.get("totalPrice") or 0), invoice.currency)),
        )
        for item in invoice.line_items
    )
    totals = [
        ("Subtotal", invoice.subtotal),
        ("Tax", invoice.tax_amount),
        ("Shipping", invoice.shipping_amount),
        ("Discount", -invoice.discount_amount),
        ("Total", invoice.total_amount),
    ]
    totals_html = "\n".join(
        f"<tr><th>{label}</th><td class=\"num\">{escape(_money(value, invoice.currency))}</td></tr>"
        for label, value in totals
    )
    issued = invoice.issued_at.date().isoformat() if invoice.issued_at else ""
    due = invoice.due_at.date().isoformat() if invoice.due_at else ""
    status_note = "<p class=\"void\">VOID</p>" if invoice.is_void else ""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Invoice {escape(invoice.invoice_number)}</title>
<style>
body {{ font-family: Helvetica, Arial, sans-serif; margin: 40px; color: #222; }}
table {{ border-collapse: collapse; width: 100%; margin-top: 24px; }}
td, th {{ padding: 6px 8px; border-bottom: 1px solid #ddd; text-align: left; }}
.num {{ text-align: right; }}
.void {{ color: #b00; font-weight: bold; font-size: 24px; }}
</style>
</head>
<body>
<h1>Invoice {escape(invoice.invoice_number)}</h1>
{status_note}
<p>Issued: {issued}<br>Due: {due}<br>Order: {escape(invoice.order_id)}</p>
<address>{"<br>".join(escape(line) for line in address_lines if line)}</address>
<table>
<thead><tr><th>Item</th><th class="num">Qty</th><th class="num">Unit price</th><th class="num">Amount</th></tr></thead>
<tbody>
{rows}
</tbody>
</table>
<table>
{totals_html}
</table>
</body>
</html>
"""


class InvoiceService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        publisher: EventPublisher,
    ) -> None:
        self._uow_factory = uow_factory
        self._publisher = publisher

    async def _load(self, uow: AbstractUnitOfWork, principal: Principal, invoice_id: str) -> Invoice:
        invoice = await uow.invoices.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundException("Invoice", invoice_id)
        principal.ensure_owner_or_admin(invoice.user_id)
        return invoice

    async def list(
        self,
        principal: Principal,
        *,
        page: int,
        size: int,
        status: Optional[InvoiceStatus] = None,
    ) -> tuple[list[InvoiceOut], int]:
        principal.ensure_admin()
        async with self._uow_factory(readonly=True) as uow:
            invoices = await uow.invoices.list(status=status, skip=(page - 1) * size, limit=size)
            total = await uow.invoices.count(status=status)
        return [InvoiceOut.model_validate(i) for i in invoices], total

    async def get(self, principal: Principal, invoice_id: str) -> InvoiceOut:
        async with self._uow_factory(readonly=True) as uow:
            invoice = await self._load(uow, principal, invoice_id)
        return InvoiceOut.model_validate(invoice)

    async def get_by_order(self, principal: Principal, order_id: str) -> InvoiceOut:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise NotFoundException("Order", order_id)
            principal.ensure_owner_or_admin(order.user_id)
            invoice = await uow.invoices.get_by_order_id(order_id)
        if invoice is None:
            raise NotFoundException("Invoice", None)
        return InvoiceOut.model_validate(invoice)

    async def download(self, principal: Principal, invoice_id: str) -> tuple[str, str]:
        """返回 (文件名, HTML 文档)"""
        async with self._uow_factory(readonly=True) as uow:
            invoice = await self._load(uow, principal, invoice_id)
        return f"{invoice.invoice_number}.html", render_invoice_html(invoice)

    async def void(self, principal: Principal, invoice_id: str) -> InvoiceOut:
        """ISSUED → VOID；对已作废的发票重复调用视为成功"""
        principal.ensure_admin()
        events = EventCollector()
        async with self._uow_factory() as uow:
            invoice = await uow.invoices.get_by_id(invoice_id)
            if invoice is None:
                raise NotFoundException("Invoice", invoice_id)
            if await uow.invoices.void(invoice_id):
                events.record(
                    Topics.INVOICE_VOIDED,
                    invoice_id,
                    orderId=invoice.order_id,
                    invoiceNumber=invoice.invoice_number,
                )
                logger.info("invoice_voided", invoice_id=invoice_id, by=principal.user_id)
            invoice = await uow.invoices.get_by_id(invoice_id)
        await publish_events(self._publisher, events.clear_events())
        return InvoiceOut.model_validate(invoice)
