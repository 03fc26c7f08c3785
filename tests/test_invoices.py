from datetime import datetime, timezone

import pytest

from application.dtos.checkout import CheckoutConfirmRequest
from application.services.checkout_service import CheckoutService
from application.services.invoice_service import InvoiceService
from domain.common.exceptions import ForbiddenException, NotFoundException
from domain.invoice.entity import InvoiceStatus

pytestmark = pytest.mark.asyncio


@pytest.fixture
def invoices(uow_factory, publisher):
    return InvoiceService(uow_factory, publisher)


async def _confirmed_order(uow_factory, gateway, publisher, checkout_request, customer, **overrides):
    checkout = CheckoutService(uow_factory, gateway, publisher)
    started = await checkout.initiate(customer, checkout_request(**overrides))
    await checkout.confirm(
        customer,
        CheckoutConfirmRequest(order_id=started.order_id, payment_intent_id=started.payment_intent_id),
    )
    return started.order_id


async def test_invoice_numbers_are_sequential_per_year(invoices, uow_factory, gateway, publisher, checkout_request, customer):
    year = datetime.now(timezone.utc).year
    first = await _confirmed_order(uow_factory, gateway, publisher, checkout_request, customer)
    second = await _confirmed_order(uow_factory, gateway, publisher, checkout_request, customer)

    a = await invoices.get_by_order(customer, first)
    b = await invoices.get_by_order(customer, second)
    assert a.invoice_number == f"INV-{year}-001"
    assert b.invoice_number == f"INV-{year}-002"
    assert a.status == InvoiceStatus.ISSUED
    assert (a.due_at - a.issued_at).days == 30


async def test_invoice_snapshot_matches_order(invoices, uow_factory, gateway, publisher, checkout_request, customer):
    order_id = await _confirmed_order(
        uow_factory, gateway, publisher, checkout_request, customer, coupon_code="SAVE10"
    )
    invoice = await invoices.get_by_order(customer, order_id)

    assert (invoice.subtotal, invoice.tax_amount, invoice.shipping_amount, invoice.discount_amount) == (
        5000,
        1000,
        500,
        500,
    )
    assert invoice.total_amount == 6000
    assert invoice.billing_address["city"] == "London"
    assert invoice.line_items == [
        {"productId": "widget", "name": None, "quantity": 2, "unitPrice": 2500, "totalPrice": 5000}
    ]


async def test_void_is_admin_only_and_idempotent(invoices, uow_factory, gateway, publisher, checkout_request, customer, admin):
    order_id = await _confirmed_order(uow_factory, gateway, publisher, checkout_request, customer)
    invoice = await invoices.get_by_order(customer, order_id)
    publisher.messages.clear()

    with pytest.raises(ForbiddenException):
        await invoices.void(customer, invoice.id)

    voided = await invoices.void(admin, invoice.id)
    again = await invoices.void(admin, invoice.id)
    assert voided.status == InvoiceStatus.VOID
    assert voided.voided_at is not None
    assert again.voided_at == voided.voided_at
    assert publisher.topics == ["invoice.voided"]

    listed, total = await invoices.list(admin, page=1, size=10, status=InvoiceStatus.VOID)
    assert total == 1 and listed[0].id == invoice.id


async def test_download_renders_escaped_html(invoices, uow_factory, gateway, publisher, checkout_request, customer, address):
    order_id = await _confirmed_order(
        uow_factory,
        gateway,
        publisher,
        checkout_request,
        customer,
        items=[{"product_id": "tool", "name": "<b>Hammer</b> & nails", "quantity": 1, "unit_price": 1999}],
    )
    invoice = await invoices.get_by_order(customer, order_id)

    filename, html = await invoices.download(customer, invoice.id)

    assert filename == f"{invoice.invoice_number}.html"
    assert html.startswith("<!DOCTYPE html>")
    assert "&lt;b&gt;Hammer&lt;/b&gt; &amp; nails" in html
    assert "<b>Hammer</b>" not in html
    assert "GBP 19.99" in html
    assert "VOID" not in html


async def test_invoice_access(invoices, uow_factory, gateway, publisher, checkout_request, customer, other_customer):
    order_id = await _confirmed_order(uow_factory, gateway, publisher, checkout_request, customer)
    invoice = await invoices.get_by_order(customer, order_id)

    with pytest.raises(ForbiddenException):
        await invoices.get(other_customer, invoice.id)
    with pytest.raises(ForbiddenException):
        await invoices.download(other_customer, invoice.id)
    with pytest.raises(NotFoundException):
        await invoices.get(customer, "missing")


async def test_pending_order_has_no_invoice(invoices, uow_factory, gateway, publisher, checkout_request, customer):
    started = await CheckoutService(uow_factory, gateway, publisher).initiate(customer, checkout_request())
    with pytest.raises(NotFoundException):
        await invoices.get_by_order(customer, started.order_id)
