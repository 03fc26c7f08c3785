from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from application.dtos.checkout import CheckoutSummaryRequest, ApplyCouponRequest
from application.dtos.pricing import (
    CouponCreate,
    CouponUpdate,
    ShippingRateCreate,
    ShippingRateUpdate,
    TaxCalculateRequest,
    TaxRuleCreate,
)
from application.services.checkout_service import CheckoutService
from application.services.pricing_service import CouponService, ShippingRateService, TaxRuleService
from domain.common.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    UnprocessableException,
    ValidationException,
)
from domain.pricing.entity import Coupon, CouponStatus, CouponType, ShippingRate, TaxRule, TaxType, percent_of
from domain.pricing.resolvers import check_coupon, select_tax_rule


def _rule(**kwargs) -> TaxRule:
    data = {"id": "r", "name": "VAT", "type": TaxType.PERCENTAGE, "rate": Decimal("20"), "country": "GB"}
    data.update(kwargs)
    return TaxRule(**data)


def _coupon(**kwargs) -> Coupon:
    data = {"id": "c", "code": "save", "type": CouponType.PERCENTAGE, "value": 10}
    data.update(kwargs)
    return Coupon(**data)


# ---- entity rules ----

def test_percent_of_rounds_half_up():
    assert percent_of(1005, 10) == 101  # 100.5
    assert percent_of(1004, 10) == 100
    assert percent_of(999, Decimal("17.5")) == 175  # 174.825


def test_fixed_tax_rule_ignores_amount():
    rule = _rule(type=TaxType.FIXED, rate=Decimal("150"))
    assert rule.calculate(10) == 150
    assert rule.calculate(1_000_000) == 150


def test_select_tax_rule_prefers_region_then_default():
    default = _rule(id="default", is_default=True)
    scotland = _rule(id="sct", region="sct", rate=Decimal("5"))
    inactive = _rule(id="off", region="WLS", is_active=False)

    assert select_tax_rule([default, scotland], "SCT").id == "sct"
    assert select_tax_rule([default, scotland], None).id == "default"
    assert select_tax_rule([default, inactive], "WLS").id == "default"
    assert select_tax_rule([scotland], "ENG") is None


def test_coupon_discount_capped():
    coupon = _coupon(value=50, max_discount_amount=1000)
    assert coupon.discount_for(10_000) == 1000
    assert coupon.discount_for(1000) == 500


def test_fixed_coupon_never_exceeds_order_amount():
    coupon = _coupon(type=CouponType.FIXED, value=2000)
    assert coupon.discount_for(5000) == 2000
    assert coupon.discount_for(1500) == 1500


def test_check_coupon_rejections():
    now = datetime.now(timezone.utc)
    with pytest.raises(UnprocessableException, match="not active"):
        check_coupon(_coupon(status=CouponStatus.INACTIVE), 5000, now)
    with pytest.raises(UnprocessableException, match="expired"):
        check_coupon(_coupon(expires_at=now - timedelta(days=1)), 5000, now)
    with pytest.raises(UnprocessableException, match="usage limit"):
        check_coupon(_coupon(usage_limit=1, usage_count=1), 5000, now)
    with pytest.raises(UnprocessableException, match="at least 3000"):
        check_coupon(_coupon(min_order_amount=3000), 2999, now)

    applied = check_coupon(_coupon(min_order_amount=3000), 3000, now)
    assert applied.code == "SAVE"
    assert applied.discount_amount == 300


def test_shipping_rate_free_threshold_is_inclusive():
    rate = ShippingRate(id="s", name="Std", method="standard", price=500, countries=["gb"], free_threshold=10_000)
    assert rate.serves("GB")
    assert not rate.serves("FR")
    assert rate.cost_for(9_999) == 500
    assert rate.cost_for(10_000) == 0


# ---- DTO validation ----

def test_coupon_value_validation():
    with pytest.raises(ValidationError):
        CouponCreate(code="x", type="PERCENTAGE", value=150)
    with pytest.raises(ValidationError):
        CouponCreate(code="x", type="FIXED", value=0)
    assert CouponCreate(code="x", type="FIXED", value=1).value == 1


def test_tax_rule_validation():
    with pytest.raises(ValidationError):
        TaxRuleCreate(name="bad", rate=101, country="GB")
    with pytest.raises(ValidationError):
        TaxRuleCreate(name="bad", rate=10, country="GBR")
    with pytest.raises(ValidationError):
        TaxRuleCreate(name="missing", country="GB")
    assert TaxRuleCreate(name="ok", rate=0, country="gb").country == "GB"


# ---- engine through checkout summary ----

@pytest.mark.asyncio
async def test_summary_breakdown(uow_factory, gateway, publisher, reference_data):
    service = CheckoutService(uow_factory, gateway, publisher)
    summary = await service.summary(
        CheckoutSummaryRequest(
            items=[{"product_id": "widget", "quantity": 2, "unit_price": 2500}],
            shipping_rate_id=reference_data["shipping_rate_id"],
            country="gb",
        )
    )
    assert (summary.subtotal, summary.tax_amount, summary.shipping_amount) == (5000, 1000, 500)
    assert summary.discount_amount == 0
    assert summary.total_amount == 6500
    assert summary.currency == "GBP"
    assert summary.tax_lines[0].rule_id == reference_data["tax_rule_id"]


@pytest.mark.asyncio
async def test_summary_tax_is_computed_before_discount(uow_factory, gateway, publisher, reference_data):
    service = CheckoutService(uow_factory, gateway, publisher)
    summary = await service.summary(
        CheckoutSummaryRequest(
            items=[{"product_id": "widget", "quantity": 2, "unit_price": 2500}],
            shipping_rate_id=reference_data["shipping_rate_id"],
            country="GB",
            coupon_code="SAVE10",
        )
    )
    assert summary.discount_amount == 500
    assert summary.tax_amount == 1000
    assert summary.total_amount == 5000 + 1000 + 500 - 500
    assert summary.coupon_code == "SAVE10"


@pytest.mark.asyncio
async def test_summary_free_shipping_and_per_category_tax(uow_factory, gateway, publisher, reference_data, admin):
    await TaxRuleService(uow_factory).create(
        admin, TaxRuleCreate(name="Books", rate=0, country="GB", category="books", is_default=True)
    )
    service = CheckoutService(uow_factory, gateway, publisher)
    summary = await service.summary(
        CheckoutSummaryRequest(
            items=[
                {"product_id": "widget", "quantity": 4, "unit_price": 2500},
                {"product_id": "novel", "quantity": 1, "unit_price": 1000, "category": "books"},
            ],
            shipping_rate_id=reference_data["shipping_rate_id"],
            country="GB",
        )
    )
    assert summary.subtotal == 11_000
    assert summary.shipping_amount == 0
    by_category = {line.category: line.tax_amount for line in summary.tax_lines}
    assert by_category == {"GENERAL": 2000, "BOOKS": 0}
    assert summary.tax_amount == 2000


@pytest.mark.asyncio
async def test_summary_rejects_unserved_country(uow_factory, gateway, publisher, reference_data):
    service = CheckoutService(uow_factory, gateway, publisher)
    with pytest.raises(ValidationException):
        await service.summary(
            CheckoutSummaryRequest(
                items=[{"product_id": "widget", "quantity": 1, "unit_price": 2500}],
                shipping_rate_id=reference_data["shipping_rate_id"],
                country="FR",
            )
        )
    with pytest.raises(NotFoundException):
        await service.summary(
            CheckoutSummaryRequest(
                items=[{"product_id": "widget", "quantity": 1, "unit_price": 2500}],
                shipping_rate_id="missing",
                country="GB",
            )
        )


@pytest.mark.asyncio
async def test_apply_coupon(uow_factory, gateway, publisher, reference_data):
    service = CheckoutService(uow_factory, gateway, publisher)
    applied = await service.apply_coupon(ApplyCouponRequest(code="save10", order_amount=4321))
    assert applied.coupon_id == reference_data["coupon_id"]
    assert applied.discount_amount == 432

    with pytest.raises(NotFoundException):
        await service.apply_coupon(ApplyCouponRequest(code="nope", order_amount=4321))


# ---- reference data services ----

@pytest.mark.asyncio
async def test_tax_calculate(uow_factory, reference_data):
    service = TaxRuleService(uow_factory)
    result = await service.calculate(TaxCalculateRequest(amount=1999, country="gb"))
    assert result.tax_amount == 400
    assert result.rule.id == reference_data["tax_rule_id"]

    untaxed = await service.calculate(TaxCalculateRequest(amount=1999, country="US"))
    assert untaxed.tax_amount == 0
    assert untaxed.rule is None


@pytest.mark.asyncio
async def test_tax_rule_admin_only_and_soft_delete(uow_factory, reference_data, admin, customer):
    service = TaxRuleService(uow_factory)
    with pytest.raises(ForbiddenException):
        await service.list(customer, page=1, size=10)

    rules, total = await service.list(admin, page=1, size=10, country="gb")
    assert total == 1 and rules[0].rate == Decimal("20")

    await service.delete(admin, reference_data["tax_rule_id"])
    with pytest.raises(NotFoundException):
        await service.get(admin, reference_data["tax_rule_id"])
    calculated = await service.calculate(TaxCalculateRequest(amount=1000, country="GB"))
    assert calculated.tax_amount == 0


@pytest.mark.asyncio
async def test_coupon_codes_are_unique(uow_factory, reference_data, admin):
    service = CouponService(uow_factory)
    with pytest.raises(ConflictException):
        await service.create(admin, CouponCreate(code="SAVE10", type="FIXED", value=100))


@pytest.mark.asyncio
async def test_coupon_update_rechecks_value(uow_factory, reference_data, admin):
    service = CouponService(uow_factory)
    with pytest.raises(ValidationException):
        await service.update(admin, reference_data["coupon_id"], CouponUpdate(value=250))

    updated = await service.update(admin, reference_data["coupon_id"], CouponUpdate(value=25))
    assert updated.value == 25


@pytest.mark.asyncio
async def test_shipping_rates_for_country(uow_factory, reference_data, admin):
    service = ShippingRateService(uow_factory)
    await service.create(
        admin, ShippingRateCreate(name="EU Express", method="express", price=1500, countries=["FR", "DE"])
    )

    above = await service.list_for_country("GB", order_amount=12_000)
    assert [(r.name, r.effective_cost) for r in above] == [("Standard", 0)]
    below = await service.list_for_country("GB", order_amount=9_999)
    assert [(r.name, r.effective_cost) for r in below] == [("Standard", 500)]

    fr = await service.list_for_country("fr")
    assert [(r.name, r.effective_cost) for r in fr] == [("EU Express", 1500)]


@pytest.mark.asyncio
async def test_shipping_rate_create_and_update_return_rates(uow_factory, admin, customer):
    service = ShippingRateService(uow_factory)
    created = await service.create(
        admin,
        ShippingRateCreate(name="Next Day", method="express", price=1200, free_threshold=20_000, countries=["gb"]),
    )
    assert (created.method, created.countries, created.effective_cost) == ("EXPRESS", ["GB"], None)

    updated = await service.update(admin, created.id, ShippingRateUpdate(price=1500, free_threshold=None))
    assert (updated.price, updated.free_threshold) == (1500, None)

    listed = await service.list_for_country("GB", order_amount=50_000)
    assert [(r.name, r.effective_cost) for r in listed] == [("Next Day", 1500)]

    with pytest.raises(ForbiddenException):
        await service.create(
            customer, ShippingRateCreate(name="x", method="standard", price=1, countries=["GB"])
        )


# ---- reference scenarios ----

def test_percentage_coupon_is_capped_by_max_discount():
    coupon = _coupon(value=20, max_discount_amount=30_000)
    assert coupon.discount_for(200_000) == 30_000


def test_free_shipping_threshold_scenario():
    rate = ShippingRate(id="s", name="Std", method="standard", price=995, countries=["GB"], free_threshold=50_000)
    assert rate.cost_for(60_000) == 0
    assert rate.cost_for(10_000) == 995


@pytest.mark.asyncio
async def test_region_rule_overrides_country_default(uow_factory, reference_data, admin):
    service = TaxRuleService(uow_factory)
    await service.create(admin, TaxRuleCreate(name="Scotland", rate=18, country="GB", region="SCOTLAND"))

    scotland = await service.calculate(TaxCalculateRequest(amount=100_000, country="GB", region="scotland"))
    england = await service.calculate(TaxCalculateRequest(amount=100_000, country="GB", region="ENGLAND"))

    assert scotland.tax_amount == 18_000
    assert england.tax_amount == 20_000


@pytest.mark.asyncio
async def test_gb_order_below_shipping_threshold(uow_factory, gateway, publisher, reference_data, admin):
    rate = await ShippingRateService(uow_factory).create(
        admin,
        ShippingRateCreate(name="Standard", method="standard", price=995, free_threshold=500_000, countries=["GB"]),
    )
    summary = await CheckoutService(uow_factory, gateway, publisher).summary(
        CheckoutSummaryRequest(
            items=[{"product_id": "sofa", "quantity": 1, "unit_price": 150_000}],
            shipping_rate_id=rate.id,
            country="GB",
        )
    )
    assert (summary.tax_amount, summary.shipping_amount, summary.total_amount) == (30_000, 995, 180_995)
