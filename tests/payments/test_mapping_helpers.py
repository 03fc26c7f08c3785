from infrastructure.external.payments.base import BasePaymentClient


class _MapClient(BasePaymentClient):
    provider = "stripe"


def test_provider_status_mapping():
    c = _MapClient()
    assert c._map_status("succeeded") == "SUCCEEDED"
    assert c._map_status("processing") == "PENDING"
    assert c._map_status("requires_action") == "PENDING"
    assert c._map_status("canceled") == "CANCELLED"


def test_refund_status_mapping():
    c = _MapClient()
    assert c._map_status("pending", kind="stripe_refund") == "PENDING"
    assert c._map_status("succeeded", kind="stripe_refund") == "SUCCEEDED"
    assert c._map_status("canceled", kind="stripe_refund") == "FAILED"


def test_unknown_status_passes_through():
    c = _MapClient()
    assert c._map_status("brand_new_status") == "brand_new_status"
    assert c._map_status(None) == ""
