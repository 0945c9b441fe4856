"""
Unit tests for the carrier backends.

The HTTP gateway client is exercised against httpx.MockTransport so no
network is involved.
"""

import json

import httpx
import pytest

from core.carrier_client import HttpCarrierClient
from core.exceptions import CarrierFailure
from models.order import Order
from models.shipment import ParcelSpec, Rate, Shipment
from modules.fake_carrier import FakeCarrierClient


# Fixtures

@pytest.fixture
def order():
    return Order(id="1001", name="#1001")


@pytest.fixture
def parcel():
    return ParcelSpec(
        order_id="1001",
        template="Small Parcel",
        length_cm=30.0,
        width_cm=23.0,
        height_cm=3.0,
        weight_oz=20.0,
    )


def _client(handler, **kwargs):
    """Gateway client whose requests are answered by ``handler``."""
    return HttpCarrierClient(
        name="gateway",
        base_url="https://carriers.test",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# Tests for HttpCarrierClient

class TestHttpCarrierClient:
    """Test the carrier gateway client."""

    def test_get_rates(self, order, parcel):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"rates": [
                {"rateId": "r1", "service": "Ground", "cost": 5.25, "deliveryDays": 4},
                {"rate_id": "r2", "service": "Express", "cost": "12.00", "delivery_days": 1},
            ]})

        rates = _client(handler).get_rates(parcel, order)

        assert seen["path"] == "/rates"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["order"]["id"] == "1001"
        assert seen["body"]["parcel"]["template"] == "Small Parcel"
        assert [r.rate_id for r in rates] == ["r1", "r2"]
        assert rates[1].cost == 12.0
        assert all(r.carrier == "gateway" for r in rates)

    def test_malformed_rates_skipped(self, order, parcel):
        def handler(request):
            return httpx.Response(200, json={"rates": [{"rateId": "ok", "cost": 3}, "garbage"]})

        rates = _client(handler).get_rates(parcel, order)
        assert [r.rate_id for r in rates] == ["ok"]

    def test_missing_rates_key(self, order, parcel):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(CarrierFailure):
            _client(handler).get_rates(parcel, order)

    def test_purchase(self, order, parcel):
        def handler(request):
            assert request.url.path == "/purchases"
            assert json.loads(request.content)["rateId"] == "r1"
            return httpx.Response(200, json={
                "trackingNumber": "1Z999",
                "labelUrl": "https://labels.test/1Z999.pdf",
                "shipmentId": 77,
            })

        rate = Rate(rate_id="r1", carrier="gateway", service="Ground", cost=5.25)
        receipt = _client(handler).purchase(rate, parcel, order)

        assert receipt.tracking_number == "1Z999"
        assert receipt.carrier_shipment_id == "77"

    def test_purchase_without_tracking_fails(self, order, parcel):
        def handler(request):
            return httpx.Response(200, json={"labelUrl": "x"})

        rate = Rate(rate_id="r1", carrier="gateway", service="Ground", cost=5.25)
        with pytest.raises(CarrierFailure):
            _client(handler).purchase(rate, parcel, order)

    def test_http_error_mapped(self, order, parcel):
        def handler(request):
            return httpx.Response(422, json={"error": "Address not deliverable"})

        with pytest.raises(CarrierFailure) as exc_info:
            _client(handler).get_rates(parcel, order)

        assert "422" in exc_info.value.message
        assert exc_info.value.carrier == "gateway"
        assert exc_info.value.order_id == "1001"

    def test_timeout_mapped(self, order, parcel):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(CarrierFailure) as exc_info:
            _client(handler).get_rates(parcel, order)
        assert "timed out" in exc_info.value.message

    def test_connection_error_mapped(self, order, parcel):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CarrierFailure):
            _client(handler).get_rates(parcel, order)

    def test_invalid_json_mapped(self, order, parcel):
        def handler(request):
            return httpx.Response(200, content=b"<html>")

        with pytest.raises(CarrierFailure):
            _client(handler).get_rates(parcel, order)

    def test_refund(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"status": "submitted"})

        shipment = Shipment(
            id="shp-1", order_id="1001", carrier="gateway", service="Ground",
            rate_id="r1", cost=5.25, tracking_number="1Z999", carrier_shipment_id="77",
        )
        _client(handler).refund(shipment)

        assert seen["path"] == "/refunds"
        assert seen["body"] == {"shipmentId": "77", "trackingNumber": "1Z999"}

    def test_refund_rejected(self):
        def handler(request):
            return httpx.Response(400, json={"error": "Label already used"})

        shipment = Shipment(
            id="shp-1", order_id="1001", carrier="gateway", service="Ground",
            rate_id="r1", cost=5.25, tracking_number="1Z999",
        )
        with pytest.raises(CarrierFailure) as exc_info:
            _client(handler).refund(shipment)
        assert "Label already used" in exc_info.value.message

    def test_base_url_required(self):
        with pytest.raises(ValueError):
            HttpCarrierClient(name="gateway", base_url="")


# Tests for FakeCarrierClient

class TestFakeCarrier:
    """Test the in-process carrier."""

    def test_quotes_and_purchase(self, order, parcel):
        carrier = FakeCarrierClient()

        rates = carrier.get_rates(parcel, order)
        receipt = carrier.purchase(rates[0], parcel, order)

        assert [r.service for r in rates] == ["Ground", "Priority", "Overnight"]
        assert rates[0].cost == 4.60  # +0.10 for one started pound
        assert receipt.tracking_number.startswith("FAKE-")
        assert carrier.purchases == [("1001", rates[0].rate_id)]

    def test_configured_failure(self, order, parcel):
        carrier = FakeCarrierClient()
        carrier.configure(failing_orders=["1001"], failure_reason="Address rejected")

        with pytest.raises(CarrierFailure) as exc_info:
            carrier.get_rates(parcel, order)
        assert "Address rejected" in exc_info.value.message
