"""
Carrier backend clients.

The shipment orchestrator programs against ``CarrierClient``; concrete
backends are chosen by configuration (``CARRIER_BACKENDS``):

    - HttpCarrierClient: a carrier rate/label gateway reached over HTTP
    - modules.fake_carrier.FakeCarrierClient: deterministic in-process
      backend for development and tests

THREAD SAFETY:
    - Shipment worker threads share one client per backend
    - HttpCarrierClient wraps an httpx.Client, which is safe to share
      between threads

Gateway contract:
    POST {base_url}/rates      {"parcel": {...}, "order": {...}}
        -> {"rates": [{"rateId", "service", "cost", "deliveryDays"}, ...]}
    POST {base_url}/purchases  {"rateId": ..., "parcel": {...}, "order": {...}}
        -> {"trackingNumber", "labelUrl", "shipmentId"}
    POST {base_url}/refunds    {"shipmentId": ..., "trackingNumber": ...}
        -> {"status": ...}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

import httpx

from .exceptions import CarrierFailure
from logging_config import get_logger
from models.order import Order
from models.shipment import ParcelSpec, Rate, PurchaseReceipt, Shipment


class CarrierClient(ABC):
    """Abstract interface for carrier backends."""

    name: str = "carrier"

    @abstractmethod
    def get_rates(self, parcel: ParcelSpec, order: Order) -> List[Rate]:
        """
        Quote postage for a parcel.

        Returns:
            Rates offered by this backend (may be empty)

        Raises:
            CarrierFailure: If the backend cannot quote
        """
        ...

    @abstractmethod
    def purchase(self, rate: Rate, parcel: ParcelSpec, order: Order) -> PurchaseReceipt:
        """
        Buy a label for a previously quoted rate.

        Raises:
            CarrierFailure: If the purchase is rejected
        """
        ...

    @abstractmethod
    def refund(self, shipment: Shipment) -> None:
        """
        Void a purchased label.

        Raises:
            CarrierFailure: If the backend refuses the refund
        """
        ...

    def close(self) -> None:
        """Release any network resources."""


class HttpCarrierClient(CarrierClient):
    """
    Carrier gateway client over HTTP.

    Every transport error, timeout, non-2xx response and malformed body is
    mapped to CarrierFailure so the orchestrator can record it per order.

    Usage:
        client = HttpCarrierClient(
            name="gateway",
            base_url="https://carriers.internal",
            api_key="...",
            timeout_seconds=15.0,
        )
        rates = client.get_rates(parcel, order)
        receipt = client.purchase(rates[0], parcel, order)
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the gateway client.

        Args:
            name: Backend name recorded on rates and shipments
            base_url: Gateway root URL
            api_key: Bearer token sent with every request
            timeout_seconds: Per-request timeout
            logger: Logger instance (defaults to module logger)
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ValueError: If base_url is empty
        """
        if not base_url:
            raise ValueError("base_url is required for the carrier gateway")

        self.name = name
        self._logger = logger or get_logger(f"carrier.{name}")

        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    def get_rates(self, parcel: ParcelSpec, order: Order) -> List[Rate]:
        body = self._post("/rates", {"parcel": parcel.to_dict(), "order": _order_payload(order)}, order.id)
        raw_rates = body.get("rates")
        if not isinstance(raw_rates, list):
            raise CarrierFailure(self.name, "Malformed rates response", order_id=order.id)

        rates = []
        for raw in raw_rates:
            try:
                rates.append(Rate.from_dict(raw, carrier=self.name))
            except (TypeError, ValueError, AttributeError) as e:
                self._logger.warning(f"Skipping malformed rate for order {order.id}: {e}")

        self._logger.debug(f"Received {len(rates)} rates for order {order.id}")
        return rates

    def purchase(self, rate: Rate, parcel: ParcelSpec, order: Order) -> PurchaseReceipt:
        body = self._post(
            "/purchases",
            {"rateId": rate.rate_id, "parcel": parcel.to_dict(), "order": _order_payload(order)},
            order.id,
        )
        receipt = PurchaseReceipt.from_dict(body)
        if not receipt.tracking_number:
            raise CarrierFailure(self.name, "Purchase response has no tracking number", order_id=order.id)

        self._logger.info(f"Purchased {rate.service} label for order {order.id}: {receipt.tracking_number}")
        return receipt

    def refund(self, shipment: Shipment) -> None:
        body = self._post(
            "/refunds",
            {"shipmentId": shipment.carrier_shipment_id, "trackingNumber": shipment.tracking_number},
            shipment.order_id,
        )
        self._logger.info(
            f"Refund of {shipment.tracking_number} for order {shipment.order_id}: {body.get('status', 'submitted')}"
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: Dict[str, Any], order_id: str) -> Dict[str, Any]:
        """POST JSON to the gateway and return the decoded body."""
        try:
            response = self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            self._logger.error(f"Carrier gateway timed out on {path} for order {order_id}: {e}")
            raise CarrierFailure(self.name, f"Request to {path} timed out", order_id=order_id)
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            self._logger.error(
                f"Carrier gateway returned {e.response.status_code} on {path} for order {order_id}: {detail}"
            )
            raise CarrierFailure(self.name, f"HTTP {e.response.status_code}: {detail}", order_id=order_id)
        except httpx.HTTPError as e:
            self._logger.error(f"Carrier gateway request failed on {path} for order {order_id}: {e}")
            raise CarrierFailure(self.name, f"Request to {path} failed: {e}", order_id=order_id)

        try:
            body = response.json()
        except ValueError as e:
            raise CarrierFailure(self.name, f"Invalid JSON from {path}: {e}", order_id=order_id)

        if not isinstance(body, dict):
            raise CarrierFailure(self.name, f"Unexpected response shape from {path}", order_id=order_id)
        return body


def _order_payload(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "name": order.name,
        "shippingPriority": order.shipping_priority.value,
        "destinationCountry": order.destination_country,
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)[:200]
    return str(body)[:200]
