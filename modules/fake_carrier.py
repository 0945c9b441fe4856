"""
Fake carrier backend - deterministic carrier for development and tests.

Quotes a fixed set of services, issues ``FAKE-`` tracking numbers, and can
be told to fail (globally or for specific orders, refunds included) or to
block purchases until released, which lets tests cancel a job mid-flight.
"""

from __future__ import annotations

import threading
import uuid
from typing import Iterable, List, Optional, Set, Tuple

from core.carrier_client import CarrierClient
from core.exceptions import CarrierFailure
from models.order import Order
from models.shipment import ParcelSpec, Rate, PurchaseReceipt, Shipment


# (service, base cost, delivery days)
DEFAULT_SERVICES = (
    ("Ground", 4.50, 5),
    ("Priority", 8.75, 2),
    ("Overnight", 24.00, 1),
)


class FakeCarrierClient(CarrierClient):
    """Fake carrier that always succeeds by default."""

    def __init__(self, name: str = "fake", services: Iterable[Tuple[str, float, int]] = DEFAULT_SERVICES):
        self.name = name
        self._services = list(services)
        self._lock = threading.Lock()

        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"
        self.failing_orders: Set[str] = set()

        self.purchase_gate: Optional[threading.Event] = None
        """When set, purchases wait for this event before completing."""

        self.purchase_started = threading.Event()
        self.purchases: List[Tuple[str, str]] = []
        """(order_id, rate_id) of every completed purchase."""

        self.refunds: List[str] = []
        """Tracking numbers of every refunded label."""

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        failing_orders: Iterable[str] = (),
    ) -> None:
        """Configure the fake carrier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.failing_orders = set(failing_orders)

    def _check(self, order_id: str) -> None:
        if not self.should_succeed or order_id in self.failing_orders:
            raise CarrierFailure(self.name, self.failure_reason, order_id=order_id)

    def get_rates(self, parcel: ParcelSpec, order: Order) -> List[Rate]:
        self._check(order.id)
        # Heavier parcels cost more: +0.10 per pound started
        surcharge = round(0.10 * int(parcel.weight_oz // 16), 2)
        return [
            Rate(
                rate_id=f"{self.name}-{service.lower()}-{order.id}",
                carrier=self.name,
                service=service,
                cost=round(cost + surcharge, 2),
                delivery_days=days,
            )
            for service, cost, days in self._services
        ]

    def purchase(self, rate: Rate, parcel: ParcelSpec, order: Order) -> PurchaseReceipt:
        self.purchase_started.set()
        if self.purchase_gate is not None:
            self.purchase_gate.wait(timeout=10.0)
        self._check(order.id)

        shipment_id = f"ship-{uuid.uuid4().hex[:8]}"
        with self._lock:
            self.purchases.append((order.id, rate.rate_id))
        return PurchaseReceipt(
            tracking_number=f"FAKE-{uuid.uuid4().hex[:12].upper()}",
            label_url=f"https://fake-carrier.example.com/labels/{shipment_id}.pdf",
            carrier_shipment_id=shipment_id,
        )

    def refund(self, shipment: Shipment) -> None:
        self._check(shipment.order_id)
        with self._lock:
            self.refunds.append(shipment.tracking_number)
