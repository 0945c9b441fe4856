"""
Shipment and parcel data models.

ParcelSpec is what the orchestrator sends to carrier backends for quoting;
Rate is a quote returned by a backend; Shipment is the stored result of a
successful purchase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional


@dataclass(frozen=True)
class ParcelItem:
    """One customs line of a parcel."""

    line_item_id: str
    description: str
    quantity: int
    weight_oz: float
    value: float
    hs_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "line_item_id": self.line_item_id,
            "description": self.description,
            "quantity": self.quantity,
            "weight_oz": self.weight_oz,
            "value": self.value,
            "hs_code": self.hs_code,
        }


@dataclass(frozen=True)
class ParcelSpec:
    """
    Physical parcel for one order.

    Immutable once built so worker threads can pass it to several carrier
    backends without copying.
    """

    order_id: str
    template: str
    length_cm: float
    width_cm: float
    height_cm: float
    weight_oz: float
    items: tuple = ()
    destination_country: str = "US"

    @property
    def total_value(self) -> float:
        return round(sum(item.value * item.quantity for item in self.items), 2)

    @property
    def line_item_ids(self) -> List[str]:
        return [item.line_item_id for item in self.items]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "template": self.template,
            "length_cm": self.length_cm,
            "width_cm": self.width_cm,
            "height_cm": self.height_cm,
            "weight_oz": self.weight_oz,
            "items": [item.to_dict() for item in self.items],
            "destination_country": self.destination_country,
            "total_value": self.total_value,
        }


@dataclass(frozen=True)
class Rate:
    """A postage quote from a carrier backend."""

    rate_id: str
    carrier: str
    """Name of the backend that produced the quote."""
    service: str
    cost: float
    delivery_days: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate_id": self.rate_id,
            "carrier": self.carrier,
            "service": self.service,
            "cost": self.cost,
            "delivery_days": self.delivery_days,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], carrier: str) -> "Rate":
        """Create from a carrier gateway payload."""
        delivery_days = data.get("deliveryDays", data.get("delivery_days"))
        return cls(
            rate_id=str(data.get("rateId", data.get("rate_id", ""))),
            carrier=carrier,
            service=data.get("service", ""),
            cost=float(data.get("cost", data.get("rate", 0.0))),
            delivery_days=int(delivery_days) if delivery_days is not None else None,
        )


@dataclass(frozen=True)
class PurchaseReceipt:
    """What a carrier backend returns for a bought label."""

    tracking_number: str
    label_url: str = ""
    carrier_shipment_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PurchaseReceipt":
        return cls(
            tracking_number=data.get("trackingNumber", data.get("tracking_number", "")),
            label_url=data.get("labelUrl", data.get("label_url", "")),
            carrier_shipment_id=str(data.get("shipmentId", data.get("shipment_id", ""))),
        )


@dataclass
class Shipment:
    """A purchased shipping label attached to an order."""

    id: str
    order_id: str
    carrier: str
    service: str
    rate_id: str
    cost: float
    tracking_number: str
    label_url: str = ""
    carrier_shipment_id: str = ""
    """Backend reference used to refund the label."""

    line_item_ids: List[str] = field(default_factory=list)
    parcel: Optional[ParcelSpec] = None
    job_id: Optional[str] = None
    purchased_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    refunded: bool = False
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return not self.refunded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "carrier": self.carrier,
            "service": self.service,
            "rate_id": self.rate_id,
            "cost": self.cost,
            "tracking_number": self.tracking_number,
            "label_url": self.label_url,
            "carrier_shipment_id": self.carrier_shipment_id,
            "line_item_ids": list(self.line_item_ids),
            "parcel": self.parcel.to_dict() if self.parcel else None,
            "job_id": self.job_id,
            "purchased_at": self.purchased_at.isoformat(),
            "refunded": self.refunded,
            "refunded_at": self.refunded_at.isoformat() if self.refunded_at else None,
            "refunded_by": self.refunded_by,
        }
