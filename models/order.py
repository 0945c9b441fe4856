"""
Order data models.

An Order is imported from the storefront and then owned by the fulfillment
domain: staff toggle its queued flag, the batch manager assigns it to a work
session, and the shipment orchestrator attaches shipments to it.

Thread Safety:
    - Order instances live in the FulfillmentStore and are mutated only
      while holding the order's lock (see core.store.FulfillmentStore.order_lock)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


class FulfillmentPriority(Enum):
    """How urgently the order should be produced."""

    CRITICAL = "critical"
    URGENT = "urgent"
    PRIORITY = "priority"
    NORMAL = "normal"
    LOW = "low"


class ShippingPriority(Enum):
    """Shipping speed the customer paid for."""

    FASTEST = "fastest"
    EXPRESS = "express"
    STANDARD = "standard"


# Queue ordering scores (higher sorts first)
FULFILLMENT_SCORE = {
    FulfillmentPriority.CRITICAL: 4,
    FulfillmentPriority.URGENT: 3,
    FulfillmentPriority.PRIORITY: 2,
    FulfillmentPriority.NORMAL: 1,
    FulfillmentPriority.LOW: 0,
}

SHIPPING_SCORE = {
    ShippingPriority.FASTEST: 2,
    ShippingPriority.EXPRESS: 1,
    ShippingPriority.STANDARD: 0,
}


@dataclass
class Order:
    """
    A sales order being fulfilled by the warehouse.

    Lifecycle:
        1. Imported (queued by default)
        2. Assigned to a batch (queued flag cleared, batch_id set)
        3. Batch settles; shipments are purchased
        4. Optionally re-queued, which starts a new batch cycle
    """

    id: str
    """Storefront order identifier."""

    name: str = ""
    """Human-facing order number (e.g. '#1042')."""

    queued: bool = True
    """Eligible for assignment to a new batch."""

    fulfillment_priority: FulfillmentPriority = FulfillmentPriority.NORMAL

    shipping_priority: ShippingPriority = ShippingPriority.STANDARD

    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    batch_id: Optional[int] = None
    """Batch this order is assigned to in the current cycle."""

    batch_history: List[int] = field(default_factory=list)
    """Settled batches this order previously belonged to."""

    line_item_ids: List[str] = field(default_factory=list)

    hold_ids: List[int] = field(default_factory=list)

    shipment_ids: List[str] = field(default_factory=list)

    cancelled: bool = False
    """Cancelled on the storefront; never queued or shipped."""

    destination_country: str = "US"
    """ISO 3166-1 alpha-2 destination country code."""

    def fulfillment_score(self, now: datetime, promotion_days: int = 28) -> int:
        """
        Queue score for fulfillment priority.

        A LOW order older than ``promotion_days`` is promoted to NORMAL so
        it cannot starve at the back of the queue.
        """
        score = FULFILLMENT_SCORE.get(self.fulfillment_priority, 1)
        if self.fulfillment_priority == FulfillmentPriority.LOW:
            age_days = (now - self.created_at).total_seconds() / 86400
            if age_days > promotion_days:
                score = FULFILLMENT_SCORE[FulfillmentPriority.NORMAL]
        return score

    @property
    def shipping_score(self) -> int:
        return SHIPPING_SCORE.get(self.shipping_priority, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "id": self.id,
            "name": self.name,
            "queued": self.queued,
            "fulfillment_priority": self.fulfillment_priority.value,
            "shipping_priority": self.shipping_priority.value,
            "created_at": self.created_at.isoformat(),
            "batch_id": self.batch_id,
            "batch_history": list(self.batch_history),
            "line_item_ids": list(self.line_item_ids),
            "hold_ids": list(self.hold_ids),
            "shipment_ids": list(self.shipment_ids),
            "cancelled": self.cancelled,
            "destination_country": self.destination_country,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        """Create from dictionary (e.g. an order import payload)."""
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            queued=data.get("queued", True),
            fulfillment_priority=FulfillmentPriority(data.get("fulfillment_priority", "normal")),
            shipping_priority=ShippingPriority(data.get("shipping_priority", "standard")),
            created_at=created_at or datetime.now(timezone.utc),
            cancelled=data.get("cancelled", False),
            destination_country=data.get("destination_country", "US"),
        )
