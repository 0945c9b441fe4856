"""
Line item data models.

A LineItem is one unit of work inside an order. Its completion status is
changed only by services.line_item_service.LineItemService, which keeps the
status and the inventory ledger in step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Set


class CompletionStatus(Enum):
    """
    Completion status of a line item.

    Lifecycle:
        NOT_PRINTED -> PARTIALLY_PRINTED -> PRINTED
        NOT_PRINTED | PARTIALLY_PRINTED -> IN_STOCK
        * -> OOS_BLANK | SKIPPED | IGNORE
        any non-initial status -> NOT_PRINTED (reset)
    """

    NOT_PRINTED = "not_printed"
    """Initial status - nothing done yet."""

    PARTIALLY_PRINTED = "partially_printed"
    """Blank consumed, some print locations still outstanding."""

    PRINTED = "printed"
    """All print locations done."""

    IN_STOCK = "in_stock"
    """Fulfilled from pre-printed stock."""

    OOS_BLANK = "oos_blank"
    """Blank unavailable; needs manual resolution."""

    SKIPPED = "skipped"
    """Not worked this batch."""

    IGNORE = "ignore"
    """Excluded from fulfillment entirely."""


TERMINAL_STATUSES = frozenset({
    CompletionStatus.PRINTED,
    CompletionStatus.IN_STOCK,
    CompletionStatus.OOS_BLANK,
    CompletionStatus.SKIPPED,
    CompletionStatus.IGNORE,
})

# Statuses whose item goes into a parcel
SHIPPABLE_STATUSES = frozenset({
    CompletionStatus.PRINTED,
    CompletionStatus.IN_STOCK,
})


@dataclass
class LineItem:
    """One product unit within an order requiring print/stock resolution."""

    id: str
    order_id: str
    name: str = ""
    blank_variant_id: Optional[str] = None
    quantity: int = 1
    status: CompletionStatus = CompletionStatus.NOT_PRINTED

    required_prints: int = 1
    """Number of print locations (front, back, sleeve...)."""

    completed_prints: Set[str] = field(default_factory=set)
    """Print location ids recorded since the last reset."""

    consumed_on_hand: int = 0
    """On-hand blanks this item currently holds from the ledger."""

    consumed_preprinted: int = 0
    """Pre-printed units this item currently holds from the ledger."""

    oos_skipped: Dict[str, CompletionStatus] = field(default_factory=dict)
    """Siblings this item skipped when marked OOS_BLANK, with the status each had
    before (restored on reset)."""

    unit_value: float = 0.0
    """Sale price per unit, used for customs value fallback."""

    requires_shipping: bool = True

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_shippable(self) -> bool:
        return self.requires_shipping and self.status in SHIPPABLE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "id": self.id,
            "order_id": self.order_id,
            "name": self.name,
            "blank_variant_id": self.blank_variant_id,
            "quantity": self.quantity,
            "status": self.status.value,
            "required_prints": self.required_prints,
            "completed_prints": sorted(self.completed_prints),
            "consumed_on_hand": self.consumed_on_hand,
            "consumed_preprinted": self.consumed_preprinted,
            "oos_skipped": {sibling_id: status.value for sibling_id, status in self.oos_skipped.items()},
            "requires_shipping": self.requires_shipping,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        """Create from an import payload. Status always starts NOT_PRINTED."""
        return cls(
            id=data["id"],
            order_id=data["order_id"],
            name=data.get("name", ""),
            blank_variant_id=data.get("blank_variant_id"),
            quantity=int(data.get("quantity", 1)),
            required_prints=int(data.get("required_prints", 1)),
            unit_value=float(data.get("unit_value", 0.0)),
            requires_shipping=data.get("requires_shipping", True),
        )
