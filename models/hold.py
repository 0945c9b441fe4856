"""
Order hold data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


class HoldCause(Enum):
    """Reason an order is blocked."""

    ADDRESS_ISSUE = "address_issue"
    SHIPPING_ISSUE = "shipping_issue"
    STOCK_SHORTAGE = "stock_shortage"
    OTHER = "other"


@dataclass
class OrderHold:
    """
    A blocking annotation on an order.

    An order with any unresolved hold is excluded from the queue listing,
    blocks batch settlement, and is skipped by bulk shipment purchase.
    """

    id: int
    order_id: str
    cause: HoldCause
    reason_notes: str
    created_by: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None
    resolved_notes: Optional[str] = None
    resolved_by: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "cause": self.cause.value,
            "reason_notes": self.reason_notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "is_resolved": self.is_resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "resolved_notes": self.resolved_notes,
            "resolved_by": self.resolved_by,
        }
