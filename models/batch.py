"""
Batch (work session) data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional


class DocumentType(Enum):
    """Documents generated for a batch when it is created."""

    PICKING_LIST = "picking_list"
    ASSEMBLY_LINE = "assembly_line"


@dataclass
class BatchDocument:
    """A JSON snapshot generated for a batch (rendering happens elsewhere)."""

    document_type: DocumentType
    name: str
    content: Any
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_type": self.document_type.value,
            "name": self.name,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Batch:
    """
    A bounded unit of warehouse work.

    Lifecycle:
        created (active) -> settled (inactive, terminal)

    After settlement only the bookkeeping stamps (stock and item sync
    verification, shipments purchased and verified) may change.
    """

    id: int
    active: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    order_ids: List[str] = field(default_factory=list)
    documents: List[BatchDocument] = field(default_factory=list)
    created_by: str = ""
    settled_by: Optional[str] = None
    settle_notes: Optional[str] = None
    item_sync_verified_at: Optional[datetime] = None
    premade_stock_verified_at: Optional[datetime] = None
    premade_stock_snapshot: Optional[Dict[str, Any]] = None
    """Pre-printed stock requirements as they stood when verified."""

    blank_stock_verified_at: Optional[datetime] = None
    blank_stock_snapshot: Optional[Dict[str, Any]] = None
    """Blank stock requirements as they stood when verified."""

    shipments_purchased_at: Optional[datetime] = None
    shipments_verified_at: Optional[datetime] = None

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None

    def to_dict(self) -> Dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "started_at": _iso(self.started_at),
            "settled_at": _iso(self.settled_at),
            "order_ids": list(self.order_ids),
            "documents": [d.to_dict() for d in self.documents],
            "created_by": self.created_by,
            "settled_by": self.settled_by,
            "settle_notes": self.settle_notes,
            "item_sync_verified_at": _iso(self.item_sync_verified_at),
            "premade_stock_verified_at": _iso(self.premade_stock_verified_at),
            "premade_stock_snapshot": self.premade_stock_snapshot,
            "blank_stock_verified_at": _iso(self.blank_stock_verified_at),
            "blank_stock_snapshot": self.blank_stock_snapshot,
            "shipments_purchased_at": _iso(self.shipments_purchased_at),
            "shipments_verified_at": _iso(self.shipments_verified_at),
        }
