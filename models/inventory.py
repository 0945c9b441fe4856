"""
Inventory data models.

Blanks are unprinted garment styles; BlankVariants are the size/colour
combinations stock is counted against. Every change to a variant's stock is
recorded as an InventoryTransaction by the InventoryLedger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


class StockField(Enum):
    """Which stock count on a BlankVariant an adjustment targets."""

    ON_HAND = "on_hand"
    """Unprinted blanks on the shelf."""

    PREPRINTED = "preprinted"
    """Already-printed units ready to ship."""


class TransactionReason(Enum):
    """Why an inventory adjustment happened."""

    ASSEMBLY_USAGE = "assembly_usage"
    CORRECTION = "correction"
    MISPRINT = "misprint"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    RESTOCK = "restock"
    STOCK_TAKE = "stock_take"
    RETURN = "return"


@dataclass
class Blank:
    """An unprinted garment style from a vendor."""

    id: str
    vendor: str = ""
    name: str = ""
    garment_type: str = "tee"
    customs_price: Optional[float] = None
    hs_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendor": self.vendor,
            "name": self.name,
            "garment_type": self.garment_type,
            "customs_price": self.customs_price,
            "hs_code": self.hs_code,
        }


@dataclass
class BlankVariant:
    """
    A specific size/colour of a Blank; the unit inventory is tracked against.

    ``on_hand`` and ``preprinted`` are only written by the InventoryLedger.
    """

    id: str
    blank_id: str
    size: str = "md"
    color: str = ""
    weight_oz: Optional[float] = None
    volume: Optional[float] = None
    on_hand: int = 0
    preprinted: int = 0

    def quantity(self, stock_field: StockField) -> int:
        """Current quantity of the given stock field."""
        return getattr(self, stock_field.value)

    @property
    def display_name(self) -> str:
        return f"{self.color} {self.size}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "blank_id": self.blank_id,
            "size": self.size,
            "color": self.color,
            "weight_oz": self.weight_oz,
            "volume": self.volume,
            "on_hand": self.on_hand,
            "preprinted": self.preprinted,
        }


@dataclass
class InventoryTransaction:
    """
    Audit record for one ledger adjustment.

    Transactions tied to a line item let its ledger effect be reversed
    and let settlement compare expected against actual usage.
    """

    id: int
    blank_variant_id: str
    field: StockField
    change: int
    previous_quantity: int
    new_quantity: int
    reason: TransactionReason
    actor_id: str
    line_item_id: Optional[str] = None
    batch_id: Optional[int] = None
    override: bool = False
    """Adjustment was forced past the non-negative check."""
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "blank_variant_id": self.blank_variant_id,
            "field": self.field.value,
            "change": self.change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason.value,
            "actor_id": self.actor_id,
            "line_item_id": self.line_item_id,
            "batch_id": self.batch_id,
            "override": self.override,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
        }
