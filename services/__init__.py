"""
Services layer for PrintFulfillment.

This module contains the business logic services:
- InventoryLedger: Atomic, audited stock adjustments
- LineItemService: Line item state machine and its stock effects
- HoldRegistry: Order holds
- OrderQueue: Queued orders in fulfillment order
- BatchManager: Batch lifecycle (single active batch)
- ShipmentPurchaseService: Bulk shipment purchase jobs

Thread Model:
    Flask request threads
    └── Call services directly; per-variant and per-order locks in the store

    Shipment worker threads ("Shipments-N")
    └── Run purchase jobs, observed only through the job store
"""

from .inventory_ledger import InventoryLedger
from .line_item_service import LineItemService
from .hold_registry import HoldRegistry
from .order_queue import OrderQueue
from .batch_manager import BatchManager
from .shipment_service import ShipmentPurchaseService, ShipmentJobStore, ShipmentWorkerPool

__all__ = [
    "InventoryLedger",
    "LineItemService",
    "HoldRegistry",
    "OrderQueue",
    "BatchManager",
    "ShipmentPurchaseService",
    "ShipmentJobStore",
    "ShipmentWorkerPool",
]
