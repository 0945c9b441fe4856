"""
Data models for PrintFulfillment.

This module contains the dataclasses for:
- Order: Storefront order moving through queue, batch and shipping
- LineItem: One unit of print/stock work inside an order
- Blank / BlankVariant / InventoryTransaction: Inventory ledger records
- Batch: A warehouse work session
- OrderHold: Blocking annotation on an order
- Shipment / ParcelSpec / Rate: Carrier purchase records
- ShipmentPurchaseJob: Asynchronous bulk purchase job state

Value objects passed between threads (ParcelSpec, Rate, PurchaseReceipt)
are frozen.
"""

from .order import Order, FulfillmentPriority, ShippingPriority
from .line_item import LineItem, CompletionStatus, TERMINAL_STATUSES, SHIPPABLE_STATUSES
from .inventory import Blank, BlankVariant, InventoryTransaction, StockField, TransactionReason
from .batch import Batch, BatchDocument, DocumentType
from .hold import OrderHold, HoldCause
from .shipment import Shipment, ParcelSpec, ParcelItem, Rate, PurchaseReceipt
from .shipment_job import ShipmentPurchaseJob, OrderOutcome, JobStatus, OutcomeStatus

__all__ = [
    # Order models
    "Order",
    "FulfillmentPriority",
    "ShippingPriority",
    # Line item models
    "LineItem",
    "CompletionStatus",
    "TERMINAL_STATUSES",
    "SHIPPABLE_STATUSES",
    # Inventory models
    "Blank",
    "BlankVariant",
    "InventoryTransaction",
    "StockField",
    "TransactionReason",
    # Batch models
    "Batch",
    "BatchDocument",
    "DocumentType",
    # Hold models
    "OrderHold",
    "HoldCause",
    # Shipment models
    "Shipment",
    "ParcelSpec",
    "ParcelItem",
    "Rate",
    "PurchaseReceipt",
    # Job models
    "ShipmentPurchaseJob",
    "OrderOutcome",
    "JobStatus",
    "OutcomeStatus",
]
