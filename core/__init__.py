"""
Core module for PrintFulfillment.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- context: Explicit operator context
- store: In-memory fulfillment store with per-entity locks
- carrier_client: Carrier backend interface and HTTP gateway client
"""

from .exceptions import (
    FulfillmentError,
    ValidationError,
    NotFoundError,
    InvalidTransition,
    NegativeStock,
    InsufficientStock,
    InsufficientPrestock,
    BatchAlreadyActive,
    BatchNotReady,
    OrderNotQueueable,
    CarrierFailure,
)
from .context import OperatorContext
from .store import FulfillmentStore, ActiveBatchSlot
from .carrier_client import CarrierClient, HttpCarrierClient

__all__ = [
    "FulfillmentError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransition",
    "NegativeStock",
    "InsufficientStock",
    "InsufficientPrestock",
    "BatchAlreadyActive",
    "BatchNotReady",
    "OrderNotQueueable",
    "CarrierFailure",
    "OperatorContext",
    "FulfillmentStore",
    "ActiveBatchSlot",
    "CarrierClient",
    "HttpCarrierClient",
]
