"""
Custom exceptions for PrintFulfillment.

Exception Hierarchy:
    FulfillmentError (base)
    ├── ValidationError          - Malformed input (400)
    ├── NotFoundError            - Unknown entity (404)
    │   ├── OrderNotFound
    │   ├── LineItemNotFound
    │   ├── BlankVariantNotFound
    │   ├── BatchNotFound
    │   ├── HoldNotFound
    │   ├── ShipmentNotFound
    │   └── JobNotFound
    ├── InvalidTransition        - Operation not allowed from current state (409)
    ├── NegativeStock            - Ledger adjustment would go below zero (409)
    │   ├── InsufficientStock    - Not enough on-hand blanks to print
    │   └── InsufficientPrestock - Not enough pre-printed stock
    ├── BatchAlreadyActive       - Another batch holds the active slot (409)
    ├── BatchNotReady            - Batch cannot be settled/shipped yet (409)
    ├── OrderNotQueueable        - Order(s) cannot join a batch (409)
    └── CarrierFailure           - Carrier backend rejected a request (502)

Usage:
    Synchronous operations raise these before anything is mutated.
    Route error handlers turn them into JSON with ``status_code``.
    CarrierFailure is caught by the shipment orchestrator and recorded on
    the order outcome during bulk purchases; a failed refund reaches the
    request handler as a 502.
"""

from typing import Optional, Dict, Any, List


class FulfillmentError(Exception):
    """
    Base exception for all PrintFulfillment errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    @property
    def kind(self) -> str:
        """Error kind reported to callers (the class name)."""
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error envelope."""
        return {
            "data": None,
            "error": self.message,
            "kind": self.kind,
            "details": self.details,
        }


class ValidationError(FulfillmentError):
    """Request payload or argument is malformed. Caller-correctable."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)
        self.field = field


# =============================================================================
# NOT FOUND
# =============================================================================

class NotFoundError(FulfillmentError):
    """Base class for lookups of unknown identifiers."""

    status_code = 404
    entity = "Entity"

    def __init__(self, entity_id: Any):
        super().__init__(f"{self.entity} not found: {entity_id}", {"id": entity_id})
        self.entity_id = entity_id


class OrderNotFound(NotFoundError):
    entity = "Order"


class LineItemNotFound(NotFoundError):
    entity = "Line item"


class BlankVariantNotFound(NotFoundError):
    entity = "Blank variant"


class BatchNotFound(NotFoundError):
    entity = "Batch"


class HoldNotFound(NotFoundError):
    entity = "Hold"


class ShipmentNotFound(NotFoundError):
    entity = "Shipment"


class JobNotFound(NotFoundError):
    entity = "Shipment purchase job"


# =============================================================================
# STATE / INVARIANT VIOLATIONS - detected before any mutation
# =============================================================================

class InvalidTransition(FulfillmentError):
    """
    The requested operation is not allowed from the current state.

    Raised for line-item transitions outside the allowed set, resolving a
    hold twice, settling a batch twice, and similar precondition failures.
    """

    status_code = 409

    def __init__(self, message: str, current_state: Optional[str] = None, **details):
        if current_state is not None:
            details["current_state"] = current_state
        super().__init__(message, details)
        self.current_state = current_state


class NegativeStock(FulfillmentError):
    """
    A ledger adjustment would drive a stock quantity below zero.

    The adjustment is rejected and nothing is written. Pass ``override`` to
    the ledger to force it (audited on the transaction).
    """

    status_code = 409

    def __init__(
        self,
        blank_variant_id: str,
        field: str,
        available: int,
        requested: int,
        message: Optional[str] = None,
    ):
        message = message or (
            f"Adjustment of {field} on {blank_variant_id} would go negative: "
            f"need {requested}, only {available} available"
        )
        details = {
            "blank_variant_id": blank_variant_id,
            "field": field,
            "available": available,
            "requested": requested,
        }
        super().__init__(message, details)
        self.blank_variant_id = blank_variant_id
        self.field = field
        self.available = available
        self.requested = requested


class InsufficientStock(NegativeStock):
    """Not enough on-hand blanks to mark a line item printed."""

    def __init__(self, blank_variant_id: str, available: int, requested: int):
        super().__init__(
            blank_variant_id,
            "on_hand",
            available,
            requested,
            message=f"Insufficient blank stock: need {requested}, only {available} on hand",
        )


class InsufficientPrestock(NegativeStock):
    """Not enough pre-printed stock to fulfill a line item from stock."""

    def __init__(self, blank_variant_id: str, available: int, requested: int):
        super().__init__(
            blank_variant_id,
            "preprinted",
            available,
            requested,
            message=f"Insufficient pre-printed stock: need {requested}, only {available} available",
        )


class BatchAlreadyActive(FulfillmentError):
    """Another batch already holds the single active slot."""

    status_code = 409

    def __init__(self, active_batch_id: Optional[int]):
        super().__init__(
            f"Batch {active_batch_id} is already active",
            {"active_batch_id": active_batch_id},
        )
        self.active_batch_id = active_batch_id


class BatchNotReady(FulfillmentError):
    """
    Batch cannot be settled (or shipped) yet.

    ``blocking_reasons`` lists every condition that must be resolved first.
    """

    status_code = 409

    def __init__(self, batch_id: int, blocking_reasons: List[str]):
        message = f"Batch {batch_id} is not ready"
        if blocking_reasons:
            message = f"{message}: {'; '.join(blocking_reasons)}"
        super().__init__(message, {"batch_id": batch_id, "blocking_reasons": blocking_reasons})
        self.batch_id = batch_id
        self.blocking_reasons = blocking_reasons


class OrderNotQueueable(FulfillmentError):
    """One or more orders are not queued or already assigned to a batch."""

    status_code = 409

    def __init__(self, order_ids: List[str], reason: str = "not queued or already assigned"):
        super().__init__(
            f"{len(order_ids)} order(s) {reason}: {', '.join(order_ids)}",
            {"order_ids": order_ids},
        )
        self.order_ids = order_ids


# =============================================================================
# CARRIER ERRORS - isolated per order by the shipment orchestrator
# =============================================================================

class CarrierFailure(FulfillmentError):
    """
    A carrier backend could not quote or purchase a shipment.

    Typical causes:
    - Carrier API unreachable or timed out
    - Address rejected by the carrier
    - Requested rate no longer available
    """

    status_code = 502

    def __init__(self, carrier: str, message: str, order_id: Optional[str] = None):
        details = {"carrier": carrier}
        if order_id:
            details["order_id"] = order_id
        super().__init__(f"{carrier}: {message}", details)
        self.carrier = carrier
        self.order_id = order_id
