"""
Request payload models.

Each request body accepted by the JSON routes is parsed into one of these
dataclasses by its ``from_dict`` classmethod, which raises ValidationError
for anything malformed. Keys are accepted in camelCase or snake_case.
Free-text notes are sanitised with bleach before they are stored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Any, List, Optional

import bleach

from core.exceptions import ValidationError
from models.hold import HoldCause
from models.inventory import StockField, TransactionReason


NOTES_MAX_LENGTH = 1000


# =============================================================================
# HELPERS
# =============================================================================

def _sanitize_text(text: Optional[str], max_length: int = NOTES_MAX_LENGTH) -> str:
    """
    Sanitize user input text to prevent stored markup.

    Args:
        text: Raw input text
        max_length: Maximum length to keep

    Returns:
        Sanitized text safe for storage and display
    """
    if not text:
        return ""
    if not isinstance(text, str):
        raise ValidationError("Notes must be a string")
    text = text.strip()
    text = bleach.clean(text, tags=[], strip=True)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def _get(data: Dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    """Read a key accepting either the camelCase or the snake_case spelling."""
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"'{field}' must be a boolean", field=field)


def _as_int(value: Any, field: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{field}' must be an integer", field=field)
    return value


def _as_id_list(value: Any, field: str) -> List[str]:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"'{field}' must be a non-empty list", field=field)
    ids = []
    for item in value:
        if not isinstance(item, (str, int)) or isinstance(item, bool) or str(item) == "":
            raise ValidationError(f"'{field}' contains an invalid id", field=field)
        ids.append(str(item))
    if len(set(ids)) != len(ids):
        raise ValidationError(f"'{field}' contains duplicate ids", field=field)
    return ids


def _as_enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"'{field}' must be one of: {allowed}", field=field)


def _require_mapping(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# HOLDS
# =============================================================================

@dataclass(frozen=True)
class CreateHoldRequest:
    cause: HoldCause
    reason_notes: str

    @classmethod
    def from_dict(cls, data: Any) -> "CreateHoldRequest":
        data = _require_mapping(data)
        cause = _as_enum(HoldCause, _get(data, "cause", "cause"), "cause")
        notes = _sanitize_text(_get(data, "reasonNotes", "reason_notes"))
        if not notes:
            raise ValidationError("'reasonNotes' is required", field="reasonNotes")
        return cls(cause=cause, reason_notes=notes)


@dataclass(frozen=True)
class ResolveHoldRequest:
    resolved_notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ResolveHoldRequest":
        data = _require_mapping(data)
        notes = _sanitize_text(_get(data, "resolvedNotes", "resolved_notes"))
        return cls(resolved_notes=notes or None)


# =============================================================================
# BATCHES
# =============================================================================

@dataclass(frozen=True)
class CreateBatchRequest:
    order_ids: List[str]

    @classmethod
    def from_dict(cls, data: Any) -> "CreateBatchRequest":
        data = _require_mapping(data)
        return cls(order_ids=_as_id_list(_get(data, "orderIds", "order_ids"), "orderIds"))


@dataclass(frozen=True)
class SettleBatchRequest:
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "SettleBatchRequest":
        data = _require_mapping(data)
        return cls(notes=_sanitize_text(data.get("notes")) or None)


# =============================================================================
# LINE ITEM TRANSITIONS
# =============================================================================

@dataclass(frozen=True)
class PrintRequest:
    print_id: Optional[str] = None
    override: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "PrintRequest":
        data = _require_mapping(data)
        print_id = _get(data, "printId", "print_id")
        if print_id is not None and (not isinstance(print_id, (str, int)) or isinstance(print_id, bool)):
            raise ValidationError("'printId' must be a string", field="printId")
        return cls(
            print_id=str(print_id) if print_id is not None else None,
            override=_as_bool(data.get("override", False), "override"),
        )


@dataclass(frozen=True)
class ResetRequest:
    restore_inventory: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> "ResetRequest":
        data = _require_mapping(data)
        value = _get(data, "restoreInventory", "restore_inventory", True)
        return cls(restore_inventory=_as_bool(value, "restoreInventory"))


@dataclass(frozen=True)
class MisprintRequest:
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "MisprintRequest":
        data = _require_mapping(data)
        return cls(notes=_sanitize_text(data.get("notes")) or None)


# =============================================================================
# INVENTORY
# =============================================================================

# Reasons staff may use for manual adjustments (usage reasons are system-only)
MANUAL_REASONS = frozenset({
    TransactionReason.CORRECTION,
    TransactionReason.MANUAL_ADJUSTMENT,
    TransactionReason.RESTOCK,
    TransactionReason.STOCK_TAKE,
    TransactionReason.RETURN,
})


@dataclass(frozen=True)
class AdjustInventoryRequest:
    field: StockField
    delta: int
    reason: TransactionReason
    override: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "AdjustInventoryRequest":
        data = _require_mapping(data)
        stock_field = _as_enum(StockField, data.get("field", "on_hand"), "field")
        if "delta" not in data:
            raise ValidationError("'delta' is required", field="delta")
        delta = _as_int(data["delta"], "delta")
        if delta == 0:
            raise ValidationError("'delta' must be non-zero", field="delta")
        reason = _as_enum(TransactionReason, data.get("reason", "manual_adjustment"), "reason")
        if reason not in MANUAL_REASONS:
            raise ValidationError(f"Reason '{reason.value}' is reserved for line item usage", field="reason")
        return cls(
            field=stock_field,
            delta=delta,
            reason=reason,
            override=_as_bool(data.get("override", False), "override"),
            notes=_sanitize_text(data.get("notes")) or None,
        )


@dataclass(frozen=True)
class StockTakeRequest:
    field: StockField
    counted: int
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "StockTakeRequest":
        data = _require_mapping(data)
        if "counted" not in data:
            raise ValidationError("'counted' is required", field="counted")
        counted = _as_int(data["counted"], "counted")
        if counted < 0:
            raise ValidationError("'counted' cannot be negative", field="counted")
        return cls(
            field=_as_enum(StockField, data.get("field", "on_hand"), "field"),
            counted=counted,
            notes=_sanitize_text(data.get("notes")) or None,
        )


# =============================================================================
# SHIPMENTS
# =============================================================================

@dataclass(frozen=True)
class BulkPurchaseRequest:
    """
    Scope of a bulk shipment purchase.

    Exactly one of ``batch_id`` or ``order_ids`` is set.
    """

    batch_id: Optional[int] = None
    order_ids: Optional[List[str]] = None
    carrier: Optional[str] = None
    rate_id: Optional[str] = None
    target_line_item_ids: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "BulkPurchaseRequest":
        data = _require_mapping(data)
        batch_id = _get(data, "batchId", "batch_id")
        order_ids = _get(data, "orderIds", "order_ids")
        if (batch_id is None) == (order_ids is None):
            raise ValidationError("Provide exactly one of 'batchId' or 'orderIds'")
        if batch_id is not None:
            batch_id = _as_int(batch_id, "batchId")
        if order_ids is not None:
            order_ids = _as_id_list(order_ids, "orderIds")

        carrier = data.get("carrier")
        if carrier is not None and (not isinstance(carrier, str) or not carrier.strip()):
            raise ValidationError("'carrier' must be a non-empty string", field="carrier")
        rate_id = _get(data, "rateId", "rate_id")
        if rate_id is not None and not isinstance(rate_id, str):
            raise ValidationError("'rateId' must be a string", field="rateId")

        targets = _get(data, "targetLineItemIds", "target_line_item_ids")
        if targets is not None:
            targets = _as_id_list(targets, "targetLineItemIds")

        return cls(
            batch_id=batch_id,
            order_ids=order_ids,
            carrier=carrier.strip() if carrier else None,
            rate_id=rate_id,
            target_line_item_ids=targets,
        )


@dataclass(frozen=True)
class CancelJobRequest:
    job_id: str

    @classmethod
    def from_dict(cls, data: Any) -> "CancelJobRequest":
        data = _require_mapping(data)
        job_id = _get(data, "jobId", "job_id")
        if not job_id or not isinstance(job_id, str):
            raise ValidationError("'jobId' is required", field="jobId")
        return cls(job_id=job_id)


# =============================================================================
# WEBHOOKS
# =============================================================================

@dataclass(frozen=True)
class ProductWebhookPayload:
    """Product create/update notification from the storefront."""

    admin_graphql_api_id: str
    title: str = ""
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProductWebhookPayload":
        if not isinstance(data, dict):
            raise ValidationError("Webhook body must be a JSON object")
        api_id = data.get("admin_graphql_api_id")
        if not isinstance(api_id, str) or not api_id:
            raise ValidationError("'admin_graphql_api_id' is required", field="admin_graphql_api_id")
        title = data.get("title") or ""
        return cls(admin_graphql_api_id=api_id, title=str(title), raw=data)
