"""
Inventory routes.

Handles:
- /inventory/blank-variants/<id> - Current quantities
- /inventory/blank-variants/<id>/adjust - Manual signed adjustment
- /inventory/blank-variants/<id>/stock-take - Set to a counted quantity
- /inventory/blank-variants/<id>/transactions - Ledger history
"""

from flask import Blueprint

from models.requests import AdjustInventoryRequest, StockTakeRequest
from routes.responses import ok, service, operator_context, json_body
from logging_config import get_logger


logger = get_logger(__name__)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/inventory/blank-variants")


@inventory_bp.route("/<variant_id>", methods=["GET"])
def get_variant(variant_id: str):
    return ok(service("INVENTORY_LEDGER").get_variant(variant_id).to_dict())


@inventory_bp.route("/<variant_id>/adjust", methods=["POST"])
def adjust(variant_id: str):
    ctx = operator_context()
    req = AdjustInventoryRequest.from_dict(json_body(required=True))
    ledger = service("INVENTORY_LEDGER")
    ledger.adjust(
        variant_id,
        req.field,
        req.delta,
        ctx,
        req.reason,
        override=req.override,
        notes=req.notes,
    )
    return ok(ledger.get_variant(variant_id).to_dict())


@inventory_bp.route("/<variant_id>/stock-take", methods=["POST"])
def stock_take(variant_id: str):
    ctx = operator_context()
    req = StockTakeRequest.from_dict(json_body(required=True))
    ledger = service("INVENTORY_LEDGER")
    ledger.stock_take(variant_id, req.counted, ctx, field=req.field, notes=req.notes)
    return ok(ledger.get_variant(variant_id).to_dict())


@inventory_bp.route("/<variant_id>/transactions", methods=["GET"])
def transactions(variant_id: str):
    ledger = service("INVENTORY_LEDGER")
    ledger.get_variant(variant_id)
    return ok([tx.to_dict() for tx in ledger.transactions(blank_variant_id=variant_id)])
