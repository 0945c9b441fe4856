"""
Order routes.

Handles:
- /orders/<id> - Order with line items, holds and shipments
- /orders/<id>/enqueue, /orders/<id>/dequeue - Queue membership
- /orders/<id>/holds - List and create holds
- /orders/<id>/holds/<hold_id>/resolve - Resolve a hold
- /orders/<id>/shipments/<shipment_id>/refund - Void a purchased label
"""

from flask import Blueprint

from core.exceptions import HoldNotFound
from models.requests import CreateHoldRequest, ResolveHoldRequest
from routes.responses import ok, service, operator_context, json_body
from logging_config import get_logger


logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id: str):
    store = service("STORE")
    order = store.get_order(order_id)
    data = order.to_dict()
    data["line_items"] = [i.to_dict() for i in store.items_for_order(order.id)]
    data["holds"] = [h.to_dict() for h in store.holds_for_order(order.id)]
    data["shipments"] = [s.to_dict() for s in store.shipments_for_order(order.id)]
    return ok(data)


@orders_bp.route("/<order_id>/enqueue", methods=["POST"])
def enqueue(order_id: str):
    order = service("ORDER_QUEUE").enqueue(order_id, operator_context())
    return ok(order.to_dict())


@orders_bp.route("/<order_id>/dequeue", methods=["POST"])
def dequeue(order_id: str):
    order = service("ORDER_QUEUE").dequeue(order_id, operator_context())
    return ok(order.to_dict())


@orders_bp.route("/<order_id>/holds", methods=["GET"])
def list_holds(order_id: str):
    service("STORE").get_order(order_id)
    holds = service("HOLD_REGISTRY").list_holds(order_id)
    return ok([h.to_dict() for h in holds])


@orders_bp.route("/<order_id>/holds", methods=["POST"])
def create_hold(order_id: str):
    ctx = operator_context()
    req = CreateHoldRequest.from_dict(json_body(required=True))
    hold = service("HOLD_REGISTRY").create_hold(order_id, req.cause, req.reason_notes, ctx)
    return ok(hold.to_dict(), 201)


@orders_bp.route("/<order_id>/holds/<int:hold_id>/resolve", methods=["POST"])
def resolve_hold(order_id: str, hold_id: int):
    ctx = operator_context()
    req = ResolveHoldRequest.from_dict(json_body())
    registry = service("HOLD_REGISTRY")

    # The hold must belong to the order in the URL
    if all(h.id != hold_id for h in registry.list_holds(order_id)):
        raise HoldNotFound(hold_id)

    hold = registry.resolve_hold(hold_id, ctx, resolved_notes=req.resolved_notes)
    return ok(hold.to_dict())


@orders_bp.route("/<order_id>/shipments/<shipment_id>/refund", methods=["POST"])
def refund_shipment(order_id: str, shipment_id: str):
    ctx = operator_context()
    shipment = service("SHIPMENT_SERVICE").refund_shipment(order_id, shipment_id, ctx)
    return ok(shipment.to_dict())
