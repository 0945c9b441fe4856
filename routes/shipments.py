"""
Bulk shipment purchase routes.

Handles:
- /shipments/bulk - Submit a purchase job (202 + job handle)
- /shipments/bulk/status - Poll a job
- /shipments/bulk/cancel - Request cancellation

Submission returns as soon as the job is queued; carrier calls happen on
the shipment worker threads.
"""

from flask import Blueprint, request

from core.exceptions import ValidationError
from models.requests import BulkPurchaseRequest, CancelJobRequest
from routes.responses import ok, service, operator_context, json_body
from logging_config import get_logger


logger = get_logger(__name__)

shipments_bp = Blueprint("shipments", __name__, url_prefix="/shipments")


@shipments_bp.route("/bulk", methods=["POST"])
def submit_bulk():
    ctx = operator_context()
    req = BulkPurchaseRequest.from_dict(json_body(required=True))
    job_id = service("SHIPMENT_SERVICE").submit(req, ctx)
    return ok({"jobId": job_id}, 202)


@shipments_bp.route("/bulk/status", methods=["GET"])
def bulk_status():
    job_id = request.args.get("jobId", "").strip()
    if not job_id:
        raise ValidationError("'jobId' query parameter is required", field="jobId")
    return ok(service("SHIPMENT_SERVICE").status(job_id))


@shipments_bp.route("/bulk/cancel", methods=["POST"])
def cancel_bulk():
    ctx = operator_context()
    req = CancelJobRequest.from_dict(json_body(required=True))
    return ok(service("SHIPMENT_SERVICE").cancel(req.job_id, ctx))
