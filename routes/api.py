"""
Service routes.

Handles:
- /health - Health check endpoint
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    store = current_app.config.get("STORE")
    if store is not None:
        health_status["checks"]["store"] = "ok"
        health_status["checks"]["active_batch"] = store.active_batch.current
    else:
        health_status["checks"]["store"] = "not_available"
        health_status["status"] = "degraded"

    shipment_service = current_app.config.get("SHIPMENT_SERVICE")
    if shipment_service and shipment_service.is_running:
        health_status["checks"]["shipment_workers"] = "ok"
        health_status["checks"]["carriers"] = shipment_service.carrier_names
    else:
        health_status["checks"]["shipment_workers"] = "not_running"
        health_status["status"] = "degraded"

    catalog_sync = current_app.config.get("CATALOG_SYNC")
    if catalog_sync:
        health_status["checks"]["catalog_sync"] = catalog_sync.stats()

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
