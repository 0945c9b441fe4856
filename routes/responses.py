"""
Shared helpers for the JSON blueprints.

Every endpoint answers with the envelope ``{"data": ..., "error": None}``;
errors are rendered by the handlers registered in app.py from the
FulfillmentError hierarchy.
"""

from typing import Any, Dict

from flask import current_app, request

from core.context import OperatorContext
from core.exceptions import ValidationError


def ok(data: Any, status: int = 200):
    """Success envelope."""
    return {"data": data, "error": None}, status


def service(key: str):
    """Look up a service wired into app.config by create_app()."""
    return current_app.config[key]


def operator_context() -> OperatorContext:
    """
    Operator performing a mutating request.

    Raises:
        ValidationError: ``X-Operator-Id`` header missing
    """
    ctx = OperatorContext.from_headers(request.headers)
    if ctx is None:
        raise ValidationError("'X-Operator-Id' header is required", field="X-Operator-Id")
    return ctx


def json_body(required: bool = False) -> Dict[str, Any]:
    """
    Parsed JSON body (an empty dict for bodiless requests).

    Raises:
        ValidationError: Body present but not valid JSON, or missing when required
    """
    if not request.get_data(cache=True):
        if required:
            raise ValidationError("Request body is required")
        return {}
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be valid JSON")
    return data
