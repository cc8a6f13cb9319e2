"""
API Gateway proxy responses for the billing handlers.

Every body is JSON. Errors use ``{"error": {"code", "message", "details"?}}``.
"""

import json
import os
from decimal import Decimal
from typing import Any, Dict, Optional

_CORS_METHODS = "POST, OPTIONS"
_CORS_HEADERS = "Content-Type, Authorization, Stripe-Signature"


def get_cors_headers(origin: Optional[str]) -> Dict[str, str]:
    """CORS headers for origins listed in ALLOWED_ORIGINS (comma separated)."""
    allowed = {o.strip() for o in os.environ.get("ALLOWED_ORIGINS", "").split(",") if o.strip()}
    if not origin or origin not in allowed:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": _CORS_METHODS,
        "Access-Control-Allow-Headers": _CORS_HEADERS,
        "Access-Control-Allow-Credentials": "true",
    }


def decimal_default(obj: Any) -> Any:
    """json.dumps hook for DynamoDB Decimals."""
    if isinstance(obj, Decimal):
        return int(obj) if obj == obj.to_integral_value() else float(obj)
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def _build(status_code: int, body: Any, headers: Optional[Dict[str, str]], origin: Optional[str]) -> dict:
    merged = {"Content-Type": "application/json", **get_cors_headers(origin), **(headers or {})}
    return {
        "statusCode": status_code,
        "headers": merged,
        "body": json.dumps(body, default=decimal_default),
    }


def success_response(
    data: Any,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
    origin: Optional[str] = None,
) -> dict:
    return _build(status_code, data, headers, origin)


def error_response(
    status_code: int,
    code: str,
    message: str,
    headers: Optional[Dict[str, str]] = None,
    details: Optional[Dict[str, Any]] = None,
    origin: Optional[str] = None,
) -> dict:
    """
    Error response in the shared envelope.

    Args:
        status_code: HTTP status code
        code: Machine-readable error code (snake_case)
        message: Human-readable message; webhook failures keep it opaque
        headers: Additional response headers
        details: Optional structured detail, e.g. Stripe's error code
        origin: Request Origin header for CORS
    """
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return _build(status_code, {"error": error}, headers, origin)


def api_error_response(error, origin: Optional[str] = None) -> dict:
    """Render an APIError with CORS headers for the caller's origin."""
    return error_response(
        error.status_code,
        error.code,
        error.message,
        details=error.details or None,
        origin=origin,
    )
