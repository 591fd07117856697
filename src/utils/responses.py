"""
API Gateway proxy response builders.

Every response carries the CORS headers the frontend relies on; bodies are
JSON with DynamoDB Decimals rendered as plain numbers.
"""

import json
from decimal import Decimal
from typing import Any, Dict, Optional

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,X-Amz-Date,Authorization,X-Api-Key,X-Amz-Security-Token",
    "Access-Control-Allow-Methods": "GET,POST,PUT,PATCH,DELETE,OPTIONS",
}


def _json_default(value: Any) -> Any:
    """Encode values json cannot handle natively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def json_response(
    status_code: int, body: Any, headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """
    Build an API Gateway proxy response.

    Args:
        status_code: HTTP status code
        body: JSON-serializable body (DynamoDB items allowed)
        headers: Extra headers merged over the CORS headers

    Returns:
        Proxy integration response dict
    """
    return {
        "statusCode": status_code,
        "headers": {**CORS_HEADERS, "Content-Type": "application/json", **(headers or {})},
        "body": json.dumps(body, default=_json_default),
    }


def preflight_response() -> Dict[str, Any]:
    """Response for CORS preflight (OPTIONS) requests."""
    return {"statusCode": 200, "headers": dict(CORS_HEADERS), "body": ""}


def not_found_response() -> Dict[str, Any]:
    """Response for unmatched routes."""
    return json_response(404, {"error": "Not found"})
