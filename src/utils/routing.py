"""
Request routing for API Gateway REST proxy events.

Each Lambda serves one resource family; the Router maps method + path
segments to an operation and hands it a parsed Request.
"""

import base64
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import AppError, ErrorCode, handle_error
from .logging import StructuredLogger, get_correlation_id
from .responses import json_response, not_found_response, preflight_response

STAGE_NAMES = ("dev", "staging", "prod")


@dataclass
class Request:
    """Parsed view of an API Gateway proxy event."""

    method: str
    segments: List[str]
    params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    raw_body: Any = None
    is_base64_encoded: bool = False

    @property
    def body(self) -> Dict[str, Any]:
        """Request body as a dict; empty when absent."""
        return parse_body(self.raw_body, self.is_base64_encoded)


Operation = Callable[[Request], Dict[str, Any]]


def route_segments(path: str) -> List[str]:
    """
    Split a path into route segments, dropping a leading stage prefix.

    Examples:
        >>> route_segments('/dev/sprints/sprint-1/register')
        ['sprints', 'sprint-1', 'register']
        >>> route_segments('/store/items')
        ['store', 'items']
    """
    parts = [p for p in path.split("/") if p]
    for index, part in enumerate(parts):
        if part in STAGE_NAMES:
            return parts[index + 1 :]
    return parts


def parse_body(raw: Any, is_base64_encoded: bool = False) -> Dict[str, Any]:
    """
    Decode a proxy event body into a dict.

    Raises:
        AppError: If the body is not a JSON object
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise AppError(ErrorCode.INVALID_INPUT, "Request body must be a JSON object")
    if is_base64_encoded:
        try:
            raw = base64.b64decode(raw.encode("utf-8")).decode("utf-8")
        except ValueError:
            raise AppError(ErrorCode.INVALID_INPUT, "Request body could not be decoded")
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        raise AppError(ErrorCode.INVALID_INPUT, "Request body must be valid JSON")
    if not isinstance(parsed, dict):
        raise AppError(ErrorCode.INVALID_INPUT, "Request body must be a JSON object")
    return parsed


class Router:
    """
    Ordered table of (method, pattern) -> operation.

    Patterns are slash-separated; ``{name}`` segments capture a path
    parameter. The first pattern with matching method and segment count wins.
    """

    def __init__(self) -> None:
        self._routes: List[Tuple[str, List[str], Operation]] = []

    def add(self, method: str, pattern: str, operation: Operation) -> None:
        self._routes.append((method.upper(), [p for p in pattern.split("/") if p], operation))

    def match(self, method: str, segments: List[str]) -> Optional[Tuple[Operation, Dict[str, str]]]:
        for route_method, pattern, operation in self._routes:
            if route_method != method or len(pattern) != len(segments):
                continue
            params: Dict[str, str] = {}
            for expected, actual in zip(pattern, segments):
                if expected.startswith("{") and expected.endswith("}"):
                    params[expected[1:-1]] = actual
                elif expected != actual:
                    break
            else:
                return operation, params
        return None


def build_request(event: Dict[str, Any]) -> Request:
    """Build a Request from an API Gateway REST proxy event."""
    path = event.get("path") or (event.get("requestContext") or {}).get("path") or ""
    return Request(
        method=str(event.get("httpMethod") or "").upper(),
        segments=route_segments(path),
        query=event.get("queryStringParameters") or {},
        raw_body=event.get("body"),
        is_base64_encoded=bool(event.get("isBase64Encoded")),
    )


def dispatch(router: Router, event: Dict[str, Any], logger: StructuredLogger) -> Dict[str, Any]:
    """
    Route an event to its operation and convert the outcome to a response.

    AppErrors become their mapped status code; anything else is logged and
    returned as a generic 500.
    """
    logger.set_correlation_id(get_correlation_id(event))

    if str(event.get("httpMethod") or "").upper() == "OPTIONS":
        return preflight_response()

    request = build_request(event)
    matched = router.match(request.method, request.segments)
    if matched is None:
        logger.info("Route not matched", method=request.method, segments=request.segments)
        return not_found_response()

    operation, request.params = matched
    logger.info("Handling request", operation=operation.__name__, method=request.method, params=request.params)

    try:
        return operation(request)
    except AppError as e:
        logger.warning("Request rejected", operation=operation.__name__, error_code=e.error_code, error=e.message)
        status_code, body = handle_error(e)
        return json_response(status_code, body)
    except Exception as e:
        logger.error("Unhandled error", operation=operation.__name__, error=str(e), error_type=type(e).__name__)
        status_code, body = handle_error(e)
        return json_response(status_code, body)
