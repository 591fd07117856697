"""
Input validation utilities.

Validates request bodies, dates, enumerations and point amounts.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Sequence

from .errors import AppError, ErrorCode


def require_fields(body: Dict[str, Any], fields: Sequence[str]) -> None:
    """
    Ensure all required fields are present and non-empty.

    Args:
        body: Parsed request body
        fields: Required field names, in the order they should be reported

    Raises:
        AppError: If any field is missing
    """
    missing_fields = [field for field in fields if body.get(field) in (None, "", [])]

    if missing_fields:
        label = "field" if len(fields) == 1 else "fields"
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"Missing required {label}: {', '.join(fields)}",
            {"missingFields": missing_fields},
        )


def parse_datetime(value: Any, field: str) -> datetime:
    """
    Parse an ISO-8601 date or datetime into an aware UTC datetime.

    Date-only values mean midnight UTC; naive datetimes are taken as UTC.

    Args:
        value: Date string from the request or the stored document
        field: Field name for error reporting

    Returns:
        Timezone-aware datetime

    Raises:
        AppError: If the value cannot be parsed
    """
    if not isinstance(value, str) or not value.strip():
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be an ISO-8601 date", {field: value})

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be an ISO-8601 date", {field: value})

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_choice(value: Any, choices: Iterable[str], field: str) -> str:
    """
    Validate that a value is one of an allowed set.

    Raises:
        AppError: If value is not allowed
    """
    allowed: List[str] = list(choices)
    if value not in allowed:
        raise AppError(
            ErrorCode.INVALID_INPUT,
            f"{field} must be one of: {', '.join(allowed)}",
            {field: value},
        )
    return str(value)


def validate_points(value: Any, field: str = "points") -> int:
    """
    Validate a non-negative integer point amount.

    Accepts ints, integral Decimals/floats and numeric strings.

    Raises:
        AppError: If value is not a non-negative whole number
    """
    if isinstance(value, bool):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a non-negative integer", {field: value})

    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a non-negative integer", {field: value})

    if not number.is_finite() or number != number.to_integral_value() or number < 0:
        raise AppError(ErrorCode.INVALID_INPUT, f"{field} must be a non-negative integer", {field: value})
    return int(number)


def pick_fields(body: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """Return the subset of body whose keys are allowed and values are not None."""
    return {field: body[field] for field in allowed if field in body and body[field] is not None}
