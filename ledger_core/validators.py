"""Validation helpers shared across the ledger core and its interfaces."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .exceptions import ValidationError
from .models import parse_datetime

CATEGORY_MAX_LENGTH = 50
MAX_WINDOW_DAYS = 366


def _quantize_two_decimals(amount: Decimal) -> Decimal:
    """Round the amount to two decimal places using HALF_UP rounding."""
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def parse_amount(raw: object, field: str = "amount") -> Decimal:
    """Convert raw input to a positive Decimal with exactly two fraction digits."""
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a numeric value")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, TypeError) as exc:  # type: ignore[arg-type]
        raise ValidationError(f"{field} must be a numeric value") from exc

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    amount = _quantize_two_decimals(amount)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return amount


def parse_stored_amount(raw: object, field: str = "amount") -> Decimal:
    """Accept a persisted amount exactly as stored: finite and above zero, no rounding."""
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a numeric value")
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, TypeError) as exc:  # type: ignore[arg-type]
        raise ValidationError(f"{field} must be a numeric value") from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"{field} must be a positive finite number")
    return amount


def validate_required_str(value: object, field: str, max_length: int) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} cannot be empty")
    if len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_category(value: object) -> str:
    return validate_required_str(value, "category", CATEGORY_MAX_LENGTH)


def validate_stored_category(value: object) -> str:
    """Check a persisted category is a non-blank string and return it unchanged."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("category cannot be empty")
    return value


def validate_flag(value: object, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def validate_optional_datetime(value: object, field: str) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return parse_datetime(value)
    except ValidationError as exc:
        raise ValidationError(f"{field} must be a datetime or ISO 8601 string") from exc


def validate_window_days(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("window_days must be an integer")
    try:
        days = int(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError("window_days must be an integer") from exc
    if days < 1 or days > MAX_WINDOW_DAYS:
        raise ValidationError(f"window_days must be between 1 and {MAX_WINDOW_DAYS}")
    return days
