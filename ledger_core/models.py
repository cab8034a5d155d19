"""Data models for the finance tracker ledger."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from .exceptions import DateParseError

__all__ = [
    "Transaction",
    "isoformat_utc",
    "parse_datetime",
    "utc_now",
    "serialize_transactions",
    "deserialize_records",
]


def utc_now() -> datetime:
    """Return the current UTC time truncated to millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def isoformat_utc(dt: datetime) -> str:
    """Return an ISO 8601 string with milliseconds and trailing Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    iso = dt.isoformat(timespec="milliseconds")
    # datetime.isoformat renders +00:00 for UTC; replace with the shorter Z form.
    return iso.replace("+00:00", "Z")


def parse_datetime(value: object) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise DateParseError(f"Invalid ISO 8601 date: {value!r}") from exc
    else:
        raise DateParseError(f"Expected an ISO 8601 string, got {type(value).__name__}")
    if dt.tzinfo is None:
        # Treat naive datetimes as UTC to avoid accidental timezone drift.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: Decimal
    category: str
    is_income: bool
    date: datetime

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.is_income else -self.amount

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the transaction to its JSON storage record."""
        return {
            "id": self.id,
            "amount": float(self.amount),
            "category": self.category,
            "isIncome": self.is_income,
            "date": isoformat_utc(self.date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """Hydrate a Transaction from a JSON storage record without validation."""
        return cls(
            id=str(data["id"]),
            amount=Decimal(str(data["amount"])),
            category=data["category"],
            is_income=bool(data["isIncome"]),
            date=parse_datetime(data["date"]),
        )


def serialize_transactions(transactions: Iterable[Transaction]) -> str:
    """Render the full transaction sequence as the persisted JSON blob."""
    return json.dumps([transaction.to_dict() for transaction in transactions])


def deserialize_records(payload: str) -> List[Dict[str, Any]]:
    """Decode the persisted blob into raw records.

    Raises ``ValueError`` when the payload is not a JSON list of objects.
    """
    data = json.loads(payload)
    if not isinstance(data, list):
        raise ValueError("Expected a JSON list of transaction records")
    for record in data:
        if not isinstance(record, dict):
            raise ValueError("Expected every transaction record to be a JSON object")
    return data
