"""Pure aggregation helpers: running balance and per-day trend buckets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .exceptions import DateParseError
from .models import Transaction, parse_datetime
from .validators import validate_window_days

__all__ = ["DailyAggregates", "compute_balance", "compute_daily_aggregates", "day_label"]

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7

DateLike = Union[date, datetime]


@dataclass(frozen=True)
class DailyAggregates:
    """Parallel income/expense buckets ordered oldest to newest."""

    days: Tuple[date, ...]
    labels: Tuple[str, ...]
    income: Tuple[Decimal, ...]
    expense: Tuple[Decimal, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days": [day.isoformat() for day in self.days],
            "labels": list(self.labels),
            "income": [float(value) for value in self.income],
            "expense": [float(value) for value in self.expense],
        }


def compute_balance(transactions: Iterable[Transaction]) -> Decimal:
    """Fold the signed amounts: income adds, expense subtracts."""
    return sum((transaction.signed_amount for transaction in transactions), start=Decimal("0.00"))


def day_label(value: object) -> str:
    """Format a calendar day as ``day/month``; empty string when the value is not a date."""
    if isinstance(value, datetime):
        value = value.date()
    elif isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            return ""
    if not isinstance(value, date):
        return ""
    return f"{value.day}/{value.month}"


def _local_day(value: DateLike, tz: Optional[tzinfo]) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        # astimezone(None) converts to the system local zone.
        return value.astimezone(tz).date()
    return value


def compute_daily_aggregates(
    transactions: Iterable[Transaction],
    window_days: int = DEFAULT_WINDOW_DAYS,
    reference_date: Optional[DateLike] = None,
    tz: Optional[tzinfo] = None,
) -> DailyAggregates:
    """Sum income and expense amounts per calendar day over a trailing window.

    The window covers ``reference_date - (window_days - 1)`` through
    ``reference_date`` inclusive. Transaction timestamps are truncated to the
    calendar day in ``tz`` (the system local zone when omitted). Transactions
    whose date cannot be parsed are logged and skipped.
    """
    window_days = validate_window_days(window_days)
    if reference_date is None:
        reference_date = datetime.now(tz)
    end = _local_day(reference_date, tz)
    start = end - timedelta(days=window_days - 1)
    days = tuple(start + timedelta(days=offset) for offset in range(window_days))

    income: List[Decimal] = [Decimal("0.00")] * window_days
    expense: List[Decimal] = [Decimal("0.00")] * window_days

    for transaction in transactions:
        try:
            occurred = parse_datetime(transaction.date)
        except DateParseError:
            logger.warning(
                "Skipping transaction %s with invalid date %r", transaction.id, transaction.date
            )
            continue
        index = (_local_day(occurred, tz) - start).days
        if not 0 <= index < window_days:
            continue
        if transaction.is_income:
            income[index] += transaction.amount
        else:
            expense[index] += transaction.amount

    return DailyAggregates(
        days=days,
        labels=tuple(day_label(day) for day in days),
        income=tuple(income),
        expense=tuple(expense),
    )
