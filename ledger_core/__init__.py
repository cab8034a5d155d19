"""Core ledger logic package for the finance tracker."""

from .aggregates import DailyAggregates, compute_balance, compute_daily_aggregates
from .models import Transaction
from .services import LedgerService, LedgerState
from .storage import JSONStorage, MemoryStorage
from .exceptions import (
    DateParseError,
    InsufficientBalanceError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)

__all__ = [
    "DailyAggregates",
    "Transaction",
    "LedgerService",
    "LedgerState",
    "JSONStorage",
    "MemoryStorage",
    "compute_balance",
    "compute_daily_aggregates",
    "DateParseError",
    "InsufficientBalanceError",
    "PersistenceError",
    "RecordNotFoundError",
    "ValidationError",
]
