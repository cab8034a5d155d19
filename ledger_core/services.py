"""Framework-agnostic ledger service for the finance tracker."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

from .aggregates import DEFAULT_WINDOW_DAYS, DailyAggregates, compute_balance, compute_daily_aggregates
from .exceptions import (
    DateParseError,
    InsufficientBalanceError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from .models import Transaction, deserialize_records, parse_datetime, serialize_transactions, utc_now
from .validators import (
    parse_amount,
    parse_stored_amount,
    validate_category,
    validate_flag,
    validate_optional_datetime,
    validate_stored_category,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "transactions"


class Storage(Protocol):
    def load(self, key: str) -> Optional[str]: ...

    def save(self, key: str, payload: str) -> None: ...


@dataclass(frozen=True)
class LedgerState:
    """Snapshot handed to subscribers after every change."""

    balance: Decimal
    transactions: Tuple[Transaction, ...]
    aggregates: DailyAggregates


Listener = Callable[[LedgerState], None]


class LedgerService:
    """Owns the transaction sequence, enforces balance rules and mediates persistence."""

    def __init__(self, storage: Storage, key: str = DEFAULT_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key
        self._transactions: List[Transaction] = []
        self._balance = Decimal("0.00")
        self._listeners: List[Listener] = []
        self._last_id = 0
        # Serialises mutations when shared across request threads.
        self._lock = threading.RLock()
        self._unsaved = False

    # Public API -----------------------------------------------------------
    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def has_unsaved_changes(self) -> bool:
        return self._unsaved

    def load(self) -> None:
        """Hydrate the ledger from persistence; storage I/O failures propagate.

        A failed read leaves the current in-memory ledger untouched.
        """
        try:
            raw = self._storage.load(self._key)
        except PersistenceError:
            raise
        except Exception as exc:  # pragma: no cover - defensive guard
            raise PersistenceError("Unexpected error while loading transactions") from exc
        self.initialize(raw)

    def initialize(self, raw: Optional[str]) -> None:
        """Replace the ledger contents with a persisted payload, failing soft."""
        loaded: List[Transaction] = []
        if raw:
            try:
                records = deserialize_records(raw)
            except ValueError as exc:
                logger.warning("Ignoring malformed transaction payload: %s", exc)
                records = []
            seen = set()
            for record in records:
                transaction = self._hydrate(record)
                if transaction is None:
                    continue
                if transaction.id in seen:
                    logger.warning("Skipping duplicate transaction id %s", transaction.id)
                    continue
                seen.add(transaction.id)
                loaded.append(transaction)
        with self._lock:
            self._transactions = loaded
            self._unsaved = False
            self._changed()

    def add_transaction(
        self,
        amount: object,
        category: object,
        is_income: object,
        *,
        date: object = None,
    ) -> Transaction:
        """Validate and append a new transaction, then persist the full ledger."""
        value = parse_amount(amount)
        label = validate_category(category)
        income = validate_flag(is_income, "is_income")
        occurred = validate_optional_datetime(date, "date") or utc_now()
        with self._lock:
            if not income and self._balance - value < 0:
                raise InsufficientBalanceError(self._balance, value)

            transaction = Transaction(
                id=self._next_id(),
                amount=value,
                category=label,
                is_income=income,
                date=occurred,
            )
            self._transactions.append(transaction)
            self._commit()
        return transaction

    def delete_transaction(self, transaction_id: str) -> bool:
        """Remove a transaction by id; unknown ids leave the ledger untouched."""
        with self._lock:
            remaining = [t for t in self._transactions if t.id != transaction_id]
            removed = len(remaining) != len(self._transactions)
            self._transactions = remaining
            self._commit()
        return removed

    def clear_all(self) -> None:
        with self._lock:
            self._transactions = []
            self._commit()

    def get_transaction(self, transaction_id: str) -> Transaction:
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        raise RecordNotFoundError(f"Transaction {transaction_id} not found")

    def compute_balance(self) -> Decimal:
        return compute_balance(self._transactions)

    def totals(self) -> Dict[str, Decimal]:
        income = sum(
            (t.amount for t in self._transactions if t.is_income), start=Decimal("0.00")
        )
        expense = sum(
            (t.amount for t in self._transactions if not t.is_income), start=Decimal("0.00")
        )
        return {"income": income, "expense": expense, "balance": income - expense}

    def daily_aggregates(
        self,
        window_days: int = DEFAULT_WINDOW_DAYS,
        reference_date: Optional[Union[date, datetime]] = None,
        tz: Optional[tzinfo] = None,
    ) -> DailyAggregates:
        return compute_daily_aggregates(self._transactions, window_days, reference_date, tz)

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def flush(self) -> None:
        """Write the current in-memory state, e.g. after a previous save failed."""
        with self._lock:
            self._persist()

    def snapshot(self) -> LedgerState:
        return LedgerState(
            balance=self._balance,
            transactions=self.transactions,
            aggregates=self.daily_aggregates(),
        )

    # Internal helpers -----------------------------------------------------
    def _commit(self) -> None:
        # In-memory state is kept even when the save fails; no rollback.
        try:
            self._persist()
        finally:
            self._changed()

    def _persist(self) -> None:
        self._unsaved = True
        try:
            self._storage.save(self._key, serialize_transactions(self._transactions))
        except PersistenceError:
            logger.exception("Failed to save %d transactions", len(self._transactions))
            raise
        except Exception as exc:  # pragma: no cover - defensive guard
            logger.exception("Failed to save %d transactions", len(self._transactions))
            raise PersistenceError("Unexpected error while saving transactions") from exc
        self._unsaved = False

    def _changed(self) -> None:
        self._balance = self.compute_balance()
        if not self._listeners:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Ledger listener %r failed", listener)

    def _next_id(self) -> str:
        # Epoch milliseconds, bumped past any id already issued or loaded.
        candidate = max(int(time.time() * 1000), self._last_id + 1)
        taken = {t.id for t in self._transactions}
        while str(candidate) in taken:
            candidate += 1
        self._last_id = candidate
        return str(candidate)

    def _hydrate(self, record: Dict[str, Any]) -> Optional[Transaction]:
        try:
            occurred = parse_datetime(record.get("date"))
        except DateParseError:
            logger.warning(
                "Transaction %s has invalid date %r; using current time",
                record.get("id"),
                record.get("date"),
            )
            occurred = utc_now()
        # Stored values are checked but never normalised.
        try:
            transaction_id = record["id"]
            if not isinstance(transaction_id, str) or not transaction_id:
                raise ValidationError("id must be a non-empty string")
            parse_stored_amount(record.get("amount"))
            validate_stored_category(record.get("category"))
            validate_flag(record.get("isIncome"), "isIncome")
            return Transaction.from_dict({**record, "date": occurred})
        except (KeyError, ValidationError) as exc:
            logger.warning("Skipping malformed transaction record %r: %s", record, exc)
            return None
