"""Console interface for the finance tracker."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, List, Optional

from ledger_core.aggregates import DailyAggregates
from ledger_core.exceptions import (
    InsufficientBalanceError,
    PersistenceError,
    ValidationError,
)
from ledger_core.models import Transaction, isoformat_utc
from ledger_core.services import DEFAULT_STORAGE_KEY, LedgerService
from ledger_core.storage import JSONStorage

DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"
BAR_WIDTH = 30


def _parse_datetime(value: str) -> datetime:
    """Read a naive YYYY-MM-DDTHH:MM:SS value as local time."""
    try:
        parsed = datetime.strptime(value, DATETIME_FORMAT)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Invalid datetime '{value}'. Expected format YYYY-MM-DDTHH:MM:SS."
        ) from exc
    return parsed.astimezone()


def _parse_amount(value: str) -> str:
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError("Amount must be a numeric value") from exc
    if not amount.is_finite() or amount <= 0:
        raise argparse.ArgumentTypeError("Amount must be greater than zero")
    return value


def _load_ledger(data_dir: Path) -> LedgerService:
    storage = JSONStorage(data_dir)
    ledger = LedgerService(storage, os.getenv("FINANCE_TRACKER_STORAGE_KEY", DEFAULT_STORAGE_KEY))
    ledger.load()
    return ledger


def _format_transaction(transaction: Transaction) -> str:
    kind = "income " if transaction.is_income else "expense"
    return (
        f"[{transaction.id}] {isoformat_utc(transaction.date)} {kind} "
        f"{transaction.signed_amount:+.2f}  {transaction.category}"
    )


def _format_trend(aggregates: DailyAggregates) -> List[str]:
    peak = max(list(aggregates.income) + list(aggregates.expense) + [Decimal("0.01")])
    lines = []
    for label, income, expense in zip(aggregates.labels, aggregates.income, aggregates.expense):
        income_bar = "+" * int(income / peak * BAR_WIDTH)
        expense_bar = "-" * int(expense / peak * BAR_WIDTH)
        lines.append(f"{label:>5}  in {income:>10.2f} {income_bar}")
        lines.append(f"{'':>5} out {expense:>10.2f} {expense_bar}")
    return lines


def _confirm(prompt: str, assume_yes: bool, ask: Optional[Callable[[str], str]] = None) -> bool:
    if assume_yes:
        return True
    try:
        answer = (ask or input)(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def handle_add(args: argparse.Namespace, ledger: LedgerService) -> None:
    transaction = ledger.add_transaction(
        args.amount, args.category, not args.expense, date=args.date
    )
    print("Transaction added:\n" + _format_transaction(transaction))
    print(f"Current balance: {ledger.balance:.2f}")


def handle_list(args: argparse.Namespace, ledger: LedgerService) -> None:
    transactions = ledger.transactions
    if not transactions:
        print("No transactions found.")
        return
    print(f"Found {len(transactions)} transactions (balance {ledger.balance:.2f}):")
    for transaction in transactions:
        print(_format_transaction(transaction))


def handle_delete(args: argparse.Namespace, ledger: LedgerService) -> None:
    if not _confirm("Are you sure you want to delete this transaction?", args.yes):
        print("Cancelled.")
        return
    if ledger.delete_transaction(args.id):
        print(f"Transaction {args.id} deleted.")
    else:
        print(f"Transaction {args.id} not found; nothing deleted.")
    print(f"Current balance: {ledger.balance:.2f}")


def handle_clear(args: argparse.Namespace, ledger: LedgerService) -> None:
    if not _confirm("Are you sure you want to delete ALL transactions?", args.yes):
        print("Cancelled.")
        return
    ledger.clear_all()
    print("All transactions deleted.")


def handle_balance(args: argparse.Namespace, ledger: LedgerService) -> None:
    totals = ledger.totals()
    print(f"Income:  {totals['income']:.2f}")
    print(f"Expense: {totals['expense']:.2f}")
    print(f"Current balance: {totals['balance']:.2f}")


def handle_trend(args: argparse.Namespace, ledger: LedgerService) -> None:
    aggregates = ledger.daily_aggregates(args.days)
    print(f"Last {args.days} days:")
    for line in _format_trend(aggregates):
        print(line)


HANDLERS = {
    "add": handle_add,
    "list": handle_list,
    "delete": handle_delete,
    "clear": handle_clear,
    "balance": handle_balance,
    "trend": handle_trend,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Finance Tracker CLI")
    parser.add_argument(
        "--data-dir",
        default=os.getenv("FINANCE_TRACKER_DATA_DIR", "data"),
        type=Path,
        help="Directory to store JSON data (default: $FINANCE_TRACKER_DATA_DIR or ./data)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    add_parser = subparsers.add_parser("add", help="Record income or an expense")
    add_parser.add_argument("amount", type=_parse_amount)
    add_parser.add_argument("category")
    add_parser.add_argument("--expense", action="store_true", help="Record an expense instead of income")
    add_parser.add_argument(
        "--date", type=_parse_datetime, help="Local date and time, YYYY-MM-DDTHH:MM:SS"
    )

    subparsers.add_parser("list", help="List transactions in entry order")

    delete_parser = subparsers.add_parser("delete", help="Delete a transaction")
    delete_parser.add_argument("id")
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    clear_parser = subparsers.add_parser("clear", help="Delete all transactions")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    subparsers.add_parser("balance", help="Show income, expense and balance")

    trend_parser = subparsers.add_parser("trend", help="Show daily income/expense trend")
    trend_parser.add_argument("--days", type=int, default=7)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        ledger = _load_ledger(args.data_dir)
        HANDLERS[args.command](args, ledger)
    except InsufficientBalanceError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except PersistenceError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
