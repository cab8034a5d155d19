"""Flask REST API exposing the finance tracker ledger."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from ledger_core.exceptions import (
    InsufficientBalanceError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from ledger_core.services import DEFAULT_STORAGE_KEY, LedgerService, Storage
from ledger_core.storage import JSONStorage


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def create_app(data_dir: Optional[Path] = None, storage: Optional[Storage] = None) -> Flask:
    app = Flask(__name__)

    env_name = os.getenv("FINANCE_TRACKER_ENV", "prod").lower()
    if env_name in {"dev", "development"}:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    else:
        allowed_origins = os.getenv("FINANCE_TRACKER_ALLOWED_ORIGINS")
        if allowed_origins:
            origins = [origin.strip() for origin in allowed_origins.split(",") if origin.strip()]
            CORS(app, resources={r"/*": {"origins": origins}}, supports_credentials=True)
        else:
            CORS(app)

    if storage is None:
        storage = JSONStorage(Path(data_dir or os.getenv("FINANCE_TRACKER_DATA_DIR", "data")))
    key = os.getenv("FINANCE_TRACKER_STORAGE_KEY", DEFAULT_STORAGE_KEY)
    ledger = LedgerService(storage, key)
    try:
        ledger.load()
    except PersistenceError as exc:
        app.logger.error("Starting with an empty ledger: %s", exc)
    app.extensions["ledger"] = ledger

    def _success(payload: Any, status: int = 200):
        if status == 204:
            return ("", status)
        return jsonify(payload), status

    def _handle_error(exc: Exception, status: int, message: str):
        app.logger.error("%s: %s", message, exc)
        return jsonify({"error": message, "details": str(exc)}), status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return _handle_error(exc, 400, "Validation error")

    @app.errorhandler(InsufficientBalanceError)
    def handle_insufficient_balance(exc: InsufficientBalanceError):
        return _handle_error(exc, 409, "Insufficient balance")

    @app.errorhandler(RecordNotFoundError)
    def handle_not_found(exc: RecordNotFoundError):
        return _handle_error(exc, 404, "Record not found")

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _handle_error(exc, 500, "Persistence error")

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Malformed JSON body")
        return data

    @app.get("/transactions")
    def list_transactions():
        return _success({
            "items": [transaction.to_dict() for transaction in ledger.transactions],
            "balance": _money(ledger.balance),
        })

    @app.post("/transactions")
    def create_transaction():
        payload = _json_body()
        transaction = ledger.add_transaction(
            payload.get("amount"),
            payload.get("category"),
            payload.get("isIncome"),
            date=payload.get("date"),
        )
        return _success(transaction.to_dict(), 201)

    @app.get("/transactions/<transaction_id>")
    def get_transaction(transaction_id: str):
        transaction = ledger.get_transaction(transaction_id)
        return _success(transaction.to_dict())

    @app.delete("/transactions/<transaction_id>")
    def delete_transaction(transaction_id: str):
        ledger.delete_transaction(transaction_id)
        return _success({}, 204)

    @app.delete("/transactions")
    def clear_transactions():
        ledger.clear_all()
        return _success({}, 204)

    @app.get("/summary")
    def summary():
        totals = ledger.totals()
        return _success({
            "balance": _money(totals["balance"]),
            "income": _money(totals["income"]),
            "expense": _money(totals["expense"]),
            "unsaved": ledger.has_unsaved_changes,
        })

    @app.get("/trend")
    def trend():
        days = request.args.get("days") or 7
        aggregates = ledger.daily_aggregates(days)
        return _success(aggregates.to_dict())

    return app
