import json
import random
import threading
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from ledger_core.exceptions import (
    InsufficientBalanceError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from ledger_core.services import LedgerService
from ledger_core.storage import MemoryStorage


def _stored_records(storage):
    return json.loads(storage.load("transactions"))


def test_balance_scenario(ledger):
    assert ledger.balance == Decimal("0")

    ledger.add_transaction(100, "Salary", True)
    assert ledger.balance == Decimal("100.00")

    food = ledger.add_transaction(30, "Food", False)
    assert ledger.balance == Decimal("70.00")

    with pytest.raises(InsufficientBalanceError):
        ledger.add_transaction(1000, "Rent", False)
    assert ledger.balance == Decimal("70.00")
    assert len(ledger.transactions) == 2

    ledger.delete_transaction(food.id)
    assert ledger.balance == Decimal("100.00")


def test_add_persists_full_sequence(ledger, storage):
    ledger.add_transaction("100", "Salary", True)
    ledger.add_transaction("12.5", "Coffee", False)

    records = _stored_records(storage)
    assert [record["category"] for record in records] == ["Salary", "Coffee"]
    assert records[1]["amount"] == 12.5
    assert records[1]["isIncome"] is False


def test_expense_equal_to_balance_is_allowed(ledger):
    ledger.add_transaction(50, "Gift", True)
    ledger.add_transaction(50, "Dinner", False)
    assert ledger.balance == Decimal("0.00")


def test_rejected_expense_leaves_state_untouched(ledger, storage):
    ledger.add_transaction(10, "Salary", True)
    before = ledger.transactions

    with pytest.raises(InsufficientBalanceError) as excinfo:
        ledger.add_transaction("10.01", "Rent", False)

    assert excinfo.value.balance == Decimal("10.00")
    assert excinfo.value.amount == Decimal("10.01")
    assert ledger.transactions == before
    assert len(_stored_records(storage)) == 1


@pytest.mark.parametrize("amount", [0, -5, "abc", None, "", "NaN", "0.001"])
def test_invalid_amount_is_rejected(ledger, storage, amount):
    with pytest.raises(ValidationError):
        ledger.add_transaction(amount, "Food", True)
    assert ledger.transactions == ()
    assert storage.load("transactions") is None


@pytest.mark.parametrize("category", ["", "   ", None, 42])
def test_invalid_category_is_rejected(ledger, storage, category):
    with pytest.raises(ValidationError):
        ledger.add_transaction(10, category, True)
    assert ledger.transactions == ()
    assert storage.load("transactions") is None


def test_add_with_explicit_date(ledger):
    transaction = ledger.add_transaction(10, "Salary", True, date="2024-01-02T03:04:05Z")
    assert transaction.date == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_add_with_invalid_date_is_rejected(ledger):
    with pytest.raises(ValidationError):
        ledger.add_transaction(10, "Salary", True, date="yesterday")
    assert ledger.transactions == ()


def test_delete_unknown_id_is_noop(ledger):
    ledger.add_transaction(10, "Salary", True)
    before = ledger.transactions

    assert ledger.delete_transaction("does-not-exist") is False
    assert ledger.transactions == before
    assert ledger.balance == Decimal("10.00")


def test_clear_all_resets_balance(ledger, storage):
    ledger.add_transaction(10, "Salary", True)
    ledger.add_transaction(4, "Snacks", False)

    ledger.clear_all()

    assert ledger.transactions == ()
    assert ledger.balance == Decimal("0")
    assert _stored_records(storage) == []


def test_get_transaction(ledger):
    created = ledger.add_transaction(10, "Salary", True)
    assert ledger.get_transaction(created.id) == created
    with pytest.raises(RecordNotFoundError):
        ledger.get_transaction("missing")


def test_totals(ledger):
    ledger.add_transaction(100, "Salary", True)
    ledger.add_transaction(25, "Food", False)
    totals = ledger.totals()
    assert totals == {
        "income": Decimal("100.00"),
        "expense": Decimal("25.00"),
        "balance": Decimal("75.00"),
    }


def test_balance_matches_fold_for_random_operations(ledger):
    rng = random.Random(42)
    for _ in range(200):
        choice = rng.random()
        if choice < 0.3 and ledger.transactions:
            ledger.delete_transaction(rng.choice(ledger.transactions).id)
            continue
        amount = Decimal(rng.randint(1, 5000)) / 100
        is_income = choice < 0.65
        try:
            ledger.add_transaction(amount, "Misc", is_income)
        except InsufficientBalanceError:
            assert amount > ledger.balance

        income = sum(t.amount for t in ledger.transactions if t.is_income)
        expense = sum(t.amount for t in ledger.transactions if not t.is_income)
        assert ledger.balance == income - expense
        assert ledger.balance == ledger.compute_balance()


def test_round_trip_through_storage(ledger, storage):
    ledger.add_transaction(100, "Salary", True)
    ledger.add_transaction("19.99", "Books", False)

    reloaded = LedgerService(storage)
    reloaded.load()

    assert reloaded.transactions == ledger.transactions
    assert reloaded.balance == Decimal("80.01")


def test_invalid_date_on_load_is_replaced_with_now():
    payload = json.dumps([
        {"id": "1", "amount": 40, "category": "Salary", "isIncome": True, "date": "not a date"},
        {"id": "2", "amount": 5, "category": "Tea", "isIncome": False, "date": "2024-03-01T10:00:00.000Z"},
    ])
    ledger = LedgerService(MemoryStorage({"transactions": payload}))
    before = datetime.now(timezone.utc) - timedelta(seconds=1)

    ledger.load()

    first, second = ledger.transactions
    assert before <= first.date <= datetime.now(timezone.utc)
    assert (first.id, first.amount, first.category, first.is_income) == (
        "1", Decimal("40.00"), "Salary", True,
    )
    assert second.date == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert ledger.balance == Decimal("35.00")


@pytest.mark.parametrize("payload", ["not json", '{"id": "1"}', "[1, 2, 3]", ""])
def test_malformed_payload_initializes_empty(payload):
    ledger = LedgerService(MemoryStorage({"transactions": payload}))
    ledger.load()
    assert ledger.transactions == ()
    assert ledger.balance == Decimal("0")


def test_malformed_records_are_skipped():
    payload = json.dumps([
        {"id": "1", "amount": 40, "category": "Salary", "isIncome": True, "date": "2024-03-01T10:00:00Z"},
        {"id": "2", "amount": -3, "category": "Broken", "isIncome": False, "date": "2024-03-01T10:00:00Z"},
        {"id": "3", "category": "No amount", "isIncome": True, "date": "2024-03-01T10:00:00Z"},
        {"id": "1", "amount": 1, "category": "Duplicate", "isIncome": True, "date": "2024-03-01T10:00:00Z"},
    ])
    ledger = LedgerService(MemoryStorage({"transactions": payload}))
    ledger.load()
    assert [t.id for t in ledger.transactions] == ["1"]


def test_initialize_with_absent_payload():
    ledger = LedgerService(MemoryStorage())
    ledger.initialize(None)
    assert ledger.transactions == ()
    assert ledger.has_unsaved_changes is False


def test_load_failure_is_surfaced(storage):
    storage.fail_loads = True
    ledger = LedgerService(storage)
    with pytest.raises(PersistenceError):
        ledger.load()
    assert ledger.transactions == ()


def test_failed_save_keeps_in_memory_state(ledger, storage):
    ledger.add_transaction(100, "Salary", True)
    storage.fail_saves = True

    with pytest.raises(PersistenceError):
        ledger.add_transaction(50, "Bonus", True)

    assert len(ledger.transactions) == 2
    assert ledger.balance == Decimal("150.00")
    assert ledger.has_unsaved_changes is True
    assert len(_stored_records(storage)) == 1

    storage.fail_saves = False
    ledger.flush()

    assert ledger.has_unsaved_changes is False
    assert len(_stored_records(storage)) == 2


def test_ids_are_unique_within_the_same_millisecond(ledger, monkeypatch):
    monkeypatch.setattr("ledger_core.services.time.time", lambda: 1000.0)
    first = ledger.add_transaction(1, "A", True)
    second = ledger.add_transaction(1, "B", True)
    assert first.id == "1000000"
    assert second.id == "1000001"


def test_ids_skip_values_already_loaded(monkeypatch):
    payload = json.dumps([
        {"id": "1000000", "amount": 1, "category": "A", "isIncome": True, "date": "2024-03-01T10:00:00Z"},
    ])
    ledger = LedgerService(MemoryStorage({"transactions": payload}))
    ledger.load()
    monkeypatch.setattr("ledger_core.services.time.time", lambda: 1000.0)

    created = ledger.add_transaction(1, "B", True)

    assert created.id == "1000001"


def test_subscribers_receive_state(ledger):
    states = []
    ledger.subscribe(states.append)

    ledger.add_transaction(20, "Salary", True)
    ledger.add_transaction(5, "Lunch", False)

    assert [state.balance for state in states] == [Decimal("20.00"), Decimal("15.00")]
    assert len(states[-1].transactions) == 2
    assert states[-1].aggregates.income[-1] == Decimal("20.00")

    ledger.unsubscribe(states.append)
    ledger.clear_all()
    assert len(states) == 2


def test_failing_subscriber_does_not_break_ledger(ledger):
    def broken(state):
        raise RuntimeError("render failed")

    seen = []
    ledger.subscribe(broken)
    ledger.subscribe(seen.append)

    ledger.add_transaction(20, "Salary", True)

    assert ledger.balance == Decimal("20.00")
    assert len(seen) == 1


def test_subscribers_notified_even_when_save_fails(ledger, storage):
    seen = []
    ledger.subscribe(seen.append)
    storage.fail_saves = True

    with pytest.raises(PersistenceError):
        ledger.add_transaction(20, "Salary", True)

    assert seen[-1].balance == Decimal("20.00")


def test_stored_values_load_unaltered(storage):
    records = [
        {"id": "1", "amount": 10.555, "category": " Salary ", "isIncome": True,
         "date": "2024-03-01T10:00:00.000Z"},
        {"id": "2", "amount": 0.004, "category": "Tip", "isIncome": True,
         "date": "2024-03-01T11:00:00.000Z"},
    ]
    storage.save("transactions", json.dumps(records))
    ledger = LedgerService(storage)

    ledger.load()

    assert [(t.id, t.amount, t.category) for t in ledger.transactions] == [
        ("1", Decimal("10.555"), " Salary "),
        ("2", Decimal("0.004"), "Tip"),
    ]
    assert ledger.balance == Decimal("10.559")

    ledger.flush()
    assert _stored_records(storage) == records


def test_invalid_date_on_load_leaves_other_fields_untouched():
    payload = json.dumps([
        {"id": "7", "amount": 3.333, "category": "  Misc", "isIncome": False, "date": 12},
    ])
    ledger = LedgerService(MemoryStorage({"transactions": payload}))

    ledger.load()

    (transaction,) = ledger.transactions
    assert (transaction.id, transaction.amount, transaction.category, transaction.is_income) == (
        "7", Decimal("3.333"), "  Misc", False,
    )


def test_failed_reload_keeps_existing_transactions(ledger, storage):
    ledger.add_transaction(100, "Salary", True)
    before = ledger.transactions
    storage.fail_loads = True

    with pytest.raises(PersistenceError):
        ledger.load()

    assert ledger.transactions == before
    assert ledger.balance == Decimal("100.00")

    storage.fail_loads = False
    ledger.add_transaction(5, "Bonus", True)
    assert [record["category"] for record in _stored_records(storage)] == ["Salary", "Bonus"]


class SlowStorage(MemoryStorage):
    def save(self, key, payload):
        time.sleep(0.02)
        super().save(key, payload)


def test_concurrent_expenses_cannot_overdraw():
    ledger = LedgerService(SlowStorage())
    ledger.add_transaction(100, "Salary", True)
    barrier = threading.Barrier(6)
    outcomes = []

    def spend():
        barrier.wait()
        try:
            ledger.add_transaction(60, "Rent", False)
            outcomes.append("ok")
        except InsufficientBalanceError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=spend) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert ledger.balance == Decimal("40.00")
