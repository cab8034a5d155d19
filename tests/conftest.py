import pytest

from ledger_core.exceptions import PersistenceError
from ledger_core.services import LedgerService
from ledger_core.storage import MemoryStorage


class FailingStorage(MemoryStorage):
    """Memory storage whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail_saves = False
        self.fail_loads = False

    def load(self, key):
        if self.fail_loads:
            raise PersistenceError("disk unavailable")
        return super().load(key)

    def save(self, key, payload):
        if self.fail_saves:
            raise PersistenceError("disk full")
        super().save(key, payload)


@pytest.fixture
def storage():
    return FailingStorage()


@pytest.fixture
def ledger(storage):
    service = LedgerService(storage)
    service.load()
    return service
