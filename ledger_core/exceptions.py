"""Domain-specific exceptions for the finance tracker ledger core."""

from decimal import Decimal


class ValidationError(ValueError):
    """Raised when provided data does not meet validation requirements."""


class InsufficientBalanceError(ValidationError):
    """Raised when an expense would drive the ledger balance below zero."""

    def __init__(self, balance: Decimal, amount: Decimal) -> None:
        super().__init__(
            f"Insufficient balance: expense of {amount:.2f} exceeds balance of {balance:.2f}"
        )
        self.balance = balance
        self.amount = amount


class DateParseError(ValidationError):
    """Raised when a stored or supplied date cannot be parsed."""


class RecordNotFoundError(LookupError):
    """Raised when a transaction cannot be located."""


class PersistenceError(IOError):
    """Raised when the persistence layer encounters unrecoverable issues."""
