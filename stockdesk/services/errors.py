"""
Errors raised by the stock services.

Every error is a StockError carrying a stable ``code`` for programmatic
handling, a human-readable ``message`` and a ``data`` dict with context.
The API layer maps them to HTTP responses (see ``stockdesk.app.main``).
"""

from __future__ import annotations

from typing import Any


class StockError(Exception):
    code = "STOCK_ERROR"
    default_message = "Stock operation failed"

    def __init__(self, message: str | None = None, **data: Any) -> None:
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": {k: str(v) if not isinstance(v, (int, bool, type(None))) else v for k, v in self.data.items()},
        }


class NotFound(StockError):
    """Target product or variant does not exist."""

    code = "NOT_FOUND"
    default_message = "Target not found"


class InvalidInput(StockError):
    """Rejected before any write."""

    code = "INVALID_INPUT"
    default_message = "Invalid input"


class InsufficientStock(InvalidInput):
    """OUT larger than the stored quantity under the REJECT overdraw policy."""

    code = "INSUFFICIENT_STOCK"
    default_message = "Insufficient stock"


class DuplicateSku(InvalidInput):
    """SKU already used by another product or variant."""

    code = "DUPLICATE_SKU"
    default_message = "SKU already exists"


class TransactionFailure(StockError):
    """The store failed mid-operation; nothing was committed. Safe to retry."""

    code = "TRANSACTION_FAILURE"
    default_message = "Stock write failed, nothing was committed"
