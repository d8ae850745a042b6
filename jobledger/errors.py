"""
Error types raised by the record stores and the transaction manager.

Each error carries an ``http_code`` hint so an API layer can map it to a
response without inspecting messages. Storage-engine errors (SQLAlchemy) are
never wrapped: they propagate to the caller as-is.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class JobLedgerError(Exception):
    """Base class for jobledger errors."""

    http_code = 500


class InvalidArgument(JobLedgerError):
    """A required input (id, record, id list) is empty or missing."""

    http_code = 400


class UnprocessableEntity(JobLedgerError):
    """A record failed validation."""

    http_code = 422

    def __init__(self, message: str, errors: Optional[Iterable[str]] = None):
        self.errors: List[str] = list(errors) if errors else [message]
        super().__init__(message)


class ConsistencyError(JobLedgerError):
    """A write affected a different number of rows than expected."""

    http_code = 409

    def __init__(self, message: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class NoActiveTransaction(JobLedgerError):
    """Commit or rollback was called with a handle that is not open."""

    def __init__(self, handle: int):
        self.handle = handle
        super().__init__(f"No active transaction for handle: {handle}")
