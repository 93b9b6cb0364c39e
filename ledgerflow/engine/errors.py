"""
Engine error taxonomy.

Malformed individual records are NOT errors - they are excluded where
they cannot be used. These exceptions cover bad input and structural
failures only.
"""

from typing import Optional

from ledgerflow.models.ledger import ValidationIssue, ValidationResult
from ledgerflow.models.record import RecordKind


class LedgerError(Exception):
    """Base exception for the ledger engine."""
    pass


class ValidationError(LedgerError):
    """Bad input to create/update. Raised before any write is issued."""

    def __init__(self, result: ValidationResult):
        self.result = result
        errors = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(errors) or "Invalid input")

    @property
    def issues(self) -> list[ValidationIssue]:
        return [i for i in self.result.issues if i.severity == "error"]


class SubscriptionError(LedgerError):
    """A live subscription stream failed. Last-known-good aggregates are kept."""

    def __init__(self, kind: RecordKind, owner_id: str, cause: Exception):
        self.kind = kind
        self.owner_id = owner_id
        self.cause = cause
        super().__init__(f"{kind.value} subscription failed for {owner_id}: {cause}")


class FetchError(LedgerError):
    """A page request failed. Cursor state is unchanged, so retrying is safe."""

    def __init__(self, kind: RecordKind, cause: Exception):
        self.kind = kind
        self.cause = cause
        super().__init__(f"Failed to fetch {kind.value} page: {cause}")


class StaleOwnerError(LedgerError):
    """
    A result arrived for an owner that is no longer active.

    Internal only: always caught and dropped, never surfaced.
    """

    def __init__(self, expected: Optional[str], actual: Optional[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Result for {actual!r} arrived while session is {expected!r}")


class PaginationInProgressError(LedgerError):
    """A second load_more was issued while one is still in flight."""
    pass


class SessionClosedError(LedgerError):
    """The session this component belongs to has been torn down."""
    pass
