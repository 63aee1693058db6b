"""
Outcome types returned by the lending coordinator.

Every borrow or return produces exactly one tagged result:
- LendingSuccess carrying the affected loan record
- LendingFailure carrying an error kind, a precise reason, and whether any
  state was left changed (reconciliation recommended) or nothing happened
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from .loan import LoanRecord


class ErrorKind(str, Enum):
    """Coarse failure taxonomy."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    STORAGE_FAILURE = "storage_failure"
    DETECTED_INCONSISTENCY = "detected_inconsistency"


class FailureReason(str, Enum):
    """Precise failure reason; each maps to exactly one ErrorKind."""

    BORROWER_NOT_FOUND = "borrower_not_found"
    TITLE_NOT_FOUND = "title_not_found"
    NO_COPIES_AVAILABLE = "no_copies_available"
    DUPLICATE_OPEN_LOAN = "duplicate_open_loan"
    NO_OPEN_LOAN = "no_open_loan"
    LOOKUP_FAILED = "lookup_failed"
    LOCK_TIMEOUT = "lock_timeout"
    CANCELLED = "cancelled"
    INVENTORY_WRITE_FAILED = "inventory_write_failed"
    LEDGER_WRITE_FAILED = "ledger_write_failed"
    COMPENSATION_FAILED = "compensation_failed"
    INVENTORY_RESTORE_FAILED = "inventory_restore_failed"
    INVENTORY_AT_CAPACITY = "inventory_at_capacity"

    @property
    def kind(self) -> ErrorKind:
        return _REASON_KINDS[self]

    @property
    def leaves_partial_state(self) -> bool:
        """True when a write persisted and the counterpart write did not."""
        return self in _PARTIAL_STATE_REASONS


_REASON_KINDS: dict[FailureReason, ErrorKind] = {
    FailureReason.BORROWER_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureReason.TITLE_NOT_FOUND: ErrorKind.NOT_FOUND,
    FailureReason.NO_COPIES_AVAILABLE: ErrorKind.INVALID_STATE,
    FailureReason.DUPLICATE_OPEN_LOAN: ErrorKind.INVALID_STATE,
    FailureReason.NO_OPEN_LOAN: ErrorKind.INVALID_STATE,
    FailureReason.LOOKUP_FAILED: ErrorKind.STORAGE_FAILURE,
    FailureReason.LOCK_TIMEOUT: ErrorKind.STORAGE_FAILURE,
    FailureReason.CANCELLED: ErrorKind.STORAGE_FAILURE,
    FailureReason.INVENTORY_WRITE_FAILED: ErrorKind.STORAGE_FAILURE,
    FailureReason.LEDGER_WRITE_FAILED: ErrorKind.STORAGE_FAILURE,
    FailureReason.COMPENSATION_FAILED: ErrorKind.DETECTED_INCONSISTENCY,
    FailureReason.INVENTORY_RESTORE_FAILED: ErrorKind.DETECTED_INCONSISTENCY,
    FailureReason.INVENTORY_AT_CAPACITY: ErrorKind.DETECTED_INCONSISTENCY,
}

_PARTIAL_STATE_REASONS = frozenset(
    {FailureReason.COMPENSATION_FAILED, FailureReason.INVENTORY_RESTORE_FAILED}
)


class LendingSuccess(BaseModel):
    """The operation completed every step."""

    status: Literal["success"] = "success"
    loan: LoanRecord

    @property
    def ok(self) -> bool:
        return True

    model_config = ConfigDict(frozen=True)


class LendingFailure(BaseModel):
    """The operation stopped; ``state_changed`` says whether reconciliation is needed."""

    status: Literal["failure"] = "failure"
    kind: ErrorKind
    reason: FailureReason
    message: str
    state_changed: bool = False

    @classmethod
    def of(cls, reason: FailureReason, message: str) -> "LendingFailure":
        return cls(
            kind=reason.kind,
            reason=reason,
            message=message,
            state_changed=reason.leaves_partial_state,
        )

    @property
    def ok(self) -> bool:
        return False

    @property
    def needs_reconciliation(self) -> bool:
        return self.kind == ErrorKind.DETECTED_INCONSISTENCY

    model_config = ConfigDict(frozen=True)


LendingResult = Annotated[LendingSuccess | LendingFailure, Field(discriminator="status")]
