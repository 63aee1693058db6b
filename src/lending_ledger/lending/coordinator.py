"""
Lending coordinator: borrow and return across inventory, ledger and audit.

Neither operation is a database transaction. Each store write commits on its
own, so the coordinator orders the writes and repairs partial progress:

Borrow: decrement ``available_copies``, then open a LoanRecord. If the ledger
write fails the decrement is undone by a compensating save. If that save
fails too the result is a detected inconsistency with ``state_changed`` set.

Return: close the LoanRecord, then increment ``available_copies``. If the
increment fails the ledger is left closed and the failure is reported as a
detected inconsistency; reopening the record is never attempted.

Both orders fail toward fewer available copies than real, never more.

Every call holds the per-title lock from its first read to its last write,
and every inventory save is a version compare-and-swap as well. Audit events
go through the non-blocking sink and cannot change a result.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from ..config import LedgerConfig, get_config
from ..database.exceptions import RepositoryException
from ..database.inventory_repository import InventoryStore
from ..database.ledger_repository import LedgerStore
from ..models.audit import AuditEvent, AuditEventKind, AuditSeverity
from ..models.loan import LoanRecord
from ..models.results import ErrorKind, FailureReason, LendingFailure, LendingSuccess
from ..models.title import Title
from ..observability.context import trace_lending_operation
from ..observability.metrics import record_lending_outcome
from .audit_sink import AuditSink
from .concurrency import CancellationToken, LockTimeoutError, TitleLockRegistry

logger = logging.getLogger(__name__)


class BorrowerDirectory(Protocol):
    """Answers whether a borrower id belongs to a known account."""

    def exists(self, borrower_id: int) -> bool: ...


class LendingCoordinator:
    """
    Orchestrates borrow and return.

    Args:
        inventory: Inventory store (titles and copy counts)
        ledger: Ledger store (loan records)
        audit: Audit sink; appends never block or fail the operation
        config: Supplies the loan period and lock timeout when not given
        lock_registry: Per-title locks; share one registry with the catalog service
        clock: Source of "now" for borrow and return timestamps
        borrower_directory: When given, unknown borrowers are rejected up front
    """

    def __init__(
        self,
        inventory: InventoryStore,
        ledger: LedgerStore,
        audit: AuditSink,
        *,
        config: LedgerConfig | None = None,
        lock_registry: TitleLockRegistry | None = None,
        clock: Callable[[], datetime] = datetime.now,
        borrower_directory: BorrowerDirectory | None = None,
    ):
        config = config or get_config()
        self.inventory = inventory
        self.ledger = ledger
        self.audit = audit
        self.loan_period_days = config.loan_period_days
        self.locks = lock_registry or TitleLockRegistry(config.lock_timeout_seconds)
        self.clock = clock
        self.borrower_directory = borrower_directory

    # =========================================================================
    # BORROW
    # =========================================================================

    def borrow_title(
        self,
        borrower_id: int,
        title_id: int,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> LendingSuccess | LendingFailure:
        """
        Lend one copy of ``title_id`` to ``borrower_id``.

        Preconditions, checked in order before anything is written: the
        borrower exists, the title exists, a copy is available, and the
        borrower has no open loan of this title.

        Args:
            cancel: Checked once, just before the first write
            timeout: Seconds to wait for the title lock; the registry default when None

        Returns:
            LendingSuccess with the new open LoanRecord, or LendingFailure
        """
        with trace_lending_operation("borrow", title_id, borrower_id) as span:
            result = self._borrow(borrower_id, title_id, cancel, timeout)
            self._record_outcome(span, "borrow", result)
            return result

    def _borrow(
        self,
        borrower_id: int,
        title_id: int,
        cancel: CancellationToken | None,
        timeout: float | None,
    ) -> LendingSuccess | LendingFailure:
        failure = self._check_borrower(borrower_id)
        if failure:
            return failure

        try:
            with self.locks.hold(title_id, timeout):
                return self._borrow_locked(borrower_id, title_id, cancel)
        except LockTimeoutError as e:
            return self._fail(FailureReason.LOCK_TIMEOUT, str(e))

    def _borrow_locked(
        self, borrower_id: int, title_id: int, cancel: CancellationToken | None
    ) -> LendingSuccess | LendingFailure:
        try:
            title = self.inventory.get_by_title_id(title_id)
        except RepositoryException as e:
            return self._fail(FailureReason.LOOKUP_FAILED, f"Could not read title {title_id}: {e}")
        if title is None:
            return self._fail(FailureReason.TITLE_NOT_FOUND, f"Title {title_id} not found")

        if not title.is_available:
            return self._fail(
                FailureReason.NO_COPIES_AVAILABLE,
                f"No copies of '{title.name}' are available",
            )

        try:
            existing = self.ledger.find_open_record(title_id, borrower_id)
        except RepositoryException as e:
            return self._fail(
                FailureReason.LOOKUP_FAILED, f"Could not read loans of title {title_id}: {e}"
            )
        if existing is not None:
            return self._fail(
                FailureReason.DUPLICATE_OPEN_LOAN,
                f"Borrower {borrower_id} already has '{title.name}' on loan "
                f"(loan {existing.id}, due {existing.due_at:%Y-%m-%d})",
            )

        if cancel is not None and cancel.is_cancelled:
            return self._fail(FailureReason.CANCELLED, "Borrow cancelled before any change")

        # Step 1: inventory
        try:
            decremented = self.inventory.save(
                title.with_changes(available_copies=title.available_copies - 1)
            )
        except RepositoryException as e:
            return self._fail(
                FailureReason.INVENTORY_WRITE_FAILED,
                f"Could not reserve a copy of title {title_id}: {e}",
            )

        # Step 2: ledger
        borrowed_at = self.clock()
        try:
            loan = self.ledger.create(
                LoanRecord.open(title_id, borrower_id, borrowed_at, self.loan_period_days)
            )
        except RepositoryException as e:
            return self._compensate_borrow(decremented, title, borrower_id, e)
        except Exception as e:
            logger.exception("Unexpected error recording loan of title %s", title_id)
            return self._compensate_borrow(decremented, title, borrower_id, e)

        self._audit(
            AuditEventKind.BOOK_BORROW,
            f"Borrower {borrower_id} borrowed title {title_id} "
            f"(ISBN {title.isbn}), due {loan.due_at:%Y-%m-%d}",
            actor_id=borrower_id,
            occurred_at=borrowed_at,
        )
        logger.info(
            "Borrower %s borrowed title %s, loan %s due %s",
            borrower_id,
            title_id,
            loan.id,
            loan.due_at,
        )
        return LendingSuccess(loan=loan)

    def _compensate_borrow(
        self, decremented: Title, original: Title, borrower_id: int, cause: Exception
    ) -> LendingFailure:
        """Undo the inventory decrement after the ledger refused the new loan."""
        try:
            restored = decremented.with_changes(available_copies=original.available_copies)
            self.inventory.save(restored)
        except RepositoryException as e:
            message = (
                f"Title {original.id} left with {decremented.available_copies} available "
                f"copies instead of {original.available_copies}: ledger write for borrower "
                f"{borrower_id} failed ({cause}) and the compensating restore failed ({e})"
            )
            self._audit(
                AuditEventKind.SYSTEM_ERROR,
                f"Book count inconsistency: {message}",
                severity=AuditSeverity.HIGH,
            )
            return self._fail(FailureReason.COMPENSATION_FAILED, message)

        logger.warning(
            "Restored available copies of title %s after ledger write failed for borrower %s",
            original.id,
            borrower_id,
        )
        return self._fail(
            FailureReason.LEDGER_WRITE_FAILED,
            f"Could not record the loan of title {original.id}; no copy was taken: {cause}",
        )

    # =========================================================================
    # RETURN
    # =========================================================================

    def return_title(
        self,
        borrower_id: int,
        title_id: int,
        *,
        cancel: CancellationToken | None = None,
        timeout: float | None = None,
    ) -> LendingSuccess | LendingFailure:
        """
        Take back the copy of ``title_id`` that ``borrower_id`` has on loan.

        Returns:
            LendingSuccess with the closed LoanRecord, or LendingFailure
        """
        with trace_lending_operation("return", title_id, borrower_id) as span:
            result = self._return(borrower_id, title_id, cancel, timeout)
            self._record_outcome(span, "return", result)
            return result

    def _return(
        self,
        borrower_id: int,
        title_id: int,
        cancel: CancellationToken | None,
        timeout: float | None,
    ) -> LendingSuccess | LendingFailure:
        failure = self._check_borrower(borrower_id)
        if failure:
            return failure

        try:
            with self.locks.hold(title_id, timeout):
                return self._return_locked(borrower_id, title_id, cancel)
        except LockTimeoutError as e:
            return self._fail(FailureReason.LOCK_TIMEOUT, str(e))

    def _return_locked(
        self, borrower_id: int, title_id: int, cancel: CancellationToken | None
    ) -> LendingSuccess | LendingFailure:
        try:
            title = self.inventory.get_by_title_id(title_id)
        except RepositoryException as e:
            return self._fail(FailureReason.LOOKUP_FAILED, f"Could not read title {title_id}: {e}")
        if title is None:
            return self._fail(FailureReason.TITLE_NOT_FOUND, f"Title {title_id} not found")

        try:
            record = self.ledger.find_open_record(title_id, borrower_id)
        except RepositoryException as e:
            return self._fail(
                FailureReason.LOOKUP_FAILED, f"Could not read loans of title {title_id}: {e}"
            )
        if record is None:
            return self._fail(
                FailureReason.NO_OPEN_LOAN,
                f"Borrower {borrower_id} has no open loan of title {title_id}",
            )

        if title.is_fully_stocked:
            message = (
                f"Title {title_id} reports all {title.total_copies} copies available "
                f"while loan {record.id} of borrower {borrower_id} is open"
            )
            self._audit(
                AuditEventKind.SYSTEM_ERROR,
                f"Book count inconsistency: {message}",
                severity=AuditSeverity.HIGH,
            )
            return self._fail(FailureReason.INVENTORY_AT_CAPACITY, message)

        if cancel is not None and cancel.is_cancelled:
            return self._fail(FailureReason.CANCELLED, "Return cancelled before any change")

        # Step 1: ledger
        returned_at = max(self.clock(), record.borrowed_at)
        try:
            closed = self.ledger.update(record.closed(returned_at))
        except RepositoryException as e:
            return self._fail(
                FailureReason.LEDGER_WRITE_FAILED,
                f"Could not close loan {record.id}; nothing was changed: {e}",
            )

        # Step 2: inventory
        try:
            self.inventory.save(title.with_changes(available_copies=title.available_copies + 1))
        except RepositoryException as e:
            message = (
                f"Loan {closed.id} of borrower {borrower_id} was closed but available "
                f"copies of title {title_id} could not be incremented: {e}"
            )
            self._audit(
                AuditEventKind.SYSTEM_ERROR,
                f"Book count inconsistency: {message}",
                severity=AuditSeverity.HIGH,
            )
            return self._fail(FailureReason.INVENTORY_RESTORE_FAILED, message)

        self._audit(
            AuditEventKind.BOOK_RETURN,
            f"Borrower {borrower_id} returned title {title_id} (ISBN {title.isbn}), "
            f"loan {closed.id}",
            actor_id=borrower_id,
            occurred_at=returned_at,
        )
        logger.info("Borrower %s returned title %s, loan %s", borrower_id, title_id, closed.id)
        return LendingSuccess(loan=closed)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _check_borrower(self, borrower_id: int) -> LendingFailure | None:
        if self.borrower_directory is None:
            return None
        try:
            known = self.borrower_directory.exists(borrower_id)
        except RepositoryException as e:
            return self._fail(
                FailureReason.LOOKUP_FAILED, f"Could not look up borrower {borrower_id}: {e}"
            )
        if not known:
            return self._fail(
                FailureReason.BORROWER_NOT_FOUND, f"Borrower {borrower_id} not found"
            )
        return None

    def _fail(self, reason: FailureReason, message: str) -> LendingFailure:
        failure = LendingFailure.of(reason, message)
        if failure.needs_reconciliation:
            logger.critical("%s: %s", reason.value, message)
        elif reason.kind == ErrorKind.STORAGE_FAILURE:
            logger.error("%s: %s", reason.value, message)
        else:
            logger.warning("%s: %s", reason.value, message)
        return failure

    def _audit(
        self,
        kind: AuditEventKind,
        detail: str,
        *,
        actor_id: int | None = None,
        severity: AuditSeverity = AuditSeverity.INFO,
        occurred_at: datetime | None = None,
    ) -> None:
        self.audit.append(
            AuditEvent(
                occurred_at=occurred_at or self.clock(),
                actor_id=actor_id,
                kind=kind,
                severity=severity,
                detail=detail,
            )
        )

    @staticmethod
    def _record_outcome(span, operation: str, result: LendingSuccess | LendingFailure) -> None:
        if result.ok:
            span.set_attribute("lending.outcome", "success")
            record_lending_outcome(operation, "success")
            return
        span.set_attribute("lending.outcome", result.kind.value)
        span.set_attribute("lending.reason", result.reason.value)
        span.set_attribute("lending.state_changed", result.state_changed)
        record_lending_outcome(operation, result.kind.value, result.reason.value)
