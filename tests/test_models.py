"""Tests for the pydantic models: Title, LoanRecord, AuditEvent and results."""

from datetime import datetime, timedelta

import pytest
from pydantic import TypeAdapter, ValidationError

from lending_ledger.models import (
    AuditEvent,
    AuditEventKind,
    ErrorKind,
    FailureReason,
    LendingFailure,
    LendingResult,
    LendingSuccess,
    LoanRecord,
    Title,
    normalize_isbn,
)
from lending_ledger.models.audit import MAX_DETAIL_LENGTH

NOW = datetime(2024, 3, 1, 10, 0)


def make_title(**overrides) -> Title:
    values = {
        "isbn": "9780134685479",
        "name": "Effective Python",
        "total_copies": 2,
        "available_copies": 2,
    }
    values.update(overrides)
    return Title(**values)


class TestTitle:
    def test_isbn_normalized(self):
        assert make_title(isbn=" 978-0-13-468547-9 ").isbn == "9780134685479"
        assert make_title(isbn="0-8044-2957-x").isbn == "080442957X"
        assert normalize_isbn("978-0-13") == "978013"

    @pytest.mark.parametrize("isbn", ["12345", "97801346854790", "978013468547A", "X123456789"])
    def test_invalid_isbn(self, isbn):
        with pytest.raises(ValidationError):
            make_title(isbn=isbn)

    def test_available_cannot_exceed_total(self):
        with pytest.raises(ValidationError, match="cannot exceed"):
            make_title(available_copies=3)

    def test_negative_counts_rejected(self):
        with pytest.raises(ValidationError):
            make_title(available_copies=-1)

    def test_assignment_is_validated(self):
        title = make_title()
        with pytest.raises(ValidationError):
            title.available_copies = 5

    def test_derived_properties(self):
        title = make_title(total_copies=3, available_copies=1)

        assert title.copies_on_loan == 2
        assert title.is_available
        assert not title.is_fully_stocked
        assert make_title(total_copies=0, available_copies=0).is_fully_stocked
        assert not make_title(available_copies=0).is_available

    def test_with_changes_validates_and_copies(self):
        title = make_title()

        changed = title.with_changes(available_copies=1)

        assert changed.available_copies == 1
        assert title.available_copies == 2
        with pytest.raises(ValidationError):
            title.with_changes(available_copies=3)


class TestLoanRecord:
    def test_open_sets_due_date(self):
        record = LoanRecord.open(title_id=1, borrower_id=7, borrowed_at=NOW, loan_period_days=14)

        assert record.id is None
        assert record.due_at == NOW + timedelta(days=14)
        assert record.is_open
        assert record.loan_period_days == 14

    def test_due_must_follow_borrow(self):
        with pytest.raises(ValidationError):
            LoanRecord(title_id=1, borrower_id=7, borrowed_at=NOW, due_at=NOW)

    def test_return_cannot_precede_borrow(self):
        with pytest.raises(ValidationError):
            LoanRecord(
                title_id=1,
                borrower_id=7,
                borrowed_at=NOW,
                due_at=NOW + timedelta(days=14),
                returned_at=NOW - timedelta(minutes=1),
            )

    def test_closed_returns_new_record(self):
        record = LoanRecord.open(1, 7, NOW, 14)

        closed = record.closed(NOW + timedelta(days=2))

        assert record.is_open
        assert not closed.is_open
        assert closed.returned_at == NOW + timedelta(days=2)
        with pytest.raises(ValueError, match="already closed"):
            closed.closed(NOW + timedelta(days=3))

    def test_overdue(self):
        record = LoanRecord.open(1, 7, NOW, 14)

        assert not record.is_overdue(NOW + timedelta(days=14))
        assert record.is_overdue(NOW + timedelta(days=15, hours=1))
        assert record.days_overdue(NOW + timedelta(days=20)) == 6
        assert record.days_overdue(NOW + timedelta(days=1)) == 0

    def test_closed_loans_are_never_overdue(self):
        record = LoanRecord.open(1, 7, NOW, 14).closed(NOW + timedelta(days=1))

        assert not record.is_overdue(NOW + timedelta(days=60))

    def test_closed_loan_lateness_measured_at_return(self):
        record = LoanRecord.open(1, 7, NOW, 14).closed(NOW + timedelta(days=17))

        assert record.days_overdue(NOW + timedelta(days=60)) == 3
        assert LoanRecord.open(1, 7, NOW, 14).closed(NOW).days_overdue() == 0


class TestAuditEvent:
    def test_long_detail_is_truncated(self):
        event = AuditEvent(kind=AuditEventKind.SYSTEM_ERROR, detail="x" * (MAX_DETAIL_LENGTH + 50))

        assert len(event.detail) == MAX_DETAIL_LENGTH
        assert event.detail.endswith("...")

    def test_actor_defaults_to_none(self):
        assert AuditEvent(kind=AuditEventKind.BOOK_ADDED).actor_id is None


class TestResults:
    def test_every_reason_has_a_kind(self):
        for reason in FailureReason:
            assert isinstance(reason.kind, ErrorKind)

    @pytest.mark.parametrize(
        ("reason", "kind", "state_changed"),
        [
            (FailureReason.TITLE_NOT_FOUND, ErrorKind.NOT_FOUND, False),
            (FailureReason.NO_OPEN_LOAN, ErrorKind.INVALID_STATE, False),
            (FailureReason.LEDGER_WRITE_FAILED, ErrorKind.STORAGE_FAILURE, False),
            (FailureReason.COMPENSATION_FAILED, ErrorKind.DETECTED_INCONSISTENCY, True),
            (FailureReason.INVENTORY_RESTORE_FAILED, ErrorKind.DETECTED_INCONSISTENCY, True),
            (FailureReason.INVENTORY_AT_CAPACITY, ErrorKind.DETECTED_INCONSISTENCY, False),
        ],
    )
    def test_failure_of(self, reason, kind, state_changed):
        failure = LendingFailure.of(reason, "message")

        assert failure.kind == kind
        assert failure.state_changed is state_changed
        assert failure.needs_reconciliation is (kind == ErrorKind.DETECTED_INCONSISTENCY)
        assert not failure.ok

    def test_result_is_discriminated_on_status(self):
        adapter = TypeAdapter(LendingResult)
        loan = LoanRecord.open(1, 7, NOW, 14)

        success = adapter.validate_python(LendingSuccess(loan=loan).model_dump())
        failure = adapter.validate_python(
            LendingFailure.of(FailureReason.NO_OPEN_LOAN, "none").model_dump(mode="json")
        )

        assert isinstance(success, LendingSuccess)
        assert success.ok
        assert isinstance(failure, LendingFailure)
        assert failure.reason == FailureReason.NO_OPEN_LOAN
