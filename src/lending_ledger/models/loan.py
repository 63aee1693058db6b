"""
Loan record model for the Lending Ledger.

A LoanRecord is one borrow-to-return lifecycle for a (title, borrower) pair:
- created open by a successful borrow
- closed (``returned_at`` set) by a successful return
- never deleted, so the ledger doubles as borrowing history
"""

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, model_validator


class LoanRecord(BaseModel):
    """
    Represents a single loan in the borrowing ledger.

    A record whose ``returned_at`` is None is *open*. The ledger store keeps at
    most one open record per (title_id, borrower_id).
    """

    id: int | None = Field(
        default=None,
        description="Ledger-generated identifier; None until created",
        ge=1,
    )

    title_id: int = Field(
        ...,
        description="Internal identifier of the borrowed title",
        ge=1,
    )

    borrower_id: int = Field(
        ...,
        description="Identifier of the borrower, resolved outside the ledger",
    )

    borrowed_at: datetime = Field(
        ...,
        description="When the loan was opened",
    )

    due_at: datetime = Field(
        ...,
        description="When the copy is expected back",
    )

    returned_at: datetime | None = Field(
        default=None,
        description="When the copy came back; None while the loan is open",
    )

    @classmethod
    def open(
        cls, title_id: int, borrower_id: int, borrowed_at: datetime, loan_period_days: int
    ) -> "LoanRecord":
        """Build a new, not yet persisted, open record."""
        return cls(
            title_id=title_id,
            borrower_id=borrower_id,
            borrowed_at=borrowed_at,
            due_at=borrowed_at + timedelta(days=loan_period_days),
        )

    @model_validator(mode="after")
    def validate_dates(self) -> "LoanRecord":
        if self.due_at <= self.borrowed_at:
            raise ValueError("Due date must be after borrow date")

        if self.returned_at is not None and self.returned_at < self.borrowed_at:
            raise ValueError("Return date cannot be before borrow date")

        return self

    @property
    def is_open(self) -> bool:
        return self.returned_at is None

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Check if the loan is open past its due date."""
        if not self.is_open:
            return False
        return (now or datetime.now()) > self.due_at

    def days_overdue(self, now: datetime | None = None) -> int:
        """Whole days past the due date; closed loans are measured at return."""
        reference = self.returned_at or now or datetime.now()
        if reference <= self.due_at:
            return 0
        return (reference - self.due_at).days

    @property
    def loan_period_days(self) -> int:
        return (self.due_at - self.borrowed_at).days

    def closed(self, returned_at: datetime) -> "LoanRecord":
        """Return a copy of this record closed at ``returned_at``."""
        if not self.is_open:
            raise ValueError(f"Loan record {self.id} is already closed")
        return LoanRecord.model_validate({**self.model_dump(), "returned_at": returned_at})

    model_config = ConfigDict(
        validate_assignment=True,
        populate_by_name=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "title_id": 1,
                "borrower_id": 7,
                "borrowed_at": "2024-03-01T10:30:00",
                "due_at": "2024-03-15T10:30:00",
                "returned_at": None,
            }
        },
    )
