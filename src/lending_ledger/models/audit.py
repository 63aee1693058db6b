"""Audit event model: one immutable entry in the append-only audit log."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_DETAIL_LENGTH = 4000


class AuditEventKind(str, Enum):
    """What happened."""

    BOOK_BORROW = "BOOK_BORROW"
    BOOK_RETURN = "BOOK_RETURN"
    BOOK_ADDED = "BOOK_ADDED"
    BOOK_UPDATED = "BOOK_UPDATED"
    BOOK_REMOVED = "BOOK_REMOVED"
    SYSTEM_ERROR = "SYSTEM_ERROR"


class AuditSeverity(str, Enum):
    """How urgently an operator should look at the event."""

    INFO = "INFO"
    WARNING = "WARNING"
    HIGH = "HIGH"


class AuditEvent(BaseModel):
    """
    Represents one logged action.

    ``actor_id`` is None for system actions (catalog edits made outside a
    borrower session, detected inconsistencies); zero is a valid actor id and
    never means "absent".
    """

    id: int | None = Field(
        default=None,
        description="Audit-store identifier; None until persisted",
    )

    occurred_at: datetime = Field(
        default_factory=datetime.now,
        description="When the action happened",
    )

    actor_id: int | None = Field(
        default=None,
        description="Borrower or staff member who triggered the action",
    )

    kind: AuditEventKind = Field(
        ...,
        description="Event kind",
    )

    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity",
    )

    detail: str = Field(
        default="",
        description="Free-text description of the action",
        max_length=MAX_DETAIL_LENGTH,
    )

    @field_validator("detail", mode="before")
    @classmethod
    def truncate_detail(cls, v):
        """Long details (e.g. wrapped database errors) are cut, never rejected."""
        if isinstance(v, str) and len(v) > MAX_DETAIL_LENGTH:
            return v[: MAX_DETAIL_LENGTH - 3] + "..."
        return v

    @property
    def is_high_severity(self) -> bool:
        return self.severity == AuditSeverity.HIGH

    model_config = ConfigDict(
        frozen=True,
        from_attributes=True,
        json_schema_extra={
            "example": {
                "occurred_at": "2024-03-01T10:30:00",
                "actor_id": 7,
                "kind": "BOOK_BORROW",
                "severity": "INFO",
                "detail": "Title 1 (ISBN 9780134685479) borrowed by 7, due 2024-03-15T10:30:00",
            }
        },
    )
