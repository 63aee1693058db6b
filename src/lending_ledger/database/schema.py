"""
SQLAlchemy database schema for the Lending Ledger.

These tables back the three stores the lending coordinator keeps consistent:
1. titles - the inventory counter per catalog entry
2. loan_records - the borrowing ledger (open and closed loans)
3. audit_events - the append-only audit log

The copy-count invariant and the one-open-loan-per-borrower invariant are
repeated here as constraints so a buggy writer fails loudly instead of
persisting an impossible state.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

from ..models.audit import AuditEventKind, AuditSeverity

Base = declarative_base()


class TitleRow(Base):
    """
    Titles table - one row per catalog entry.

    ``version`` is bumped by every inventory save; writers compare it to
    detect concurrent modification.

    Ids are never reused, so loan records keep pointing at the title they
    were made for after that title is removed.
    """

    __tablename__ = "titles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(13), nullable=False, unique=True)
    name = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=True)
    genre = Column(String(100), nullable=True)
    publication_year = Column(Integer, nullable=True)
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_title_isbn", "isbn"),
        Index("idx_title_availability", "available_copies"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("version >= 0", name="check_version_non_negative"),
        {"sqlite_autoincrement": True},
    )


class LoanRecordRow(Base):
    """
    Loan records table - the borrowing ledger.

    ``title_id`` is indexed but not a foreign key: ledger history outlives a
    title removed from the catalog.
    """

    __tablename__ = "loan_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title_id = Column(Integer, nullable=False)
    borrower_id = Column(Integer, nullable=False)
    borrowed_at = Column(DateTime, nullable=False)
    due_at = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_loan_title", "title_id"),
        Index("idx_loan_borrower", "borrower_id"),
        Index("idx_loan_due", "due_at"),
        Index(
            "uq_loan_open_per_borrower",
            "title_id",
            "borrower_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
        CheckConstraint("due_at > borrowed_at", name="check_due_after_borrow"),
        CheckConstraint(
            "returned_at IS NULL OR returned_at >= borrowed_at",
            name="check_return_after_borrow",
        ),
    )


class AuditEventRow(Base):
    """Audit events table - append-only, rows are never updated."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    occurred_at = Column(DateTime, nullable=False, default=func.now())
    actor_id = Column(Integer, nullable=True)
    kind = Column(Enum(AuditEventKind), nullable=False)
    severity = Column(Enum(AuditSeverity), nullable=False, default=AuditSeverity.INFO)
    detail = Column(Text, nullable=False, default="")

    __table_args__ = (
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_kind", "kind"),
        Index("idx_audit_occurred", "occurred_at"),
    )
