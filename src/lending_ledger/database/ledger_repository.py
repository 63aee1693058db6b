"""
Ledger store for the Lending Ledger.

The ledger holds one LoanRecord per borrow-to-return lifecycle. Records are
created open, closed exactly once by setting ``returned_at``, and never
deleted. The partial unique index on open records backs the rule that a
borrower holds at most one open loan per title.
"""

import logging
from typing import Protocol

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..models.loan import LoanRecord
from .exceptions import DuplicateError, NotFoundError, StorageError
from .repository import PaginatedResponse, PaginationParams, paginate
from .schema import LoanRecordRow
from .session import DatabaseManager, safe_commit, safe_query

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """What the lending coordinator needs from the ledger."""

    def find_open_record(self, title_id: int, borrower_id: int) -> LoanRecord | None: ...

    def create(self, record: LoanRecord) -> LoanRecord: ...

    def update(self, record: LoanRecord) -> LoanRecord: ...


class SqlLedgerRepository:
    """SQLAlchemy-backed ledger store."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def _to_model(row: LoanRecordRow) -> LoanRecord:
        return LoanRecord.model_validate(row, from_attributes=True)

    def find_open_record(self, title_id: int, borrower_id: int) -> LoanRecord | None:
        """
        Find the open loan of ``title_id`` held by ``borrower_id``.

        If storage somehow holds more than one, the most recently opened one
        wins (latest ``borrowed_at``, then highest id).

        Raises:
            StorageError: On database errors
        """
        query = (
            select(LoanRecordRow)
            .where(
                LoanRecordRow.title_id == title_id,
                LoanRecordRow.borrower_id == borrower_id,
                LoanRecordRow.returned_at.is_(None),
            )
            .order_by(desc(LoanRecordRow.borrowed_at), desc(LoanRecordRow.id))
            .limit(1)
        )
        with self.db_manager.session_scope() as session:
            row = safe_query(
                session,
                lambda s: s.execute(query).scalar_one_or_none(),
                "Failed to find open loan record",
            )
            return self._to_model(row) if row else None

    def create(self, record: LoanRecord) -> LoanRecord:
        """
        Persist a new loan record.

        Returns:
            The stored record with its generated id

        Raises:
            DuplicateError: If the borrower already holds an open loan of the title
            StorageError: On other database errors
        """
        if record.id is not None:
            raise StorageError(f"Loan record {record.id} already exists")

        with self.db_manager.session_scope() as session:
            row = LoanRecordRow(**record.model_dump(exclude={"id"}))
            session.add(row)
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateError(
                    f"Borrower {record.borrower_id} already has an open loan "
                    f"of title {record.title_id}"
                ) from e
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to create loan record: {e!s}") from e
            safe_commit(session, "create loan record")
            created = self._to_model(row)

        logger.debug(
            "Opened loan record %s: title=%s borrower=%s due=%s",
            created.id,
            created.title_id,
            created.borrower_id,
            created.due_at,
        )
        return created

    def update(self, record: LoanRecord) -> LoanRecord:
        """
        Persist changes to an existing loan record.

        Raises:
            NotFoundError: If the record does not exist
            StorageError: On database errors
        """
        if record.id is None:
            raise StorageError("Cannot update a loan record that has not been created")

        stmt = (
            update(LoanRecordRow)
            .where(LoanRecordRow.id == record.id)
            .values(
                due_at=record.due_at,
                returned_at=record.returned_at,
            )
        )
        with self.db_manager.session_scope() as session:
            result = safe_query(
                session, lambda s: s.execute(stmt), f"Failed to update loan record {record.id}"
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Loan record {record.id} not found")
            safe_commit(session, f"update loan record {record.id}")

        return record

    def get_by_id(self, record_id: int) -> LoanRecord | None:
        """
        Get a loan record by id.

        Raises:
            StorageError: On database errors
        """
        with self.db_manager.session_scope() as session:
            row = safe_query(
                session,
                lambda s: s.get(LoanRecordRow, record_id),
                f"Failed to get loan record {record_id}",
            )
            return self._to_model(row) if row else None

    def _history(self, where, pagination: PaginationParams | None, error_msg: str):
        query = (
            select(LoanRecordRow)
            .where(where)
            .order_by(desc(LoanRecordRow.borrowed_at), desc(LoanRecordRow.id))
        )
        with self.db_manager.session_scope() as session:
            if pagination:
                return paginate(session, query, pagination, LoanRecord, error_msg)
            rows = safe_query(session, lambda s: s.execute(query).scalars().all(), error_msg)
            return [self._to_model(row) for row in rows]

    def history_for_borrower(
        self, borrower_id: int, pagination: PaginationParams | None = None
    ) -> list[LoanRecord] | PaginatedResponse[LoanRecord]:
        """
        All loans of a borrower, newest first, open and closed alike.

        Raises:
            StorageError: On database errors
        """
        return self._history(
            LoanRecordRow.borrower_id == borrower_id,
            pagination,
            f"Failed to get loan history for borrower {borrower_id}",
        )

    def history_for_title(
        self, title_id: int, pagination: PaginationParams | None = None
    ) -> list[LoanRecord] | PaginatedResponse[LoanRecord]:
        """
        All loans of a title, newest first.

        Raises:
            StorageError: On database errors
        """
        return self._history(
            LoanRecordRow.title_id == title_id,
            pagination,
            f"Failed to get loan history for title {title_id}",
        )

    def open_for_borrower(self, borrower_id: int) -> list[LoanRecord]:
        """
        Open loans of a borrower, soonest due first.

        Raises:
            StorageError: On database errors
        """
        query = (
            select(LoanRecordRow)
            .where(
                LoanRecordRow.borrower_id == borrower_id,
                LoanRecordRow.returned_at.is_(None),
            )
            .order_by(LoanRecordRow.due_at, LoanRecordRow.id)
        )
        with self.db_manager.session_scope() as session:
            rows = safe_query(
                session,
                lambda s: s.execute(query).scalars().all(),
                f"Failed to get open loans for borrower {borrower_id}",
            )
            return [self._to_model(row) for row in rows]

    def count_open_for_title(self, title_id: int) -> int:
        """
        Number of copies of ``title_id`` currently on loan according to the ledger.

        Raises:
            StorageError: On database errors
        """
        query = (
            select(func.count())
            .select_from(LoanRecordRow)
            .where(
                LoanRecordRow.title_id == title_id,
                LoanRecordRow.returned_at.is_(None),
            )
        )
        with self.db_manager.session_scope() as session:
            return (
                safe_query(
                    session,
                    lambda s: s.execute(query).scalar(),
                    f"Failed to count open loans for title {title_id}",
                )
                or 0
            )
