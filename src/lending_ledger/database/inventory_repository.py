"""
Inventory store for the Lending Ledger.

The inventory store owns each Title's copy counts. Its one write used by
lending, ``save``, is a compare-and-swap on the ``version`` column: the row
is only updated if nobody else saved it since it was read. Together with the
coordinator's per-title lock this makes lost updates on ``available_copies``
impossible.

Each method opens its own session, so a save is durable as soon as it
returns.
"""

import logging
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.title import Title, normalize_isbn
from .exceptions import ConcurrentModificationError, DuplicateError, StorageError
from .repository import PaginatedResponse, PaginationParams, paginate
from .schema import TitleRow
from .session import DatabaseManager, safe_commit, safe_query

logger = logging.getLogger(__name__)


class InventoryStore(Protocol):
    """What the lending coordinator needs from the inventory."""

    def get_by_title_id(self, title_id: int) -> Title | None: ...

    def get_by_isbn(self, isbn: str) -> Title | None: ...

    def save(self, title: Title) -> Title: ...


class SqlInventoryRepository:
    """
    SQLAlchemy-backed inventory store.

    Reads return pydantic ``Title`` models, never ORM rows, so callers can
    hold them across sessions.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def _to_model(row: TitleRow) -> Title:
        return Title.model_validate(row, from_attributes=True)

    def _get_row(self, session: Session, title_id: int) -> TitleRow | None:
        return safe_query(
            session,
            lambda s: s.get(TitleRow, title_id),
            f"Failed to get title {title_id}",
        )

    def get_by_title_id(self, title_id: int) -> Title | None:
        """
        Get a title by its internal id.

        Returns:
            Title model or None if not found

        Raises:
            StorageError: On database errors
        """
        with self.db_manager.session_scope() as session:
            row = self._get_row(session, title_id)
            return self._to_model(row) if row else None

    def get_by_isbn(self, isbn: str) -> Title | None:
        """
        Get a title by ISBN; hyphens in ``isbn`` are ignored.

        Raises:
            StorageError: On database errors
        """
        normalized = normalize_isbn(isbn)
        with self.db_manager.session_scope() as session:
            row = safe_query(
                session,
                lambda s: s.execute(
                    select(TitleRow).where(TitleRow.isbn == normalized)
                ).scalar_one_or_none(),
                f"Failed to get title by ISBN {isbn}",
            )
            return self._to_model(row) if row else None

    def save(self, title: Title) -> Title:
        """
        Persist ``title`` if the stored version still matches ``title.version``.

        Args:
            title: A title previously read from this store, with updated fields

        Returns:
            The saved title carrying its new version

        Raises:
            ConcurrentModificationError: If the row changed or vanished since it was read
            StorageError: On database errors, including constraint violations
        """
        if title.id is None:
            raise StorageError("Cannot save a title that has not been added")

        stmt = (
            update(TitleRow)
            .where(TitleRow.id == title.id, TitleRow.version == title.version)
            .values(
                isbn=title.isbn,
                name=title.name,
                author=title.author,
                genre=title.genre,
                publication_year=title.publication_year,
                total_copies=title.total_copies,
                available_copies=title.available_copies,
                version=TitleRow.version + 1,
            )
        )

        with self.db_manager.session_scope() as session:
            result = safe_query(
                session, lambda s: s.execute(stmt), f"Failed to save title {title.id}"
            )
            if result.rowcount == 0:
                raise ConcurrentModificationError(
                    f"Title {title.id} changed since version {title.version} was read"
                )
            safe_commit(session, f"save title {title.id}")

        logger.debug(
            "Saved title %s: available=%s total=%s version=%s",
            title.id,
            title.available_copies,
            title.total_copies,
            title.version + 1,
        )
        return title.model_copy(update={"version": title.version + 1})

    def add(self, title: Title) -> Title:
        """
        Insert a new title.

        Returns:
            The stored title with its generated id

        Raises:
            DuplicateError: If a title with the same ISBN exists
            StorageError: On other database errors
        """
        if self.get_by_isbn(title.isbn) is not None:
            raise DuplicateError(f"Title with ISBN {title.isbn} already exists")

        with self.db_manager.session_scope() as session:
            row = TitleRow(**title.model_dump(exclude={"id"}))
            session.add(row)
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateError(f"Title with ISBN {title.isbn} already exists") from e
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to add title {title.isbn}: {e!s}") from e
            safe_commit(session, "add title")
            return self._to_model(row)

    def delete(self, title_id: int) -> bool:
        """
        Delete a title row.

        Returns:
            True if deleted, False if not found

        Raises:
            StorageError: On database errors
        """
        with self.db_manager.session_scope() as session:
            result = safe_query(
                session,
                lambda s: s.execute(delete(TitleRow).where(TitleRow.id == title_id)),
                f"Failed to delete title {title_id}",
            )
            safe_commit(session, f"delete title {title_id}")
            return result.rowcount > 0

    def list_titles(
        self, pagination: PaginationParams | None = None
    ) -> list[Title] | PaginatedResponse[Title]:
        """
        List titles ordered by name.

        Raises:
            StorageError: On database errors
        """
        query = select(TitleRow).order_by(TitleRow.name, TitleRow.id)

        with self.db_manager.session_scope() as session:
            if pagination:
                return paginate(session, query, pagination, Title, "Failed to list titles")
            rows = safe_query(
                session, lambda s: s.execute(query).scalars().all(), "Failed to list titles"
            )
            return [self._to_model(row) for row in rows]

    def find_by_name(
        self, fragment: str, pagination: PaginationParams | None = None
    ) -> list[Title] | PaginatedResponse[Title]:
        """
        Titles whose name contains ``fragment``, case-insensitively, ordered by name.

        Raises:
            StorageError: On database errors
        """
        return self._search(TitleRow.name, fragment, pagination, "Failed to search titles by name")

    def find_by_author(
        self, fragment: str, pagination: PaginationParams | None = None
    ) -> list[Title] | PaginatedResponse[Title]:
        """
        Titles whose author contains ``fragment``, case-insensitively, ordered by name.

        Raises:
            StorageError: On database errors
        """
        return self._search(
            TitleRow.author, fragment, pagination, "Failed to search titles by author"
        )

    def _search(self, column, fragment: str, pagination: PaginationParams | None, error_msg: str):
        query = (
            select(TitleRow)
            .where(column.ilike(f"%{fragment.strip()}%"))
            .order_by(TitleRow.name, TitleRow.id)
        )

        with self.db_manager.session_scope() as session:
            if pagination:
                return paginate(session, query, pagination, Title, error_msg)
            rows = safe_query(session, lambda s: s.execute(query).scalars().all(), error_msg)
            return [self._to_model(row) for row in rows]
