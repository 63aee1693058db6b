"""
Catalog service: explicit edits to titles outside of borrow and return.

Catalog edits share the coordinator's per-title locks, so a change to a
title's total never interleaves with a borrow or return of that title. Unlike
the coordinator, the catalog service raises repository exceptions; a catalog
edit is a single write with nothing to compensate.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from ..database.exceptions import InvariantViolationError, NotFoundError
from ..database.inventory_repository import SqlInventoryRepository
from ..models.audit import AuditEvent, AuditEventKind
from ..models.title import Title
from ..observability.context import trace_lending_operation
from .audit_sink import AuditSink
from .concurrency import TitleLockRegistry

logger = logging.getLogger(__name__)


class CatalogService:
    """Add, edit and remove titles while keeping ``0 <= available <= total``."""

    def __init__(
        self,
        inventory: SqlInventoryRepository,
        audit: AuditSink,
        lock_registry: TitleLockRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.inventory = inventory
        self.audit = audit
        self.locks = lock_registry
        self.clock = clock

    def add_title(
        self,
        isbn: str,
        name: str,
        total_copies: int,
        *,
        author: str | None = None,
        genre: str | None = None,
        publication_year: int | None = None,
        actor_id: int | None = None,
    ) -> Title:
        """
        Add a new title with every copy available.

        Raises:
            DuplicateError: If the ISBN is already in the catalog
            ValidationError: If the title data is invalid
            StorageError: On database errors
        """
        title = self.inventory.add(
            Title(
                isbn=isbn,
                name=name,
                author=author,
                genre=genre,
                publication_year=publication_year,
                total_copies=total_copies,
                available_copies=total_copies,
            )
        )
        self._audit(
            AuditEventKind.BOOK_ADDED,
            f"Added title {title.id} '{title.name}' (ISBN {title.isbn}) "
            f"with {title.total_copies} copies",
            actor_id,
        )
        logger.info("Added title %s (ISBN %s)", title.id, title.isbn)
        return title

    def edit_title(
        self,
        title_id: int,
        *,
        name: str | None = None,
        author: str | None = None,
        genre: str | None = None,
        publication_year: int | None = None,
        total_copies: int | None = None,
        actor_id: int | None = None,
    ) -> Title:
        """
        Change a title's details or number of copies.

        A new ``total_copies`` shifts ``available_copies`` by the same amount,
        so copies on loan stay on loan.

        Raises:
            NotFoundError: If the title does not exist
            InvariantViolationError: If the new total is below the copies on loan
            StorageError: On database errors or lock timeout
        """
        changes = {
            field: value
            for field, value in {
                "name": name,
                "author": author,
                "genre": genre,
                "publication_year": publication_year,
            }.items()
            if value is not None
        }

        with trace_lending_operation("edit_title", title_id), self.locks.hold(title_id):
            title = self._require(title_id)

            if total_copies is not None and total_copies != title.total_copies:
                if total_copies < title.copies_on_loan:
                    raise InvariantViolationError(
                        f"Title {title_id} has {title.copies_on_loan} copies on loan; "
                        f"total cannot drop to {total_copies}"
                    )
                changes["total_copies"] = total_copies
                changes["available_copies"] = title.available_copies + (
                    total_copies - title.total_copies
                )

            if not changes:
                return title

            updated = self.inventory.save(title.with_changes(**changes))

        self._audit(
            AuditEventKind.BOOK_UPDATED,
            f"Updated title {title_id}: " + ", ".join(f"{k}={v}" for k, v in changes.items()),
            actor_id,
        )
        logger.info("Updated title %s: %s", title_id, sorted(changes))
        return updated

    def remove_title(self, title_id: int, *, actor_id: int | None = None) -> Title:
        """
        Remove a title that has no copies on loan.

        Loan history of the title stays in the ledger.

        Returns:
            The removed title

        Raises:
            NotFoundError: If the title does not exist
            InvariantViolationError: If any copy is still on loan
            StorageError: On database errors or lock timeout
        """
        with trace_lending_operation("remove_title", title_id), self.locks.hold(title_id):
            title = self._require(title_id)
            if not title.is_fully_stocked:
                raise InvariantViolationError(
                    f"Title {title_id} has {title.copies_on_loan} copies on loan "
                    "and cannot be removed"
                )
            if not self.inventory.delete(title_id):
                raise NotFoundError(f"Title {title_id} not found")

        self._audit(
            AuditEventKind.BOOK_REMOVED,
            f"Removed title {title_id} '{title.name}' (ISBN {title.isbn})",
            actor_id,
        )
        logger.info("Removed title %s (ISBN %s)", title_id, title.isbn)
        return title

    def _require(self, title_id: int) -> Title:
        title = self.inventory.get_by_title_id(title_id)
        if title is None:
            raise NotFoundError(f"Title {title_id} not found")
        return title

    def _audit(self, kind: AuditEventKind, detail: str, actor_id: int | None) -> None:
        self.audit.append(
            AuditEvent(occurred_at=self.clock(), actor_id=actor_id, kind=kind, detail=detail)
        )
