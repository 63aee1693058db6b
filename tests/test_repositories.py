"""
Tests for the inventory, ledger and audit repositories.

Each repository opens its own session per call, so every assertion here
reads back through a fresh session.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from lending_ledger.database import (
    DuplicateError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    SqlAuditRepository,
    SqlInventoryRepository,
    SqlLedgerRepository,
    StorageError,
)
from lending_ledger.database.exceptions import ConcurrentModificationError
from lending_ledger.models import AuditEvent, AuditEventKind, LoanRecord, Title

START = datetime(2024, 3, 1, 10, 0)


@pytest.fixture
def inventory_repo(db_manager):
    return SqlInventoryRepository(db_manager)


@pytest.fixture
def ledger_repo(db_manager):
    return SqlLedgerRepository(db_manager)


@pytest.fixture
def audit_repo(db_manager):
    return SqlAuditRepository(db_manager)


@pytest.fixture
def stored_title(inventory_repo) -> Title:
    return inventory_repo.add(
        Title(
            isbn="9780134685479",
            name="Effective Python",
            author="Brett Slatkin",
            total_copies=3,
            available_copies=3,
        )
    )


class TestInventoryRepository:
    def test_add_and_get(self, inventory_repo, stored_title):
        assert stored_title.id is not None
        assert inventory_repo.get_by_title_id(stored_title.id) == stored_title
        assert inventory_repo.get_by_isbn("978-0-13-468547-9") == stored_title

    def test_missing_title(self, inventory_repo):
        assert inventory_repo.get_by_title_id(42) is None
        assert inventory_repo.get_by_isbn("9780000000000") is None

    def test_duplicate_isbn(self, inventory_repo, stored_title):
        with pytest.raises(DuplicateError):
            inventory_repo.add(
                Title(isbn="9780134685479", name="Dup", total_copies=1, available_copies=1)
            )

    def test_save_bumps_version(self, inventory_repo, stored_title):
        saved = inventory_repo.save(stored_title.with_changes(available_copies=2))

        assert saved.version == stored_title.version + 1
        reread = inventory_repo.get_by_title_id(stored_title.id)
        assert reread.available_copies == 2
        assert reread.version == saved.version

    def test_save_with_stale_version(self, inventory_repo, stored_title):
        inventory_repo.save(stored_title.with_changes(available_copies=2))

        with pytest.raises(ConcurrentModificationError):
            inventory_repo.save(stored_title.with_changes(available_copies=1))

    def test_save_of_deleted_title(self, inventory_repo, stored_title):
        inventory_repo.delete(stored_title.id)

        with pytest.raises(ConcurrentModificationError):
            inventory_repo.save(stored_title)

    def test_save_unsaved_title(self, inventory_repo):
        with pytest.raises(StorageError):
            inventory_repo.save(
                Title(isbn="9780134685479", name="New", total_copies=1, available_copies=1)
            )

    def test_delete(self, inventory_repo, stored_title):
        assert inventory_repo.delete(stored_title.id) is True
        assert inventory_repo.delete(stored_title.id) is False
        assert inventory_repo.get_by_title_id(stored_title.id) is None

    def test_list_titles_paginated(self, inventory_repo):
        for n, name in enumerate(["Charlie", "Alpha", "Bravo"]):
            inventory_repo.add(
                Title(isbn=f"978000000000{n}", name=name, total_copies=1, available_copies=1)
            )

        assert [t.name for t in inventory_repo.list_titles()] == ["Alpha", "Bravo", "Charlie"]

        page = inventory_repo.list_titles(PaginationParams(page=2, page_size=2))
        assert isinstance(page, PaginatedResponse)
        assert [t.name for t in page.items] == ["Charlie"]
        assert page.total == 3
        assert page.total_pages == 2
        assert page.has_previous
        assert not page.has_next

    def test_find_by_name_and_author(self, inventory_repo, stored_title):
        inventory_repo.add(
            Title(
                isbn="9780596007973",
                name="Python Cookbook",
                author="David Beazley",
                total_copies=1,
                available_copies=1,
            )
        )
        inventory_repo.add(
            Title(isbn="9780061120084", name="Mockingbird", total_copies=1, available_copies=1)
        )

        assert [t.name for t in inventory_repo.find_by_name("python")] == [
            "Effective Python",
            "Python Cookbook",
        ]
        assert [t.name for t in inventory_repo.find_by_author("SLATKIN")] == ["Effective Python"]
        assert inventory_repo.find_by_author("Nobody") == []

    def test_find_by_name_paginated(self, inventory_repo):
        for n in range(3):
            inventory_repo.add(
                Title(
                    isbn=f"978000000000{n}",
                    name=f"Volume {n}",
                    total_copies=1,
                    available_copies=1,
                )
            )

        page = inventory_repo.find_by_name("volume", PaginationParams(page=1, page_size=2))

        assert page.total == 3
        assert [t.name for t in page.items] == ["Volume 0", "Volume 1"]
        assert page.has_next

    def test_database_errors_become_storage_errors(self, inventory_repo, db_manager):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with (
            patch("sqlalchemy.orm.Session.get", side_effect=error),
            pytest.raises(StorageError),
        ):
            inventory_repo.get_by_title_id(1)


class TestLedgerRepository:
    def test_create_assigns_id(self, ledger_repo, stored_title):
        record = ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))

        assert record.id is not None
        assert ledger_repo.get_by_id(record.id) == record

    def test_create_rejects_persisted_record(self, ledger_repo, stored_title):
        record = ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))

        with pytest.raises(StorageError):
            ledger_repo.create(record)

    def test_second_open_record_rejected(self, ledger_repo, stored_title):
        ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))

        with pytest.raises(DuplicateError):
            ledger_repo.create(LoanRecord.open(stored_title.id, 7, START + timedelta(hours=1), 14))

    def test_find_open_record(self, ledger_repo, stored_title):
        closed = ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))
        ledger_repo.update(closed.closed(START + timedelta(days=1)))
        current = ledger_repo.create(
            LoanRecord.open(stored_title.id, 7, START + timedelta(days=2), 14)
        )

        assert ledger_repo.find_open_record(stored_title.id, 7) == current
        assert ledger_repo.find_open_record(stored_title.id, 8) is None

    def test_update_closes_record(self, ledger_repo, stored_title):
        record = ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))

        ledger_repo.update(record.closed(START + timedelta(days=5)))

        stored = ledger_repo.get_by_id(record.id)
        assert stored.returned_at == START + timedelta(days=5)
        assert ledger_repo.find_open_record(stored_title.id, 7) is None

    def test_update_missing_record(self, ledger_repo):
        record = LoanRecord(
            id=404,
            title_id=1,
            borrower_id=7,
            borrowed_at=START,
            due_at=START + timedelta(days=14),
        )
        with pytest.raises(NotFoundError):
            ledger_repo.update(record)

    def test_history_newest_first(self, ledger_repo, stored_title):
        for day in range(3):
            record = ledger_repo.create(
                LoanRecord.open(stored_title.id, 7, START + timedelta(days=day * 20), 14)
            )
            ledger_repo.update(record.closed(START + timedelta(days=day * 20 + 1)))

        history = ledger_repo.history_for_borrower(7)
        assert [r.borrowed_at for r in history] == sorted(
            (r.borrowed_at for r in history), reverse=True
        )

        page = ledger_repo.history_for_title(stored_title.id, PaginationParams(page_size=2))
        assert page.total == 3
        assert len(page.items) == 2
        assert page.has_next

    def test_open_for_borrower_sorted_by_due(self, ledger_repo, inventory_repo, stored_title):
        other = inventory_repo.add(
            Title(isbn="9780061120084", name="Other", total_copies=1, available_copies=1)
        )
        later = ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 21))
        sooner = ledger_repo.create(LoanRecord.open(other.id, 7, START, 7))

        assert ledger_repo.open_for_borrower(7) == [sooner, later]

    def test_count_open_for_title(self, ledger_repo, stored_title):
        ledger_repo.create(LoanRecord.open(stored_title.id, 7, START, 14))
        ledger_repo.create(LoanRecord.open(stored_title.id, 8, START, 14))

        assert ledger_repo.count_open_for_title(stored_title.id) == 2
        assert ledger_repo.count_open_for_title(999) == 0

    def test_invalid_pagination(self, ledger_repo):
        with pytest.raises(ValueError):
            ledger_repo.history_for_borrower(7, PaginationParams(page=0))


class TestAuditRepository:
    def test_append_and_read(self, audit_repo):
        stored = audit_repo.append(
            AuditEvent(occurred_at=START, actor_id=7, kind=AuditEventKind.BOOK_BORROW, detail="x")
        )

        assert stored.id is not None
        assert audit_repo.list_events() == [stored]
        assert audit_repo.events_for_actor(7) == [stored]
        assert audit_repo.events_of_kind(AuditEventKind.BOOK_RETURN) == []

    def test_paginated_events(self, audit_repo):
        for minute in range(5):
            audit_repo.append(
                AuditEvent(
                    occurred_at=START + timedelta(minutes=minute),
                    kind=AuditEventKind.SYSTEM_ERROR,
                    detail=f"event {minute}",
                )
            )

        page = audit_repo.list_events(PaginationParams(page=1, page_size=2))
        assert page.total == 5
        assert [e.detail for e in page.items] == ["event 4", "event 3"]
