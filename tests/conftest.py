"""Test configuration and fixtures for the Lending Ledger.

1. Isolated test databases - each test gets its own SQLite file
2. Configuration overrides - short lock timeouts, fixed loan period
3. A controllable clock - borrow and return timestamps are predictable
4. Resource cleanup - the audit worker is stopped after every test
"""

from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from lending_ledger.config import LedgerConfig, reset_config
from lending_ledger.database.session import DatabaseManager
from lending_ledger.lending.services import LendingServices, build_services
from lending_ledger.models.audit import AuditEvent
from lending_ledger.models.title import Title
from lending_ledger.observability import initialize_observability

START = datetime(2024, 3, 1, 10, 30)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# === Session-wide Setup ===


@pytest.fixture(scope="session", autouse=True)
def quiet_observability(tmp_path_factory) -> None:
    """Configure logfire locally so spans and metrics are no-ops in tests."""
    initialize_observability(
        LedgerConfig(
            database_path=tmp_path_factory.mktemp("observability") / "unused.db",
            enable_tracing=False,
        )
    )


# === Test Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    """Provide a temporary database path for each test."""
    return tmp_path / "test_lending.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    """Provide a SQLAlchemy database URL for testing."""
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[LedgerConfig, None, None]:
    """Provide a test-specific configuration."""
    reset_config()

    config = LedgerConfig(
        server_name="test-lending-ledger",
        server_version="0.0.1-test",
        database_path=test_db_path,
        loan_period_days=14,
        lock_timeout_seconds=0.2,
        storage_timeout_seconds=5.0,
        audit_queue_size=100,
        debug=True,
        log_level="DEBUG",
    )

    yield config

    reset_config()


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    """Provide a database manager with the schema created."""
    manager = DatabaseManager(test_database_url, timeout_seconds=5.0)
    manager.init_database()
    yield manager
    manager.close()


# === Lending Fixtures ===


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def services(
    db_manager: DatabaseManager, test_config: LedgerConfig, clock: FixedClock
) -> Generator[LendingServices, None, None]:
    """Provide the full set of lending services over the test database."""
    services = build_services(db_manager, test_config, clock=clock)
    yield services
    services.close()


@pytest.fixture
def coordinator(services: LendingServices):
    return services.coordinator


@pytest.fixture
def catalog(services: LendingServices):
    return services.catalog


@pytest.fixture
def inventory(services: LendingServices):
    return services.inventory


@pytest.fixture
def ledger(services: LendingServices):
    return services.ledger


@pytest.fixture
def audit(services: LendingServices):
    return services.audit


@pytest.fixture
def title_factory(catalog):
    """Add titles with unique ISBNs."""
    counter = iter(range(1000))

    def make(total_copies: int = 2, name: str | None = None, **kwargs) -> Title:
        n = next(counter)
        return catalog.add_title(
            isbn=f"978000000{n:04d}",
            name=name or f"Test Title {n}",
            total_copies=total_copies,
            **kwargs,
        )

    return make


@pytest.fixture
def sample_title(catalog) -> Title:
    """A title with two copies, both available."""
    return catalog.add_title(
        isbn="978-0-13-468547-9",
        name="Effective Python",
        total_copies=2,
        author="Brett Slatkin",
        genre="Programming",
        publication_year=2019,
    )


@pytest.fixture
def audit_log(services: LendingServices):
    """Read all audit events once the sink has drained, newest first."""

    def read() -> list[AuditEvent]:
        assert services.audit.flush(timeout=5.0)
        return services.audit.list_events()

    return read
