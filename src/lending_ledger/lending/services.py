"""Wiring of stores, audit sink, locks, coordinator and catalog service."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from ..config import LedgerConfig, get_config
from ..database.audit_repository import SqlAuditRepository
from ..database.inventory_repository import SqlInventoryRepository
from ..database.ledger_repository import SqlLedgerRepository
from ..database.session import DatabaseManager, get_db_manager
from .audit_sink import AuditSink
from .catalog import CatalogService
from .concurrency import TitleLockRegistry
from .coordinator import BorrowerDirectory, LendingCoordinator

logger = logging.getLogger(__name__)


@dataclass
class LendingServices:
    """Everything built on one database, sharing one lock registry and audit sink."""

    db_manager: DatabaseManager
    inventory: SqlInventoryRepository
    ledger: SqlLedgerRepository
    audit: AuditSink
    locks: TitleLockRegistry
    coordinator: LendingCoordinator
    catalog: CatalogService

    def close(self) -> None:
        self.audit.close()


def build_services(
    db_manager: DatabaseManager | None = None,
    config: LedgerConfig | None = None,
    *,
    clock: Callable[[], datetime] = datetime.now,
    borrower_directory: BorrowerDirectory | None = None,
) -> LendingServices:
    """Build the lending services over ``db_manager`` (the global manager by default)."""
    config = config or get_config()
    db_manager = db_manager or get_db_manager()

    inventory = SqlInventoryRepository(db_manager)
    ledger = SqlLedgerRepository(db_manager)
    audit = AuditSink(SqlAuditRepository(db_manager), queue_size=config.audit_queue_size)
    locks = TitleLockRegistry(config.lock_timeout_seconds)

    return LendingServices(
        db_manager=db_manager,
        inventory=inventory,
        ledger=ledger,
        audit=audit,
        locks=locks,
        coordinator=LendingCoordinator(
            inventory,
            ledger,
            audit,
            config=config,
            lock_registry=locks,
            clock=clock,
            borrower_directory=borrower_directory,
        ),
        catalog=CatalogService(inventory, audit, locks, clock=clock),
    )


class _ServicesStore:
    """Internal storage for the services singleton."""

    instance: LendingServices | None = None


def get_services() -> LendingServices:
    """Get the process-wide lending services, building them on first use."""
    if _ServicesStore.instance is None:
        _ServicesStore.instance = build_services()
        logger.info("Lending services initialized")
    return _ServicesStore.instance


def reset_services() -> None:
    """Close and forget the process-wide services (useful for testing)."""
    if _ServicesStore.instance is not None:
        _ServicesStore.instance.close()
    _ServicesStore.instance = None
