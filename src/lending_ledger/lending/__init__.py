"""
Lending package.

- coordinator: borrow and return with compensation
- catalog: add, edit and remove titles
- concurrency: per-title locks and cancellation tokens
- audit_sink: non-blocking audit log
- services: wiring of all of the above over one database
"""

from .audit_sink import AuditSink
from .catalog import CatalogService
from .concurrency import CancellationToken, LockTimeoutError, TitleLockRegistry
from .coordinator import BorrowerDirectory, LendingCoordinator
from .services import LendingServices, build_services, get_services, reset_services

__all__ = [
    "AuditSink",
    "BorrowerDirectory",
    "CancellationToken",
    "CatalogService",
    "LendingCoordinator",
    "LendingServices",
    "LockTimeoutError",
    "TitleLockRegistry",
    "build_services",
    "get_services",
    "reset_services",
]
