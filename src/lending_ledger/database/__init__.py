"""
Database package for the Lending Ledger.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- The three stores the lending coordinator keeps consistent:
  inventory, ledger and audit
"""

from .audit_repository import SqlAuditRepository
from .exceptions import (
    ConcurrentModificationError,
    DuplicateError,
    InvariantViolationError,
    NotFoundError,
    RepositoryException,
    StorageError,
)
from .inventory_repository import InventoryStore, SqlInventoryRepository
from .ledger_repository import LedgerStore, SqlLedgerRepository
from .repository import PaginatedResponse, PaginationParams
from .schema import AuditEventRow, Base, LoanRecordRow, TitleRow
from .session import (
    DatabaseManager,
    get_db_manager,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)

__all__ = [
    "AuditEventRow",
    "Base",
    "ConcurrentModificationError",
    "DatabaseManager",
    "DuplicateError",
    "InvariantViolationError",
    "InventoryStore",
    "LedgerStore",
    "LoanRecordRow",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "SqlAuditRepository",
    "SqlInventoryRepository",
    "SqlLedgerRepository",
    "StorageError",
    "TitleRow",
    "get_db_manager",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
