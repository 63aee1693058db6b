"""
Lending Ledger Package.

This package keeps three dependent records consistent while a book copy
moves between "available" and "on loan": the inventory counter, the
borrowing ledger, and the audit log.

Key Components:
- models: Pydantic models for titles, loans, audit events and results
- database: SQLAlchemy schema, session management and the three stores
- lending: the coordinator, catalog service, per-title locks and audit sink
- config: Configuration management with pydantic-settings
- tools: MCP tools adapting callers to the coordinator
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
