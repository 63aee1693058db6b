"""
Lending Ledger Models.

Pydantic models for the records the lending coordinator keeps consistent:

- Title: catalog entry with total and available copy counts
- LoanRecord: one borrow-to-return lifecycle in the ledger
- AuditEvent: one immutable entry in the audit log
- LendingSuccess / LendingFailure: tagged outcome of borrow and return
"""

from .audit import AuditEvent, AuditEventKind, AuditSeverity
from .loan import LoanRecord
from .results import ErrorKind, FailureReason, LendingFailure, LendingResult, LendingSuccess
from .title import Title, normalize_isbn

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "AuditSeverity",
    "ErrorKind",
    "FailureReason",
    "LendingFailure",
    "LendingResult",
    "LendingSuccess",
    "LoanRecord",
    "Title",
    "normalize_isbn",
]
