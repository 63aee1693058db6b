"""Custom metrics for the Lending Ledger."""

import logfire

lending_events = logfire.metric_counter(
    "library.lending.events", description="Borrow and return outcomes by kind"
)

audit_dropped = logfire.metric_counter(
    "library.audit.dropped", description="Audit events that reached only the fallback log"
)


def record_lending_outcome(operation: str, outcome: str, reason: str | None = None):
    """Record one borrow or return outcome."""
    lending_events.add(1, {"operation": operation, "outcome": outcome, "reason": reason or ""})


def record_audit_drop(kind: str, cause: str):
    """Record an audit event that could not be persisted."""
    audit_dropped.add(1, {"kind": kind, "cause": cause})
