"""Context managers for tracing lending operations."""

from contextlib import contextmanager

import logfire


@contextmanager
def trace_lending_operation(operation: str, title_id: int, borrower_id: int | None = None):
    """Span around one coordinator or catalog operation.

    Callers record the outcome with ``span.set_attribute("lending.outcome", ...)``.
    """
    with logfire.span(
        "lending.{operation}",
        operation=operation,
        lending_title_id=title_id,
        lending_borrower_id=borrower_id,
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_attribute("lending.error", str(e))
            raise
