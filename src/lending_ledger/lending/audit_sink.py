"""
Non-blocking audit sink.

``AuditSink.append`` only puts the event on a bounded queue; a daemon worker
thread writes queued events through the audit repository. Nothing that goes
wrong on that path (full queue, closed sink, database error) reaches the
caller: the event is written in full to the ``lending_ledger.audit`` logger
instead and ``append`` returns False.
"""

import logging
import queue
import threading
import time

from ..database.audit_repository import SqlAuditRepository
from ..models.audit import AuditEvent, AuditEventKind
from ..observability.metrics import record_audit_drop

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("lending_ledger.audit")

_STOP = object()


class AuditSink:
    """Fire-and-forget audit log in front of ``SqlAuditRepository``."""

    def __init__(self, repository: SqlAuditRepository, queue_size: int = 1000):
        self.repository = repository
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._pending = 0
        self._idle = threading.Condition()
        self._closed = False
        self._worker = threading.Thread(
            target=self._run, name="lending-ledger-audit", daemon=True
        )
        self._worker.start()

    def append(self, event: AuditEvent) -> bool:
        """
        Queue ``event`` for persistence.

        Returns:
            True if queued, False if the event only reached the fallback log
        """
        # close() flips _closed under the same lock, so nothing lands behind _STOP
        with self._idle:
            if self._closed:
                cause = "sink closed"
            else:
                try:
                    self._queue.put_nowait(event)
                except queue.Full:
                    cause = "queue full"
                else:
                    self._pending += 1
                    return True
        self._fallback(event, cause)
        return False

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            try:
                self.repository.append(item)
            except Exception as e:  # noqa: BLE001
                self._fallback(item, f"write failed: {e}")
            finally:
                self._done()

    def _done(self) -> None:
        with self._idle:
            self._pending -= 1
            if self._pending == 0:
                self._idle.notify_all()

    @staticmethod
    def _fallback(event: AuditEvent, cause: str) -> None:
        fallback_logger.error(
            "Audit event not persisted (%s): %s", cause, event.model_dump_json()
        )
        record_audit_drop(event.kind.value, cause.split(":", 1)[0])

    def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until every queued event has been written or dropped.

        Returns:
            True if the queue drained within ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def close(self, timeout: float = 5.0) -> None:
        """Drain the queue and stop the worker; later appends go to the fallback log."""
        with self._idle:
            if self._closed:
                return
            self._closed = True
        self.flush(timeout)
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Audit queue still full at shutdown; worker left running")
            return
        self._worker.join(timeout)
        if self._worker.is_alive():
            logger.warning("Audit worker did not stop within %.1fs", timeout)

    # Reads go straight to the repository; call flush() first to see recent appends.

    def list_events(self, pagination=None):
        return self.repository.list_events(pagination)

    def events_for_actor(self, actor_id: int, pagination=None):
        return self.repository.events_for_actor(actor_id, pagination)

    def events_of_kind(self, kind: AuditEventKind, pagination=None):
        return self.repository.events_of_kind(kind, pagination)
