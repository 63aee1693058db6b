"""
Audit store: the durable half of the audit sink.

The repository only knows how to insert and read rows. Callers in the
lending path never use it directly; they go through ``AuditSink``, which
writes on a background thread and never lets a failure here reach them.
"""

import logging

from sqlalchemy import desc, select

from ..models.audit import AuditEvent, AuditEventKind
from .repository import PaginatedResponse, PaginationParams, paginate
from .schema import AuditEventRow
from .session import DatabaseManager, safe_commit, safe_query

logger = logging.getLogger(__name__)


class SqlAuditRepository:
    """SQLAlchemy-backed audit log, append-only."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    def _to_model(row: AuditEventRow) -> AuditEvent:
        return AuditEvent.model_validate(row, from_attributes=True)

    def append(self, event: AuditEvent) -> AuditEvent:
        """
        Insert one event.

        Returns:
            The stored event with its generated id

        Raises:
            StorageError: On database errors
        """
        with self.db_manager.session_scope() as session:
            row = AuditEventRow(**event.model_dump(exclude={"id"}))
            session.add(row)
            safe_commit(session, f"append {event.kind.value} audit event")
            return self._to_model(row)

    def _read(self, where, pagination: PaginationParams | None, error_msg: str):
        query = select(AuditEventRow).order_by(
            desc(AuditEventRow.occurred_at), desc(AuditEventRow.id)
        )
        if where is not None:
            query = query.where(where)

        with self.db_manager.session_scope() as session:
            if pagination:
                return paginate(session, query, pagination, AuditEvent, error_msg)
            rows = safe_query(session, lambda s: s.execute(query).scalars().all(), error_msg)
            return [self._to_model(row) for row in rows]

    def list_events(
        self, pagination: PaginationParams | None = None
    ) -> list[AuditEvent] | PaginatedResponse[AuditEvent]:
        """All events, newest first."""
        return self._read(None, pagination, "Failed to list audit events")

    def events_for_actor(
        self, actor_id: int, pagination: PaginationParams | None = None
    ) -> list[AuditEvent] | PaginatedResponse[AuditEvent]:
        """Events caused by one actor, newest first."""
        return self._read(
            AuditEventRow.actor_id == actor_id,
            pagination,
            f"Failed to get audit events for actor {actor_id}",
        )

    def events_of_kind(
        self, kind: AuditEventKind, pagination: PaginationParams | None = None
    ) -> list[AuditEvent] | PaginatedResponse[AuditEvent]:
        """Events of one kind, newest first."""
        return self._read(
            AuditEventRow.kind == kind,
            pagination,
            f"Failed to get {kind.value} audit events",
        )
