from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, func, select

from app.models import AuditEvent
from app.models.base import utcnow
from app.services.audit_policy import sanitize_metadata
from app.services.ports import AuditEntry, TimeService

logger = structlog.get_logger(__name__)


def record_event(
    session: Session,
    *,
    actor_id: Optional[int],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    details: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditEvent:
    event = AuditEvent(
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        metadata_json=sanitize_metadata(resource_type, action, metadata),
        context=context or {},
        timestamp=timestamp or utcnow(),
    )
    session.add(event)
    return event


class SessionAuditService:
    """Append-only audit log on top of the request session.

    Each entry is committed on its own so that it never shares a transaction
    with the state change it describes.
    """

    def __init__(
        self,
        session: Session,
        *,
        clock: Optional[TimeService] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.session = session
        self.clock = clock
        self.context = dict(context or {})

    def record_event(self, entry: AuditEntry) -> AuditEvent:
        context = {**self.context, **entry.context}
        try:
            event = record_event(
                self.session,
                actor_id=entry.user_id,
                action=entry.action,
                resource_type=entry.model,
                resource_id=entry.record_id,
                details=entry.details,
                metadata=entry.metadata,
                context=context,
                timestamp=self.clock.now() if self.clock else None,
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.debug("audit_recorded", action=entry.action, model=entry.model, record_id=entry.record_id)
        return event


def query_events(
    session: Session,
    *,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    actor_id: Optional[int] = None,
    action: Optional[str] = None,
    from_ts: Optional[datetime] = None,
    to_ts: Optional[datetime] = None,
    page: int = 1,
    page_size: int = 25,
) -> Tuple[Iterable[AuditEvent], int]:
    statement = select(AuditEvent)
    count_stmt = select(func.count()).select_from(AuditEvent)

    def apply_filters(stmt):
        if resource_type:
            stmt = stmt.where(AuditEvent.resource_type == resource_type)
        if resource_id:
            stmt = stmt.where(AuditEvent.resource_id == resource_id)
        if actor_id:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        if action:
            stmt = stmt.where(AuditEvent.action == action)
        if from_ts:
            stmt = stmt.where(AuditEvent.timestamp >= from_ts)
        if to_ts:
            stmt = stmt.where(AuditEvent.timestamp <= to_ts)
        return stmt

    statement = apply_filters(statement).order_by(AuditEvent.timestamp.desc(), AuditEvent.id.desc())
    count_stmt = apply_filters(count_stmt)

    total = session.exec(count_stmt).one()
    items = session.exec(
        statement.offset((page - 1) * page_size).limit(page_size)
    ).all()
    return items, total
