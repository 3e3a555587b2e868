from __future__ import annotations

import csv
import io
import json
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlmodel import Session

from app.api.deps import AuthenticatedUser, get_db, require_roles
from app.domain import NotFound, ValidationFailure
from app.models import AuditEvent
from app.schemas import ApiResponse, AuditEventRead, Pagination
from app.services import audit

router = APIRouter(prefix="/audit", tags=["audit"])

CSV_COLUMNS = ["id", "timestamp", "actor_id", "action", "resource_type", "resource_id", "details", "metadata"]


def _as_csv(events: list[AuditEventRead]) -> Response:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)
    for event in events:
        writer.writerow(
            [
                event.id,
                event.timestamp.isoformat(),
                event.actor_id,
                event.action,
                event.resource_type,
                event.resource_id,
                event.details or "",
                json.dumps(event.metadata, ensure_ascii=False),
            ]
        )
    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=audit-events.csv"},
    )


@router.get("/events", response_model=ApiResponse[Pagination[AuditEventRead]])
def list_audit_events(
    page: int = 1,
    page_size: int = 25,
    resource_type: str | None = None,
    resource_id: str | None = None,
    actor_id: int | None = None,
    action: str | None = None,
    from_ts: datetime | None = None,
    to_ts: datetime | None = None,
    format: str | None = None,
    session: Session = Depends(get_db),
    _: AuthenticatedUser = Depends(require_roles("admin")),
):
    if page < 1:
        raise ValidationFailure("page must be at least 1", field="page")
    effective_page_size = max(1, min(page_size, 100))

    items, total = audit.query_events(
        session,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        action=action.upper() if action else None,
        from_ts=from_ts,
        to_ts=to_ts,
        page=page,
        page_size=effective_page_size,
    )
    events = [AuditEventRead.model_validate(item) for item in items]

    if format is not None:
        if format.lower() != "csv":
            raise ValidationFailure("Unsupported format. Available options: csv", field="format")
        return _as_csv(events)

    return ApiResponse(
        data=Pagination[AuditEventRead](items=events, page=page, page_size=effective_page_size, total=total)
    )


@router.get("/events/{audit_id}", response_model=ApiResponse[AuditEventRead])
def get_audit_event(
    audit_id: int,
    session: Session = Depends(get_db),
    _: AuthenticatedUser = Depends(require_roles("admin")),
) -> ApiResponse[AuditEventRead]:
    event = session.get(AuditEvent, audit_id)
    if not event:
        raise NotFound("AuditEvent", audit_id)
    return ApiResponse(data=AuditEventRead.model_validate(event))
