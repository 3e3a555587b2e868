from __future__ import annotations

from datetime import timedelta

import pytest
from sqlmodel import Session, select

from app.models import AuditEvent
from app.services.audit import SessionAuditService, query_events, record_event
from app.services.audit_policy import ensure_status_metadata, make_patient_reference, sanitize_metadata
from app.services.ports import AuditEntry

from conftest import FIXED_NOW, FixedClock


def test_status_metadata_uses_patient_reference() -> None:
    metadata = ensure_status_metadata(
        patient_id=7,
        previous_status="PENDING_DOCTOR_CONFIRMATION",
        new_status="CONFIRMED",
    )

    assert metadata == {
        "patient_ref": make_patient_reference(7),
        "previous_status": "PENDING_DOCTOR_CONFIRMATION",
        "new_status": "CONFIRMED",
    }


def test_policy_rejects_unapproved_metadata_key() -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("Appointment", "CONFIRM", {"unexpected": "value"})


def test_policy_rejects_contact_details_in_values() -> None:
    with pytest.raises(ValueError):
        sanitize_metadata("Appointment", "REJECT", {"reason_category": "mail maria@example.com"})


def test_policy_allows_action_specific_keys() -> None:
    sanitized = sanitize_metadata("TheaterBooking", "EXPIRE", {"released_count": 2, "auto": True})

    assert sanitized == {"released_count": 2, "auto": True}


def test_record_event_rejects_bad_metadata_before_insert(db_session: Session) -> None:
    with pytest.raises(ValueError):
        record_event(
            db_session,
            actor_id=None,
            action="VIEW",
            resource_type="Appointment",
            resource_id="1",
            metadata={"email": "x"},
        )

    assert db_session.exec(select(AuditEvent)).all() == []


def test_session_audit_service_commits_with_request_context(db_session: Session) -> None:
    service = SessionAuditService(
        db_session,
        clock=FixedClock(),
        context={"ip": "10.0.0.1", "role": "doctor"},
    )

    service.record_event(
        AuditEntry(
            user_id=None,
            record_id="5",
            action="CONFIRM",
            model="Appointment",
            metadata={"patient_ref": make_patient_reference(1)},
            context={"request_path": "/api/v1/appointments/5/confirm"},
        )
    )
    db_session.expire_all()

    stored = db_session.exec(select(AuditEvent)).one()
    assert stored.action == "CONFIRM"
    assert stored.resource_id == "5"
    assert stored.context == {
        "ip": "10.0.0.1",
        "role": "doctor",
        "request_path": "/api/v1/appointments/5/confirm",
    }
    assert stored.metadata_json == {"patient_ref": "patient:1"}
    assert stored.timestamp.replace(tzinfo=None) == FIXED_NOW.replace(tzinfo=None)


def test_query_events_filters_and_orders_newest_first(db_session: Session) -> None:
    for offset, action in enumerate(["VIEW", "CONFIRM", "VIEW"]):
        record_event(
            db_session,
            actor_id=None,
            action=action,
            resource_type="Appointment",
            resource_id=str(offset),
            timestamp=FIXED_NOW + timedelta(minutes=offset),
        )
    db_session.commit()

    items, total = query_events(db_session, action="VIEW")
    items = list(items)

    assert total == 2
    assert [item.resource_id for item in items] == ["2", "0"]

    items, total = query_events(db_session, from_ts=FIXED_NOW + timedelta(minutes=1), page_size=1)
    assert total == 2
    assert len(list(items)) == 1
