from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from app.domain import (
    Appointment,
    AppointmentStatus,
    ConsultationRequestStatus,
    NotFound,
    RejectionReason,
)
from app.models import Appointment as AppointmentRow
from app.models import AppointmentStatusHistory, Patient, Role, User
from app.models.base import utcnow
from app.services.clock import as_utc
from app.services.ports import PatientRecord, UserRecord

_DATETIME_FIELDS = (
    "status_changed_at",
    "checked_in_at",
    "no_show_at",
    "doctor_confirmed_at",
    "reviewed_at",
    "created_at",
    "updated_at",
)

# Managed by the database, never written from the entity.
_READ_ONLY_FIELDS = {"id", "created_at", "updated_at"}


def appointment_to_entity(row: AppointmentRow) -> Appointment:
    data: Dict[str, Any] = row.model_dump()
    for name in _DATETIME_FIELDS:
        data[name] = as_utc(data.get(name))
    data["status"] = AppointmentStatus(row.status)
    data["consultation_request_status"] = (
        ConsultationRequestStatus(row.consultation_request_status) if row.consultation_request_status else None
    )
    data["doctor_rejection_category"] = (
        RejectionReason(row.doctor_rejection_category) if row.doctor_rejection_category else None
    )
    return Appointment(**data)


def _column_values(entity: Appointment) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for key, value in entity.model_dump(exclude=_READ_ONLY_FIELDS).items():
        values[key] = value.value if isinstance(value, Enum) else value
    return values


def _extract_contact_value(contact_info: dict, key: str) -> Optional[str]:
    raw_value = contact_info.get(key) if isinstance(contact_info, dict) else None
    if isinstance(raw_value, str):
        stripped = raw_value.strip()
        return stripped or None
    return None


class SqlAppointmentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        row = self.session.get(AppointmentRow, appointment_id)
        return appointment_to_entity(row) if row else None

    def find_by_patient(self, patient_id: int) -> List[Appointment]:
        rows = self.session.exec(
            select(AppointmentRow)
            .where(AppointmentRow.patient_id == patient_id)
            .order_by(AppointmentRow.appointment_date.desc(), AppointmentRow.time.desc())
        ).all()
        return [appointment_to_entity(row) for row in rows]

    def add(self, appointment: Appointment) -> Appointment:
        row = AppointmentRow(**_column_values(appointment))
        self.session.add(row)
        self.session.flush()
        self._add_status_history(row, actor_id=appointment.status_changed_by, note="Created")
        self.session.commit()
        self.session.refresh(row)
        return appointment_to_entity(row)

    def update(self, appointment: Appointment) -> Appointment:
        if appointment.id is None:
            raise ValueError("Cannot update an appointment that has not been stored")
        row = self.session.get(AppointmentRow, appointment.id)
        if row is None:
            raise NotFound("Appointment", appointment.id)

        previous = (row.status, row.consultation_request_status)
        for key, value in _column_values(appointment).items():
            setattr(row, key, value)
        self.session.add(row)
        if (row.status, row.consultation_request_status) != previous:
            self._add_status_history(row, actor_id=appointment.status_changed_by or appointment.reviewed_by)
        self.session.commit()
        self.session.refresh(row)
        return appointment_to_entity(row)

    def status_history(self, appointment_id: int) -> List[AppointmentStatusHistory]:
        return list(
            self.session.exec(
                select(AppointmentStatusHistory)
                .where(AppointmentStatusHistory.appointment_id == appointment_id)
                .order_by(AppointmentStatusHistory.changed_at.desc(), AppointmentStatusHistory.id.desc())
            ).all()
        )

    def _add_status_history(
        self,
        row: AppointmentRow,
        *,
        actor_id: Optional[int],
        note: Optional[str] = None,
    ) -> None:
        self.session.add(
            AppointmentStatusHistory(
                appointment_id=row.id,
                status=row.status,
                consultation_request_status=row.consultation_request_status,
                changed_by=actor_id,
                changed_at=as_utc(row.status_changed_at) or utcnow(),
                note=note,
            )
        )


class SqlPatientRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, patient_id: int) -> Optional[PatientRecord]:
        patient = self.session.get(Patient, patient_id)
        if patient is None:
            return None
        contact_info = patient.contact_info or {}
        return PatientRecord(
            id=patient.id,
            first_name=patient.first_name,
            last_name=patient.last_name,
            email=_extract_contact_value(contact_info, "email"),
            phone=_extract_contact_value(contact_info, "phone"),
        )


class SqlUserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        user = self.session.get(User, user_id)
        if user is None:
            return None
        role = self.session.get(Role, user.role_id) if user.role_id else None
        return UserRecord(
            id=user.id,
            username=user.username,
            display_name=user.display_name,
            role=role.code if role else None,
            email=user.email,
            patient_id=user.patient_id,
        )
