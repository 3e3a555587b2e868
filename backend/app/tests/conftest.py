from __future__ import annotations

import os
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[3]
BACKEND_ROOT = PROJECT_ROOT / "backend"

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Must be set before app.core.config is imported anywhere.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="clinicflow-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{Path(_TEST_DB_DIR) / 'clinicflow.db'}")

from sqlalchemy import text  # noqa: E402
from sqlmodel import Session  # noqa: E402

from app.domain import Appointment, NotFound  # noqa: E402
from app.services.notifications import NotificationBackend, NotificationMessage  # noqa: E402
from app.services.ports import AuditEntry, PatientRecord, UserRecord  # noqa: E402

TABLES_IN_DELETE_ORDER = [
    "audit_events",
    "appointment_status_history",
    "appointments",
    "theater_bookings",
    "surgical_cases",
    "theaters",
    "users",
    "patients",
    "roles",
]

FIXED_NOW = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingBackend(NotificationBackend):
    def __init__(self) -> None:
        self.sent: List[NotificationMessage] = []

    def send_email(self, *, to: str, subject: str, body: str) -> NotificationMessage:  # type: ignore[override]
        message = super().send_email(to=to, subject=subject, body=body)
        self.sent.append(message)
        return message

    def send_sms(self, *, to: str, body: str) -> NotificationMessage:  # type: ignore[override]
        message = super().send_sms(to=to, body=body)
        self.sent.append(message)
        return message


class InMemoryAppointmentRepository:
    def __init__(self) -> None:
        self.items: Dict[int, Appointment] = {}
        self.updates: List[Appointment] = []
        self._next_id = 1

    def put(self, appointment: Appointment) -> Appointment:
        if appointment.id is None:
            appointment = appointment.model_copy(update={"id": self._next_id})
        self._next_id = max(self._next_id, appointment.id) + 1
        self.items[appointment.id] = appointment
        return appointment

    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        return self.items.get(appointment_id)

    def find_by_patient(self, patient_id: int) -> List[Appointment]:
        return [item for item in self.items.values() if item.patient_id == patient_id]

    def add(self, appointment: Appointment) -> Appointment:
        return self.put(appointment.model_copy(update={"id": None}))

    def update(self, appointment: Appointment) -> Appointment:
        if appointment.id not in self.items:
            raise NotFound("Appointment", appointment.id)
        self.items[appointment.id] = appointment
        self.updates.append(appointment)
        return appointment


class InMemoryPatientRepository:
    def __init__(self, *patients: PatientRecord) -> None:
        self.items = {patient.id: patient for patient in patients}

    def find_by_id(self, patient_id: int) -> Optional[PatientRecord]:
        return self.items.get(patient_id)


class InMemoryUserRepository:
    def __init__(self, *users: UserRecord) -> None:
        self.items = {user.id: user for user in users}

    def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        return self.items.get(user_id)


@dataclass
class SentEmail:
    to: str
    subject: str
    body: str


class RecordingNotificationService:
    def __init__(self) -> None:
        self.sent: List[SentEmail] = []
        self.fail = False

    def send_email(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append(SentEmail(to=to, subject=subject, body=body))


class RecordingAuditService:
    def __init__(self) -> None:
        self.entries: List[AuditEntry] = []
        self.fail = False

    def record_event(self, entry: AuditEntry) -> None:
        if self.fail:
            raise RuntimeError("audit store unavailable")
        self.entries.append(entry)

    def actions(self) -> List[str]:
        return [entry.action for entry in self.entries]


PATIENT_ID = 1
OTHER_PATIENT_ID = 2
DOCTOR_ID = 10
FRONTDESK_ID = 20
PATIENT_USER_ID = 30
NURSE_ID = 40


@dataclass
class Collaborators:
    appointments: InMemoryAppointmentRepository = field(default_factory=InMemoryAppointmentRepository)
    patients: InMemoryPatientRepository = field(
        default_factory=lambda: InMemoryPatientRepository(
            PatientRecord(id=PATIENT_ID, first_name="Maria", last_name="Lopez", email="maria@example.com"),
            PatientRecord(id=OTHER_PATIENT_ID, first_name="Jon", last_name="Berg"),
        )
    )
    users: InMemoryUserRepository = field(
        default_factory=lambda: InMemoryUserRepository(
            UserRecord(id=DOCTOR_ID, username="drhouse", display_name="Dr House", role="doctor"),
            UserRecord(id=FRONTDESK_ID, username="desk", display_name="Front Desk", role="frontdesk"),
            UserRecord(
                id=PATIENT_USER_ID,
                username="maria",
                display_name="Maria Lopez",
                role="patient",
                patient_id=PATIENT_ID,
            ),
            UserRecord(id=NURSE_ID, username="nurse", display_name="Nurse Joy", role="nurse"),
        )
    )
    notifications: RecordingNotificationService = field(default_factory=RecordingNotificationService)
    audit: RecordingAuditService = field(default_factory=RecordingAuditService)
    clock: FixedClock = field(default_factory=FixedClock)

    patient_id: int = PATIENT_ID
    other_patient_id: int = OTHER_PATIENT_ID
    doctor_id: int = DOCTOR_ID
    frontdesk_id: int = FRONTDESK_ID
    patient_user_id: int = PATIENT_USER_ID
    nurse_id: int = NURSE_ID


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def collaborators() -> Collaborators:
    return Collaborators()


def reset_database() -> None:
    from app.db.session import engine, init_db

    init_db()
    with Session(engine) as session:
        for table in TABLES_IN_DELETE_ORDER:
            session.exec(text(f"DELETE FROM {table}"))
        session.commit()


@pytest.fixture
def db_session() -> Iterator[Session]:
    from app.db.session import engine

    reset_database()
    with Session(engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def recording_backend() -> Iterator[RecordingBackend]:
    from app.services.notifications import reset_notification_backend, set_notification_backend

    backend = RecordingBackend()
    set_notification_backend(backend)
    yield backend
    reset_notification_backend()
