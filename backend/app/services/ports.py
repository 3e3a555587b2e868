"""Collaborator interfaces consumed by the workflow use cases.

Use cases depend on these protocols only, so tests can hand them in-memory
fakes while the API wires in the SQLModel-backed adapters.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from app.domain import Appointment


@dataclass(frozen=True)
class PatientRecord:
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "Patient"


@dataclass(frozen=True)
class UserRecord:
    id: int
    username: str
    display_name: str
    role: Optional[str] = None
    email: Optional[str] = None
    patient_id: Optional[int] = None


@dataclass(frozen=True)
class AuditEntry:
    user_id: Optional[int]
    record_id: Optional[str]
    action: str
    model: str
    details: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)


class AppointmentRepository(Protocol):
    def find_by_id(self, appointment_id: int) -> Optional[Appointment]:
        ...

    def find_by_patient(self, patient_id: int) -> List[Appointment]:
        ...

    def add(self, appointment: Appointment) -> Appointment:
        ...

    def update(self, appointment: Appointment) -> Appointment:
        ...


class PatientRepository(Protocol):
    def find_by_id(self, patient_id: int) -> Optional[PatientRecord]:
        ...


class UserRepository(Protocol):
    def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        ...


class NotificationService(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> Any:
        ...


class AuditService(Protocol):
    def record_event(self, entry: AuditEntry) -> Any:
        ...


class TimeService(Protocol):
    def now(self) -> datetime:
        ...
