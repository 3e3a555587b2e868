from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import DateTime, Text
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, utcnow


class Appointment(TimestampMixin, SQLModel, table=True):
    __tablename__ = "appointments"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    doctor_id: int = Field(foreign_key="users.id", index=True)
    appointment_date: date = Field(index=True)
    time: str = Field(max_length=5)
    status: str = Field(default="PENDING", max_length=32, index=True)
    type: str = Field(default="consultation", max_length=50)
    note: Optional[str] = Field(default=None, sa_type=Text)
    reason: Optional[str] = Field(default=None, sa_type=Text)

    status_changed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    status_changed_by: Optional[int] = Field(default=None, foreign_key="users.id")

    checked_in_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    checked_in_by: Optional[int] = Field(default=None, foreign_key="users.id")
    late_by_minutes: Optional[int] = Field(default=None)

    no_show: bool = Field(default=False)
    no_show_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    no_show_reason: Optional[str] = Field(default=None, max_length=255)
    no_show_notes: Optional[str] = Field(default=None, sa_type=Text)

    doctor_confirmed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    doctor_confirmed_by: Optional[int] = Field(default=None, foreign_key="users.id")
    doctor_rejection_reason: Optional[str] = Field(default=None, sa_type=Text)
    doctor_rejection_category: Optional[str] = Field(default=None, max_length=32)

    consultation_request_status: Optional[str] = Field(default=None, max_length=32, index=True)
    reviewed_by: Optional[int] = Field(default=None, foreign_key="users.id")
    reviewed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    review_notes: Optional[str] = Field(default=None, sa_type=Text)


class AppointmentStatusHistory(TimestampMixin, SQLModel, table=True):
    __tablename__ = "appointment_status_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    status: str = Field(max_length=32)
    consultation_request_status: Optional[str] = Field(default=None, max_length=32)
    changed_by: Optional[int] = Field(default=None, foreign_key="users.id")
    changed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    note: Optional[str] = Field(default=None, max_length=255)
