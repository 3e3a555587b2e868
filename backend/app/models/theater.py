from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin


class Theater(TimestampMixin, SQLModel, table=True):
    __tablename__ = "theaters"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100, unique=True)
    location: Optional[str] = Field(default=None, max_length=255)
    is_active: bool = Field(default=True)


class SurgicalCase(TimestampMixin, SQLModel, table=True):
    __tablename__ = "surgical_cases"

    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: int = Field(foreign_key="patients.id", index=True)
    surgeon_id: Optional[int] = Field(default=None, foreign_key="users.id")
    procedure: str = Field(max_length=255)
    estimated_duration_minutes: Optional[int] = Field(default=None)
    status: str = Field(default="READY_FOR_SCHEDULING", max_length=32, index=True)


class TheaterBooking(TimestampMixin, SQLModel, table=True):
    __tablename__ = "theater_bookings"

    id: Optional[int] = Field(default=None, primary_key=True)
    theater_id: int = Field(foreign_key="theaters.id", index=True)
    case_id: int = Field(foreign_key="surgical_cases.id", index=True)
    start_time: datetime = Field(sa_type=DateTime(timezone=True))
    end_time: datetime = Field(sa_type=DateTime(timezone=True))
    status: str = Field(default="PROVISIONAL", max_length=32, index=True)
    locked_by: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    locked_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    lock_expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    confirmed_by: Optional[int] = Field(default=None, foreign_key="users.id")
    confirmed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    cancelled_reason: Optional[str] = Field(default=None, max_length=255)
