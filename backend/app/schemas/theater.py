from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.domain import TheaterBookingStatus


class LockSlotRequest(BaseModel):
    case_id: int
    theater_id: int
    start_time: datetime
    end_time: datetime


class LockResult(BaseModel):
    booking_id: int
    lock_expires_at: datetime


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = None


class TheaterBookingRead(BaseModel):
    id: int
    theater_id: int
    case_id: int
    start_time: datetime
    end_time: datetime
    status: TheaterBookingStatus
    locked_by: Optional[int] = None
    lock_expires_at: Optional[datetime] = None
    confirmed_by: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
