from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel


class SubmitConsultationRequest(BaseModel):
    patient_id: int
    doctor_id: Optional[int] = None
    concern_description: Optional[str] = None
    preferred_date: Optional[date] = None
    preferred_time: Optional[str] = None
    appointment_type: str = "consultation"
    notes: Optional[str] = None


ReviewAction = Literal["start_review", "approve", "needs_more_info", "reject"]


class ReviewConsultationRequest(BaseModel):
    action: ReviewAction
    proposed_date: Optional[date] = None
    proposed_time: Optional[str] = None
    review_notes: Optional[str] = None


class ReviewConsultationDto(ReviewConsultationRequest):
    appointment_id: int


class ResubmitConsultationRequest(BaseModel):
    additional_info: Optional[str] = None


class ResubmitConsultationDto(ResubmitConsultationRequest):
    appointment_id: int
    patient_id: int


class ConfirmConsultationDto(BaseModel):
    appointment_id: int
    patient_id: int
