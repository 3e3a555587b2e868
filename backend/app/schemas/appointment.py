from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from app.domain import (
    Appointment,
    AppointmentStatus,
    ConsultationRequestStatus,
    RejectionReason,
)
from app.domain.statuses import consultation_status_label, describe_status


class AppointmentStatusRead(BaseModel):
    status: str
    consultation_request_status: Optional[str] = None
    changed_at: datetime
    changed_by: Optional[int]
    note: Optional[str] = None


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    appointment_date: date
    time: str
    status: AppointmentStatus
    status_label: str
    type: str
    note: Optional[str] = None
    reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    late_by_minutes: Optional[int] = None
    no_show: bool = False
    no_show_reason: Optional[str] = None
    doctor_confirmed_at: Optional[datetime] = None
    doctor_confirmed_by: Optional[int] = None
    doctor_rejection_reason: Optional[str] = None
    doctor_rejection_category: Optional[RejectionReason] = None
    consultation_request_status: Optional[ConsultationRequestStatus] = None
    consultation_request_label: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    status_history: List[AppointmentStatusRead] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, appointment: Appointment) -> "AppointmentResponse":
        data = appointment.model_dump(
            exclude={"status_changed_at", "status_changed_by", "checked_in_by", "no_show_at", "no_show_notes",
                     "created_at", "updated_at"}
        )
        return cls(
            **data,
            status_label=describe_status(appointment.status),
            consultation_request_label=(
                consultation_status_label(appointment.consultation_request_status)
                if appointment.is_consultation_request
                else None
            ),
        )


class ConfirmAppointmentRequest(BaseModel):
    action: Literal["confirm", "reject"] = "confirm"
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None


class ConfirmAppointmentDto(ConfirmAppointmentRequest):
    appointment_id: int


class RejectAppointmentRequest(BaseModel):
    reason: Optional[str] = None
    reason_category: RejectionReason = RejectionReason.OTHER
    notes: Optional[str] = None


class RejectAppointmentDto(RejectAppointmentRequest):
    appointment_id: int


class CheckInDto(BaseModel):
    appointment_id: int


class MarkNoShowRequest(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None


class MarkNoShowDto(MarkNoShowRequest):
    appointment_id: int


class CompleteAppointmentDto(BaseModel):
    appointment_id: int


class MarkReadyDto(BaseModel):
    appointment_id: int


class StartConsultationRequest(BaseModel):
    notes: Optional[str] = None


class StartConsultationDto(StartConsultationRequest):
    appointment_id: int
