from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from app.domain.consultation_workflow import is_valid_consultation_request_transition
from app.domain.exceptions import InvalidStateTransition, ValidationFailure
from app.domain.statuses import (
    AppointmentEvent,
    AppointmentStatus,
    ConsultationRequestStatus,
    RejectionReason,
)
from app.domain.transitions import transition
from app.domain.value_objects import AppointmentRejection, CheckInInfo, DoctorConfirmation, NoShowInfo


class Appointment(BaseModel):
    """Immutable appointment aggregate.

    Every behaviour method returns a new ``Appointment``; the original value is
    never modified. Status changes go through ``app.domain.transitions`` so the
    transition table is the single source of truth.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    patient_id: int
    doctor_id: int
    appointment_date: date
    time: str
    status: AppointmentStatus
    type: str
    note: Optional[str] = None
    reason: Optional[str] = None

    status_changed_at: Optional[datetime] = None
    status_changed_by: Optional[int] = None

    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[int] = None
    late_by_minutes: Optional[int] = None

    no_show: bool = False
    no_show_at: Optional[datetime] = None
    no_show_reason: Optional[str] = None
    no_show_notes: Optional[str] = None

    doctor_confirmed_at: Optional[datetime] = None
    doctor_confirmed_by: Optional[int] = None
    doctor_rejection_reason: Optional[str] = None
    doctor_rejection_category: Optional[RejectionReason] = None

    consultation_request_status: Optional[ConsultationRequestStatus] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Appointment":
        if self.checked_in_at is not None and self.no_show:
            raise ValidationFailure(
                "Appointment cannot be both checked in and marked as no-show",
                context={"appointment_id": self.id},
            )
        if self.doctor_confirmed_at is not None and self.doctor_rejection_reason is not None:
            raise ValidationFailure(
                "Appointment cannot have both confirmation and rejection",
                context={"appointment_id": self.id},
            )
        if not self.time.strip():
            raise ValidationFailure("Appointment time cannot be empty", field="time")
        return self

    @property
    def is_consultation_request(self) -> bool:
        return self.consultation_request_status is not None

    def scheduled_start(self) -> datetime:
        hours, _, minutes = self.time.partition(":")
        try:
            return datetime.combine(self.appointment_date, datetime.min.time()).replace(
                hour=int(hours), minute=int(minutes or 0)
            )
        except ValueError as exc:
            raise ValidationFailure(
                f"Appointment time '{self.time}' is not in HH:MM format",
                field="time",
                context={"appointment_id": self.id},
            ) from exc

    def _apply(
        self,
        event: AppointmentEvent,
        *,
        at: datetime,
        by: Optional[int],
        action: str,
        **changes: Any,
    ) -> "Appointment":
        result = transition(self.status, event)
        if not result.is_valid:
            raise InvalidStateTransition(
                result.reason or "Invalid state transition",
                current_state=self.status,
                attempted_action=action,
                context={"appointment_id": self.id},
            )
        update = {
            "status": result.next_state,
            "status_changed_at": at,
            "status_changed_by": by,
            "updated_at": at,
        }
        update.update(changes)
        return self.model_copy(update=update)

    def confirm_with_doctor(self, confirmation: DoctorConfirmation) -> "Appointment":
        if self.doctor_rejection_reason is not None:
            raise InvalidStateTransition(
                "Cannot confirm a rejected appointment",
                current_state=self.status,
                attempted_action="confirm",
                context={"appointment_id": self.id},
            )
        return self._apply(
            AppointmentEvent.DOCTOR_CONFIRMATION,
            at=confirmation.confirmed_at,
            by=confirmation.confirmed_by,
            action="confirm",
            doctor_confirmed_at=confirmation.confirmed_at,
            doctor_confirmed_by=confirmation.confirmed_by,
        )

    def reject_by_doctor(self, rejection: AppointmentRejection) -> "Appointment":
        if self.doctor_confirmed_at is not None:
            raise InvalidStateTransition(
                "Cannot reject an appointment the doctor already confirmed",
                current_state=self.status,
                attempted_action="reject",
                context={"appointment_id": self.id},
            )
        return self._apply(
            AppointmentEvent.DOCTOR_REJECTION,
            at=rejection.rejected_at,
            by=rejection.rejected_by,
            action="reject",
            doctor_rejection_reason=rejection.reason_details,
            doctor_rejection_category=rejection.reason_category,
        )

    def check_in(self, info: CheckInInfo) -> "Appointment":
        if self.no_show:
            raise InvalidStateTransition(
                "Cannot check in a no-show appointment",
                current_state=self.status,
                attempted_action="check_in",
                context={"appointment_id": self.id},
            )
        if self.checked_in_at is not None:
            raise InvalidStateTransition(
                "Patient is already checked in",
                current_state=self.status,
                attempted_action="check_in",
                context={"appointment_id": self.id, "checked_in_at": self.checked_in_at.isoformat()},
            )
        return self._apply(
            AppointmentEvent.CHECK_IN,
            at=info.checked_in_at,
            by=info.checked_in_by,
            action="check_in",
            checked_in_at=info.checked_in_at,
            checked_in_by=info.checked_in_by,
            late_by_minutes=info.late_by_minutes,
        )

    def mark_no_show(self, info: NoShowInfo) -> "Appointment":
        if self.checked_in_at is not None:
            raise InvalidStateTransition(
                "Cannot mark appointment as no-show: patient has already checked in",
                current_state=self.status,
                attempted_action="no_show",
                context={"appointment_id": self.id},
            )
        return self._apply(
            AppointmentEvent.NO_SHOW,
            at=info.recorded_at,
            by=info.recorded_by,
            action="no_show",
            no_show=True,
            no_show_at=info.recorded_at,
            no_show_reason=info.reason,
            no_show_notes=info.notes,
        )

    def confirm_by_patient(self, *, at: datetime, by: Optional[int]) -> "Appointment":
        return self._apply(AppointmentEvent.PATIENT_CONFIRMATION, at=at, by=by, action="patient_confirm")

    def mark_ready(self, *, at: datetime, by: Optional[int]) -> "Appointment":
        return self._apply(AppointmentEvent.MARK_READY, at=at, by=by, action="mark_ready")

    def start_consultation(self, *, at: datetime, by: Optional[int], notes: Optional[str] = None) -> "Appointment":
        changes: dict = {}
        if notes:
            entry = f"[Consultation started] {notes}"
            changes["note"] = f"{self.note}\n\n{entry}" if self.note else entry
        return self._apply(AppointmentEvent.START_CONSULTATION, at=at, by=by, action="start_consultation", **changes)

    def complete(self, *, at: datetime, by: Optional[int]) -> "Appointment":
        return self._apply(AppointmentEvent.COMPLETE, at=at, by=by, action="complete")

    def cancel(self, *, at: datetime, by: Optional[int]) -> "Appointment":
        return self._apply(AppointmentEvent.CANCEL, at=at, by=by, action="cancel")

    def with_consultation_status(
        self,
        target: ConsultationRequestStatus,
        *,
        at: datetime,
        reviewed_by: Optional[int] = None,
        review_notes: Optional[str] = None,
    ) -> "Appointment":
        if not is_valid_consultation_request_transition(self.consultation_request_status, target):
            current = self.consultation_request_status.value if self.consultation_request_status else None
            raise InvalidStateTransition(
                f"Invalid consultation request status transition from {current or 'NONE'} to {target.value}",
                current_state=current,
                attempted_action=f"consultation:{target.value}",
                context={"appointment_id": self.id, "from": current, "to": target.value},
            )
        update: dict = {"consultation_request_status": target, "updated_at": at}
        if reviewed_by is not None:
            update.update(reviewed_by=reviewed_by, reviewed_at=at, review_notes=review_notes)
        return self.model_copy(update=update)

    def with_proposed_slot(self, *, appointment_date: date, time: str, at: datetime) -> "Appointment":
        return self.model_copy(update={"appointment_date": appointment_date, "time": time, "updated_at": at})
