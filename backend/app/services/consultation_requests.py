"""Consultation request workflow layered on top of an appointment.

A patient submits a request, the front desk reviews it (possibly asking for
more information), an approved request gets a proposed slot and the patient
finally confirms it. Every status change is checked against the consultation
request adjacency table before it is applied.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import structlog

from app.domain import (
    Appointment,
    AppointmentStatus,
    ConsultationRequestStatus,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationFailure,
    ensure_max_length,
    is_valid_consultation_request_transition,
    validate_slot_time,
)
from app.domain.statuses import is_terminal
from app.domain.value_objects import MAX_APPOINTMENT_TYPE_LENGTH
from app.schemas.appointment import AppointmentResponse
from app.schemas.consultation import (
    ConfirmConsultationDto,
    ResubmitConsultationDto,
    ReviewConsultationDto,
    SubmitConsultationRequest,
)
from app.services.appointment_workflow import (
    load_appointment,
    record_best_effort,
    require_collaborators,
    send_best_effort,
)
from app.services.audit_policy import ensure_status_metadata
from app.services.notifications import (
    compose_consultation_confirmed,
    compose_consultation_received,
    compose_consultation_review,
)
from app.services.ports import (
    AppointmentRepository,
    AuditEntry,
    AuditService,
    NotificationService,
    PatientRecord,
    PatientRepository,
    TimeService,
    UserRecord,
    UserRepository,
)

logger = structlog.get_logger(__name__)

REVIEWER_ROLES = frozenset({"frontdesk", "admin"})
DEFAULT_REQUEST_TIME = "09:00"


class _ConsultationUseCase:
    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        users: UserRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
    ) -> None:
        require_collaborators(
            appointments=appointments,
            patients=patients,
            users=users,
            notifications=notifications,
            audit=audit,
            clock=clock,
        )
        self.appointments = appointments
        self.patients = patients
        self.users = users
        self.notifications = notifications
        self.audit = audit
        self.clock = clock

    def _require_patient(self, patient_id: int) -> PatientRecord:
        patient = self.patients.find_by_id(patient_id)
        if patient is None:
            raise NotFound("Patient", patient_id, {"patient_id": patient_id})
        return patient

    def _require_user(self, user_id: int) -> UserRecord:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise NotFound("User", user_id, {"user_id": user_id})
        return user

    def _audit(
        self,
        *,
        user_id: int,
        appointment: Appointment,
        action: str,
        details: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        record_best_effort(
            self.audit,
            AuditEntry(
                user_id=user_id,
                record_id=str(appointment.id),
                action=action,
                model="ConsultationRequest",
                details=details,
                metadata=metadata or {},
            ),
        )


class SubmitConsultationRequestUseCase(_ConsultationUseCase):
    def execute(self, dto: SubmitConsultationRequest, user_id: int) -> AppointmentResponse:
        patient = self._require_patient(dto.patient_id)
        concern = (dto.concern_description or "").strip()
        if not concern:
            raise ValidationFailure(
                "Concern description is required for consultation requests",
                field="concern_description",
                context={"patient_id": dto.patient_id},
            )

        user = self._require_user(user_id)
        if user.role == "patient" and user.patient_id != dto.patient_id:
            raise PermissionDenied(
                "Patients can only submit consultation requests for themselves",
                {"patient_id": dto.patient_id, "user_id": user_id},
            )
        if dto.doctor_id is None:
            raise ValidationFailure(
                "Doctor ID is required for consultation request. Please select a doctor or service provider.",
                field="doctor_id",
            )
        if not is_valid_consultation_request_transition(None, ConsultationRequestStatus.SUBMITTED):
            raise InvalidStateTransition(
                "Invalid consultation request status transition",
                current_state=None,
                attempted_action="submit",
            )

        now = self.clock.now()
        draft = Appointment(
            patient_id=dto.patient_id,
            doctor_id=dto.doctor_id,
            appointment_date=dto.preferred_date or now.date(),
            time=validate_slot_time(dto.preferred_time or DEFAULT_REQUEST_TIME, "preferred_time"),
            status=AppointmentStatus.PENDING,
            type=ensure_max_length(dto.appointment_type.strip(), MAX_APPOINTMENT_TYPE_LENGTH, "appointment_type"),
            reason=concern,
            note=(dto.notes or "").strip() or None,
            consultation_request_status=ConsultationRequestStatus.SUBMITTED,
            status_changed_at=now,
            status_changed_by=user_id,
            created_at=now,
            updated_at=now,
        )
        saved = self.appointments.add(draft)
        logger.info("consultation_request_submitted", appointment_id=saved.id, patient_id=saved.patient_id)

        subject, body = compose_consultation_received(saved)
        sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="CREATE",
            details=f"Consultation request submitted for patient {patient.display_name}",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                new_status=ConsultationRequestStatus.SUBMITTED.value,
                extra={"notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)


class ReviewConsultationRequestUseCase(_ConsultationUseCase):
    """Front desk review: start, approve, ask for more info or reject."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        users: UserRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
        *,
        clinic_timezone: str = "UTC",
    ) -> None:
        super().__init__(appointments, patients, users, notifications, audit, clock)
        self.clinic_timezone = ZoneInfo(clinic_timezone)

    def execute(self, dto: ReviewConsultationDto, user_id: int) -> AppointmentResponse:
        reviewer = self._require_user(user_id)
        if reviewer.role not in REVIEWER_ROLES:
            raise PermissionDenied(
                "Only Frontdesk staff can review consultation requests",
                {"user_id": user_id, "role": reviewer.role},
            )
        appointment = load_appointment(self.appointments, dto.appointment_id)
        notes = (dto.review_notes or "").strip() or None
        now = self.clock.now()

        if dto.action == "approve":
            proposed_date, proposed_time = self._validate_proposal(dto, today=now.astimezone(self.clinic_timezone).date())
            updated = appointment.with_consultation_status(
                ConsultationRequestStatus.APPROVED, at=now, reviewed_by=user_id, review_notes=notes
            )
            updated = updated.with_proposed_slot(appointment_date=proposed_date, time=proposed_time, at=now)
            updated = updated.with_consultation_status(ConsultationRequestStatus.SCHEDULED, at=now)
        elif dto.action == "needs_more_info":
            if notes is None:
                raise ValidationFailure(
                    "Review notes are required when requesting more information",
                    field="review_notes",
                    context={"appointment_id": appointment.id, "action": dto.action},
                )
            updated = appointment.with_consultation_status(
                ConsultationRequestStatus.NEEDS_MORE_INFO, at=now, reviewed_by=user_id, review_notes=notes
            )
        elif dto.action == "reject":
            updated = appointment.with_consultation_status(
                ConsultationRequestStatus.REJECTED, at=now, reviewed_by=user_id, review_notes=notes
            ).cancel(at=now, by=user_id)
        else:
            updated = appointment.with_consultation_status(
                ConsultationRequestStatus.PENDING_REVIEW, at=now, reviewed_by=user_id, review_notes=notes
            )

        saved = self.appointments.update(updated)
        logger.info(
            "consultation_request_reviewed",
            appointment_id=saved.id,
            review_action=dto.action,
            consultation_status=saved.consultation_request_status.value,
        )

        sent = False
        if dto.action != "start_review":
            patient = self.patients.find_by_id(saved.patient_id)
            subject, body = compose_consultation_review(saved, review_action=dto.action, review_notes=notes)
            sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        details = f"Frontdesk reviewed consultation request: {dto.action}."
        if notes:
            details += f" Notes: {notes}"
        self._audit(
            user_id=user_id,
            appointment=saved,
            action="UPDATE",
            details=details,
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=_status_value(appointment.consultation_request_status),
                new_status=_status_value(saved.consultation_request_status),
                extra={"review_action": dto.action, "notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)

    def _validate_proposal(self, dto: ReviewConsultationDto, *, today: date) -> tuple[date, str]:
        if dto.proposed_date is None or not dto.proposed_time:
            raise ValidationFailure(
                "Proposed date and time are required when approving a consultation request",
                field="proposed_date",
                context={"appointment_id": dto.appointment_id, "action": dto.action},
            )
        if dto.proposed_date < today:
            raise ValidationFailure(
                "Proposed appointment date cannot be in the past",
                field="proposed_date",
                context={"appointment_id": dto.appointment_id, "proposed_date": dto.proposed_date.isoformat()},
            )
        return dto.proposed_date, validate_slot_time(dto.proposed_time, "proposed_time")


class ResubmitConsultationRequestUseCase(_ConsultationUseCase):
    def execute(self, dto: ResubmitConsultationDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        _ensure_owner(appointment, dto.patient_id)
        info = (dto.additional_info or "").strip()
        if not info:
            raise ValidationFailure("Additional information is required to resubmit", field="additional_info")

        now = self.clock.now()
        updated = appointment.with_consultation_status(ConsultationRequestStatus.SUBMITTED, at=now)
        note = f"{appointment.note}\n\n{info}" if appointment.note else info
        saved = self.appointments.update(updated.model_copy(update={"note": note}))
        logger.info("consultation_request_resubmitted", appointment_id=saved.id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="UPDATE",
            details="Patient provided additional information for consultation request",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=_status_value(appointment.consultation_request_status),
                new_status=_status_value(saved.consultation_request_status),
            ),
        )
        return AppointmentResponse.from_entity(saved)


class ConfirmConsultationUseCase(_ConsultationUseCase):
    """Patient confirms the slot proposed for their consultation request."""

    def execute(self, dto: ConfirmConsultationDto, user_id: int) -> AppointmentResponse:
        patient = self._require_patient(dto.patient_id)
        appointment = load_appointment(self.appointments, dto.appointment_id)
        _ensure_owner(appointment, dto.patient_id)

        if is_terminal(appointment.status):
            raise InvalidStateTransition(
                f"Cannot confirm a {appointment.status.value.lower()} appointment",
                current_state=appointment.status,
                attempted_action="confirm_consultation",
                context={"appointment_id": appointment.id},
            )
        if not is_valid_consultation_request_transition(
            appointment.consultation_request_status, ConsultationRequestStatus.CONFIRMED
        ):
            raise InvalidStateTransition(
                "Invalid consultation request status transition. Consultation must be scheduled before confirmation.",
                current_state=appointment.consultation_request_status,
                attempted_action="confirm_consultation",
                context={"appointment_id": appointment.id},
            )

        now = self.clock.now()
        updated = appointment.with_consultation_status(ConsultationRequestStatus.CONFIRMED, at=now)
        if updated.status == AppointmentStatus.PENDING:
            updated = updated.confirm_by_patient(at=now, by=user_id)
        saved = self.appointments.update(updated)
        logger.info("consultation_confirmed", appointment_id=saved.id, patient_id=patient.id)

        subject, body = compose_consultation_confirmed(saved)
        sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="UPDATE",
            details=f"Patient {patient.display_name} confirmed consultation appointment",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=_status_value(appointment.consultation_request_status),
                new_status=_status_value(saved.consultation_request_status),
                extra={"notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)


def _ensure_owner(appointment: Appointment, patient_id: int) -> None:
    if appointment.patient_id != patient_id:
        raise PermissionDenied(
            "Appointment does not belong to this patient",
            {"appointment_id": appointment.id, "patient_id": patient_id},
        )


def _status_value(status: Optional[ConsultationRequestStatus]) -> Optional[str]:
    return status.value if status else None
