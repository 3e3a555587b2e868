"""Doctor and front desk actions on a single appointment.

Every use case follows the same sequence: load the appointment, validate the
request and the state transition, apply the change to the immutable entity,
persist it and only then notify and audit. Notification and audit failures are
logged and never undo a change that has already been stored.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import structlog

from app.domain import (
    Appointment,
    AppointmentRejection,
    CheckInInfo,
    DoctorConfirmation,
    InvalidStateTransition,
    NoShowInfo,
    NotFound,
    PermissionDenied,
    RejectionReason,
    ensure_max_length,
)
from app.domain.transitions import (
    TransitionResult,
    on_check_in,
    on_completion,
    on_doctor_confirmation,
    on_doctor_rejection,
    on_mark_ready,
    on_no_show,
    on_start_consultation,
)
from app.domain.value_objects import MAX_NOTES_LENGTH, MAX_REASON_LENGTH
from app.schemas.appointment import (
    AppointmentResponse,
    CheckInDto,
    CompleteAppointmentDto,
    ConfirmAppointmentDto,
    MarkNoShowDto,
    MarkReadyDto,
    RejectAppointmentDto,
    StartConsultationDto,
)
from app.services.audit_policy import ensure_status_metadata
from app.services.notifications import (
    compose_doctor_confirmation,
    compose_doctor_rejection,
    compose_no_show,
)
from app.services.ports import (
    AppointmentRepository,
    AuditEntry,
    AuditService,
    NotificationService,
    PatientRecord,
    PatientRepository,
    TimeService,
)

logger = structlog.get_logger(__name__)

QUICK_REJECTION_MAX_LENGTH = 500


def require_collaborators(**collaborators: Any) -> None:
    for name, value in collaborators.items():
        if value is None:
            raise ValueError(f"{name} is required")


def send_best_effort(
    notifications: NotificationService,
    patient: Optional[PatientRecord],
    subject: str,
    body: str,
    **log_context: Any,
) -> bool:
    if patient is None or not patient.email:
        logger.info("notification_skipped", reason="no_email", **log_context)
        return False
    try:
        notifications.send_email(patient.email, subject, body)
    except Exception as exc:  # noqa: BLE001
        logger.warning("notification_failed", error=str(exc), patient_id=patient.id, **log_context)
        return False
    return True


def record_best_effort(audit: AuditService, entry: AuditEntry) -> None:
    try:
        audit.record_event(entry)
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "audit_failed",
            error=str(exc),
            action=entry.action,
            model=entry.model,
            record_id=entry.record_id,
        )


def load_appointment(appointments: AppointmentRepository, appointment_id: int) -> Appointment:
    appointment = appointments.find_by_id(appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id, {"appointment_id": appointment_id})
    return appointment


def ensure_transition(
    result: TransitionResult,
    appointment: Appointment,
    action: str,
) -> None:
    if not result.is_valid:
        raise InvalidStateTransition(
            result.reason or "Invalid state transition",
            current_state=appointment.status,
            attempted_action=action,
            context={"appointment_id": appointment.id},
        )


class _AppointmentUseCase:
    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
    ) -> None:
        require_collaborators(
            appointments=appointments,
            patients=patients,
            notifications=notifications,
            audit=audit,
            clock=clock,
        )
        self.appointments = appointments
        self.patients = patients
        self.notifications = notifications
        self.audit = audit
        self.clock = clock

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
                model="Appointment",
                details=details,
                metadata=metadata or {},
            ),
        )


class ConfirmAppointmentUseCase(_AppointmentUseCase):
    """Doctor confirms (or quickly rejects) an appointment awaiting their decision."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
        *,
        notes_max_length: int = MAX_NOTES_LENGTH,
        rejection_max_length: int = QUICK_REJECTION_MAX_LENGTH,
    ) -> None:
        super().__init__(appointments, patients, notifications, audit, clock)
        self.notes_max_length = notes_max_length
        self.rejection_max_length = rejection_max_length

    def execute(self, dto: ConfirmAppointmentDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        now = self.clock.now()

        if dto.action == "confirm":
            confirmation = DoctorConfirmation.create(
                confirmed_at=now,
                confirmed_by=user_id,
                notes=dto.notes,
                max_length=self.notes_max_length,
            )
            ensure_transition(on_doctor_confirmation(appointment.status), appointment, "confirm")
            patient = self._load_patient(appointment)
            updated = appointment.confirm_with_doctor(confirmation)
        else:
            rejection = AppointmentRejection.create(
                rejected_at=now,
                rejected_by=user_id,
                reason_details=dto.rejection_reason,
                reason_category=RejectionReason.OTHER,
                notes=dto.notes,
                max_length=self.rejection_max_length,
            )
            ensure_transition(on_doctor_rejection(appointment.status), appointment, "reject")
            patient = self._load_patient(appointment)
            updated = appointment.reject_by_doctor(rejection)

        saved = self.appointments.update(updated)
        logger.info(
            "appointment_doctor_decision",
            appointment_id=saved.id,
            action=dto.action,
            status=saved.status.value,
            doctor_id=user_id,
        )

        if dto.action == "confirm":
            subject, body = compose_doctor_confirmation(saved, confirmation.notes)
            details = f"Doctor confirmed appointment for patient {patient.display_name}"
            if confirmation.notes:
                details += f" with notes: {confirmation.notes}"
        else:
            subject, body = compose_doctor_rejection(saved, rejection.reason_details)
            details = (
                f"Doctor rejected appointment for patient {patient.display_name}. "
                f"Reason: {rejection.reason_details}"
            )
        sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="CONFIRM" if dto.action == "confirm" else "REJECT",
            details=details,
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
                extra={"notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)

    def _load_patient(self, appointment: Appointment) -> PatientRecord:
        patient = self.patients.find_by_id(appointment.patient_id)
        if patient is None:
            raise NotFound("Patient", appointment.patient_id, {"appointment_id": appointment.id})
        return patient


class RejectAppointmentUseCase(_AppointmentUseCase):
    """Doctor rejects an appointment with a categorised reason."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
        *,
        reason_max_length: int = MAX_REASON_LENGTH,
    ) -> None:
        super().__init__(appointments, patients, notifications, audit, clock)
        self.reason_max_length = reason_max_length

    def execute(self, dto: RejectAppointmentDto, doctor_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        rejection = AppointmentRejection.create(
            rejected_at=self.clock.now(),
            rejected_by=doctor_id,
            reason_details=dto.reason,
            reason_category=dto.reason_category,
            notes=dto.notes,
            max_length=self.reason_max_length,
        )
        ensure_transition(on_doctor_rejection(appointment.status), appointment, "reject")

        saved = self.appointments.update(appointment.reject_by_doctor(rejection))
        logger.info(
            "appointment_rejected",
            appointment_id=saved.id,
            doctor_id=doctor_id,
            category=rejection.reason_category.value,
        )

        patient = self.patients.find_by_id(saved.patient_id)
        subject, body = compose_doctor_rejection(saved, rejection.reason_details)
        sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        self._audit(
            user_id=doctor_id,
            appointment=saved,
            action="REJECT",
            details=f"Doctor rejected appointment. Reason: {rejection.full_reason}",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
                extra={"reason_category": rejection.reason_category.value, "notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)


class CheckInPatientUseCase(_AppointmentUseCase):
    def __init__(
        self,
        appointments: AppointmentRepository,
        patients: PatientRepository,
        notifications: NotificationService,
        audit: AuditService,
        clock: TimeService,
        *,
        clinic_timezone: str = "UTC",
    ) -> None:
        super().__init__(appointments, patients, notifications, audit, clock)
        self.clinic_timezone = ZoneInfo(clinic_timezone)

    def execute(self, dto: CheckInDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)

        if appointment.checked_in_at is not None:
            self._audit(
                user_id=user_id,
                appointment=appointment,
                action="VIEW",
                details=f"Patient check-in attempted for appointment {appointment.id} (already checked in).",
            )
            return AppointmentResponse.from_entity(appointment)

        ensure_transition(on_check_in(appointment.status), appointment, "check_in")
        now = self.clock.now()
        info = CheckInInfo(
            checked_in_at=now,
            checked_in_by=user_id,
            late_by_minutes=self._late_by_minutes(appointment, now),
        )
        saved = self.appointments.update(appointment.check_in(info))
        logger.info(
            "patient_checked_in",
            appointment_id=saved.id,
            late_by_minutes=info.late_by_minutes,
        )

        details = f"Patient checked in for appointment {saved.id}"
        if info.is_late:
            details += f" ({info.late_by_minutes} minutes late)"
        self._audit(
            user_id=user_id,
            appointment=saved,
            action="CHECK_IN",
            details=details,
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
                extra={"late_by_minutes": info.late_by_minutes},
            ),
        )
        return AppointmentResponse.from_entity(saved)

    def _late_by_minutes(self, appointment: Appointment, now: datetime) -> Optional[int]:
        scheduled = appointment.scheduled_start().replace(tzinfo=self.clinic_timezone)
        if now <= scheduled:
            return None
        return int((now - scheduled).total_seconds() // 60)


class MarkNoShowUseCase(_AppointmentUseCase):
    def execute(self, dto: MarkNoShowDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        info = NoShowInfo.create(
            recorded_at=self.clock.now(),
            recorded_by=user_id,
            reason=dto.reason,
            notes=dto.notes,
        )
        if appointment.no_show:
            raise InvalidStateTransition(
                "Appointment is already marked as no-show",
                current_state=appointment.status,
                attempted_action="no_show",
                context={"appointment_id": appointment.id},
            )
        ensure_transition(on_no_show(appointment.status), appointment, "no_show")

        saved = self.appointments.update(appointment.mark_no_show(info))
        logger.info("appointment_no_show", appointment_id=saved.id, recorded_by=user_id)

        patient = self.patients.find_by_id(saved.patient_id)
        subject, body = compose_no_show(saved)
        sent = send_best_effort(self.notifications, patient, subject, body, appointment_id=saved.id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="NO_SHOW",
            details=f"Appointment marked as no-show. Reason: {info.reason}",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
                extra={"notification_sent": sent},
            ),
        )
        return AppointmentResponse.from_entity(saved)


class MarkReadyUseCase(_AppointmentUseCase):
    """Nurse hands a checked-in patient over to the doctor's queue."""

    def execute(self, dto: MarkReadyDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        ensure_transition(on_mark_ready(appointment.status), appointment, "mark_ready")

        saved = self.appointments.update(appointment.mark_ready(at=self.clock.now(), by=user_id))
        logger.info("appointment_ready_for_consultation", appointment_id=saved.id, marked_by=user_id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="UPDATE",
            details=f"Patient ready for consultation for appointment {saved.id}",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
            ),
        )
        return AppointmentResponse.from_entity(saved)


class StartConsultationUseCase(_AppointmentUseCase):
    """Assigned doctor starts the consultation; optional notes are appended to the appointment note."""

    def execute(self, dto: StartConsultationDto, user_id: int, *, is_admin: bool = False) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        if not is_admin and appointment.doctor_id != user_id:
            raise PermissionDenied(
                f"Doctor {user_id} is not assigned to appointment {appointment.id}",
                {"appointment_id": appointment.id, "assigned_doctor_id": appointment.doctor_id},
            )
        ensure_transition(on_start_consultation(appointment.status), appointment, "start_consultation")
        notes = ensure_max_length((dto.notes or "").strip() or None, MAX_NOTES_LENGTH, "notes")

        saved = self.appointments.update(
            appointment.start_consultation(at=self.clock.now(), by=user_id, notes=notes)
        )
        logger.info("consultation_started", appointment_id=saved.id, doctor_id=user_id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="UPDATE",
            details=f"Consultation started for appointment {saved.id} by doctor {user_id}",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
            ),
        )
        return AppointmentResponse.from_entity(saved)


class CompleteAppointmentUseCase(_AppointmentUseCase):
    def execute(self, dto: CompleteAppointmentDto, user_id: int) -> AppointmentResponse:
        appointment = load_appointment(self.appointments, dto.appointment_id)
        ensure_transition(on_completion(appointment.status), appointment, "complete")

        saved = self.appointments.update(appointment.complete(at=self.clock.now(), by=user_id))
        logger.info("appointment_completed", appointment_id=saved.id, completed_by=user_id)

        self._audit(
            user_id=user_id,
            appointment=saved,
            action="COMPLETE",
            details=f"Appointment {saved.id} completed",
            metadata=ensure_status_metadata(
                patient_id=saved.patient_id,
                previous_status=appointment.status.value,
                new_status=saved.status.value,
            ),
        )
        return AppointmentResponse.from_entity(saved)
