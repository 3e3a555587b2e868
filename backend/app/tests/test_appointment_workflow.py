from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.domain import (
    Appointment,
    AppointmentStatus,
    DomainException,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    RejectionReason,
    ValidationFailure,
)
from app.schemas import (
    CheckInDto,
    CompleteAppointmentDto,
    ConfirmAppointmentDto,
    MarkNoShowDto,
    MarkReadyDto,
    RejectAppointmentDto,
    StartConsultationDto,
)
from app.services.appointment_workflow import (
    CheckInPatientUseCase,
    CompleteAppointmentUseCase,
    ConfirmAppointmentUseCase,
    MarkNoShowUseCase,
    MarkReadyUseCase,
    RejectAppointmentUseCase,
    StartConsultationUseCase,
)


def _seed(collaborators, status: AppointmentStatus = AppointmentStatus.PENDING_DOCTOR_CONFIRMATION, **overrides):
    values = dict(
        patient_id=collaborators.patient_id,
        doctor_id=collaborators.doctor_id,
        appointment_date=date(2024, 3, 1),
        time="09:30",
        status=status,
        type="consultation",
    )
    values.update(overrides)
    return collaborators.appointments.put(Appointment(**values))


def _use_case(cls, collaborators, **kwargs):
    return cls(
        collaborators.appointments,
        collaborators.patients,
        collaborators.notifications,
        collaborators.audit,
        collaborators.clock,
        **kwargs,
    )


def test_doctor_confirms_pending_appointment(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    result = use_case.execute(
        ConfirmAppointmentDto(appointment_id=appointment.id, action="confirm", notes="ok"),
        collaborators.doctor_id,
    )

    assert result.status == AppointmentStatus.SCHEDULED
    assert result.doctor_confirmed_by == collaborators.doctor_id
    assert result.doctor_confirmed_at == collaborators.clock.now()
    assert collaborators.appointments.find_by_id(appointment.id).status == AppointmentStatus.SCHEDULED

    assert collaborators.audit.actions() == ["CONFIRM"]
    entry = collaborators.audit.entries[0]
    assert entry.model == "Appointment"
    assert entry.record_id == str(appointment.id)
    assert entry.metadata["previous_status"] == "PENDING_DOCTOR_CONFIRMATION"
    assert entry.metadata["new_status"] == "SCHEDULED"
    assert "with notes: ok" in entry.details

    assert len(collaborators.notifications.sent) == 1
    email = collaborators.notifications.sent[0]
    assert email.to == "maria@example.com"
    assert email.subject == "Appointment Confirmed"
    assert "Notes: ok" in email.body


def test_confirm_outside_pending_state_has_no_side_effects(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    with pytest.raises(DomainException) as excinfo:
        use_case.execute(ConfirmAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert isinstance(excinfo.value, InvalidStateTransition)
    assert excinfo.value.context["current_state"] == "SCHEDULED"
    assert excinfo.value.context["attempted_action"] == "confirm"
    assert collaborators.appointments.updates == []
    assert collaborators.notifications.sent == []
    assert collaborators.audit.entries == []


def test_confirm_missing_appointment(collaborators) -> None:
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    with pytest.raises(NotFound):
        use_case.execute(ConfirmAppointmentDto(appointment_id=999), collaborators.doctor_id)


def test_confirm_with_unknown_patient_is_not_persisted(collaborators) -> None:
    appointment = _seed(collaborators, patient_id=404)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    with pytest.raises(NotFound):
        use_case.execute(ConfirmAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert collaborators.appointments.updates == []


def test_notification_failure_does_not_undo_confirmation(collaborators) -> None:
    appointment = _seed(collaborators)
    collaborators.notifications.fail = True
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    result = use_case.execute(ConfirmAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert result.status == AppointmentStatus.SCHEDULED
    assert collaborators.audit.entries[0].metadata["notification_sent"] is False


def test_audit_failure_does_not_undo_confirmation(collaborators) -> None:
    appointment = _seed(collaborators)
    collaborators.audit.fail = True
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    result = use_case.execute(ConfirmAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert result.status == AppointmentStatus.SCHEDULED
    assert len(collaborators.notifications.sent) == 1


def test_patient_without_email_is_not_notified(collaborators) -> None:
    appointment = _seed(collaborators, patient_id=collaborators.other_patient_id)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    use_case.execute(ConfirmAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert collaborators.notifications.sent == []
    assert collaborators.audit.actions() == ["CONFIRM"]


def test_quick_reject_through_confirm_endpoint(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    result = use_case.execute(
        ConfirmAppointmentDto(appointment_id=appointment.id, action="reject", rejection_reason="Fully booked"),
        collaborators.doctor_id,
    )

    assert result.status == AppointmentStatus.CANCELLED
    assert result.doctor_rejection_category == RejectionReason.OTHER
    assert collaborators.audit.actions() == ["REJECT"]
    assert collaborators.notifications.sent[0].subject == "Appointment Status Update"


def test_quick_reject_reason_is_capped_at_500(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    with pytest.raises(ValidationFailure):
        use_case.execute(
            ConfirmAppointmentDto(appointment_id=appointment.id, action="reject", rejection_reason="x" * 501),
            collaborators.doctor_id,
        )


def test_confirmation_notes_cap(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(ConfirmAppointmentUseCase, collaborators)

    with pytest.raises(ValidationFailure):
        use_case.execute(
            ConfirmAppointmentDto(appointment_id=appointment.id, notes="x" * 1001),
            collaborators.doctor_id,
        )


def test_reject_records_category(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(RejectAppointmentUseCase, collaborators)

    result = use_case.execute(
        RejectAppointmentDto(
            appointment_id=appointment.id,
            reason="On call in surgery",
            reason_category=RejectionReason.DOCTOR_UNAVAILABLE,
        ),
        collaborators.doctor_id,
    )

    assert result.status == AppointmentStatus.CANCELLED
    assert result.doctor_rejection_reason == "On call in surgery"
    entry = collaborators.audit.entries[0]
    assert entry.action == "REJECT"
    assert entry.metadata["reason_category"] == "DOCTOR_UNAVAILABLE"
    assert "DOCTOR_UNAVAILABLE: On call in surgery" in entry.details


@pytest.mark.parametrize("status", list(AppointmentStatus))
@pytest.mark.parametrize("reason", ["", "   "])
def test_blank_rejection_reason_always_fails_validation(collaborators, status, reason) -> None:
    appointment = _seed(collaborators, status=status)
    use_case = _use_case(RejectAppointmentUseCase, collaborators)

    with pytest.raises(ValidationFailure):
        use_case.execute(RejectAppointmentDto(appointment_id=appointment.id, reason=reason), collaborators.doctor_id)

    assert collaborators.appointments.updates == []


def test_rejection_reason_cap(collaborators) -> None:
    appointment = _seed(collaborators)
    use_case = _use_case(RejectAppointmentUseCase, collaborators, reason_max_length=1000)

    with pytest.raises(ValidationFailure):
        use_case.execute(
            RejectAppointmentDto(appointment_id=appointment.id, reason="x" * 1001),
            collaborators.doctor_id,
        )


def test_use_case_requires_collaborators(collaborators) -> None:
    with pytest.raises(ValueError):
        ConfirmAppointmentUseCase(
            collaborators.appointments,
            collaborators.patients,
            None,
            collaborators.audit,
            collaborators.clock,
        )


def test_check_in_records_lateness(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED, time="09:30")
    collaborators.clock.current = datetime(2024, 3, 1, 9, 47, tzinfo=timezone.utc)
    use_case = _use_case(CheckInPatientUseCase, collaborators)

    result = use_case.execute(CheckInDto(appointment_id=appointment.id), collaborators.nurse_id)

    assert result.status == AppointmentStatus.CHECKED_IN
    assert result.late_by_minutes == 17
    entry = collaborators.audit.entries[0]
    assert entry.action == "CHECK_IN"
    assert "(17 minutes late)" in entry.details


def test_check_in_on_time_has_no_lateness(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED, time="11:00")
    use_case = _use_case(CheckInPatientUseCase, collaborators)

    result = use_case.execute(CheckInDto(appointment_id=appointment.id), collaborators.nurse_id)

    assert result.late_by_minutes is None


def test_check_in_uses_clinic_timezone(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED, time="09:30")
    # 09:40 in Helsinki (UTC+2 in March).
    collaborators.clock.current = datetime(2024, 3, 1, 7, 40, tzinfo=timezone.utc)
    use_case = _use_case(CheckInPatientUseCase, collaborators, clinic_timezone="Europe/Helsinki")

    result = use_case.execute(CheckInDto(appointment_id=appointment.id), collaborators.nurse_id)

    assert result.late_by_minutes == 10


def test_repeated_check_in_is_idempotent(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(CheckInPatientUseCase, collaborators)
    use_case.execute(CheckInDto(appointment_id=appointment.id), collaborators.nurse_id)

    result = use_case.execute(CheckInDto(appointment_id=appointment.id), collaborators.nurse_id)

    assert result.status == AppointmentStatus.CHECKED_IN
    assert len(collaborators.appointments.updates) == 1
    assert collaborators.audit.actions() == ["CHECK_IN", "VIEW"]


def test_no_show_requires_reason(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(MarkNoShowUseCase, collaborators)

    with pytest.raises(ValidationFailure):
        use_case.execute(MarkNoShowDto(appointment_id=appointment.id), collaborators.nurse_id)


def test_no_show_marks_appointment(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(MarkNoShowUseCase, collaborators)

    result = use_case.execute(
        MarkNoShowDto(appointment_id=appointment.id, reason="Did not arrive"),
        collaborators.nurse_id,
    )

    assert result.status == AppointmentStatus.NO_SHOW
    assert result.no_show is True
    assert result.no_show_reason == "Did not arrive"
    assert collaborators.audit.actions() == ["NO_SHOW"]


def test_no_show_rejected_after_check_in(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    _use_case(CheckInPatientUseCase, collaborators).execute(CheckInDto(appointment_id=appointment.id), 40)
    use_case = _use_case(MarkNoShowUseCase, collaborators)

    with pytest.raises(InvalidStateTransition):
        use_case.execute(MarkNoShowDto(appointment_id=appointment.id, reason="late"), collaborators.nurse_id)


def test_complete_scheduled_appointment(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(CompleteAppointmentUseCase, collaborators)

    result = use_case.execute(CompleteAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert result.status == AppointmentStatus.COMPLETED
    assert collaborators.audit.actions() == ["COMPLETE"]


def test_cannot_complete_pending_appointment(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.PENDING)
    use_case = _use_case(CompleteAppointmentUseCase, collaborators)

    with pytest.raises(InvalidStateTransition):
        use_case.execute(CompleteAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id)


def test_no_show_reason_longer_than_column_is_rejected(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(MarkNoShowUseCase, collaborators)

    with pytest.raises(ValidationFailure) as excinfo:
        use_case.execute(MarkNoShowDto(appointment_id=appointment.id, reason="r" * 256), collaborators.nurse_id)

    assert excinfo.value.field == "reason"
    assert collaborators.appointments.updates == []


def test_checked_in_patient_goes_through_consultation_to_completion(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED, note="Bring lab results")
    _use_case(CheckInPatientUseCase, collaborators).execute(
        CheckInDto(appointment_id=appointment.id), collaborators.nurse_id
    )

    ready = _use_case(MarkReadyUseCase, collaborators).execute(
        MarkReadyDto(appointment_id=appointment.id), collaborators.nurse_id
    )
    assert ready.status == AppointmentStatus.READY_FOR_CONSULTATION

    started = _use_case(StartConsultationUseCase, collaborators).execute(
        StartConsultationDto(appointment_id=appointment.id, notes="Follow-up on headaches"),
        collaborators.doctor_id,
    )
    assert started.status == AppointmentStatus.IN_CONSULTATION
    assert started.note == "Bring lab results\n\n[Consultation started] Follow-up on headaches"

    completed = _use_case(CompleteAppointmentUseCase, collaborators).execute(
        CompleteAppointmentDto(appointment_id=appointment.id), collaborators.doctor_id
    )
    assert completed.status == AppointmentStatus.COMPLETED
    assert collaborators.audit.actions() == ["CHECK_IN", "UPDATE", "UPDATE", "COMPLETE"]
    assert collaborators.audit.entries[2].metadata["new_status"] == "IN_CONSULTATION"


def test_consultation_can_start_straight_from_check_in(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.CHECKED_IN)

    result = _use_case(StartConsultationUseCase, collaborators).execute(
        StartConsultationDto(appointment_id=appointment.id), collaborators.doctor_id
    )

    assert result.status == AppointmentStatus.IN_CONSULTATION
    assert result.note is None


def test_only_assigned_doctor_starts_consultation(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.CHECKED_IN)
    use_case = _use_case(StartConsultationUseCase, collaborators)

    with pytest.raises(PermissionDenied):
        use_case.execute(StartConsultationDto(appointment_id=appointment.id), collaborators.nurse_id)

    result = use_case.execute(
        StartConsultationDto(appointment_id=appointment.id), collaborators.frontdesk_id, is_admin=True
    )
    assert result.status == AppointmentStatus.IN_CONSULTATION


def test_cannot_start_consultation_before_check_in(collaborators) -> None:
    appointment = _seed(collaborators, status=AppointmentStatus.SCHEDULED)
    use_case = _use_case(StartConsultationUseCase, collaborators)

    with pytest.raises(InvalidStateTransition) as excinfo:
        use_case.execute(StartConsultationDto(appointment_id=appointment.id), collaborators.doctor_id)

    assert excinfo.value.message == "Cannot start consultation for appointment in SCHEDULED status"
    assert collaborators.appointments.updates == []
