from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.api.deps import (
    AuthenticatedUser,
    get_audit_service,
    get_check_in_use_case,
    get_complete_use_case,
    get_confirm_appointment_use_case,
    get_db,
    get_mark_ready_use_case,
    get_no_show_use_case,
    get_reject_appointment_use_case,
    get_start_consultation_use_case,
    require_roles,
)
from app.domain import NotFound, PermissionDenied
from app.repositories import SqlAppointmentRepository
from app.schemas import (
    ApiResponse,
    AppointmentResponse,
    AppointmentStatusRead,
    CheckInDto,
    CompleteAppointmentDto,
    ConfirmAppointmentDto,
    ConfirmAppointmentRequest,
    MarkNoShowDto,
    MarkNoShowRequest,
    MarkReadyDto,
    RejectAppointmentDto,
    RejectAppointmentRequest,
    StartConsultationDto,
    StartConsultationRequest,
)
from app.services.appointment_workflow import (
    CheckInPatientUseCase,
    CompleteAppointmentUseCase,
    ConfirmAppointmentUseCase,
    MarkNoShowUseCase,
    MarkReadyUseCase,
    RejectAppointmentUseCase,
    StartConsultationUseCase,
    record_best_effort,
)
from app.services.audit import SessionAuditService
from app.services.audit_policy import make_patient_reference
from app.services.clock import as_utc
from app.services.ports import AuditEntry

router = APIRouter(prefix="/appointments", tags=["appointments"])

STAFF_ROLES = ("doctor", "nurse", "frontdesk", "admin")


def _ensure_patient_scope(current: AuthenticatedUser, patient_id: int) -> None:
    if current.role_code == "patient" and current.user.patient_id != patient_id:
        raise PermissionDenied("Patients may only access their own appointments", context={"patient_id": patient_id})


@router.get("/", response_model=ApiResponse[List[AppointmentResponse]])
def list_patient_appointments(
    patient_id: int,
    session: Session = Depends(get_db),
    current: AuthenticatedUser = Depends(require_roles(*STAFF_ROLES, "patient")),
) -> ApiResponse[List[AppointmentResponse]]:
    _ensure_patient_scope(current, patient_id)
    appointments = SqlAppointmentRepository(session).find_by_patient(patient_id)
    return ApiResponse(data=[AppointmentResponse.from_entity(item) for item in appointments])


@router.get("/{appointment_id}", response_model=ApiResponse[AppointmentResponse])
def get_appointment(
    appointment_id: int,
    session: Session = Depends(get_db),
    current: AuthenticatedUser = Depends(require_roles(*STAFF_ROLES, "patient")),
    audit: SessionAuditService = Depends(get_audit_service),
) -> ApiResponse[AppointmentResponse]:
    repository = SqlAppointmentRepository(session)
    appointment = repository.find_by_id(appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id)
    _ensure_patient_scope(current, appointment.patient_id)

    history = [
        AppointmentStatusRead(
            status=row.status,
            consultation_request_status=row.consultation_request_status,
            changed_at=as_utc(row.changed_at),
            changed_by=row.changed_by,
            note=row.note,
        )
        for row in repository.status_history(appointment_id)
    ]
    record_best_effort(
        audit,
        AuditEntry(
            user_id=current.user.id,
            record_id=str(appointment_id),
            action="VIEW",
            model="Appointment",
            details="Appointment viewed",
            metadata={"patient_ref": make_patient_reference(appointment.patient_id)},
        ),
    )
    response = AppointmentResponse.from_entity(appointment).model_copy(update={"status_history": history})
    return ApiResponse(data=response)


@router.post("/{appointment_id}/confirm", response_model=ApiResponse[AppointmentResponse])
def confirm_appointment(
    appointment_id: int,
    payload: ConfirmAppointmentRequest,
    current: AuthenticatedUser = Depends(require_roles("doctor", "admin")),
    use_case: ConfirmAppointmentUseCase = Depends(get_confirm_appointment_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = ConfirmAppointmentDto(appointment_id=appointment_id, **payload.model_dump())
    return ApiResponse(data=use_case.execute(dto, current.user.id))


@router.post("/{appointment_id}/reject", response_model=ApiResponse[AppointmentResponse])
def reject_appointment(
    appointment_id: int,
    payload: RejectAppointmentRequest,
    current: AuthenticatedUser = Depends(require_roles("doctor", "admin")),
    use_case: RejectAppointmentUseCase = Depends(get_reject_appointment_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = RejectAppointmentDto(appointment_id=appointment_id, **payload.model_dump())
    return ApiResponse(data=use_case.execute(dto, current.user.id))


@router.post("/{appointment_id}/check-in", response_model=ApiResponse[AppointmentResponse])
def check_in_patient(
    appointment_id: int,
    current: AuthenticatedUser = Depends(require_roles("nurse", "frontdesk", "admin")),
    use_case: CheckInPatientUseCase = Depends(get_check_in_use_case),
) -> ApiResponse[AppointmentResponse]:
    return ApiResponse(data=use_case.execute(CheckInDto(appointment_id=appointment_id), current.user.id))


@router.post("/{appointment_id}/no-show", response_model=ApiResponse[AppointmentResponse])
def mark_no_show(
    appointment_id: int,
    payload: MarkNoShowRequest,
    current: AuthenticatedUser = Depends(require_roles("doctor", "nurse", "frontdesk", "admin")),
    use_case: MarkNoShowUseCase = Depends(get_no_show_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = MarkNoShowDto(appointment_id=appointment_id, **payload.model_dump())
    return ApiResponse(data=use_case.execute(dto, current.user.id))


@router.post("/{appointment_id}/mark-ready", response_model=ApiResponse[AppointmentResponse])
def mark_ready_for_consultation(
    appointment_id: int,
    current: AuthenticatedUser = Depends(require_roles("nurse", "doctor", "admin")),
    use_case: MarkReadyUseCase = Depends(get_mark_ready_use_case),
) -> ApiResponse[AppointmentResponse]:
    return ApiResponse(data=use_case.execute(MarkReadyDto(appointment_id=appointment_id), current.user.id))


@router.post("/{appointment_id}/start-consultation", response_model=ApiResponse[AppointmentResponse])
def start_consultation(
    appointment_id: int,
    payload: StartConsultationRequest | None = None,
    current: AuthenticatedUser = Depends(require_roles("doctor", "admin")),
    use_case: StartConsultationUseCase = Depends(get_start_consultation_use_case),
) -> ApiResponse[AppointmentResponse]:
    notes = payload.notes if payload else None
    dto = StartConsultationDto(appointment_id=appointment_id, notes=notes)
    return ApiResponse(data=use_case.execute(dto, current.user.id, is_admin=current.role_code == "admin"))


@router.post("/{appointment_id}/complete", response_model=ApiResponse[AppointmentResponse])
def complete_appointment(
    appointment_id: int,
    current: AuthenticatedUser = Depends(require_roles("doctor", "admin")),
    use_case: CompleteAppointmentUseCase = Depends(get_complete_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = CompleteAppointmentDto(appointment_id=appointment_id)
    return ApiResponse(data=use_case.execute(dto, current.user.id))
