from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.deps import (
    AuthenticatedUser,
    get_confirm_consultation_use_case,
    get_resubmit_consultation_use_case,
    get_review_consultation_use_case,
    get_submit_consultation_use_case,
    require_roles,
)
from app.domain import PermissionDenied
from app.schemas import (
    ApiResponse,
    AppointmentResponse,
    ConfirmConsultationDto,
    ResubmitConsultationDto,
    ResubmitConsultationRequest,
    ReviewConsultationDto,
    ReviewConsultationRequest,
    SubmitConsultationRequest,
)
from app.services.consultation_requests import (
    ConfirmConsultationUseCase,
    ResubmitConsultationRequestUseCase,
    ReviewConsultationRequestUseCase,
    SubmitConsultationRequestUseCase,
)

router = APIRouter(prefix="/consultations", tags=["consultations"])


def _patient_id_of(current: AuthenticatedUser) -> int:
    if current.user.patient_id is None:
        raise PermissionDenied("User account is not linked to a patient record", context={"user_id": current.user.id})
    return current.user.patient_id


@router.post("/submit", response_model=ApiResponse[AppointmentResponse], status_code=201)
def submit_consultation_request(
    payload: SubmitConsultationRequest,
    current: AuthenticatedUser = Depends(require_roles("patient", "frontdesk", "admin")),
    use_case: SubmitConsultationRequestUseCase = Depends(get_submit_consultation_use_case),
) -> ApiResponse[AppointmentResponse]:
    return ApiResponse(data=use_case.execute(payload, current.user.id))


@router.post("/{appointment_id}/review", response_model=ApiResponse[AppointmentResponse])
def review_consultation_request(
    appointment_id: int,
    payload: ReviewConsultationRequest,
    current: AuthenticatedUser = Depends(require_roles("frontdesk", "admin")),
    use_case: ReviewConsultationRequestUseCase = Depends(get_review_consultation_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = ReviewConsultationDto(appointment_id=appointment_id, **payload.model_dump())
    return ApiResponse(data=use_case.execute(dto, current.user.id))


@router.post("/{appointment_id}/resubmit", response_model=ApiResponse[AppointmentResponse])
def resubmit_consultation_request(
    appointment_id: int,
    payload: ResubmitConsultationRequest,
    current: AuthenticatedUser = Depends(require_roles("patient")),
    use_case: ResubmitConsultationRequestUseCase = Depends(get_resubmit_consultation_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = ResubmitConsultationDto(
        appointment_id=appointment_id,
        patient_id=_patient_id_of(current),
        additional_info=payload.additional_info,
    )
    return ApiResponse(data=use_case.execute(dto, current.user.id))


@router.post("/{appointment_id}/confirm", response_model=ApiResponse[AppointmentResponse])
def confirm_consultation(
    appointment_id: int,
    current: AuthenticatedUser = Depends(require_roles("patient")),
    use_case: ConfirmConsultationUseCase = Depends(get_confirm_consultation_use_case),
) -> ApiResponse[AppointmentResponse]:
    dto = ConfirmConsultationDto(appointment_id=appointment_id, patient_id=_patient_id_of(current))
    return ApiResponse(data=use_case.execute(dto, current.user.id))
