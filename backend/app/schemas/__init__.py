from app.schemas.appointment import (
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
from app.schemas.audit import AuditEventRead
from app.schemas.auth import LoginRequest, RoleRead, TokenResponse, UserRead
from app.schemas.common import ApiResponse, ErrorBody, Pagination, failure, ok
from app.schemas.consultation import (
    ConfirmConsultationDto,
    ResubmitConsultationDto,
    ResubmitConsultationRequest,
    ReviewConsultationDto,
    ReviewConsultationRequest,
    SubmitConsultationRequest,
)
from app.schemas.theater import CancelBookingRequest, LockResult, LockSlotRequest, TheaterBookingRead
