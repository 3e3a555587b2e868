from app.domain.appointment import Appointment
from app.domain.consultation_workflow import (
    allowed_consultation_targets,
    is_valid_consultation_request_transition,
)
from app.domain.exceptions import (
    Conflict,
    DomainException,
    Expired,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationFailure,
)
from app.domain.statuses import (
    AppointmentEvent,
    AppointmentStatus,
    ConfirmationMethod,
    ConsultationRequestStatus,
    RejectionReason,
    SurgicalCaseStatus,
    TheaterBookingStatus,
)
from app.domain.transitions import TransitionResult
from app.domain.value_objects import (
    AppointmentRejection,
    CheckInInfo,
    DoctorConfirmation,
    NoShowInfo,
    ensure_max_length,
    validate_slot_time,
)
