from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    PENDING_DOCTOR_CONFIRMATION = "PENDING_DOCTOR_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    READY_FOR_CONSULTATION = "READY_FOR_CONSULTATION"
    IN_CONSULTATION = "IN_CONSULTATION"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"


class AppointmentEvent(str, Enum):
    DOCTOR_CONFIRMATION = "DOCTOR_CONFIRMATION"
    DOCTOR_REJECTION = "DOCTOR_REJECTION"
    PATIENT_CONFIRMATION = "PATIENT_CONFIRMATION"
    CHECK_IN = "CHECK_IN"
    MARK_READY = "MARK_READY"
    START_CONSULTATION = "START_CONSULTATION"
    COMPLETE = "COMPLETE"
    NO_SHOW = "NO_SHOW"
    CANCEL = "CANCEL"


class ConsultationRequestStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    PENDING_REVIEW = "PENDING_REVIEW"
    NEEDS_MORE_INFO = "NEEDS_MORE_INFO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"


class TheaterBookingStatus(str, Enum):
    PROVISIONAL = "PROVISIONAL"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class SurgicalCaseStatus(str, Enum):
    PLANNING = "PLANNING"
    READY_FOR_SCHEDULING = "READY_FOR_SCHEDULING"
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RejectionReason(str, Enum):
    DOCTOR_UNAVAILABLE = "DOCTOR_UNAVAILABLE"
    SCHEDULING_CONFLICT = "SCHEDULING_CONFLICT"
    PATIENT_UNSUITABLE = "PATIENT_UNSUITABLE"
    MEDICAL_REASON = "MEDICAL_REASON"
    ADMINISTRATIVE_REASON = "ADMINISTRATIVE_REASON"
    OTHER = "OTHER"


class ConfirmationMethod(str, Enum):
    DIRECT_CONFIRMATION = "DIRECT_CONFIRMATION"
    SYSTEM_AUTO_CONFIRMATION = "SYSTEM_AUTO_CONFIRMATION"
    PHONE_CONFIRMATION = "PHONE_CONFIRMATION"
    EMAIL_CONFIRMATION = "EMAIL_CONFIRMATION"


TERMINAL_APPOINTMENT_STATUSES: FrozenSet[AppointmentStatus] = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    }
)

# state -> {event -> next state}. Anything missing is an illegal move.
APPOINTMENT_TRANSITIONS: Mapping[AppointmentStatus, Mapping[AppointmentEvent, AppointmentStatus]] = {
    AppointmentStatus.PENDING: {
        AppointmentEvent.PATIENT_CONFIRMATION: AppointmentStatus.CONFIRMED,
        AppointmentEvent.CHECK_IN: AppointmentStatus.CHECKED_IN,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.PENDING_DOCTOR_CONFIRMATION: {
        AppointmentEvent.DOCTOR_CONFIRMATION: AppointmentStatus.SCHEDULED,
        AppointmentEvent.DOCTOR_REJECTION: AppointmentStatus.CANCELLED,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentEvent.CHECK_IN: AppointmentStatus.CHECKED_IN,
        AppointmentEvent.NO_SHOW: AppointmentStatus.NO_SHOW,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.SCHEDULED: {
        AppointmentEvent.CHECK_IN: AppointmentStatus.CHECKED_IN,
        AppointmentEvent.NO_SHOW: AppointmentStatus.NO_SHOW,
        AppointmentEvent.COMPLETE: AppointmentStatus.COMPLETED,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.CHECKED_IN: {
        AppointmentEvent.MARK_READY: AppointmentStatus.READY_FOR_CONSULTATION,
        AppointmentEvent.START_CONSULTATION: AppointmentStatus.IN_CONSULTATION,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.READY_FOR_CONSULTATION: {
        AppointmentEvent.START_CONSULTATION: AppointmentStatus.IN_CONSULTATION,
        AppointmentEvent.CANCEL: AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.IN_CONSULTATION: {
        AppointmentEvent.COMPLETE: AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.COMPLETED: {},
    AppointmentStatus.NO_SHOW: {},
    AppointmentStatus.CANCELLED: {},
}

CONSULTATION_REQUEST_TRANSITIONS: Mapping[ConsultationRequestStatus, FrozenSet[ConsultationRequestStatus]] = {
    ConsultationRequestStatus.SUBMITTED: frozenset({ConsultationRequestStatus.PENDING_REVIEW}),
    ConsultationRequestStatus.PENDING_REVIEW: frozenset(
        {
            ConsultationRequestStatus.APPROVED,
            ConsultationRequestStatus.NEEDS_MORE_INFO,
            ConsultationRequestStatus.REJECTED,
        }
    ),
    ConsultationRequestStatus.NEEDS_MORE_INFO: frozenset(
        {
            ConsultationRequestStatus.SUBMITTED,
            ConsultationRequestStatus.PENDING_REVIEW,
        }
    ),
    ConsultationRequestStatus.APPROVED: frozenset({ConsultationRequestStatus.SCHEDULED}),
    ConsultationRequestStatus.SCHEDULED: frozenset({ConsultationRequestStatus.CONFIRMED}),
    ConsultationRequestStatus.REJECTED: frozenset(),
    ConsultationRequestStatus.CONFIRMED: frozenset(),
}

_APPOINTMENT_DESCRIPTIONS: Dict[AppointmentStatus, str] = {
    AppointmentStatus.PENDING: "Waiting for confirmation",
    AppointmentStatus.PENDING_DOCTOR_CONFIRMATION: "Pending doctor confirmation",
    AppointmentStatus.CONFIRMED: "Confirmed by patient",
    AppointmentStatus.SCHEDULED: "Scheduled and ready",
    AppointmentStatus.CHECKED_IN: "Patient checked in",
    AppointmentStatus.READY_FOR_CONSULTATION: "Ready for consultation",
    AppointmentStatus.IN_CONSULTATION: "Consultation in progress",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.NO_SHOW: "Patient did not show",
    AppointmentStatus.CANCELLED: "Cancelled",
}

_CONSULTATION_LABELS: Dict[ConsultationRequestStatus, str] = {
    ConsultationRequestStatus.SUBMITTED: "Submitted",
    ConsultationRequestStatus.PENDING_REVIEW: "Under Review",
    ConsultationRequestStatus.NEEDS_MORE_INFO: "Needs More Information",
    ConsultationRequestStatus.APPROVED: "Approved",
    ConsultationRequestStatus.REJECTED: "Declined",
    ConsultationRequestStatus.SCHEDULED: "Scheduled",
    ConsultationRequestStatus.CONFIRMED: "Confirmed",
}


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_APPOINTMENT_STATUSES


def describe_status(status: AppointmentStatus) -> str:
    return _APPOINTMENT_DESCRIPTIONS.get(status, "Unknown status")


def consultation_status_label(status: Optional[ConsultationRequestStatus]) -> str:
    if status is None:
        return "No request"
    return _CONSULTATION_LABELS[status]


def is_consultation_request_modifiable(status: ConsultationRequestStatus) -> bool:
    return status in {
        ConsultationRequestStatus.SUBMITTED,
        ConsultationRequestStatus.PENDING_REVIEW,
        ConsultationRequestStatus.NEEDS_MORE_INFO,
    }
