from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.domain.exceptions import ValidationFailure
from app.domain.statuses import ConfirmationMethod, RejectionReason

MAX_NOTES_LENGTH = 1000
MAX_REASON_LENGTH = 1000
MAX_SHORT_TEXT_LENGTH = 255
MAX_APPOINTMENT_TYPE_LENGTH = 50


def _require_actor(actor_id: Optional[int], field: str) -> int:
    if actor_id is None or actor_id <= 0:
        raise ValidationFailure(f"{field} must reference a user", field=field, context={"provided": actor_id})
    return actor_id


def ensure_max_length(value: Optional[str], max_length: int, field: str) -> Optional[str]:
    if value is not None and len(value) > max_length:
        raise ValidationFailure(
            f"{field} cannot exceed {max_length} characters",
            field=field,
            context={"length": len(value), "max_length": max_length},
        )
    return value


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class DoctorConfirmation(BaseModel):
    model_config = ConfigDict(frozen=True)

    confirmed_at: datetime
    confirmed_by: int
    method: ConfirmationMethod = ConfirmationMethod.DIRECT_CONFIRMATION
    notes: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        confirmed_at: datetime,
        confirmed_by: Optional[int],
        method: ConfirmationMethod = ConfirmationMethod.DIRECT_CONFIRMATION,
        notes: Optional[str] = None,
        max_length: int = MAX_NOTES_LENGTH,
    ) -> "DoctorConfirmation":
        actor = _require_actor(confirmed_by, "confirmed_by")
        cleaned = _clean_optional(notes)
        if cleaned is not None and len(cleaned) > max_length:
            raise ValidationFailure(
                f"Confirmation notes cannot exceed {max_length} characters",
                field="notes",
                context={"notes_length": len(cleaned)},
            )
        return cls(confirmed_at=confirmed_at, confirmed_by=actor, method=method, notes=cleaned)

    @property
    def is_auto_confirmed(self) -> bool:
        return self.method == ConfirmationMethod.SYSTEM_AUTO_CONFIRMATION


class AppointmentRejection(BaseModel):
    model_config = ConfigDict(frozen=True)

    rejected_at: datetime
    rejected_by: int
    reason_category: RejectionReason = RejectionReason.OTHER
    reason_details: str
    notes: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        rejected_at: datetime,
        rejected_by: Optional[int],
        reason_details: Optional[str],
        reason_category: RejectionReason = RejectionReason.OTHER,
        notes: Optional[str] = None,
        max_length: int = MAX_REASON_LENGTH,
    ) -> "AppointmentRejection":
        actor = _require_actor(rejected_by, "rejected_by")
        details = (reason_details or "").strip()
        if not details:
            raise ValidationFailure("Rejection reason is required", field="reason")
        if len(details) > max_length:
            raise ValidationFailure(
                f"Rejection reason cannot exceed {max_length} characters",
                field="reason",
                context={"reason_length": len(details)},
            )
        return cls(
            rejected_at=rejected_at,
            rejected_by=actor,
            reason_category=reason_category,
            reason_details=details,
            notes=_clean_optional(notes),
        )

    @property
    def full_reason(self) -> str:
        return f"{self.reason_category.value}: {self.reason_details}"

    @property
    def is_reschedulable(self) -> bool:
        return self.reason_category in (RejectionReason.DOCTOR_UNAVAILABLE, RejectionReason.SCHEDULING_CONFLICT)

    @property
    def is_final(self) -> bool:
        return self.reason_category in (RejectionReason.MEDICAL_REASON, RejectionReason.PATIENT_UNSUITABLE)


class CheckInInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    checked_in_at: datetime
    checked_in_by: int
    late_by_minutes: Optional[int] = None

    @property
    def is_late(self) -> bool:
        return bool(self.late_by_minutes)


class NoShowInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    recorded_at: datetime
    recorded_by: int
    reason: str
    notes: Optional[str] = None

    @classmethod
    def create(
        cls,
        *,
        recorded_at: datetime,
        recorded_by: Optional[int],
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> "NoShowInfo":
        actor = _require_actor(recorded_by, "recorded_by")
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationFailure("No-show reason is required", field="reason")
        ensure_max_length(cleaned, MAX_SHORT_TEXT_LENGTH, "reason")
        return cls(recorded_at=recorded_at, recorded_by=actor, reason=cleaned, notes=_clean_optional(notes))


def validate_slot_time(value: Optional[str], field: str = "time") -> str:
    """Return ``value`` normalised to ``HH:MM`` or raise ``ValidationFailure``."""
    raw = (value or "").strip()
    hours, sep, minutes = raw.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValidationFailure(f"Time must be given as HH:MM, got '{raw}'", field=field)
    if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
        raise ValidationFailure(f"Time '{raw}' is out of range", field=field)
    return f"{int(hours):02d}:{minutes}"
