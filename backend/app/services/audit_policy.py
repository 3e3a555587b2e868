from __future__ import annotations

import re
from typing import Any, Dict, Optional, Set

EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[A-Za-z]{2,}")

DEFAULT_ALLOWED_KEYS: Set[str] = {"result_count", "page", "page_size"}

RESOURCE_METADATA_KEYS: Dict[str, Set[str]] = {
    "Appointment": {
        "patient_ref",
        "previous_status",
        "new_status",
        "reason_category",
        "late_by_minutes",
        "notification_sent",
    },
    "ConsultationRequest": {
        "patient_ref",
        "previous_status",
        "new_status",
        "review_action",
        "notification_sent",
    },
    "TheaterBooking": {
        "theater_id",
        "case_id",
        "start_time",
        "end_time",
        "lock_expires_at",
        "previous_status",
        "new_status",
        "admin_override",
        "released_count",
    },
}

ACTION_METADATA_KEYS: Dict[str, Set[str]] = {
    "REJECT": {"reason_category"},
    "NO_SHOW": {"reason_category"},
    "CANCEL": {"reason_category"},
    "EXPIRE": {"released_count", "auto"},
}


def _allowed_keys(resource_type: str, action: str) -> Set[str]:
    allowed = set(DEFAULT_ALLOWED_KEYS)
    allowed.update(RESOURCE_METADATA_KEYS.get(resource_type, set()))
    allowed.update(ACTION_METADATA_KEYS.get(action, set()))
    return allowed


def sanitize_metadata(
    resource_type: str,
    action: str,
    metadata: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if not metadata:
        return {}

    allowed = _allowed_keys(resource_type, action)
    sanitized: Dict[str, Any] = {}
    for key, value in metadata.items():
        if key not in allowed:
            raise ValueError(
                f"Audit metadata key '{key}' is not allowed for action '{action}' on '{resource_type}'"
            )
        _ensure_no_contact_details(value)
        sanitized[key] = value
    return sanitized


def _ensure_no_contact_details(value: Any) -> None:
    if isinstance(value, str):
        if EMAIL_PATTERN.search(value):
            raise ValueError("Audit metadata may not contain e-mail addresses or other contact details")
    elif isinstance(value, dict):
        for nested in value.values():
            _ensure_no_contact_details(nested)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            _ensure_no_contact_details(item)


def make_patient_reference(patient_id: int) -> str:
    return f"patient:{patient_id}"


def ensure_status_metadata(
    *,
    patient_id: Optional[int] = None,
    previous_status: Optional[str] = None,
    new_status: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {}
    if patient_id is not None:
        metadata["patient_ref"] = make_patient_reference(patient_id)
    if previous_status is not None:
        metadata["previous_status"] = previous_status
    if new_status is not None:
        metadata["new_status"] = new_status
    if extra:
        metadata.update(extra)
    return metadata
