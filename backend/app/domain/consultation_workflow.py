from __future__ import annotations

from typing import FrozenSet, Optional

from app.domain.statuses import CONSULTATION_REQUEST_TRANSITIONS, ConsultationRequestStatus


def allowed_consultation_targets(
    current: Optional[ConsultationRequestStatus],
) -> FrozenSet[ConsultationRequestStatus]:
    # A request that does not exist yet can only be created as SUBMITTED.
    if current is None:
        return frozenset({ConsultationRequestStatus.SUBMITTED})
    return CONSULTATION_REQUEST_TRANSITIONS.get(current, frozenset())


def is_valid_consultation_request_transition(
    from_status: Optional[ConsultationRequestStatus],
    to_status: ConsultationRequestStatus,
) -> bool:
    if from_status == to_status:
        return False
    return to_status in allowed_consultation_targets(from_status)
