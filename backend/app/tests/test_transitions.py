from __future__ import annotations

import pytest

from app.domain import (
    AppointmentEvent,
    AppointmentStatus,
    ConsultationRequestStatus,
    allowed_consultation_targets,
    is_valid_consultation_request_transition,
)
from app.domain.statuses import (
    APPOINTMENT_TRANSITIONS,
    consultation_status_label,
    describe_status,
    is_consultation_request_modifiable,
    is_terminal,
)
from app.domain.transitions import (
    is_valid_transition,
    on_cancellation,
    on_check_in,
    on_completion,
    on_doctor_confirmation,
    on_doctor_rejection,
    on_no_show,
    transition,
    valid_next_states,
)

NOT_AWAITING_DOCTOR = [status for status in AppointmentStatus if status != AppointmentStatus.PENDING_DOCTOR_CONFIRMATION]


def test_every_status_has_a_transition_row() -> None:
    assert set(APPOINTMENT_TRANSITIONS) == set(AppointmentStatus)


def test_doctor_confirmation_schedules_pending_appointment() -> None:
    result = on_doctor_confirmation(AppointmentStatus.PENDING_DOCTOR_CONFIRMATION)

    assert result.is_valid
    assert result.next_state == AppointmentStatus.SCHEDULED
    assert result.reason is None


def test_doctor_rejection_cancels_pending_appointment() -> None:
    result = on_doctor_rejection(AppointmentStatus.PENDING_DOCTOR_CONFIRMATION)

    assert result.is_valid
    assert result.next_state == AppointmentStatus.CANCELLED


@pytest.mark.parametrize("status", NOT_AWAITING_DOCTOR)
def test_doctor_decisions_only_apply_while_awaiting_doctor(status: AppointmentStatus) -> None:
    confirmation = on_doctor_confirmation(status)
    rejection = on_doctor_rejection(status)

    assert not confirmation.is_valid
    assert confirmation.next_state is None
    assert status.value in confirmation.reason
    assert not rejection.is_valid
    assert rejection.next_state is None


@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.SCHEDULED],
)
def test_check_in_allowed_from_bookable_states(status: AppointmentStatus) -> None:
    assert on_check_in(status).next_state == AppointmentStatus.CHECKED_IN


def test_check_in_rejected_after_completion() -> None:
    result = on_check_in(AppointmentStatus.COMPLETED)

    assert not result.is_valid
    assert result.reason == "Cannot check in appointment in COMPLETED status"


def test_completion_and_no_show_from_scheduled() -> None:
    assert on_completion(AppointmentStatus.SCHEDULED).next_state == AppointmentStatus.COMPLETED
    assert on_completion(AppointmentStatus.IN_CONSULTATION).next_state == AppointmentStatus.COMPLETED
    assert on_no_show(AppointmentStatus.SCHEDULED).next_state == AppointmentStatus.NO_SHOW
    assert on_no_show(AppointmentStatus.CONFIRMED).next_state == AppointmentStatus.NO_SHOW
    assert not on_no_show(AppointmentStatus.CHECKED_IN).is_valid


@pytest.mark.parametrize(
    "status",
    [AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW, AppointmentStatus.CANCELLED],
)
def test_terminal_states_have_no_exits(status: AppointmentStatus) -> None:
    assert is_terminal(status)
    assert valid_next_states(status) == []
    for event in AppointmentEvent:
        assert not transition(status, event).is_valid


def test_cancellation_not_possible_mid_consultation() -> None:
    assert not on_cancellation(AppointmentStatus.IN_CONSULTATION).is_valid
    assert on_cancellation(AppointmentStatus.CHECKED_IN).next_state == AppointmentStatus.CANCELLED


def test_valid_next_states_are_sorted_and_unique() -> None:
    assert valid_next_states(AppointmentStatus.PENDING_DOCTOR_CONFIRMATION) == [
        AppointmentStatus.CANCELLED,
        AppointmentStatus.SCHEDULED,
    ]


@pytest.mark.parametrize("status", list(AppointmentStatus))
def test_no_self_transition(status: AppointmentStatus) -> None:
    assert not is_valid_transition(status, status)


def test_is_valid_transition_follows_table() -> None:
    assert is_valid_transition(AppointmentStatus.CHECKED_IN, AppointmentStatus.READY_FOR_CONSULTATION)
    assert not is_valid_transition(AppointmentStatus.PENDING, AppointmentStatus.SCHEDULED)


def test_status_descriptions() -> None:
    assert describe_status(AppointmentStatus.PENDING_DOCTOR_CONFIRMATION) == "Pending doctor confirmation"
    assert consultation_status_label(None) == "No request"
    assert consultation_status_label(ConsultationRequestStatus.REJECTED) == "Declined"


@pytest.mark.parametrize("status", list(ConsultationRequestStatus))
def test_consultation_request_has_no_self_loops(status: ConsultationRequestStatus) -> None:
    assert not is_valid_consultation_request_transition(status, status)


def test_consultation_request_must_start_as_submitted() -> None:
    assert allowed_consultation_targets(None) == frozenset({ConsultationRequestStatus.SUBMITTED})
    assert is_valid_consultation_request_transition(None, ConsultationRequestStatus.SUBMITTED)
    assert not is_valid_consultation_request_transition(None, ConsultationRequestStatus.APPROVED)


@pytest.mark.parametrize(
    "target",
    [
        ConsultationRequestStatus.APPROVED,
        ConsultationRequestStatus.SCHEDULED,
        ConsultationRequestStatus.CONFIRMED,
    ],
)
def test_submitted_request_cannot_skip_review(target: ConsultationRequestStatus) -> None:
    assert not is_valid_consultation_request_transition(ConsultationRequestStatus.SUBMITTED, target)


def test_consultation_request_happy_path() -> None:
    path = [
        ConsultationRequestStatus.SUBMITTED,
        ConsultationRequestStatus.PENDING_REVIEW,
        ConsultationRequestStatus.APPROVED,
        ConsultationRequestStatus.SCHEDULED,
        ConsultationRequestStatus.CONFIRMED,
    ]
    for current, target in zip(path, path[1:]):
        assert is_valid_consultation_request_transition(current, target)


def test_needs_more_info_loops_back() -> None:
    assert is_valid_consultation_request_transition(
        ConsultationRequestStatus.NEEDS_MORE_INFO, ConsultationRequestStatus.SUBMITTED
    )
    assert is_valid_consultation_request_transition(
        ConsultationRequestStatus.NEEDS_MORE_INFO, ConsultationRequestStatus.PENDING_REVIEW
    )
    assert allowed_consultation_targets(ConsultationRequestStatus.REJECTED) == frozenset()


def test_modifiable_request_statuses() -> None:
    assert is_consultation_request_modifiable(ConsultationRequestStatus.NEEDS_MORE_INFO)
    assert not is_consultation_request_modifiable(ConsultationRequestStatus.SCHEDULED)
