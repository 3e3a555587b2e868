"""Appointment state machine.

Pure decision functions over ``APPOINTMENT_TRANSITIONS``. Nothing in here
touches the database, the clock or any other collaborator; callers decide
what to do with a rejected move.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from app.domain.statuses import (
    APPOINTMENT_TRANSITIONS,
    AppointmentEvent,
    AppointmentStatus,
    is_terminal,
)

_EVENT_VERBS = {
    AppointmentEvent.DOCTOR_CONFIRMATION: "confirm",
    AppointmentEvent.DOCTOR_REJECTION: "reject",
    AppointmentEvent.PATIENT_CONFIRMATION: "patient-confirm",
    AppointmentEvent.CHECK_IN: "check in",
    AppointmentEvent.MARK_READY: "mark ready",
    AppointmentEvent.START_CONSULTATION: "start consultation for",
    AppointmentEvent.COMPLETE: "complete",
    AppointmentEvent.NO_SHOW: "mark as no-show",
    AppointmentEvent.CANCEL: "cancel",
}


@dataclass(frozen=True)
class TransitionResult:
    is_valid: bool
    next_state: Optional[AppointmentStatus] = None
    reason: Optional[str] = None


def transition(current: AppointmentStatus, event: AppointmentEvent) -> TransitionResult:
    next_state = APPOINTMENT_TRANSITIONS.get(current, {}).get(event)
    if next_state is None:
        return TransitionResult(
            is_valid=False,
            reason=f"Cannot {_EVENT_VERBS[event]} appointment in {current.value} status",
        )
    return TransitionResult(is_valid=True, next_state=next_state)


def on_doctor_confirmation(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.DOCTOR_CONFIRMATION)


def on_doctor_rejection(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.DOCTOR_REJECTION)


def on_check_in(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.CHECK_IN)


def on_mark_ready(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.MARK_READY)


def on_start_consultation(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.START_CONSULTATION)


def on_completion(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.COMPLETE)


def on_no_show(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.NO_SHOW)


def on_cancellation(current: AppointmentStatus) -> TransitionResult:
    return transition(current, AppointmentEvent.CANCEL)


def valid_next_states(current: AppointmentStatus) -> List[AppointmentStatus]:
    targets = APPOINTMENT_TRANSITIONS.get(current, {}).values()
    return sorted(set(targets), key=lambda status: status.value)


def is_valid_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    if current == target or is_terminal(current):
        return False
    return target in valid_next_states(current)
