from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from app.domain import Appointment


@dataclass
class NotificationMessage:
    channel: str
    recipient: str
    subject: Optional[str] = None
    body: str = ""


class NotificationBackend:
    """Very small stub backend that records the outgoing payload."""

    def send_email(self, *, to: str, subject: str, body: str) -> NotificationMessage:
        return NotificationMessage(channel="email", recipient=to, subject=subject, body=body)

    def send_sms(self, *, to: str, body: str) -> NotificationMessage:
        return NotificationMessage(channel="sms", recipient=to, body=body)


_backend: NotificationBackend = NotificationBackend()


def get_notification_backend() -> NotificationBackend:
    return _backend


def set_notification_backend(backend: NotificationBackend) -> None:
    global _backend
    _backend = backend


def reset_notification_backend() -> None:
    set_notification_backend(NotificationBackend())


class EmailNotificationService:
    """Adapts the module-level backend to the ``NotificationService`` port."""

    def __init__(self, backend: Optional[NotificationBackend] = None) -> None:
        self._backend = backend

    @property
    def backend(self) -> NotificationBackend:
        return self._backend or get_notification_backend()

    def send_email(self, to: str, subject: str, body: str) -> NotificationMessage:
        if not to:
            raise ValueError("Recipient address is required")
        return self.backend.send_email(to=to, subject=subject, body=body)


def _slot(appointment: Appointment) -> str:
    return f"{appointment.appointment_date.isoformat()} at {appointment.time}"


def compose_doctor_confirmation(appointment: Appointment, notes: Optional[str]) -> Tuple[str, str]:
    body = f"Your appointment on {_slot(appointment)} has been confirmed by the doctor."
    if notes:
        body += f"\n\nNotes: {notes}"
    return "Appointment Confirmed", body


def compose_doctor_rejection(appointment: Appointment, reason: str) -> Tuple[str, str]:
    body = (
        f"Your appointment scheduled for {_slot(appointment)} has been cancelled. "
        f"Reason: {reason}. Please contact the clinic to reschedule."
    )
    return "Appointment Status Update", body


def compose_consultation_received(appointment: Appointment) -> Tuple[str, str]:
    body = (
        "We have received your consultation request. Our front desk team will review it "
        "and get back to you shortly."
    )
    return "Consultation Request Received", body


def compose_consultation_review(
    appointment: Appointment,
    *,
    review_action: str,
    review_notes: Optional[str] = None,
) -> Tuple[str, str]:
    if review_action == "approve":
        subject = "Consultation Request Approved"
        body = (
            f"Your consultation request has been approved and scheduled for {_slot(appointment)}. "
            "Please confirm the appointment in the patient portal."
        )
    elif review_action == "needs_more_info":
        subject = "More Information Needed"
        body = "We need a few more details before we can schedule your consultation."
    else:
        subject = "Consultation Request Update"
        body = "Unfortunately we are unable to schedule your consultation request."
    if review_notes:
        body += f"\n\n{review_notes}"
    return subject, body


def compose_consultation_confirmed(appointment: Appointment) -> Tuple[str, str]:
    body = f"Thank you for confirming. Your consultation is booked for {_slot(appointment)}."
    return "Consultation Confirmed", body


def compose_no_show(appointment: Appointment) -> Tuple[str, str]:
    body = (
        f"We missed you at your appointment on {_slot(appointment)}. "
        "Please contact the clinic to arrange a new time."
    )
    return "Missed Appointment", body
