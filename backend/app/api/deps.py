from __future__ import annotations


from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from app.core.config import settings
from app.db.session import get_session
from app.models import Role, User
from app.repositories import SqlAppointmentRepository, SqlPatientRepository, SqlUserRepository
from app.services import security
from app.services.appointment_workflow import (
    CheckInPatientUseCase,
    CompleteAppointmentUseCase,
    ConfirmAppointmentUseCase,
    MarkNoShowUseCase,
    MarkReadyUseCase,
    RejectAppointmentUseCase,
    StartConsultationUseCase,
)
from app.services.audit import SessionAuditService
from app.services.clock import SystemClock
from app.services.consultation_requests import (
    ConfirmConsultationUseCase,
    ResubmitConsultationRequestUseCase,
    ReviewConsultationRequestUseCase,
    SubmitConsultationRequestUseCase,
)
from app.services.notifications import EmailNotificationService
from app.services.ports import TimeService
from app.services.theater import TheaterLockService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_system_clock = SystemClock()


@dataclass
class AuthenticatedUser:
    user: User
    role: Role | None

    @property
    def role_code(self) -> str | None:
        return self.role.code if self.role else None


def get_db():
    with get_session() as session:
        yield session


def get_clock() -> TimeService:
    return _system_clock


async def get_current_user(
    token: str = Depends(oauth2_scheme), session: Session = Depends(get_db)
) -> AuthenticatedUser:
    try:
        payload = security.decode_token(token)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    subject = payload.get("sub")
    if subject is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload") from exc

    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    role = session.get(Role, user.role_id) if user.role_id else None
    return AuthenticatedUser(user=user, role=role)


def require_roles(*allowed_roles: str) -> Callable[[AuthenticatedUser], AuthenticatedUser]:
    async def checker(current: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if allowed_roles:
            if current.role is None or current.role.code not in allowed_roles:
                raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
        return current

    return checker


async def get_audit_context(request: Request, current: AuthenticatedUser = Depends(get_current_user)) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
        "role": current.role_code,
        "request_path": request.url.path,
    }


def get_audit_service(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    context: dict = Depends(get_audit_context),
) -> SessionAuditService:
    return SessionAuditService(session, clock=clock, context=context)


def get_confirm_appointment_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> ConfirmAppointmentUseCase:
    return ConfirmAppointmentUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
        notes_max_length=settings.confirmation_notes_max_length,
        rejection_max_length=settings.quick_rejection_reason_max_length,
    )


def get_reject_appointment_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> RejectAppointmentUseCase:
    return RejectAppointmentUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
        reason_max_length=settings.rejection_reason_max_length,
    )


def get_check_in_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> CheckInPatientUseCase:
    return CheckInPatientUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
        clinic_timezone=settings.clinic_timezone,
    )


def get_no_show_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> MarkNoShowUseCase:
    return MarkNoShowUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
    )


def get_mark_ready_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> MarkReadyUseCase:
    return MarkReadyUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
    )


def get_start_consultation_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> StartConsultationUseCase:
    return StartConsultationUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
    )


def get_complete_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> CompleteAppointmentUseCase:
    return CompleteAppointmentUseCase(
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        EmailNotificationService(),
        audit,
        clock,
    )


def _consultation_collaborators(session: Session, clock: TimeService, audit: SessionAuditService) -> tuple:
    return (
        SqlAppointmentRepository(session),
        SqlPatientRepository(session),
        SqlUserRepository(session),
        EmailNotificationService(),
        audit,
        clock,
    )


def get_submit_consultation_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> SubmitConsultationRequestUseCase:
    return SubmitConsultationRequestUseCase(*_consultation_collaborators(session, clock, audit))


def get_review_consultation_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> ReviewConsultationRequestUseCase:
    return ReviewConsultationRequestUseCase(
        *_consultation_collaborators(session, clock, audit),
        clinic_timezone=settings.clinic_timezone,
    )


def get_resubmit_consultation_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> ResubmitConsultationRequestUseCase:
    return ResubmitConsultationRequestUseCase(*_consultation_collaborators(session, clock, audit))


def get_confirm_consultation_use_case(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> ConfirmConsultationUseCase:
    return ConfirmConsultationUseCase(*_consultation_collaborators(session, clock, audit))


def get_theater_service(
    session: Session = Depends(get_db),
    clock: TimeService = Depends(get_clock),
    audit: SessionAuditService = Depends(get_audit_service),
) -> TheaterLockService:
    return TheaterLockService(session, clock, audit, settings)


CurrentUser = Depends(get_current_user)
