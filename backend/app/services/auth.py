from __future__ import annotations

from typing import Optional, Tuple

import structlog
from sqlmodel import Session, select

from app.core.config import settings
from app.models import Role, User
from app.services import security

logger = structlog.get_logger(__name__)

ROLE_DEFINITIONS = {
    "doctor": {
        "name": "Doctor",
        "permissions": ["appointments:read", "appointments:decide", "appointments:complete"],
    },
    "nurse": {
        "name": "Nurse",
        "permissions": ["appointments:read", "appointments:check_in"],
    },
    "frontdesk": {
        "name": "Front Desk",
        "permissions": ["appointments:read", "appointments:check_in", "consultations:review"],
    },
    "patient": {
        "name": "Patient",
        "permissions": ["consultations:submit", "consultations:confirm"],
    },
    "theater_tech": {
        "name": "Theater Technician",
        "permissions": ["theaters:book"],
    },
    "admin": {
        "name": "Administrator",
        "permissions": [
            "appointments:read",
            "appointments:decide",
            "appointments:check_in",
            "appointments:complete",
            "consultations:review",
            "theaters:book",
            "theaters:override",
            "audit:read",
        ],
    },
}


class AuthenticationError(Exception):
    pass


def get_role_by_code(session: Session, code: str) -> Optional[Role]:
    statement = select(Role).where(Role.code == code)
    return session.exec(statement).first()


def get_user_by_username(session: Session, username: str) -> Optional[User]:
    statement = select(User).where(User.username == username)
    return session.exec(statement).first()


def authenticate_user(session: Session, username: str, password: str) -> User:
    user = get_user_by_username(session, username)
    if not user or not user.is_active:
        raise AuthenticationError("INVALID_CREDENTIALS")
    if not security.verify_password(password, user.password_hash):
        raise AuthenticationError("INVALID_CREDENTIALS")
    return user


def create_access_token_for_user(session: Session, user: User) -> Tuple[str, str, int]:
    role = session.get(Role, user.role_id)
    role_code = role.code if role else "user"
    access_token = security.create_access_token(str(user.id), {"role": role_code})
    return access_token, role_code, settings.access_token_expire_minutes * 60


def ensure_seed_data(session: Session) -> None:
    for code, data in ROLE_DEFINITIONS.items():
        if not get_role_by_code(session, code):
            session.add(Role(code=code, name=data["name"], permissions=data["permissions"]))
            session.commit()
            logger.info("role_seeded", role=code)
    admin_user = get_user_by_username(session, settings.first_superuser)
    admin_role = get_role_by_code(session, "admin")
    if admin_role and not admin_user:
        session.add(
            User(
                username=settings.first_superuser,
                password_hash=security.hash_password(settings.first_superuser_password),
                display_name="System Administrator",
                role_id=admin_role.id,
            )
        )
        session.commit()
        logger.info("superuser_seeded", username=settings.first_superuser)


__all__ = [
    "authenticate_user",
    "create_access_token_for_user",
    "ensure_seed_data",
    "get_role_by_code",
    "AuthenticationError",
]
