from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from app.api.deps import AuthenticatedUser, get_current_user, get_db
from app.schemas import ApiResponse, LoginRequest, RoleRead, TokenResponse, UserRead
from app.services import (
    AuthenticationError,
    authenticate_user,
    create_access_token_for_user,
    ensure_seed_data,
)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=ApiResponse[TokenResponse])
def login(payload: LoginRequest, session: Session = Depends(get_db)) -> ApiResponse[TokenResponse]:
    ensure_seed_data(session)
    try:
        user = authenticate_user(session, payload.username, payload.password)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials") from exc

    access_token, role_code, expires_in = create_access_token_for_user(session, user)
    return ApiResponse(
        data=TokenResponse(
            access_token=access_token,
            token_type="bearer",
            expires_in=expires_in,
            role=role_code,
        )
    )


@router.get("/me", response_model=ApiResponse[UserRead])
def read_current_user(current: AuthenticatedUser = Depends(get_current_user)) -> ApiResponse[UserRead]:
    if current.role is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User has no role")
    return ApiResponse(
        data=UserRead(
            id=current.user.id,
            username=current.user.username,
            display_name=current.user.display_name,
            role=RoleRead(id=current.role.id, code=current.role.code, name=current.role.name),
            patient_id=current.user.patient_id,
            is_active=current.user.is_active,
        )
    )
