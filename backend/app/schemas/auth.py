from __future__ import annotations


from typing import Optional

from pydantic import BaseModel


class RoleRead(BaseModel):
    id: int
    code: str
    name: str


class UserRead(BaseModel):
    id: int
    username: str
    display_name: str
    role: RoleRead
    patient_id: Optional[int] = None
    is_active: bool


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str
