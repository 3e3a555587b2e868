from __future__ import annotations

from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin


class Role(TimestampMixin, SQLModel, table=True):
    __tablename__ = "roles"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True, max_length=50)
    name: str = Field(max_length=255)
    permissions: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, default=list),
    )


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True, max_length=150)
    password_hash: str = Field(max_length=255)
    display_name: str = Field(max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    role_id: int = Field(foreign_key="roles.id")
    # Set for portal accounts that act on behalf of a patient record.
    patient_id: Optional[int] = Field(default=None, foreign_key="patients.id", index=True)
    is_active: bool = Field(default=True)
