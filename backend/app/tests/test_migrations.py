from __future__ import annotations

import builtins

import pytest
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import inspect

from app.db.session import engine, get_alembic_config, init_db


def test_migrations_reach_head() -> None:
    init_db()
    head_revision = ScriptDirectory.from_config(get_alembic_config()).get_current_head()

    with engine.connect() as connection:
        assert MigrationContext.configure(connection).get_current_revision() == head_revision


def test_workflow_tables_and_columns_exist() -> None:
    init_db()
    inspector = inspect(engine)

    tables = set(inspector.get_table_names())
    assert {
        "appointments",
        "appointment_status_history",
        "audit_events",
        "surgical_cases",
        "theaters",
        "theater_bookings",
    } <= tables

    appointment_columns = {column["name"] for column in inspector.get_columns("appointments")}
    assert {"consultation_request_status", "late_by_minutes", "doctor_rejection_reason"} <= appointment_columns

    booking_columns = {column["name"] for column in inspector.get_columns("theater_bookings")}
    assert {"lock_expires_at", "locked_by", "status"} <= booking_columns


def test_init_db_explains_missing_alembic(monkeypatch: pytest.MonkeyPatch) -> None:
    import app.db.session as session

    real_import = builtins.__import__

    def without_alembic(name: str, *args: object, **kwargs: object):
        if name.startswith("alembic"):
            raise ImportError("alembic not installed")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", without_alembic)

    with pytest.raises(RuntimeError, match="Alembic is required"):
        session.init_db()
