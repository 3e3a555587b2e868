from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:  # pragma: no cover - typing only
    from alembic.config import Config

import structlog
from sqlmodel import SQLModel, Session, create_engine

from app.core.config import settings

ALEMBIC_INSTALL_HINT = 'Alembic is required to run database migrations. Install it with `pip install -e ".[dev]"`.'

logger = structlog.get_logger(__name__)


def _require_alembic() -> tuple[Any, Any]:
    try:
        from alembic import command as alembic_command
        from alembic.config import Config as AlembicConfig
    except ImportError as exc:  # pragma: no cover - exercised via unit test
        raise RuntimeError(ALEMBIC_INSTALL_HINT) from exc

    return alembic_command, AlembicConfig


connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, echo=False, connect_args=connect_args)


def get_alembic_config() -> "Config":
    _, AlembicConfig = _require_alembic()
    migrations_path = Path(__file__).resolve().parent / "migrations"
    config = AlembicConfig()
    config.set_main_option("script_location", str(migrations_path))
    config.set_main_option("sqlalchemy.url", settings.database_url)
    return config


def init_db() -> None:
    """Bring the schema to the latest migration head."""
    alembic_command, _ = _require_alembic()
    alembic_command.upgrade(get_alembic_config(), "head")
    # Tables added to the models before a migration exists for them.
    SQLModel.metadata.create_all(engine)
    logger.debug("database_initialised", url=engine.url.render_as_string(hide_password=True))


@contextmanager
def get_session() -> Iterator[Session]:
    with Session(engine) as session:
        yield session
