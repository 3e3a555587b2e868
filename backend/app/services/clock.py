from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


class SystemClock:
    """Wall clock in UTC. Use cases receive it through ``TimeService``."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
