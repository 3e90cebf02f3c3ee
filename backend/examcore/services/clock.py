"""Clock sources. Every time-dependent decision in the engine reads one of these."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from ..utils import ensure_utc


class SystemClock:
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Synthetic time that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)``, e.g. ``advance(minutes=5)``."""
        self._now = self._now + timedelta(**delta)
        return self._now
