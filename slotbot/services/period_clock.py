"""Period keys used to bucket mention usage counters."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional


class MentionKind(Enum):
    """Broadcast mention markers tracked by the usage ledger."""

    HERE = "here"
    EVERYONE = "everyone"

    @property
    def marker(self) -> str:
        return f"@{self.value}"


def detect_mentions(text: str) -> list[MentionKind]:
    """Return the broadcast mentions in a message, @everyone first."""
    if not text:
        return []
    return [kind for kind in (MentionKind.EVERYONE, MentionKind.HERE) if kind.marker in text]


class PeriodClock:
    """Derives day and week bucket keys in UTC.

    Days are UTC calendar days; weeks start on Monday. Keys are ISO dates
    ("2024-03-11"), so a new period simply produces a new key and stale
    counters are never read again.
    """

    def __init__(self, now_func: Optional[Callable[[], datetime]] = None):
        self._now_func = now_func or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        now = self._now_func()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now.astimezone(timezone.utc)

    def day_key(self, now: Optional[datetime] = None) -> str:
        now = now or self.now()
        return now.date().isoformat()

    def week_key(self, now: Optional[datetime] = None) -> str:
        now = now or self.now()
        monday = now.date() - timedelta(days=now.weekday())
        return monday.isoformat()

    def key_for(self, kind: MentionKind, now: Optional[datetime] = None) -> str:
        if kind is MentionKind.HERE:
            return self.day_key(now)
        return self.week_key(now)

    def next_day_boundary(self, now: Optional[datetime] = None) -> datetime:
        """Next UTC midnight strictly after ``now``."""
        now = now or self.now()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight + timedelta(days=1)
