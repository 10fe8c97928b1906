"""Controllable clock for deterministic updated_at values."""
from datetime import datetime, timedelta, timezone

EPOCH = datetime(2025, 1, 6, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock; advance it explicitly between writes."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 1.0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Timestamp `seconds` after the clock's start."""
        return EPOCH + timedelta(seconds=seconds)
