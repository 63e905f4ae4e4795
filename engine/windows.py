"""Time-window partitioning for pagination-limited clip queries."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def to_rfc3339(value: datetime) -> str:
    """Format an aware datetime as RFC3339 UTC with millisecond precision."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class FetchWindow:
    """Half-open interval ``[start, end)`` plus an optional continuation cursor."""

    start: datetime
    end: datetime
    cursor: str | None = None

    def __post_init__(self) -> None:
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("window bounds must be timezone-aware")
        if not self.start < self.end:
            raise ValueError(f"window start must precede end: {self.start} >= {self.end}")

    @property
    def started_at(self) -> str:
        return to_rfc3339(self.start)

    @property
    def ended_at(self) -> str:
        return to_rfc3339(self.end)

    def with_cursor(self, cursor: str | None) -> "FetchWindow":
        return replace(self, cursor=cursor)

    def __str__(self) -> str:
        return f"[{self.started_at}, {self.ended_at})"


def start_of_day(value: datetime, tz: ZoneInfo | timezone) -> datetime:
    local = value.astimezone(tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def build_fetch_windows(
    now: datetime,
    lookback_days: int,
    window_minutes: int = 30,
    *,
    tz: str | ZoneInfo | timezone = timezone.utc,
) -> list[FetchWindow]:
    """Tile ``[start_of_day(now - lookback_days), now)`` into fixed-size windows.

    Windows are contiguous and in chronological order. The window containing
    ``now`` is clamped to end at ``now``; no window starts at or after ``now``.
    At least one window is always returned.
    """
    if window_minutes <= 0:
        raise ValueError("window_minutes must be positive")
    if lookback_days < 0:
        raise ValueError("lookback_days must be non-negative")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz

    step = timedelta(minutes=window_minutes)
    origin = start_of_day(now - timedelta(days=lookback_days), zone).astimezone(timezone.utc)
    now_utc = now.astimezone(timezone.utc)

    windows: list[FetchWindow] = []
    start = origin
    while start < now_utc:
        end = min(start + step, now_utc)
        windows.append(FetchWindow(start=start, end=end))
        start = start + step

    if not windows:
        # now sits exactly on the lookback midnight
        windows.append(FetchWindow(start=now_utc - step, end=now_utc))
    return windows
