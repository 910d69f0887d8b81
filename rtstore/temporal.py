"""Time helpers and the half-open range type used by bi-temporal tables.

Timestamps are stored as naive UTC (``timestamp without time zone``), so every
helper here returns naive datetimes. A range upper bound of ``None`` stands for
``infinity``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

RESOLUTION = timedelta(microseconds=1)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class TimeRange:
    """Half-open range ``[lower, upper)``; ``upper=None`` means unbounded."""

    lower: datetime
    upper: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.upper is not None and self.upper <= self.lower:
            raise ValueError("range upper bound must be greater than its lower bound")

    @classmethod
    def open_from(cls, lower: datetime) -> "TimeRange":
        return cls(lower=lower, upper=None)

    @property
    def is_open(self) -> bool:
        return self.upper is None

    def contains(self, when: datetime) -> bool:
        if when < self.lower:
            return False
        return self.upper is None or when < self.upper

    def overlaps(self, other: "TimeRange") -> bool:
        if self.upper is not None and self.upper <= other.lower:
            return False
        if other.upper is not None and other.upper <= self.lower:
            return False
        return True

    def closed_at(self, upper: datetime) -> "TimeRange":
        return TimeRange(lower=self.lower, upper=upper)

    def __str__(self) -> str:
        upper = self.upper.isoformat() if self.upper is not None else "infinity"
        return f"[{self.lower.isoformat()}, {upper})"
