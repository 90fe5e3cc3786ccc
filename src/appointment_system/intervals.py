"""
Half-open time intervals and the overlap rule shared by slot generation
and booking admission.

Two intervals ``[s1, e1)`` and ``[s2, e2)`` overlap iff ``s1 < e2`` and
``s2 < e1``. Back-to-back intervals (one ends exactly when the next starts)
therefore never conflict.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List

from .exceptions import ValidationError


@dataclass(frozen=True)
class TimeInterval:
    """
    Immutable half-open range ``[start, end)``.

    Invariant: start must be before end.
    """
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int) -> "TimeInterval":
        try:
            end = start + timedelta(minutes=minutes)
        except OverflowError as exc:
            raise ValidationError(
                f"An interval of {minutes} minutes from {start} is out of range."
            ) from exc
        return cls(start=start, end=end)

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def contains(self, other: "TimeInterval") -> bool:
        """True if ``other`` lies entirely inside this interval."""
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


def overlaps(first: TimeInterval, second: TimeInterval) -> bool:
    """Check whether two half-open intervals share at least one instant."""
    return first.start < second.end and second.start < first.end


def has_conflict(candidate: TimeInterval, existing: Iterable[TimeInterval]) -> bool:
    """
    Return True if any interval in ``existing`` overlaps ``candidate``.

    Stops at the first clash; ``existing`` may be in any order.
    """
    return any(overlaps(candidate, interval) for interval in existing)


def find_conflicts(candidate: TimeInterval, existing: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Return every interval in ``existing`` that overlaps ``candidate``."""
    return [interval for interval in existing if overlaps(candidate, interval)]


__all__ = ["TimeInterval", "overlaps", "has_conflict", "find_conflicts"]
