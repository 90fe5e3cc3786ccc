"""Parsing and timezone helpers for instants and calendar dates."""

from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError

# Formats accepted in addition to ISO-8601, matching what booking clients send.
_INSTANT_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d %H:%M:%S")


def load_timezone(name: str) -> tzinfo:
    """Resolve an IANA zone name; ``UTC`` maps to the fixed UTC offset."""
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone '{name}'.") from exc


def ensure_aware(value: datetime, tz: tzinfo = timezone.utc) -> datetime:
    """Attach ``tz`` to naive datetimes; aware datetimes are returned unchanged."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=tz)
    return value


def parse_instant(value, tz: tzinfo = timezone.utc) -> datetime:
    """
    Turn a datetime or a datetime string into an aware datetime.

    Strings may be ISO-8601 (with or without offset) or ``YYYY-MM-DD HH:MM``.
    Naive values are interpreted in ``tz``.
    """
    if isinstance(value, datetime):
        return ensure_aware(value, tz)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Start time is required.")

    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
        for fmt in _INSTANT_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        raise ValidationError(f"Invalid start time '{value}'.")
    return ensure_aware(parsed, tz)


def parse_day(value) -> date:
    """Accept a date, a datetime or a ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError("Date is required.")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD.") from exc
