"""
Free-slot calculation for a doctor's working day.

Pure domain logic in ``free_slot_starts``; ``SlotGenerator`` adds the store
lookups around it.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, List

from .clock import parse_day
from .entities import Appointment, Doctor
from .exceptions import ValidationError
from .intervals import TimeInterval, has_conflict
from .store import AppointmentStore, Deadline

logger = logging.getLogger(__name__)

DEFAULT_SLOT_MINUTES = 30


def working_window(doctor: Doctor, day: date, tz: tzinfo = timezone.utc) -> TimeInterval:
    """The half-open interval ``[working_start, working_end)`` on ``day``."""
    return TimeInterval(
        start=datetime.combine(day, doctor.working_start, tzinfo=tz),
        end=datetime.combine(day, doctor.working_end, tzinfo=tz),
    )


def free_slot_starts(
    window: TimeInterval,
    busy: Iterable[TimeInterval],
    slot_minutes: int = DEFAULT_SLOT_MINUTES,
) -> List[datetime]:
    """
    Walk fixed-size candidates from the window start and keep the free ones.

    Candidates are ``[t, t + g)`` for ``t = start, start + g, ...`` while
    ``t + g <= end``, so a slot never runs past the end of the window.
    """
    if slot_minutes <= 0:
        raise ValidationError(f"Slot length must be positive, got {slot_minutes}.")

    busy = list(busy)
    step = timedelta(minutes=slot_minutes)
    starts: List[datetime] = []
    current = window.start
    while current + step <= window.end:
        candidate = TimeInterval(start=current, end=current + step)
        if window.contains(candidate) and not has_conflict(candidate, busy):
            starts.append(current)
        current += step
    return starts


def format_slot_times(slots: Iterable[time]) -> List[str]:
    """Render slot start times as ``HH:MM`` labels."""
    return [slot.strftime("%H:%M") for slot in slots]


class SlotGenerator:
    """Lists the free fixed-size slots of a doctor on a given date."""

    def __init__(
        self,
        store: AppointmentStore,
        *,
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
        tz: tzinfo = timezone.utc,
        timeout: float | None = None,
    ):
        if slot_minutes <= 0:
            raise ValidationError(f"Slot length must be positive, got {slot_minutes}.")
        self.store = store
        self.slot_minutes = slot_minutes
        self.tz = tz
        self.timeout = timeout

    def available_slots(
        self,
        doctor_id: int,
        day,
        *,
        slot_minutes: int | None = None,
        deadline: Deadline | None = None,
    ) -> List[time]:
        """
        Return the free slot start times (time of day, ascending).

        Raises:
            ValidationError: If ``day`` is malformed or the slot length is not positive
            ResourceNotFoundError: If the doctor does not exist
        """
        target_day = parse_day(day)
        granularity = self.slot_minutes if slot_minutes is None else slot_minutes
        if granularity <= 0:
            raise ValidationError(f"Slot length must be positive, got {granularity}.")
        if deadline is None and self.timeout is not None:
            deadline = Deadline.after(self.timeout)

        doctor = self.store.get_doctor(doctor_id, deadline=deadline)
        window = working_window(doctor, target_day, self.tz)
        existing = self.store.list_appointments(doctor.id, window.start, window.end, deadline=deadline)
        return self.free_slots(window, existing, granularity)

    def free_slots(
        self,
        window: TimeInterval,
        appointments: Iterable[Appointment],
        slot_minutes: int | None = None,
    ) -> List[time]:
        granularity = self.slot_minutes if slot_minutes is None else slot_minutes
        busy = [appointment.interval for appointment in appointments]
        starts = free_slot_starts(window, busy, granularity)
        logger.debug(
            "%d free slot(s) of %d min in %s", len(starts), granularity, window
        )
        return [start.astimezone(self.tz).time() for start in starts]
