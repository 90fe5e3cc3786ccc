"""
Persistence boundary consumed by the scheduling core.

The core never talks to a database directly. It receives an object matching
``AppointmentStore`` (dependency injection), which keeps the slot and
booking logic free of I/O lifecycle concerns and lets tests swap in the
in-memory implementation.
"""

from __future__ import annotations

import time as _time
from dataclasses import dataclass
from datetime import datetime, time
from typing import List, Protocol, Sequence

from .entities import Appointment, AppointmentDetails, Doctor
from .exceptions import StoreTimeoutError
from .intervals import TimeInterval


@dataclass(frozen=True)
class Deadline:
    """A point on the monotonic clock after which store work must stop."""
    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(expires_at=_time.monotonic() + seconds)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - _time.monotonic())

    def expired(self) -> bool:
        return _time.monotonic() >= self.expires_at

    def check(self, operation: str) -> None:
        """Raise ``StoreTimeoutError`` once the deadline has passed."""
        if self.expired():
            raise StoreTimeoutError(f"{operation} did not complete before its deadline.")


class AppointmentStore(Protocol):
    """Operations the scheduling core needs from persistence.

    ``create_appointment_if_free`` and ``update_appointment_if_free`` must
    re-check the doctor's appointments and write in one atomic unit: of two
    concurrent conflicting writers at most one succeeds and the other gets
    ``TimeSlotOccupiedError``.
    """

    def get_doctor(self, doctor_id: int, *, deadline: Deadline | None = None) -> Doctor:
        """Return the doctor or raise ``ResourceNotFoundError``."""

    def list_doctors(self, *, deadline: Deadline | None = None) -> List[Doctor]:
        """Return every doctor ordered by id."""

    def add_doctor(
        self,
        name: str,
        specialization: str,
        working_start: time,
        working_end: time,
        *,
        deadline: Deadline | None = None,
    ) -> Doctor:
        """Persist a new doctor and return it with its identifier."""

    def get_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> Appointment:
        """Return the appointment or raise ``ResourceNotFoundError``."""

    def list_appointments(
        self,
        doctor_id: int,
        window_start: datetime,
        window_end: datetime,
        *,
        deadline: Deadline | None = None,
    ) -> Sequence[Appointment]:
        """Return the doctor's appointments whose intervals intersect the window."""

    def list_all_appointments(
        self, doctor_id: int | None = None, *, deadline: Deadline | None = None
    ) -> List[Appointment]:
        """Return all appointments, optionally for one doctor, ordered by start."""

    def create_appointment_if_free(
        self,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        """Atomically check for overlaps and insert."""

    def update_appointment_if_free(
        self,
        appointment_id: int,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        """Atomically check for overlaps, ignoring the appointment itself, and update."""

    def delete_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> None:
        """Delete the appointment or raise ``ResourceNotFoundError``."""


__all__ = ["AppointmentStore", "Deadline"]
