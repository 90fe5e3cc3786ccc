"""Thread-safe in-memory store.

Each doctor has its own lock, so conditional writes for one doctor are
serialised while bookings for different doctors proceed independently.
"""

from __future__ import annotations

import itertools
import logging
import threading
from contextlib import ExitStack, contextmanager
from datetime import datetime, time
from typing import Dict, Iterator, List

from .entities import Appointment, AppointmentDetails, Doctor
from .exceptions import ResourceNotFoundError, StoreTimeoutError, TimeSlotOccupiedError
from .intervals import TimeInterval, has_conflict
from .store import Deadline

logger = logging.getLogger(__name__)


def _check(deadline: Deadline | None, operation: str) -> None:
    if deadline is not None:
        deadline.check(operation)


class InMemoryStore:
    """Dictionary-backed ``AppointmentStore``."""

    def __init__(self):
        self._doctors: Dict[int, Doctor] = {}
        self._appointments: Dict[int, Appointment] = {}
        self._doctor_locks: Dict[int, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._doctor_ids = itertools.count(1)
        self._appointment_ids = itertools.count(1)

    # Doctors
    def add_doctor(
        self,
        name: str,
        specialization: str,
        working_start: time,
        working_end: time,
        *,
        deadline: Deadline | None = None,
    ) -> Doctor:
        with self._registry_lock:
            doctor = Doctor(
                id=next(self._doctor_ids),
                name=name,
                specialization=specialization,
                working_start=working_start,
                working_end=working_end,
            )
            self._doctors[doctor.id] = doctor
            self._doctor_locks[doctor.id] = threading.Lock()
        return doctor

    def get_doctor(self, doctor_id: int, *, deadline: Deadline | None = None) -> Doctor:
        _check(deadline, "get_doctor")
        doctor = self._doctors.get(doctor_id)
        if doctor is None:
            raise ResourceNotFoundError(f"Doctor {doctor_id} not found.")
        return doctor

    def list_doctors(self, *, deadline: Deadline | None = None) -> List[Doctor]:
        _check(deadline, "list_doctors")
        return sorted(self._doctors.values(), key=lambda d: d.id)

    # Appointments
    def get_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> Appointment:
        _check(deadline, "get_appointment")
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            raise ResourceNotFoundError(f"Appointment {appointment_id} not found.")
        return appointment

    def list_appointments(
        self,
        doctor_id: int,
        window_start: datetime,
        window_end: datetime,
        *,
        deadline: Deadline | None = None,
    ) -> List[Appointment]:
        _check(deadline, "list_appointments")
        window = TimeInterval(start=window_start, end=window_end)
        return sorted(
            (
                a
                for a in list(self._appointments.values())
                if a.doctor_id == doctor_id and a.interval.overlaps(window)
            ),
            key=lambda a: a.start,
        )

    def list_all_appointments(
        self, doctor_id: int | None = None, *, deadline: Deadline | None = None
    ) -> List[Appointment]:
        _check(deadline, "list_all_appointments")
        appointments = list(self._appointments.values())
        if doctor_id is not None:
            appointments = [a for a in appointments if a.doctor_id == doctor_id]
        return sorted(appointments, key=lambda a: (a.start, a.id))

    def create_appointment_if_free(
        self,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        with self._locked(deadline, "create_appointment", doctor_id):
            self._raise_if_busy(doctor_id, interval)
            appointment = Appointment(
                id=next(self._appointment_ids),
                doctor_id=doctor_id,
                start=interval.start,
                duration_minutes=interval.duration_minutes(),
                appointment_type=details.appointment_type,
                patient_name=details.patient_name,
                notes=details.notes,
            )
            self._appointments[appointment.id] = appointment
        return appointment

    def update_appointment_if_free(
        self,
        appointment_id: int,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        while True:
            current = self.get_appointment(appointment_id, deadline=deadline)
            with self._locked(deadline, "update_appointment", current.doctor_id, doctor_id):
                stored = self._appointments.get(appointment_id)
                if stored is None:
                    raise ResourceNotFoundError(f"Appointment {appointment_id} not found.")
                if stored.doctor_id != current.doctor_id:
                    # Moved to another doctor while we waited; lock that one instead.
                    continue
                self._raise_if_busy(doctor_id, interval, exclude_id=appointment_id)
                updated = Appointment(
                    id=appointment_id,
                    doctor_id=doctor_id,
                    start=interval.start,
                    duration_minutes=interval.duration_minutes(),
                    appointment_type=details.appointment_type,
                    patient_name=details.patient_name,
                    notes=details.notes,
                )
                self._appointments[appointment_id] = updated
            return updated

    def delete_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> None:
        current = self.get_appointment(appointment_id, deadline=deadline)
        # Updates hold the old owner's lock, so an in-flight move cannot
        # write the appointment back after it is removed.
        with self._locked(deadline, "delete_appointment", current.doctor_id):
            if self._appointments.pop(appointment_id, None) is None:
                raise ResourceNotFoundError(f"Appointment {appointment_id} not found.")

    def _raise_if_busy(self, doctor_id: int, interval: TimeInterval, exclude_id: int | None = None) -> None:
        busy = [
            a.interval
            for a in list(self._appointments.values())
            if a.doctor_id == doctor_id and a.id != exclude_id
        ]
        if has_conflict(interval, busy):
            raise TimeSlotOccupiedError(
                f"Doctor {doctor_id} already has an appointment overlapping {interval}."
            )

    @contextmanager
    def _locked(self, deadline: Deadline | None, operation: str, *doctor_ids: int) -> Iterator[None]:
        """Hold the locks of the given doctors, acquired in id order."""
        _check(deadline, operation)
        with ExitStack() as stack:
            for doctor_id in sorted(set(doctor_ids)):
                lock = self._doctor_locks.get(doctor_id)
                if lock is None:
                    raise ResourceNotFoundError(f"Doctor {doctor_id} not found.")
                timeout = deadline.remaining() if deadline is not None else -1
                if not lock.acquire(timeout=timeout):
                    logger.warning("%s timed out waiting for doctor %s", operation, doctor_id)
                    raise StoreTimeoutError(f"{operation} did not complete before its deadline.")
                stack.callback(lock.release)
            yield
