"""Admission control for new and rescheduled appointments."""

import logging
from datetime import timezone, tzinfo

from .clock import parse_instant
from .entities import Appointment, AppointmentDetails, Doctor
from .exceptions import TimeSlotOccupiedError, ValidationError
from .intervals import TimeInterval, has_conflict
from .slots import working_window
from .store import AppointmentStore, Deadline

logger = logging.getLogger(__name__)

# Marks an optional keyword the caller did not pass, so ``notes=None`` can clear notes.
_UNSET = object()


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    return value.strip()


def _require_id(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer identifier.")
    return value


def _require_duration(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("Duration must be a whole number of minutes.")
    if value <= 0:
        raise ValidationError(f"Duration must be positive, got {value}.")
    return value


def _optional_notes(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Notes must be text.")
    return value.strip() or None


class BookingValidator:
    """
    Validates booking requests and admits them through the store.

    The overlap pre-check here rejects obvious clashes early. It is not what
    prevents double-booking: the store's conditional write repeats the check
    atomically, and a clash found there surfaces as the same
    ``TimeSlotOccupiedError``.
    """

    def __init__(
        self,
        store: AppointmentStore,
        *,
        tz: tzinfo = timezone.utc,
        enforce_working_hours: bool = False,
        timeout: float | None = None,
    ):
        self.store = store
        self.tz = tz
        self.enforce_working_hours = enforce_working_hours
        self.timeout = timeout

    def book(
        self,
        doctor_id: int,
        start,
        duration_minutes: int,
        appointment_type: str,
        patient_name: str,
        notes: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        """
        Admit a new appointment.

        Raises:
            ValidationError: Missing or malformed fields, non-positive duration
            ResourceNotFoundError: Unknown doctor
            TimeSlotOccupiedError: The interval overlaps an existing appointment
            DatabaseConnectionError: The store failed or timed out
        """
        doctor_id = _require_id(doctor_id, "Doctor id")
        interval = TimeInterval.from_duration(
            parse_instant(start, self.tz), _require_duration(duration_minutes)
        )
        details = AppointmentDetails(
            appointment_type=_require_text(appointment_type, "Appointment type"),
            patient_name=_require_text(patient_name, "Patient name"),
            notes=_optional_notes(notes),
        )
        deadline = self._deadline(deadline)

        doctor = self.store.get_doctor(doctor_id, deadline=deadline)
        self._check_working_hours(doctor, interval)
        self._precheck(doctor.id, interval, deadline)

        try:
            appointment = self.store.create_appointment_if_free(
                doctor.id, interval, details, deadline=deadline
            )
        except TimeSlotOccupiedError:
            logger.warning("Booking for doctor %s at %s lost a concurrent race", doctor.id, interval)
            raise
        logger.info("Booked appointment %s for doctor %s at %s", appointment.id, doctor.id, interval)
        return appointment

    def reschedule(
        self,
        appointment_id: int,
        *,
        start=None,
        duration_minutes: int | None = None,
        appointment_type: str | None = None,
        patient_name: str | None = None,
        notes=_UNSET,
        doctor_id: int | None = None,
        deadline: Deadline | None = None,
    ) -> Appointment:
        """
        Change an appointment. Omitted fields keep their stored values.

        The new interval is checked against the doctor's other appointments
        exactly like a new booking.
        """
        appointment_id = _require_id(appointment_id, "Appointment id")
        if start is not None:
            start = parse_instant(start, self.tz)
        if duration_minutes is not None:
            duration_minutes = _require_duration(duration_minutes)
        if appointment_type is not None:
            appointment_type = _require_text(appointment_type, "Appointment type")
        if patient_name is not None:
            patient_name = _require_text(patient_name, "Patient name")
        if notes is not _UNSET:
            notes = _optional_notes(notes)
        if doctor_id is not None:
            doctor_id = _require_id(doctor_id, "Doctor id")
        deadline = self._deadline(deadline)

        current = self.store.get_appointment(appointment_id, deadline=deadline)
        interval = TimeInterval.from_duration(
            start if start is not None else current.start,
            duration_minutes if duration_minutes is not None else current.duration_minutes,
        )
        details = AppointmentDetails(
            appointment_type=appointment_type or current.appointment_type,
            patient_name=patient_name or current.patient_name,
            notes=current.notes if notes is _UNSET else notes,
        )
        doctor = self.store.get_doctor(
            doctor_id if doctor_id is not None else current.doctor_id, deadline=deadline
        )
        self._check_working_hours(doctor, interval)
        self._precheck(doctor.id, interval, deadline, exclude_id=appointment_id)

        try:
            updated = self.store.update_appointment_if_free(
                appointment_id, doctor.id, interval, details, deadline=deadline
            )
        except TimeSlotOccupiedError:
            logger.warning(
                "Rescheduling appointment %s to %s lost a concurrent race", appointment_id, interval
            )
            raise
        logger.info("Rescheduled appointment %s to %s", appointment_id, interval)
        return updated

    def cancel(self, appointment_id: int, *, deadline: Deadline | None = None) -> None:
        appointment_id = _require_id(appointment_id, "Appointment id")
        self.store.delete_appointment(appointment_id, deadline=self._deadline(deadline))
        logger.info("Cancelled appointment %s", appointment_id)

    def _precheck(
        self,
        doctor_id: int,
        interval: TimeInterval,
        deadline: Deadline | None,
        exclude_id: int | None = None,
    ) -> None:
        existing = self.store.list_appointments(
            doctor_id, interval.start, interval.end, deadline=deadline
        )
        busy = [a.interval for a in existing if a.id != exclude_id]
        if has_conflict(interval, busy):
            logger.info("Rejected %s for doctor %s: slot taken", interval, doctor_id)
            raise TimeSlotOccupiedError(
                f"Doctor {doctor_id} already has an appointment overlapping {interval}."
            )

    def _check_working_hours(self, doctor: Doctor, interval: TimeInterval) -> None:
        if not self.enforce_working_hours:
            return
        local_start = interval.start.astimezone(self.tz)
        if not working_window(doctor, local_start.date(), self.tz).contains(interval):
            raise ValidationError(
                f"Requested time {interval} is outside the working hours of doctor {doctor.id}."
            )

    def _deadline(self, deadline: Deadline | None) -> Deadline | None:
        if deadline is None and self.timeout is not None:
            return Deadline.after(self.timeout)
        return deadline
