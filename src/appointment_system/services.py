"""Business logic layer for the appointment system."""

from datetime import time
from typing import List

from .booking import BookingValidator
from .config import Settings
from .db import create_database_engine, create_session_factory, init_db
from .entities import Appointment, Doctor
from .exceptions import ValidationError
from .repositories import SqlAlchemyStore
from .slots import SlotGenerator, format_slot_times
from .store import AppointmentStore


def _parse_clock(value, field: str) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, str):
        try:
            return time.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"{field} must look like HH:MM, got '{value}'.") from exc
    raise ValidationError(f"{field} is required.")


class SchedulingService:
    """Facade that encapsulates use cases and business rules."""

    def __init__(self, store: AppointmentStore, settings: Settings | None = None):
        settings = settings or Settings(database_url="")
        self.store = store
        self.settings = settings
        self.slots = SlotGenerator(
            store,
            slot_minutes=settings.slot_minutes,
            tz=settings.timezone,
            timeout=settings.store_timeout,
        )
        self.bookings = BookingValidator(
            store,
            tz=settings.timezone,
            enforce_working_hours=settings.enforce_working_hours,
            timeout=settings.store_timeout,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "SchedulingService":
        """Build a service on the SQL database named by ``settings``."""
        engine = create_database_engine(settings.database_url, busy_timeout=settings.store_timeout)
        init_db(engine)
        return cls(SqlAlchemyStore(create_session_factory(engine)), settings)

    # Doctor
    def create_doctor(self, name: str, specialization: str, working_start, working_end) -> Doctor:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Doctor name cannot be empty.")
        if not isinstance(specialization, str) or not specialization.strip():
            raise ValidationError("Specialization cannot be empty.")
        start = _parse_clock(working_start, "Working start")
        end = _parse_clock(working_end, "Working end")
        if start >= end:
            raise ValidationError("Working hours must start before they end.")
        return self.store.add_doctor(
            name=name.strip(),
            specialization=specialization.strip(),
            working_start=start,
            working_end=end,
        )

    def list_doctors(self) -> List[Doctor]:
        return self.store.list_doctors()

    def get_doctor(self, doctor_id: int) -> Doctor:
        return self.store.get_doctor(doctor_id)

    # Availability
    def available_slots(self, doctor_id: int, day) -> List[time]:
        return self.slots.available_slots(doctor_id, day)

    def available_slot_labels(self, doctor_id: int, day) -> List[str]:
        return format_slot_times(self.available_slots(doctor_id, day))

    # Appointment
    def book_appointment(
        self,
        doctor_id: int,
        start,
        duration_minutes: int,
        appointment_type: str,
        patient_name: str,
        notes: str | None = None,
    ) -> Appointment:
        return self.bookings.book(
            doctor_id=doctor_id,
            start=start,
            duration_minutes=duration_minutes,
            appointment_type=appointment_type,
            patient_name=patient_name,
            notes=notes,
        )

    def update_appointment(self, appointment_id: int, **changes) -> Appointment:
        return self.bookings.reschedule(appointment_id, **changes)

    def delete_appointment(self, appointment_id: int) -> None:
        self.bookings.cancel(appointment_id)

    def get_appointment(self, appointment_id: int) -> Appointment:
        return self.store.get_appointment(appointment_id)

    def list_appointments(self, doctor_id: int | None = None) -> List[Appointment]:
        return self.store.list_all_appointments(doctor_id)
