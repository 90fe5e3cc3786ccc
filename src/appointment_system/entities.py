"""Immutable value objects passed between the store and the scheduling core."""

from dataclasses import dataclass
from datetime import datetime, time, timedelta

from .exceptions import ValidationError
from .intervals import TimeInterval


@dataclass(frozen=True)
class Doctor:
    id: int
    name: str
    specialization: str
    working_start: time
    working_end: time

    def __post_init__(self):
        if self.working_start >= self.working_end:
            raise ValidationError(
                f"Working hours for doctor {self.id} must start before they end "
                f"({self.working_start} >= {self.working_end})."
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "specialization": self.specialization,
            "working_start": self.working_start.strftime("%H:%M"),
            "working_end": self.working_end.strftime("%H:%M"),
        }


@dataclass(frozen=True)
class AppointmentDetails:
    """Descriptive fields of an appointment that do not affect scheduling."""
    appointment_type: str
    patient_name: str
    notes: str | None = None


@dataclass(frozen=True)
class Appointment:
    id: int
    doctor_id: int
    start: datetime
    duration_minutes: int
    appointment_type: str
    patient_name: str
    notes: str | None = None

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start, end=self.end)

    @property
    def details(self) -> AppointmentDetails:
        return AppointmentDetails(
            appointment_type=self.appointment_type,
            patient_name=self.patient_name,
            notes=self.notes,
        )

    def to_dict(self) -> dict:
        """Serialise using the field names booking clients already consume."""
        return {
            "id": self.id,
            "doctorId": self.doctor_id,
            "date": self.start.isoformat(),
            "duration": self.duration_minutes,
            "appointmentType": self.appointment_type,
            "patientName": self.patient_name,
            "notes": self.notes,
        }


__all__ = ["Doctor", "AppointmentDetails", "Appointment"]
