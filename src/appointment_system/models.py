"""SQLAlchemy ORM models for the appointment system."""

from datetime import datetime, time, timezone

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .db import Base
from .entities import Appointment, Doctor


class UTCDateTime(TypeDecorator):
    """Store aware datetimes as naive UTC and hand them back as aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("UTCDateTime requires timezone-aware datetimes.")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DoctorModel(Base):
    __tablename__ = "doctors"
    __table_args__ = (CheckConstraint("working_start < working_end", name="ck_doctors_working_hours"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    specialization: Mapped[str] = mapped_column(String(100), nullable=False)
    working_start: Mapped[time] = mapped_column(Time, nullable=False)
    working_end: Mapped[time] = mapped_column(Time, nullable=False)

    appointments: Mapped[list["AppointmentModel"]] = relationship(
        "AppointmentModel", back_populates="doctor", passive_deletes=True
    )

    def to_entity(self) -> Doctor:
        return Doctor(
            id=self.id,
            name=self.name,
            specialization=self.specialization,
            working_start=self.working_start,
            working_end=self.working_end,
        )

    def __repr__(self) -> str:
        return f"<DoctorModel id={self.id} name={self.name}>"


class AppointmentModel(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_appointments_duration_positive"),
        CheckConstraint("starts_at < ends_at", name="ck_appointments_interval"),
        Index("ix_appointments_doctor_interval", "doctor_id", "starts_at", "ends_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    doctor_id: Mapped[int] = mapped_column(
        ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # Always starts_at + duration_minutes.
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    appointment_type: Mapped[str] = mapped_column(String(100), nullable=False)
    patient_name: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    doctor: Mapped[DoctorModel] = relationship("DoctorModel", back_populates="appointments")

    def to_entity(self) -> Appointment:
        return Appointment(
            id=self.id,
            doctor_id=self.doctor_id,
            start=self.starts_at,
            duration_minutes=self.duration_minutes,
            appointment_type=self.appointment_type,
            patient_name=self.patient_name,
            notes=self.notes,
        )

    def __repr__(self) -> str:
        return (
            f"<AppointmentModel id={self.id} doctor_id={self.doctor_id} "
            f"starts_at={self.starts_at}>"
        )
