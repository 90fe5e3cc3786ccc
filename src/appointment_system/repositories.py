"""Data access layer built on SQLAlchemy sessions."""

import logging
from contextlib import contextmanager
from datetime import datetime, time, timezone
from typing import Iterator, List, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from . import models
from .db import SQLITE_BEGIN_OPTION, SQLITE_BUSY_TIMEOUT_OPTION
from .entities import Appointment, AppointmentDetails, Doctor
from .exceptions import (
    DatabaseConnectionError,
    ResourceNotFoundError,
    StoreTimeoutError,
    TimeSlotOccupiedError,
    ValidationError,
)
from .intervals import TimeInterval
from .store import Deadline

logger = logging.getLogger(__name__)


def _utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


class DoctorRepository:
    """CRUD operations for Doctor."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self, name: str, specialization: str, working_start: time, working_end: time
    ) -> models.DoctorModel:
        doctor = models.DoctorModel(
            name=name,
            specialization=specialization,
            working_start=working_start,
            working_end=working_end,
        )
        self.session.add(doctor)
        self.session.flush()
        return doctor

    def get(self, doctor_id: int, lock: bool = False) -> models.DoctorModel:
        stmt = select(models.DoctorModel).where(models.DoctorModel.id == doctor_id)
        if lock:
            # Serialises conditional writes per doctor on databases with row locks.
            stmt = stmt.with_for_update()
        doctor = self.session.execute(stmt).scalar_one_or_none()
        if doctor is None:
            raise ResourceNotFoundError(f"Doctor {doctor_id} not found.")
        return doctor

    def list(self) -> Sequence[models.DoctorModel]:
        return self.session.scalars(select(models.DoctorModel).order_by(models.DoctorModel.id)).all()


class AppointmentRepository:
    """CRUD operations for Appointment."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self, doctor_id: int, interval: TimeInterval, details: AppointmentDetails
    ) -> models.AppointmentModel:
        appointment = models.AppointmentModel(doctor_id=doctor_id)
        self._apply(appointment, interval, details)
        self.session.add(appointment)
        self.session.flush()
        return appointment

    def update(
        self,
        appointment: models.AppointmentModel,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
    ) -> models.AppointmentModel:
        appointment.doctor_id = doctor_id
        self._apply(appointment, interval, details)
        self.session.flush()
        return appointment

    def get(self, appointment_id: int, lock: bool = False) -> models.AppointmentModel:
        stmt = select(models.AppointmentModel).where(models.AppointmentModel.id == appointment_id)
        if lock:
            stmt = stmt.with_for_update()
        appointment = self.session.execute(stmt).scalar_one_or_none()
        if appointment is None:
            raise ResourceNotFoundError(f"Appointment {appointment_id} not found.")
        return appointment

    def delete(self, appointment_id: int) -> None:
        self.session.delete(self.get(appointment_id, lock=True))
        self.session.flush()

    def overlapping(
        self,
        doctor_id: int,
        window_start: datetime,
        window_end: datetime,
        exclude_id: int | None = None,
    ) -> Sequence[models.AppointmentModel]:
        """Appointments of a doctor whose ``[starts_at, ends_at)`` intersects the window."""
        stmt = select(models.AppointmentModel).where(
            models.AppointmentModel.doctor_id == doctor_id,
            models.AppointmentModel.starts_at < _utc(window_end),
            models.AppointmentModel.ends_at > _utc(window_start),
        )
        if exclude_id is not None:
            stmt = stmt.where(models.AppointmentModel.id != exclude_id)
        return self.session.scalars(stmt.order_by(models.AppointmentModel.starts_at)).all()

    def list(self, doctor_id: int | None = None) -> Sequence[models.AppointmentModel]:
        stmt = select(models.AppointmentModel)
        if doctor_id is not None:
            stmt = stmt.where(models.AppointmentModel.doctor_id == doctor_id)
        stmt = stmt.order_by(models.AppointmentModel.starts_at, models.AppointmentModel.id)
        return self.session.scalars(stmt).all()

    @staticmethod
    def _apply(
        appointment: models.AppointmentModel, interval: TimeInterval, details: AppointmentDetails
    ) -> None:
        appointment.starts_at = _utc(interval.start)
        appointment.ends_at = _utc(interval.end)
        appointment.duration_minutes = interval.duration_minutes()
        appointment.appointment_type = details.appointment_type
        appointment.patient_name = details.patient_name
        appointment.notes = details.notes


class SqlAlchemyStore:
    """``AppointmentStore`` backed by a relational database.

    Every call runs in its own transaction. Conditional writes lock the
    doctor row, re-read the doctor's overlapping appointments and write in
    that same transaction; on SQLite the transaction starts with
    ``BEGIN IMMEDIATE`` so the write lock is held before the re-read.

    Bookings for different doctors only proceed in parallel on databases
    with row locks (PostgreSQL, MySQL). SQLite has a single write lock, so
    there every write waits for every other write, across doctors too, up
    to the busy timeout or the caller's deadline.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # Doctors
    def get_doctor(self, doctor_id: int, *, deadline: Deadline | None = None) -> Doctor:
        with self._transaction("get_doctor", deadline, read_only=True) as session:
            return DoctorRepository(session).get(doctor_id).to_entity()

    def list_doctors(self, *, deadline: Deadline | None = None) -> List[Doctor]:
        with self._transaction("list_doctors", deadline, read_only=True) as session:
            return [doctor.to_entity() for doctor in DoctorRepository(session).list()]

    def add_doctor(
        self,
        name: str,
        specialization: str,
        working_start: time,
        working_end: time,
        *,
        deadline: Deadline | None = None,
    ) -> Doctor:
        with self._transaction("add_doctor", deadline) as session:
            doctor = DoctorRepository(session).create(
                name=name,
                specialization=specialization,
                working_start=working_start,
                working_end=working_end,
            )
            return doctor.to_entity()

    # Appointments
    def get_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> Appointment:
        with self._transaction("get_appointment", deadline, read_only=True) as session:
            return AppointmentRepository(session).get(appointment_id).to_entity()

    def list_appointments(
        self,
        doctor_id: int,
        window_start: datetime,
        window_end: datetime,
        *,
        deadline: Deadline | None = None,
    ) -> List[Appointment]:
        with self._transaction("list_appointments", deadline, read_only=True) as session:
            rows = AppointmentRepository(session).overlapping(doctor_id, window_start, window_end)
            return [row.to_entity() for row in rows]

    def list_all_appointments(
        self, doctor_id: int | None = None, *, deadline: Deadline | None = None
    ) -> List[Appointment]:
        with self._transaction("list_all_appointments", deadline, read_only=True) as session:
            return [row.to_entity() for row in AppointmentRepository(session).list(doctor_id)]

    def create_appointment_if_free(
        self,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        with self._transaction("create_appointment", deadline) as session:
            DoctorRepository(session).get(doctor_id, lock=True)
            appointments = AppointmentRepository(session)
            self._raise_if_busy(appointments, doctor_id, interval)
            return appointments.create(doctor_id, interval, details).to_entity()

    def update_appointment_if_free(
        self,
        appointment_id: int,
        doctor_id: int,
        interval: TimeInterval,
        details: AppointmentDetails,
        *,
        deadline: Deadline | None = None,
    ) -> Appointment:
        with self._transaction("update_appointment", deadline) as session:
            doctors = DoctorRepository(session)
            appointments = AppointmentRepository(session)
            current = appointments.get(appointment_id)
            # Lock in id order so two moves between the same doctors cannot deadlock.
            for locked_id in sorted({current.doctor_id, doctor_id}):
                doctors.get(locked_id, lock=True)
            self._raise_if_busy(appointments, doctor_id, interval, exclude_id=appointment_id)
            return appointments.update(current, doctor_id, interval, details).to_entity()

    def delete_appointment(self, appointment_id: int, *, deadline: Deadline | None = None) -> None:
        with self._transaction("delete_appointment", deadline) as session:
            AppointmentRepository(session).delete(appointment_id)

    @staticmethod
    def _raise_if_busy(
        appointments: AppointmentRepository,
        doctor_id: int,
        interval: TimeInterval,
        exclude_id: int | None = None,
    ) -> None:
        clashes = appointments.overlapping(doctor_id, interval.start, interval.end, exclude_id=exclude_id)
        if clashes:
            raise TimeSlotOccupiedError(
                f"Doctor {doctor_id} already has an appointment overlapping {interval}."
            )

    @contextmanager
    def _transaction(
        self, operation: str, deadline: Deadline | None, read_only: bool = False
    ) -> Iterator[Session]:
        """Run one store operation in a transaction bounded by ``deadline``.

        The transaction is rolled back on any failure, including a deadline
        that expires after the write was flushed but before commit.
        """
        if deadline is not None:
            deadline.check(operation)
        session: Session = self._session_factory()
        try:
            connection = session.connection(
                execution_options=self._connection_options(deadline, read_only)
            )
            if deadline is not None and connection.dialect.name == "postgresql":
                timeout_ms = max(1, int(deadline.remaining() * 1000))
                connection.exec_driver_sql(f"SET LOCAL statement_timeout = {timeout_ms}")
            yield session
            if deadline is not None:
                deadline.check(operation)
            session.commit()
        except OperationalError as exc:
            session.rollback()
            logger.error("%s failed: %s", operation, exc)
            if deadline is not None and deadline.expired():
                raise StoreTimeoutError(f"{operation} did not complete before its deadline.") from exc
            if "locked" in str(exc.orig).lower() or "timeout" in str(exc.orig).lower():
                raise StoreTimeoutError(f"{operation} timed out waiting for the database.") from exc
            raise DatabaseConnectionError(f"{operation} failed: database unavailable.") from exc
        except IntegrityError as exc:
            session.rollback()
            logger.error("%s rejected by the database: %s", operation, exc.orig)
            raise ValidationError(f"{operation} was rejected by the database.") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("%s failed: %s", operation, exc)
            raise DatabaseConnectionError(f"{operation} failed: database error.") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _connection_options(deadline: Deadline | None, read_only: bool) -> dict:
        options = {SQLITE_BEGIN_OPTION: "DEFERRED" if read_only else "IMMEDIATE"}
        if deadline is not None:
            options[SQLITE_BUSY_TIMEOUT_OPTION] = max(1, int(deadline.remaining() * 1000))
        return options
