"""
Tests for booking admission, rescheduling and cancellation.
"""

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from appointment_system.booking import BookingValidator
from appointment_system.entities import AppointmentDetails
from appointment_system.exceptions import (
    ResourceNotFoundError,
    StoreTimeoutError,
    TimeSlotOccupiedError,
    ValidationError,
)
from appointment_system.intervals import TimeInterval, overlaps
from appointment_system.memory_store import InMemoryStore
from appointment_system.store import Deadline


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 11, 25, hour, minute, tzinfo=timezone.utc)


def request(doctor_id, start=None, duration=30, **overrides):
    payload = {
        "doctor_id": doctor_id,
        "start": start or at(9),
        "duration_minutes": duration,
        "appointment_type": "Consultation",
        "patient_name": "Jane Roe",
    }
    payload.update(overrides)
    return payload


class RecordingStore(InMemoryStore):
    """In-memory store that records which store operations were called."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def get_doctor(self, doctor_id, *, deadline=None):
        self.calls.append("get_doctor")
        return super().get_doctor(doctor_id, deadline=deadline)

    def list_appointments(self, *args, **kwargs):
        self.calls.append("list_appointments")
        return super().list_appointments(*args, **kwargs)


class StalePrecheckStore(InMemoryStore):
    """Simulates a stale read: the pre-check sees no appointments at all."""

    def list_appointments(self, *args, **kwargs):
        return []


class TestBook:

    def test_books_on_empty_schedule(self, store, doctor):
        appointment = BookingValidator(store).book(**request(doctor.id, notes="  first visit "))
        assert appointment.id is not None
        assert appointment.doctor_id == doctor.id
        assert appointment.start == at(9)
        assert appointment.end == at(9, 30)
        assert appointment.notes == "first visit"
        assert store.get_appointment(appointment.id) == appointment

    def test_identical_second_request_conflicts(self, store, doctor):
        validator = BookingValidator(store)
        validator.book(**request(doctor.id))
        with pytest.raises(TimeSlotOccupiedError):
            validator.book(**request(doctor.id, patient_name="John Doe"))

    def test_back_to_back_bookings_are_allowed(self, store, doctor):
        validator = BookingValidator(store)
        validator.book(**request(doctor.id, start=at(9)))
        second = validator.book(**request(doctor.id, start=at(9, 30)))
        assert second.start == at(9, 30)

    def test_overlapping_by_one_minute_conflicts(self, store, doctor):
        validator = BookingValidator(store)
        validator.book(**request(doctor.id, start=at(9)))
        with pytest.raises(TimeSlotOccupiedError):
            validator.book(**request(doctor.id, start=at(9, 29)))

    def test_request_starting_inside_longer_booking_conflicts(self, store, doctor):
        validator = BookingValidator(store)
        validator.book(**request(doctor.id, start=at(9), duration=60))
        with pytest.raises(TimeSlotOccupiedError):
            validator.book(**request(doctor.id, start=at(9, 15), duration=15))

    def test_other_doctor_is_unaffected(self, store, doctor):
        other = store.add_doctor("Dr. Rahul Mehta", "Cardiology", time(9), time(17))
        validator = BookingValidator(store)
        validator.book(**request(doctor.id))
        assert validator.book(**request(other.id)).doctor_id == other.id

    def test_unknown_doctor(self, store):
        with pytest.raises(ResourceNotFoundError):
            BookingValidator(store).book(**request(4242))

    def test_accepts_original_string_format(self, store, doctor):
        appointment = BookingValidator(store).book(**request(doctor.id, start="2024-11-25 09:00"))
        assert appointment.start == at(9)

    def test_naive_input_uses_clinic_timezone(self, store, doctor):
        validator = BookingValidator(store, tz=ZoneInfo("Europe/Berlin"))
        appointment = validator.book(**request(doctor.id, start=datetime(2024, 11, 25, 10, 0)))
        assert appointment.start.astimezone(timezone.utc) == at(9)

    def test_race_loss_surfaces_as_conflict(self):
        store = StalePrecheckStore()
        doctor = store.add_doctor("Dr. A", "GP", time(9), time(17))
        validator = BookingValidator(store)
        validator.book(**request(doctor.id))
        with pytest.raises(TimeSlotOccupiedError):
            validator.book(**request(doctor.id, start=at(9, 15)))
        assert len(store.list_all_appointments(doctor.id)) == 1


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"duration_minutes": 0},
            {"duration_minutes": -30},
            {"duration_minutes": "30"},
            {"duration_minutes": True},
            {"duration_minutes": 10**10},
            {"start": datetime.max.replace(tzinfo=timezone.utc)},
            {"patient_name": "   "},
            {"patient_name": None},
            {"appointment_type": ""},
            {"start": "tomorrow at nine"},
            {"start": None},
            {"doctor_id": None},
            {"doctor_id": "1"},
            {"notes": 12},
        ],
    )
    def test_rejected_before_any_store_call(self, overrides):
        store = RecordingStore()
        doctor = store.add_doctor("Dr. A", "GP", time(9), time(17))
        payload = request(doctor.id)
        payload.update(overrides)
        with pytest.raises(ValidationError):
            BookingValidator(store).book(**payload)
        assert store.calls == []

    def test_working_hours_policy_off_by_default(self):
        store = InMemoryStore()
        doctor = store.add_doctor("Dr. A", "GP", time(9), time(10))
        appointment = BookingValidator(store).book(**request(doctor.id, start=at(7)))
        assert appointment.start == at(7)

    def test_working_hours_policy_enforced(self):
        store = InMemoryStore()
        doctor = store.add_doctor("Dr. A", "GP", time(9), time(10))
        validator = BookingValidator(store, enforce_working_hours=True)
        with pytest.raises(ValidationError, match="outside the working hours"):
            validator.book(**request(doctor.id, start=at(9, 45)))
        assert validator.book(**request(doctor.id, start=at(9, 30))).end == at(10)


class TestReschedule:

    def test_move_to_free_time(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id, notes="bring results"))
        moved = validator.reschedule(appointment.id, start=at(9, 30))
        assert moved.id == appointment.id
        assert moved.start == at(9, 30)
        assert moved.notes == "bring results"
        assert store.get_appointment(appointment.id).start == at(9, 30)

    def test_extending_into_own_interval_is_allowed(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        assert validator.reschedule(appointment.id, duration_minutes=45).end == at(9, 45)

    def test_move_onto_other_appointment_conflicts(self, store, doctor):
        validator = BookingValidator(store)
        first = validator.book(**request(doctor.id, start=at(9)))
        second = validator.book(**request(doctor.id, start=at(9, 30)))
        with pytest.raises(TimeSlotOccupiedError):
            validator.reschedule(second.id, start=at(9, 15))
        assert store.get_appointment(second.id).start == at(9, 30)
        assert store.get_appointment(first.id).start == at(9)

    def test_update_descriptive_fields_only(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id, notes="x"))
        updated = validator.reschedule(appointment.id, patient_name="John Doe", notes=None)
        assert updated.patient_name == "John Doe"
        assert updated.notes is None
        assert updated.start == appointment.start

    def test_zero_duration_rejected(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        with pytest.raises(ValidationError):
            validator.reschedule(appointment.id, duration_minutes=0)

    def test_out_of_range_duration_rejected(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        with pytest.raises(ValidationError):
            validator.reschedule(appointment.id, duration_minutes=10**10)
        assert store.get_appointment(appointment.id).end == at(9, 30)

    def test_unknown_appointment(self, store, doctor):
        with pytest.raises(ResourceNotFoundError):
            BookingValidator(store).reschedule(777, start=at(9))

    def test_move_to_other_doctor(self, store, doctor):
        other = store.add_doctor("Dr. Rahul Mehta", "Cardiology", time(9), time(17))
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        validator.book(**request(other.id, start=at(10)))
        moved = validator.reschedule(appointment.id, doctor_id=other.id)
        assert moved.doctor_id == other.id
        with pytest.raises(TimeSlotOccupiedError):
            validator.reschedule(appointment.id, start=at(10, 15))


class TestCancel:

    def test_delete_twice(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        validator.cancel(appointment.id)
        with pytest.raises(ResourceNotFoundError):
            validator.cancel(appointment.id)

    def test_delete_unknown_leaves_store_untouched(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        with pytest.raises(ResourceNotFoundError):
            validator.cancel(appointment.id + 100)
        assert store.list_all_appointments() == [appointment]

    def test_freed_slot_can_be_rebooked(self, store, doctor):
        validator = BookingValidator(store)
        appointment = validator.book(**request(doctor.id))
        validator.cancel(appointment.id)
        assert validator.book(**request(doctor.id)).start == at(9)


class TestDeadline:

    def test_expired_deadline_times_out_without_writing(self, store, doctor):
        expired = Deadline.after(-1)
        with pytest.raises(StoreTimeoutError):
            BookingValidator(store).book(**request(doctor.id), deadline=expired)
        assert store.list_all_appointments() == []

    def test_expired_deadline_on_conditional_write(self, store, doctor):
        interval = TimeInterval.from_duration(at(9), 30)
        details = AppointmentDetails(appointment_type="Consultation", patient_name="Jane Roe")
        with pytest.raises(StoreTimeoutError):
            store.create_appointment_if_free(doctor.id, interval, details, deadline=Deadline.after(-1))
        assert store.list_all_appointments() == []

    def test_timeout_is_retryable(self):
        assert StoreTimeoutError.retryable
        assert not TimeSlotOccupiedError.retryable


def test_final_schedule_has_no_overlapping_pair(store, doctor):
    validator = BookingValidator(store)
    for minute in range(0, 120, 10):
        try:
            validator.book(**request(doctor.id, start=at(9) + timedelta(minutes=minute), duration=25))
        except TimeSlotOccupiedError:
            pass
    booked = store.list_all_appointments(doctor.id)
    assert booked
    for i, first in enumerate(booked):
        for second in booked[i + 1:]:
            assert not overlaps(first.interval, second.interval)
