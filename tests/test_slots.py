"""
Tests for free-slot generation.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from appointment_system.entities import AppointmentDetails, Doctor
from appointment_system.exceptions import ResourceNotFoundError, ValidationError
from appointment_system.intervals import TimeInterval
from appointment_system.slots import SlotGenerator, format_slot_times, free_slot_starts, working_window

DAY = date(2024, 11, 25)
DETAILS = AppointmentDetails(appointment_type="Consultation", patient_name="Jane Roe")


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 11, 25, hour, minute, tzinfo=timezone.utc)


def book(store, doctor_id, start: datetime, minutes: int):
    return store.create_appointment_if_free(doctor_id, TimeInterval.from_duration(start, minutes), DETAILS)


class TestFreeSlotStarts:

    def test_candidate_count_is_floor_of_window(self):
        window = TimeInterval(start=at(8), end=at(17))
        assert len(free_slot_starts(window, [], 30)) == 18
        assert len(free_slot_starts(window, [], 25)) == (9 * 60) // 25

    def test_never_emits_slot_past_window_end(self):
        window = TimeInterval(start=at(9), end=at(10, 50))
        starts = free_slot_starts(window, [], 30)
        assert starts == [at(9), at(9, 30), at(10)]
        assert all(start + timedelta(minutes=30) <= window.end for start in starts)

    def test_window_shorter_than_slot_is_empty(self):
        window = TimeInterval(start=at(9), end=at(9, 20))
        assert free_slot_starts(window, [], 30) == []

    def test_partial_overlap_blocks_slot(self):
        window = TimeInterval(start=at(9), end=at(11))
        busy = [TimeInterval(start=at(9, 45), end=at(10, 15))]
        assert free_slot_starts(window, busy, 30) == [at(9), at(10, 30)]

    def test_rejects_non_positive_granularity(self):
        window = TimeInterval(start=at(9), end=at(10))
        with pytest.raises(ValidationError):
            free_slot_starts(window, [], 0)


class TestSlotGenerator:

    def test_empty_schedule(self, store, doctor):
        slots = SlotGenerator(store).available_slots(doctor.id, DAY)
        assert format_slot_times(slots) == ["09:00", "09:30"]

    def test_booked_first_slot(self, store, doctor):
        book(store, doctor.id, at(9), 30)
        slots = SlotGenerator(store).available_slots(doctor.id, "2024-11-25")
        assert slots == [time(9, 30)]

    def test_fully_booked_day_is_empty_not_error(self, store, doctor):
        book(store, doctor.id, at(9), 60)
        assert SlotGenerator(store).available_slots(doctor.id, DAY) == []

    def test_appointments_on_other_days_are_ignored(self, store, doctor):
        book(store, doctor.id, at(9) + timedelta(days=1), 60)
        assert len(SlotGenerator(store).available_slots(doctor.id, DAY)) == 2

    def test_appointment_spilling_in_from_before_window(self, store, doctor):
        book(store, doctor.id, at(8, 30), 45)
        assert SlotGenerator(store).available_slots(doctor.id, DAY) == [time(9, 30)]

    def test_custom_granularity(self, store, doctor):
        slots = SlotGenerator(store, slot_minutes=15).available_slots(doctor.id, DAY)
        assert format_slot_times(slots) == ["09:00", "09:15", "09:30", "09:45"]

    def test_is_deterministic(self, store, doctor):
        book(store, doctor.id, at(9, 30), 30)
        generator = SlotGenerator(store)
        assert generator.available_slots(doctor.id, DAY) == generator.available_slots(doctor.id, DAY)

    def test_unknown_doctor(self, store):
        with pytest.raises(ResourceNotFoundError):
            SlotGenerator(store).available_slots(999, DAY)

    def test_malformed_date(self, store, doctor):
        with pytest.raises(ValidationError):
            SlotGenerator(store).available_slots(doctor.id, "25/11/2024")

    def test_malformed_date_checked_before_store(self):
        class ExplodingStore:
            def __getattr__(self, name):
                raise AssertionError(f"store.{name} should not be called")

        with pytest.raises(ValidationError):
            SlotGenerator(ExplodingStore()).available_slots(1, "not-a-date")


def test_working_window_in_clinic_timezone():
    doctor = Doctor(id=1, name="Dr. X", specialization="GP", working_start=time(9), working_end=time(17))
    tz = ZoneInfo("Europe/Berlin")
    window = working_window(doctor, DAY, tz)
    assert window.start.astimezone(timezone.utc) == at(8)
    assert window.end.astimezone(timezone.utc) == at(16)
