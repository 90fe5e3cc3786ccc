"""Doctor appointment scheduling: free slots and race-free booking."""

from .booking import BookingValidator
from .config import Settings, configure_logging
from .db import Base, create_database_engine, create_session_factory, init_db, session_scope
from .entities import Appointment, AppointmentDetails, Doctor
from .exceptions import (
    DatabaseConnectionError,
    ResourceNotFoundError,
    SchedulingError,
    StoreTimeoutError,
    TimeSlotOccupiedError,
    ValidationError,
    error_response,
)
from .intervals import TimeInterval, find_conflicts, has_conflict, overlaps
from .memory_store import InMemoryStore
from .repositories import SqlAlchemyStore
from .services import SchedulingService
from .slots import SlotGenerator, format_slot_times
from .store import AppointmentStore, Deadline

__all__ = [
    "Base",
    "create_database_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
    "Settings",
    "configure_logging",
    "SchedulingService",
    "BookingValidator",
    "SlotGenerator",
    "format_slot_times",
    "AppointmentStore",
    "Deadline",
    "InMemoryStore",
    "SqlAlchemyStore",
    "Doctor",
    "Appointment",
    "AppointmentDetails",
    "TimeInterval",
    "overlaps",
    "has_conflict",
    "find_conflicts",
    "SchedulingError",
    "DatabaseConnectionError",
    "ResourceNotFoundError",
    "ValidationError",
    "TimeSlotOccupiedError",
    "StoreTimeoutError",
    "error_response",
]
