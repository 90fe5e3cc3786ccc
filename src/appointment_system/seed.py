"""Initial data seeding for the appointment system."""

from __future__ import annotations

import logging

from appointment_system import SchedulingService, Settings, configure_logging

logger = logging.getLogger(__name__)

DOCTORS_SEED = [
    ("Dr. Alice Moreau", "General Practice", "09:00", "17:00"),
    ("Dr. Rahul Mehta", "Cardiology", "08:30", "14:30"),
    ("Dr. Sofia Lindqvist", "Pediatrics", "10:00", "18:00"),
    ("Dr. Kenji Watanabe", "Dermatology", "09:00", "13:00"),
    ("Dr. Amara Okafor", "Orthopedics", "12:00", "20:00"),
]


def seed(service: SchedulingService) -> None:
    """Populate the store with starter doctors, skipping ones that already exist."""
    existing = {doctor.name for doctor in service.list_doctors()}
    for name, specialization, working_start, working_end in DOCTORS_SEED:
        if name in existing:
            logger.info("[doctor] exists %s", name)
            continue
        service.create_doctor(
            name=name,
            specialization=specialization,
            working_start=working_start,
            working_end=working_end,
        )
        logger.info("[doctor] created %s - %s", name, specialization)


if __name__ == "__main__":
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    seed(SchedulingService.from_settings(settings))
