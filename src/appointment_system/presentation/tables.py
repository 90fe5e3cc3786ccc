"""pandas helpers shared by the Streamlit views."""

from datetime import date, tzinfo
from typing import Sequence

import pandas as pd

from appointment_system.entities import Appointment, Doctor

APPOINTMENT_COLUMNS = ["id", "doctor", "date", "start", "end", "duration", "type", "patient", "notes"]


def appointments_frame(
    appointments: Sequence[Appointment], doctors: Sequence[Doctor], tz: tzinfo
) -> pd.DataFrame:
    """One row per appointment with times shown in the clinic timezone."""
    names = {doctor.id: doctor.name for doctor in doctors}
    rows = []
    for appointment in appointments:
        start = appointment.start.astimezone(tz)
        end = appointment.end.astimezone(tz)
        rows.append(
            {
                "id": appointment.id,
                "doctor": names.get(appointment.doctor_id, f"#{appointment.doctor_id}"),
                "date": start.date(),
                "start": start.strftime("%H:%M"),
                "end": end.strftime("%H:%M"),
                "duration": appointment.duration_minutes,
                "type": appointment.appointment_type,
                "patient": appointment.patient_name,
                "notes": appointment.notes or "",
            }
        )
    return pd.DataFrame(rows, columns=APPOINTMENT_COLUMNS)


def bookings_per_doctor(
    appointments: Sequence[Appointment], doctors: Sequence[Doctor], tz: tzinfo, day: date | None = None
) -> pd.DataFrame:
    """Count appointments per doctor, including doctors with none."""
    frame = appointments_frame(appointments, doctors, tz)
    if day is not None:
        frame = frame[frame["date"] == day]
    counts = frame.groupby("doctor").size()
    result = pd.DataFrame({"doctor": [doctor.name for doctor in doctors]})
    result["appointments"] = result["doctor"].map(counts).fillna(0).astype(int)
    return result.sort_values(["appointments", "doctor"], ascending=[False, True]).reset_index(drop=True)
