"""Streamlit presentation layer that consumes the scheduling service."""

from datetime import date, datetime, time

import plotly.express as px
import streamlit as st

from appointment_system.config import Settings, configure_logging
from appointment_system.exceptions import (
    DatabaseConnectionError,
    ResourceNotFoundError,
    TimeSlotOccupiedError,
    ValidationError,
)
from appointment_system.presentation.tables import appointments_frame, bookings_per_doctor
from appointment_system.services import SchedulingService

DURATION_CHOICES = [15, 30, 45, 60, 90]
APPOINTMENT_TYPES = ["Consultation", "Follow-up", "Check-up", "Procedure", "Telehealth"]


@st.cache_resource
def get_service() -> SchedulingService:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return SchedulingService.from_settings(settings)


def show_error(exc: Exception, target=st) -> None:
    """Map a scheduling error to the matching Streamlit message."""
    if isinstance(exc, TimeSlotOccupiedError):
        target.error("That time is no longer free. Refresh the available slots and pick another.")
    elif isinstance(exc, (ValidationError, ResourceNotFoundError)):
        target.warning(str(exc))
    elif isinstance(exc, DatabaseConnectionError):
        target.error(f"The schedule is temporarily unavailable, please retry: {exc}")
    else:
        target.error(f"Unexpected error: {exc}")


def render_dashboard(service: SchedulingService) -> None:
    st.subheader("Today at a glance")

    tz = service.settings.timezone
    today = datetime.now(tz).date()
    doctors = service.list_doctors()
    appointments = service.list_appointments()
    todays = [a for a in appointments if a.start.astimezone(tz).date() == today]

    col1, col2, col3 = st.columns(3)
    col1.metric("Doctors", len(doctors))
    col2.metric("Appointments today", len(todays))
    col3.metric("Appointments total", len(appointments))

    if not doctors:
        st.info("No doctors yet.")
        return

    counts = bookings_per_doctor(appointments, doctors, tz, day=today)
    fig = px.bar(
        counts,
        x="doctor",
        y="appointments",
        text="appointments",
        color_discrete_sequence=["#2a7de1"],
    )
    fig.update_traces(
        width=0.35,
        hovertemplate="%{x}<br>Appointments: %{y}<extra></extra>",
        textposition="outside",
    )
    fig.update_layout(
        xaxis_title="Doctor",
        yaxis_title="Appointments today",
        yaxis=dict(showgrid=False, tick0=0, dtick=1, rangemode="tozero"),
        plot_bgcolor="white",
        paper_bgcolor="white",
        margin=dict(t=40, b=40, l=10, r=10),
        bargap=0.5,
    )
    st.plotly_chart(fig, use_container_width=True)


def render_doctors(service: SchedulingService) -> None:
    st.subheader("Doctors")
    doctors = service.list_doctors()
    if doctors:
        st.dataframe([doctor.to_dict() for doctor in doctors], hide_index=True)

    with st.expander("Add doctor"):
        with st.form("create_doctor"):
            name = st.text_input("Name")
            specialization = st.text_input("Specialization")
            working_start = st.time_input("Working from", value=time(9, 0))
            working_end = st.time_input("Working until", value=time(17, 0))
            submitted = st.form_submit_button("Create doctor")
            if submitted:
                try:
                    service.create_doctor(
                        name=name,
                        specialization=specialization,
                        working_start=working_start,
                        working_end=working_end,
                    )
                    st.success("Doctor created")
                except Exception as exc:  # noqa: BLE001 - presentation layer catch-all
                    show_error(exc)


def render_booking(service: SchedulingService) -> None:
    st.subheader("Book an appointment")
    doctors = service.list_doctors()
    if not doctors:
        st.info("Add a doctor before booking appointments.")
        return

    doctor_options = {f"{d.name} - {d.specialization} (#{d.id})": d.id for d in doctors}
    doctor_display = st.selectbox("Doctor", list(doctor_options.keys()))
    doctor_id = doctor_options[doctor_display]
    visit_date: date = st.date_input("Date")

    try:
        slots = service.available_slots(doctor_id, visit_date)
    except Exception as exc:  # noqa: BLE001
        show_error(exc)
        return
    if not slots:
        st.info("No free slots on this day.")
        return

    with st.form("create_appointment"):
        slot = st.selectbox("Start", slots, format_func=lambda t: t.strftime("%H:%M"))
        duration = st.selectbox("Duration (minutes)", DURATION_CHOICES, index=1)
        appointment_type = st.selectbox("Type", APPOINTMENT_TYPES)
        patient_name = st.text_input("Patient name")
        notes = st.text_area("Notes", height=80)
        submitted = st.form_submit_button("Confirm booking")

        if submitted:
            try:
                start = datetime.combine(visit_date, slot, tzinfo=service.settings.timezone)
                appointment = service.book_appointment(
                    doctor_id=doctor_id,
                    start=start,
                    duration_minutes=duration,
                    appointment_type=appointment_type,
                    patient_name=patient_name,
                    notes=notes or None,
                )
                st.success(f"Booked, appointment #{appointment.id}")
            except Exception as exc:  # noqa: BLE001
                show_error(exc)


def render_appointments(service: SchedulingService) -> None:
    st.subheader("Appointments")
    doctors = service.list_doctors()
    filter_options = {"All doctors": None}
    filter_options.update({d.name: d.id for d in doctors})
    selected = st.selectbox("Filter by doctor", list(filter_options.keys()))
    appointments = service.list_appointments(filter_options[selected])
    if not appointments:
        st.info("No appointments.")
        return

    tz = service.settings.timezone
    st.dataframe(appointments_frame(appointments, doctors, tz), hide_index=True)

    for appointment in appointments:
        local_start = appointment.start.astimezone(tz)
        with st.expander(f"#{appointment.id} {appointment.patient_name} at {local_start:%Y-%m-%d %H:%M}"):
            with st.form(f"reschedule_{appointment.id}"):
                new_date = st.date_input("Date", value=local_start.date())
                new_time = st.time_input("Start", value=local_start.time())
                new_duration = st.number_input(
                    "Duration (minutes)", min_value=1, value=appointment.duration_minutes, step=5
                )
                new_notes = st.text_area("Notes", value=appointment.notes or "", height=60)
                if st.form_submit_button("Save changes"):
                    try:
                        service.update_appointment(
                            appointment.id,
                            start=datetime.combine(new_date, new_time, tzinfo=tz),
                            duration_minutes=int(new_duration),
                            notes=new_notes or None,
                        )
                        st.rerun()
                    except Exception as exc:  # noqa: BLE001
                        show_error(exc)
            if st.button("Delete appointment", key=f"delete_{appointment.id}"):
                try:
                    service.delete_appointment(appointment.id)
                    st.rerun()
                except Exception as exc:  # noqa: BLE001
                    show_error(exc)


def main() -> None:
    st.set_page_config(page_title="Appointment Scheduling", page_icon="🩺", layout="wide")
    st.title("Appointment Scheduling")

    try:
        service = get_service()
    except DatabaseConnectionError as exc:
        st.error(f"Database connection failed: {exc}")
        return

    try:
        render_dashboard(service)
        st.divider()
        render_doctors(service)
        st.divider()
        render_booking(service)
        st.divider()
        render_appointments(service)
    except DatabaseConnectionError as exc:
        st.error(f"Database error: {exc}")


if __name__ == "__main__":
    main()
