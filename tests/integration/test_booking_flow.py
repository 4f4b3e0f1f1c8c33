"""Integration tests: booking and appointment lifecycle against the mock backend."""
from datetime import time

import pytest

import mock_api
from medicitas import config
from medicitas.appointment_lists import DoctorAppointments, PatientAppointments
from medicitas.auth import AuthService
from medicitas.directory import DoctorDirectory
from medicitas.errors import AuthExpired, RemoteRejection
from medicitas.http_client import ApiGateway
from medicitas.models import AppointmentStatus, Role
from medicitas.resolver import AvailabilityResolver
from medicitas.session import SessionContext
from medicitas.wizard import BookingWizard, WizardStep


async def book(client, fecha, hora="09:00", motivo="chest pain"):
    """Run the wizard end to end for the cardiologist."""
    directory = DoctorDirectory(client.doctors)
    await directory.set_filter("Cardiología")
    doctor = directory.doctors[0]

    wizard = BookingWizard(
        AvailabilityResolver(client.availability, debounce=0),
        client.appointments,
        client.navigator,
    )
    wizard.select_doctor(doctor)
    await wizard.select_date(fecha)
    wizard.select_slot(hora)
    wizard.set_reason(motivo)
    assert await wizard.submit() is True
    return wizard


class TestBooking:
    @pytest.mark.asyncio
    async def test_book_and_list(self, patient, next_weekday):
        wizard = await book(patient, next_weekday)

        assert wizard.step == WizardStep.SELECT_DOCTOR
        assert wizard.created.estado == AppointmentStatus.PENDING
        assert patient.navigator.current == config.PATIENT_APPOINTMENTS_ROUTE

        appointments = PatientAppointments(patient.appointments, patient.session)
        await appointments.load()
        [cita] = appointments.appointments
        assert cita.fecha == next_weekday
        assert cita.hora_inicio == time(9, 0)
        assert cita.hora_fin == time(9, 30)
        assert cita.motivo == "chest pain"
        assert cita.medico.especialidad == "Cardiología"

        slots = patient.availability.query_slots(1, next_weekday)
        assert "09:00" not in [slot.label for slot in slots.horarios]

    @pytest.mark.asyncio
    async def test_taken_slot_is_refused(self, patient, make_client, next_weekday):
        """The backend has the last word on a slot booked in the meantime."""
        other = make_client("other-patient")
        other.auth.register_patient("otro@example.com", "secret1", "Otro", "Paciente")

        wizard = BookingWizard(
            AvailabilityResolver(patient.availability, debounce=0),
            patient.appointments,
            patient.navigator,
        )
        wizard.select_doctor(patient.doctors.get_doctor(1))
        await wizard.select_date(next_weekday)
        wizard.select_slot("10:00")

        await book(other, next_weekday, hora="10:00")

        assert await wizard.submit() is False
        assert wizard.error == "El horario seleccionado ya no está disponible"
        assert wizard.step == WizardStep.CONFIRM

    @pytest.mark.asyncio
    async def test_patient_cancels_once(self, patient, next_weekday):
        await book(patient, next_weekday)
        appointments = PatientAppointments(patient.appointments, patient.session)
        await appointments.load()

        assert await appointments.cancel(appointments.appointments[0])
        cancelled = appointments.appointments[0]
        assert cancelled.estado == AppointmentStatus.CANCELLED

        assert await appointments.cancel(cancelled) is False
        assert appointments.appointments[0].estado == AppointmentStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_edit_reason_while_pending(self, patient, next_weekday):
        await book(patient, next_weekday)
        appointments = PatientAppointments(patient.appointments, patient.session)
        await appointments.load()

        assert await appointments.edit_reason(appointments.appointments[0], "revisión anual")

        fetched = patient.appointments.get(appointments.appointments[0].id)
        assert fetched.motivo == "revisión anual"


class TestDoctorLifecycle:
    @pytest.mark.asyncio
    async def test_confirm_complete_cancel(self, patient, doctor, next_weekday):
        await book(patient, next_weekday)
        agenda = DoctorAppointments(doctor.appointments, doctor.session)
        await agenda.load()

        assert await agenda.confirm(agenda.appointments[0])
        assert agenda.appointments[0].estado == AppointmentStatus.CONFIRMED

        assert await agenda.complete(agenda.appointments[0])
        assert agenda.appointments[0].estado == AppointmentStatus.COMPLETED

        assert await agenda.cancel(agenda.appointments[0]) is False
        fetched = doctor.appointments.get(agenda.appointments[0].id)
        assert fetched.estado == AppointmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stale_row_is_refreshed(self, patient, doctor, next_weekday):
        """The doctor acts on a row the patient already cancelled."""
        await book(patient, next_weekday)
        agenda = DoctorAppointments(doctor.appointments, doctor.session)
        await agenda.load()
        stale_row = agenda.appointments[0]

        patient_view = PatientAppointments(patient.appointments, patient.session)
        await patient_view.load()
        await patient_view.cancel(patient_view.appointments[0])

        assert await agenda.confirm(stale_row) is False

        assert agenda.error == "This appointment was changed by someone else. The list has been refreshed, please review it."
        assert agenda.appointments[0].estado == AppointmentStatus.CANCELLED


class TestSession:
    def test_bootstrap_restores_login(self, patient, live_api):
        restarted = SessionContext(patient.session.storage)
        auth = AuthService(ApiGateway(restarted, base_url=live_api), restarted, retry_delay=0)

        identity = auth.bootstrap()

        assert identity.role == Role.PATIENT
        assert identity.paciente_id == 1
        assert restarted.is_authenticated

    def test_google_callback_token(self, patient, make_client):
        """A token handed over by the redirect is confirmed against /auth/me."""
        browser = make_client("google-callback")

        identity = browser.auth.complete_oauth(token=patient.session.token)

        assert identity.paciente_id == 1
        assert browser.session.is_authenticated
        assert browser.navigator.current == config.PATIENT_DASHBOARD_ROUTE

    def test_revoked_token_forces_logout(self, patient):
        mock_api.tokens.clear()

        with pytest.raises(AuthExpired):
            patient.appointments.list_for_patient(1)

        assert not patient.session.is_authenticated
        assert patient.session.storage.load() is None
        assert patient.navigator.current == config.LOGIN_ROUTE

    def test_wrong_password(self, make_client):
        client = make_client("intruder")

        with pytest.raises(RemoteRejection) as exc_info:
            client.auth.login("paciente@example.com", "wrong")

        assert exc_info.value.message == "Credenciales inválidas"
        assert client.navigator.current == config.LOGIN_ROUTE
