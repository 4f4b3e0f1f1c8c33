"""Appointment list view-models for the patient and doctor dashboards.

Rows change only after the backend confirms a transition. While a
transition is in flight its row is marked busy. When the backend reports
that the appointment already moved on, the list is reloaded and the user is
told why.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Callable, List, Optional, Set, Union

from medicitas.appointments import allowed_targets
from medicitas.availability import coerce_date
from medicitas.errors import MedicitasError, StaleStateConflict, ValidationError
from medicitas.models import Appointment, AppointmentStatus, Identity, Role
from medicitas.queries import QueryGenerations

logger = logging.getLogger(__name__)

LIST_KEY = "appointments"


class AppointmentList(ABC):
    """Shared list state: rows, filters, loading, busy rows and messages."""

    role: Role = Role.PATIENT

    def __init__(self, service, session_context):
        """
        Args:
            service: AppointmentService
            session_context: SessionContext holding the acting identity
        """
        self.service = service
        self.session_context = session_context
        self.appointments: List[Appointment] = []
        self.estado: Optional[AppointmentStatus] = None
        self.loading = False
        self.busy_ids: Set[int] = set()
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self._generations = QueryGenerations()

    @property
    def identity(self) -> Optional[Identity]:
        return self.session_context.identity

    def actions_for(self, appointment: Appointment) -> List[AppointmentStatus]:
        """Transitions to offer on a row for this dashboard's role."""
        if appointment.id in self.busy_ids:
            return []
        return allowed_targets(appointment.estado, self.role)

    @abstractmethod
    def _fetch(self) -> List[Appointment]:
        """Blocking fetch of the rows for the current filters."""

    async def load(self, quiet: bool = False) -> bool:
        """
        Reload rows for the current filters.

        Args:
            quiet: Background refresh. Failures are logged and the visible
                rows, loading flag and error stay untouched.
                Skipped while a foreground load is in flight.

        Returns:
            True if fresh rows were applied
        """
        if quiet and self.loading:
            return False

        generation = self._generations.begin(LIST_KEY)
        if not quiet:
            self.loading = True
            self.error = None

        try:
            rows = await asyncio.to_thread(self._fetch)
        except MedicitasError as e:
            if not self._generations.is_current(LIST_KEY, generation):
                return False
            if quiet:
                logger.warning("Background refresh failed: %s", e.message)
                return False
            self.error = e.message
            self.loading = False
            return False

        if not self._generations.is_current(LIST_KEY, generation):
            return False
        self.appointments = rows
        self.loading = False
        return True

    async def set_status_filter(self, estado: Optional[Union[AppointmentStatus, str]]) -> bool:
        self.estado = AppointmentStatus.from_backend(estado) if estado else None
        return await self.load()

    async def refresh_periodically(self, interval: float, stop: Optional[asyncio.Event] = None):
        """Reload every ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.load(quiet=True)
            except Exception as e:
                logger.error(f"Appointment refresh error: {e}")

    async def _apply(
        self,
        appointment: Appointment,
        command: Callable[[Appointment, Identity], Appointment],
        done_message: str,
    ) -> bool:
        """
        Run a transition for one row and replace the row with the result.

        Returns:
            True when the backend accepted the change
        """
        if appointment.id in self.busy_ids:
            return False

        self.error = None
        self.notice = None
        self.busy_ids.add(appointment.id)
        try:
            updated = await asyncio.to_thread(command, appointment, self.identity)
        except StaleStateConflict as e:
            logger.info("Appointment %s changed remotely, reloading", appointment.id)
            self.busy_ids.discard(appointment.id)
            await self.load()
            self.error = e.message
            return False
        except MedicitasError as e:
            self.error = e.message
            return False
        finally:
            self.busy_ids.discard(appointment.id)

        self._replace(updated)
        self.notice = done_message
        if self.loading:
            # A load issued before the change could overwrite it
            await self.load()
        return True

    def _replace(self, updated: Appointment) -> None:
        rows = []
        for row in self.appointments:
            if row.id != updated.id:
                rows.append(row)
            elif self.estado is None or updated.estado == self.estado:
                rows.append(updated)
        self.appointments = rows


class PatientAppointments(AppointmentList):
    """The logged-in patient's appointments, filtered by state and date window."""

    role = Role.PATIENT

    def __init__(self, service, session_context):
        super().__init__(service, session_context)
        self.desde: Optional[date] = None
        self.hasta: Optional[date] = None

    async def set_date_window(
        self, desde: Optional[Union[date, str]], hasta: Optional[Union[date, str]]
    ) -> bool:
        """
        Raises:
            ValidationError: hasta before desde
        """
        desde = coerce_date(desde, "desde") if desde else None
        hasta = coerce_date(hasta, "hasta") if hasta else None
        if desde and hasta and hasta < desde:
            raise ValidationError("The end date must be on or after the start date.")
        self.desde, self.hasta = desde, hasta
        return await self.load()

    def _fetch(self) -> List[Appointment]:
        identity = self.identity
        if identity is None or identity.paciente_id is None:
            raise ValidationError("Please log in as a patient.")
        return self.service.list_for_patient(
            identity.paciente_id, estado=self.estado, desde=self.desde, hasta=self.hasta
        )

    async def cancel(self, appointment: Appointment) -> bool:
        return await self._apply(
            appointment, self.service.cancel, "Your appointment has been cancelled."
        )

    async def edit_reason(self, appointment: Appointment, motivo: str) -> bool:
        return await self._apply(
            appointment,
            lambda cita, identity: self.service.edit_reason(cita, identity, motivo),
            "The reason for the visit was updated.",
        )


class DoctorAppointments(AppointmentList):
    """Appointments assigned to the logged-in doctor."""

    role = Role.DOCTOR

    def _fetch(self) -> List[Appointment]:
        identity = self.identity
        if identity is None or identity.medico_id is None:
            raise ValidationError("Please log in as a doctor.")
        return self.service.list_for_doctor(identity.medico_id, estado=self.estado)

    async def confirm(self, appointment: Appointment) -> bool:
        return await self._apply(appointment, self.service.confirm, self._done(AppointmentStatus.CONFIRMED))

    async def reject(self, appointment: Appointment) -> bool:
        return await self._apply(appointment, self.service.reject, self._done(AppointmentStatus.REJECTED))

    async def complete(self, appointment: Appointment) -> bool:
        return await self._apply(appointment, self.service.complete, self._done(AppointmentStatus.COMPLETED))

    async def cancel(self, appointment: Appointment) -> bool:
        return await self._apply(appointment, self.service.cancel, self._done(AppointmentStatus.CANCELLED))

    @staticmethod
    def _done(estado: AppointmentStatus) -> str:
        return f"Appointment marked as {estado.value}."
