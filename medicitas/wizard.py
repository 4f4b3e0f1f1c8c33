"""Three-step booking wizard for patients.

Steps: choose a doctor, choose a date and one of the slots the backend
offers for it, then confirm with an optional reason. A chosen slot always
belongs to the chosen date, and a draft is only ever submitted from the
confirm step.
"""
import asyncio
import logging
from datetime import date, time
from enum import IntEnum
from typing import Callable, Optional, Union

from medicitas import config
from medicitas.availability import coerce_date
from medicitas.errors import MedicitasError, ValidationError
from medicitas.models import Appointment, AppointmentDraft, Doctor, TimeSlot

logger = logging.getLogger(__name__)


class WizardStep(IntEnum):
    SELECT_DOCTOR = 1
    SELECT_DATE_TIME = 2
    CONFIRM = 3


class BookingWizard:
    """
    Booking flow state.

    User-input mistakes raise ValidationError (nothing is sent). Backend
    failures during submit are kept in ``error`` and the wizard stays on the
    confirm step with every selection intact.
    """

    def __init__(
        self,
        resolver,
        appointments,
        navigator=None,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            resolver: AvailabilityResolver used for slot lookups
            appointments: AppointmentService used to create the booking
            navigator: Navigator told where to go after a successful booking
            today: Reference date provider
        """
        self.resolver = resolver
        self.appointments = appointments
        self.navigator = navigator
        self.today = today

        self.step = WizardStep.SELECT_DOCTOR
        self.doctor: Optional[Doctor] = None
        self.fecha: Optional[date] = None
        self.slot: Optional[TimeSlot] = None
        self.motivo = ""
        self.submitting = False
        self.error: Optional[str] = None
        self.created: Optional[Appointment] = None
        self._slot_fecha: Optional[date] = None

    @property
    def can_submit(self) -> bool:
        return (
            self.step == WizardStep.CONFIRM
            and self.doctor is not None
            and self.fecha is not None
            and self.slot is not None
            and self._slot_fecha == self.fecha
            and not self.submitting
        )

    def select_doctor(self, doctor: Doctor) -> None:
        """Choose a doctor and move to date/time selection."""
        if self.doctor is None or doctor.id != self.doctor.id:
            self.fecha = None
            self._clear_slot()
            self.resolver.clear()
        self.doctor = doctor
        self.error = None
        self.step = WizardStep.SELECT_DATE_TIME

    async def select_date(self, fecha: Union[date, str]) -> None:
        """
        Choose a date and look up its slots.

        Raises:
            ValidationError: No doctor chosen, or the date is in the past
        """
        if self.doctor is None or self.step == WizardStep.SELECT_DOCTOR:
            raise ValidationError("Please choose a doctor first.")
        fecha = coerce_date(fecha)
        if fecha < self.today():
            raise ValidationError("Please choose today or a future date.")

        self._clear_slot()
        self.fecha = fecha
        self.error = None
        self.step = WizardStep.SELECT_DATE_TIME
        await self.resolver.select(self.doctor.id, fecha)

    def select_slot(self, slot: Union[TimeSlot, str]) -> None:
        """
        Choose one of the slots currently offered for the chosen date.

        Raises:
            ValidationError: No date chosen, lookup not settled, or the slot
                is not among the offered ones
        """
        if self.step != WizardStep.SELECT_DATE_TIME or self.doctor is None or self.fecha is None:
            raise ValidationError("Please choose a date first.")
        if not self.resolver.is_for(self.doctor.id, self.fecha):
            raise ValidationError("Available times are still loading.")

        inicio = self._slot_start(slot)
        offered = next((s for s in self.resolver.slots if s.inicio == inicio), None)
        if offered is None:
            raise ValidationError("That time is not available. Please choose another one.")

        self.slot = offered
        self._slot_fecha = self.fecha
        self.step = WizardStep.CONFIRM

    def set_reason(self, motivo: Optional[str]) -> None:
        self.motivo = motivo or ""

    def back(self) -> None:
        """Step back. Leaving date/time selection starts over."""
        if self.step == WizardStep.CONFIRM:
            self._clear_slot()
            self.error = None
            self.step = WizardStep.SELECT_DATE_TIME
        elif self.step == WizardStep.SELECT_DATE_TIME:
            self.reset()

    def reset(self) -> None:
        self.step = WizardStep.SELECT_DOCTOR
        self.doctor = None
        self.fecha = None
        self._clear_slot()
        self.motivo = ""
        self.error = None
        self.submitting = False
        self.resolver.clear()

    async def submit(self) -> bool:
        """
        Book the chosen slot.

        Returns:
            True when the appointment was created (the wizard resets and the
            navigator moves to the patient's appointment list), else False

        Raises:
            ValidationError: Not on the confirm step or selection incomplete
        """
        if self.submitting:
            return False
        if not self.can_submit:
            raise ValidationError()

        draft = AppointmentDraft(
            medico_id=self.doctor.id,
            fecha=self.fecha,
            hora_inicio=self.slot.inicio,
            hora_fin=self.slot.fin,
            motivo=self.motivo.strip() or None,
        )

        self.submitting = True
        self.error = None
        try:
            created = await asyncio.to_thread(self.appointments.create, draft)
        except MedicitasError as e:
            logger.warning("Booking failed for doctor %s on %s: %s", draft.medico_id, draft.fecha, e.message)
            self.error = e.message
            return False
        finally:
            self.submitting = False

        self.created = created
        self.reset()
        if self.navigator is not None:
            self.navigator.go(config.PATIENT_APPOINTMENTS_ROUTE)
        return True

    def _clear_slot(self) -> None:
        self.slot = None
        self._slot_fecha = None

    @staticmethod
    def _slot_start(slot: Union[TimeSlot, str]) -> time:
        if isinstance(slot, TimeSlot):
            return slot.inicio
        try:
            return time.fromisoformat(str(slot).strip())
        except ValueError:
            raise ValidationError("Invalid time.") from None
