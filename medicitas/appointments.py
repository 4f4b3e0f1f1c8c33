"""Appointment lifecycle: role-gated state machine and backend transitions.

pending is the only initial state. completed, cancelled and rejected are
terminal. The backend performs every transition; this module refuses the
ones that can never succeed before a request is sent, and reports a
StaleStateConflict when the backend says the appointment moved on.
"""
import logging
from datetime import date
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, TypeVar, Union

from medicitas.availability import coerce_date
from medicitas.errors import RemoteRejection, StaleStateConflict, TransitionNotAllowed
from medicitas.models import (
    Appointment,
    AppointmentDraft,
    AppointmentStatus,
    Identity,
    Role,
    parse,
    parse_list,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
COMPLETED = AppointmentStatus.COMPLETED
CANCELLED = AppointmentStatus.CANCELLED
REJECTED = AppointmentStatus.REJECTED

# State machine transition map
# Pattern: (current, next) → roles allowed to perform it
TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentStatus], FrozenSet[Role]] = {
    (PENDING, CONFIRMED): frozenset({Role.DOCTOR}),
    (PENDING, CANCELLED): frozenset({Role.PATIENT, Role.DOCTOR}),
    (PENDING, REJECTED): frozenset({Role.DOCTOR}),
    (CONFIRMED, COMPLETED): frozenset({Role.DOCTOR}),
    (CONFIRMED, CANCELLED): frozenset({Role.DOCTOR}),
}

StatusFilter = Optional[Union[AppointmentStatus, str]]


def can_transition(
    current: AppointmentStatus, target: AppointmentStatus, role: Role
) -> bool:
    """
    Validate a state transition for a role.

    Example:
        >>> can_transition(AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, Role.DOCTOR)
        True
    """
    return role in TRANSITIONS.get((current, target), frozenset())


def allowed_targets(current: AppointmentStatus, role: Role) -> List[AppointmentStatus]:
    """States the role may move an appointment to from ``current``."""
    return [
        target for (source, target), roles in TRANSITIONS.items()
        if source == current and role in roles
    ]


def _check_party(appointment: Appointment, identity: Identity) -> None:
    """The patient must own the appointment; the doctor must be assigned to it."""
    if identity.role == Role.PATIENT:
        if (
            appointment.paciente_id is not None
            and identity.paciente_id is not None
            and appointment.paciente_id != identity.paciente_id
        ):
            raise TransitionNotAllowed("This appointment belongs to another patient.")
    elif identity.role == Role.DOCTOR:
        if (
            appointment.medico_id is not None
            and identity.medico_id is not None
            and appointment.medico_id != identity.medico_id
        ):
            raise TransitionNotAllowed("This appointment is assigned to another doctor.")


def ensure_transition(
    appointment: Appointment, target: AppointmentStatus, identity: Optional[Identity]
) -> None:
    """
    Refuse transitions that can never succeed.

    Raises:
        TransitionNotAllowed: Not logged in, terminal source state, transition
            not in the table, wrong role, or not the patient's/doctor's appointment
    """
    if identity is None:
        raise TransitionNotAllowed("Please log in first.")

    current = appointment.estado
    if current.is_terminal:
        raise TransitionNotAllowed(
            f"This appointment is already {current.value} and can no longer change."
        )
    if (current, target) not in TRANSITIONS:
        raise TransitionNotAllowed(
            f"A {current.value} appointment cannot become {target.value}."
        )
    if not can_transition(current, target, identity.role):
        raise TransitionNotAllowed(
            f"Only the doctor can mark an appointment as {target.value}."
        )
    _check_party(appointment, identity)


def ensure_reason_editable(appointment: Appointment, identity: Optional[Identity]) -> None:
    """
    The reason (motivo) is editable by the owning patient while pending.

    Raises:
        TransitionNotAllowed: Otherwise
    """
    if identity is None or identity.role != Role.PATIENT:
        raise TransitionNotAllowed("Only the patient can edit the reason for the visit.")
    if appointment.estado != PENDING:
        raise TransitionNotAllowed("The reason can only be edited while the appointment is pending.")
    _check_party(appointment, identity)


def _status_param(estado: StatusFilter) -> Optional[str]:
    if estado in (None, ""):
        return None
    return AppointmentStatus.from_backend(estado).to_backend()


class AppointmentService:
    """Appointment endpoints for patients and doctors."""

    def __init__(self, gateway):
        self.gateway = gateway

    def create(self, draft: AppointmentDraft) -> Optional[Appointment]:
        """
        Book an appointment (patient). The backend derives the patient from the token.

        Returns:
            The created appointment when the backend echoes it, else None
        """
        envelope = self.gateway.post("/citas", json=draft.to_payload())
        logger.info("Appointment created with doctor %s on %s", draft.medico_id, draft.fecha)
        return self._appointment_or_none(envelope.data)

    def get(self, cita_id: int) -> Appointment:
        envelope = self.gateway.get(f"/citas/{cita_id}")
        return parse(Appointment, envelope.data)

    def cancel(self, appointment: Appointment, identity: Identity) -> Appointment:
        """Cancel as the owning patient or the assigned doctor."""
        ensure_transition(appointment, CANCELLED, identity)
        if identity.role == Role.PATIENT:
            return self._transition(
                appointment, CANCELLED,
                lambda: self.gateway.put(f"/citas/{appointment.id}/cancelar"),
            )
        return self._doctor_transition(appointment, CANCELLED)

    def confirm(self, appointment: Appointment, identity: Identity) -> Appointment:
        ensure_transition(appointment, CONFIRMED, identity)
        return self._doctor_transition(appointment, CONFIRMED)

    def reject(self, appointment: Appointment, identity: Identity) -> Appointment:
        ensure_transition(appointment, REJECTED, identity)
        return self._doctor_transition(appointment, REJECTED)

    def complete(self, appointment: Appointment, identity: Identity) -> Appointment:
        ensure_transition(appointment, COMPLETED, identity)
        return self._doctor_transition(appointment, COMPLETED)

    def edit_reason(
        self, appointment: Appointment, identity: Identity, motivo: str
    ) -> Appointment:
        """Change the reason for the visit. Not a state transition."""
        ensure_reason_editable(appointment, identity)
        motivo = (motivo or "").strip()
        envelope = self._guard_stale(
            lambda: self.gateway.put(f"/pacientes/citas/{appointment.id}", json={"motivo": motivo})
        )
        return self._appointment_or_none(envelope.data) or appointment.model_copy(
            update={"motivo": motivo}
        )

    def list_for_patient(
        self,
        paciente_id: int,
        estado: StatusFilter = None,
        desde: Optional[Union[date, str]] = None,
        hasta: Optional[Union[date, str]] = None,
    ) -> List[Appointment]:
        """Appointments of a patient, filtered by state and date window."""
        params = {
            "estado": _status_param(estado),
            "desde": coerce_date(desde, "desde").isoformat() if desde else None,
            "hasta": coerce_date(hasta, "hasta").isoformat() if hasta else None,
        }
        envelope = self.gateway.get(f"/pacientes/{paciente_id}/citas", params=params)
        return parse_list(Appointment, envelope.data)

    def list_for_doctor(self, medico_id: int, estado: StatusFilter = None) -> List[Appointment]:
        """Appointments assigned to a doctor, optionally filtered by state."""
        envelope = self.gateway.get(
            f"/medicos/{medico_id}/citas", params={"estado": _status_param(estado)}
        )
        return parse_list(Appointment, envelope.data)

    def _doctor_transition(self, appointment: Appointment, target: AppointmentStatus) -> Appointment:
        return self._transition(
            appointment, target,
            lambda: self.gateway.put(
                f"/medicos/cita/{appointment.id}", json={"estado": target.to_backend()}
            ),
        )

    def _transition(
        self, appointment: Appointment, target: AppointmentStatus, call: Callable
    ) -> Appointment:
        envelope = self._guard_stale(call)
        logger.info(
            "Appointment %s: %s -> %s", appointment.id, appointment.estado.value, target.value
        )
        return self._appointment_or_none(envelope.data) or appointment.model_copy(
            update={"estado": target}
        )

    @staticmethod
    def _guard_stale(call: Callable[[], R]) -> R:
        try:
            return call()
        except StaleStateConflict:
            raise
        except RemoteRejection as e:
            if e.status == 409:
                raise StaleStateConflict(status=e.status, payload=e.payload) from e
            raise

    @staticmethod
    def _appointment_or_none(data) -> Optional[Appointment]:
        if isinstance(data, dict) and "id" in data and "estado" in data:
            return parse(Appointment, data)
        return None
