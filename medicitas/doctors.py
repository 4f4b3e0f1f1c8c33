"""Doctor directory endpoints."""
from typing import List, Optional

from medicitas.errors import ValidationError
from medicitas.models import Doctor, parse, parse_list

EDITABLE_FIELDS = frozenset({
    "nombre", "apellido", "especialidad", "descripcion", "telefono", "email", "foto_perfil",
})


class DoctorService:
    """Read doctors (and let a doctor edit their own profile)."""

    def __init__(self, gateway):
        self.gateway = gateway

    def list_doctors(self, especialidad: Optional[str] = None) -> List[Doctor]:
        """
        List doctors, optionally filtered server-side by specialty.

        Args:
            especialidad: Exact specialty name, e.g. "Cardiología"

        Returns:
            Doctors as the backend ordered them
        """
        envelope = self.gateway.get("/medicos", params={"especialidad": especialidad or None})
        return parse_list(Doctor, envelope.data)

    def get_doctor(self, medico_id: int) -> Doctor:
        envelope = self.gateway.get(f"/medicos/{medico_id}")
        return parse(Doctor, envelope.data)

    def update_doctor(self, medico_id: int, **fields) -> Doctor:
        """
        Update profile fields of a doctor.

        Raises:
            ValidationError: Unknown field or nothing to update
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown profile field: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("Nothing to update.")

        envelope = self.gateway.put(f"/medicos/{medico_id}", json=fields)
        if isinstance(envelope.data, dict) and "id" in envelope.data:
            return parse(Doctor, envelope.data)
        return self.get_doctor(medico_id)

    def specialties(self) -> List[str]:
        """Distinct specialties across all doctors, sorted."""
        return distinct_specialties(self.list_doctors())


def distinct_specialties(doctors: List[Doctor]) -> List[str]:
    return sorted({doctor.especialidad for doctor in doctors if doctor.especialidad})
