"""Doctor directory view-model: list doctors, filter by specialty."""
import asyncio
from typing import List, Optional

from medicitas.doctors import distinct_specialties
from medicitas.errors import MedicitasError
from medicitas.logging_config import get_logger
from medicitas.models import Doctor
from medicitas.queries import QueryGenerations

logger = get_logger(__name__)

DOCTORS_KEY = "doctors"


class DoctorDirectory:
    """
    Doctors shown to a patient, with a specialty filter.

    ``specialties`` always comes from the unfiltered list so the filter
    options do not shrink to the current selection.
    """

    def __init__(self, service):
        self.service = service
        self.doctors: List[Doctor] = []
        self.specialties: List[str] = []
        self.filter: Optional[str] = None
        self.loading = False
        self.error: Optional[str] = None
        self._generations = QueryGenerations()

    def find(self, medico_id: int) -> Optional[Doctor]:
        return next((doctor for doctor in self.doctors if doctor.id == medico_id), None)

    async def load(self) -> bool:
        """
        Fetch doctors for the current filter.

        Returns:
            True if the response was applied, False on failure or when a
            newer load superseded this one
        """
        generation = self._generations.begin(DOCTORS_KEY)
        especialidad = self.filter
        self.loading = True
        self.error = None

        try:
            doctors = await asyncio.to_thread(self.service.list_doctors, especialidad)
            specialties = None
            if especialidad is None:
                specialties = distinct_specialties(doctors)
            elif not self.specialties:
                specialties = await asyncio.to_thread(self.service.specialties)
        except MedicitasError as e:
            if not self._generations.is_current(DOCTORS_KEY, generation):
                return False
            logger.warning("doctor_list_failed", especialidad=especialidad, error=e.message)
            self.doctors = []
            self.error = e.message
            self.loading = False
            return False

        if not self._generations.is_current(DOCTORS_KEY, generation):
            return False

        self.doctors = doctors
        if specialties is not None:
            self.specialties = specialties
        self.loading = False
        logger.info("doctor_list_loaded", especialidad=especialidad, count=len(doctors))
        return True

    async def set_filter(self, especialidad: Optional[str]) -> bool:
        """Filter by specialty (None or "" shows every doctor) and reload."""
        self.filter = especialidad or None
        return await self.load()
