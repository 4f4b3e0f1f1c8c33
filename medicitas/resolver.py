"""Availability resolver: which slots can be booked with doctor D on date X.

The resolver never computes slots. It debounces selection changes, asks the
backend, and keeps only the answer for the latest selection.
"""
import asyncio
from datetime import date
from typing import List, Optional, Union

from medicitas import config
from medicitas.availability import coerce_date
from medicitas.errors import MedicitasError
from medicitas.logging_config import get_logger
from medicitas.models import SlotAvailability, TimeSlot
from medicitas.queries import QueryGenerations

logger = get_logger(__name__)

SLOTS_KEY = "slots"


class AvailabilityResolver:
    """
    Slot lookup state for the booking flow.

    State:
    - medico_id, fecha: the selection the current result belongs to
    - result: backend answer for that selection (None while loading/cleared)
    - loading: a lookup for the current selection is outstanding
    - error: user-facing message when the lookup failed
    """

    def __init__(self, service, debounce: float = config.AVAILABILITY_DEBOUNCE_SECONDS):
        """
        Args:
            service: AvailabilityService
            debounce: Seconds a selection must stay unchanged before querying
        """
        self.service = service
        self.debounce = debounce
        self.medico_id: Optional[int] = None
        self.fecha: Optional[date] = None
        self.result: Optional[SlotAvailability] = None
        self.loading = False
        self.error: Optional[str] = None
        self._generations = QueryGenerations()

    @property
    def slots(self) -> List[TimeSlot]:
        """Bookable slots for the current selection (empty unless available)."""
        if self.result is None or not self.result.disponible:
            return []
        return list(self.result.horarios)

    @property
    def available(self) -> Optional[bool]:
        return None if self.result is None else self.result.disponible

    @property
    def reason(self) -> Optional[str]:
        """Backend's reason for "no availability", verbatim."""
        if self.result is None or self.result.disponible:
            return None
        return self.result.razon

    def is_for(self, medico_id: int, fecha: date) -> bool:
        """True when the settled result belongs to this doctor and date."""
        return (
            not self.loading
            and self.result is not None
            and self.medico_id == medico_id
            and self.fecha == fecha
        )

    def clear(self) -> None:
        """Forget the selection and ignore any lookup still in flight."""
        self._generations.invalidate(SLOTS_KEY)
        self.medico_id = None
        self.fecha = None
        self.result = None
        self.error = None
        self.loading = False

    async def select(
        self, medico_id: Optional[int], fecha: Optional[Union[date, str]]
    ) -> bool:
        """
        Resolve slots for a new doctor/date selection.

        Args:
            medico_id: Selected doctor, or None
            fecha: Selected date, or None

        Returns:
            True if this call's outcome was applied, False if it was
            superseded by a newer selection (or the selection was unset)
        """
        if not medico_id or not fecha:
            self.clear()
            return False

        fecha = coerce_date(fecha)
        generation = self._generations.begin(SLOTS_KEY)
        self.medico_id = medico_id
        self.fecha = fecha
        # Never show slots of another date while the new lookup runs
        self.result = None
        self.error = None
        self.loading = True

        if self.debounce > 0:
            await asyncio.sleep(self.debounce)
            if not self._generations.is_current(SLOTS_KEY, generation):
                return False

        try:
            result = await asyncio.to_thread(self.service.query_slots, medico_id, fecha)
        except MedicitasError as e:
            if not self._generations.is_current(SLOTS_KEY, generation):
                return False
            logger.warning(
                "slot_lookup_failed", medico_id=medico_id, fecha=fecha.isoformat(), error=e.message
            )
            self.result = None
            self.error = e.message
            self.loading = False
            return True

        if not self._generations.is_current(SLOTS_KEY, generation):
            logger.debug("slot_lookup_superseded", medico_id=medico_id, fecha=fecha.isoformat())
            return False

        self.result = result
        self.loading = False
        logger.info(
            "slot_lookup_done",
            medico_id=medico_id,
            fecha=fecha.isoformat(),
            disponible=result.disponible,
            slots=len(result.horarios),
        )
        return True
