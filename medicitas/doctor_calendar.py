"""Doctor calendar view-model: mark days and ranges as unavailable."""
import asyncio
import logging
from datetime import date
from typing import Callable, List, Optional, Union

from medicitas.availability import build_month_calendar, coerce_date, month_bounds
from medicitas.errors import MedicitasError, ValidationError
from medicitas.models import BlockedInterval, CalendarDay, MonthCalendar
from medicitas.queries import QueryGenerations

logger = logging.getLogger(__name__)

CALENDAR_KEY = "calendar"

DateLike = Union[date, str]


class DoctorCalendar:
    """
    One month of a doctor's availability.

    Every successful change invalidates the month and fetches it again, so
    the calendar always shows what the backend stored.
    """

    def __init__(self, service, medico_id: int, today: Callable[[], date] = date.today):
        """
        Args:
            service: AvailabilityService
            medico_id: The doctor whose calendar this is
            today: Reference date provider (picks the initial month)
        """
        self.service = service
        self.medico_id = medico_id
        current = today()
        self.year = current.year
        self.month = current.month
        self.intervals: List[BlockedInterval] = []
        self.calendar: Optional[MonthCalendar] = None
        self.loading = False
        self.saving = False
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self._generations = QueryGenerations()

    async def load(self, year: Optional[int] = None, month: Optional[int] = None) -> bool:
        """
        Fetch blocked intervals overlapping the month and rebuild the calendar.

        Returns:
            True if the month was applied
        """
        year = year or self.year
        month = month or self.month
        first, last = month_bounds(year, month)
        self.year, self.month = year, month

        generation = self._generations.begin(CALENDAR_KEY)
        self.loading = True
        self.error = None
        try:
            intervals = await asyncio.to_thread(
                self.service.list_blocked, self.medico_id, first, last
            )
        except MedicitasError as e:
            if not self._generations.is_current(CALENDAR_KEY, generation):
                return False
            logger.warning("Calendar load failed for doctor %s: %s", self.medico_id, e.message)
            self.error = e.message
            self.loading = False
            return False

        if not self._generations.is_current(CALENDAR_KEY, generation):
            return False
        self.intervals = intervals
        self.calendar = build_month_calendar(year, month, intervals)
        self.loading = False
        return True

    async def invalidate(self) -> bool:
        """Drop the cached month and fetch it again."""
        self.calendar = None
        return await self.load(self.year, self.month)

    async def next_month(self) -> bool:
        if self.month == 12:
            return await self.load(self.year + 1, 1)
        return await self.load(self.year, self.month + 1)

    async def previous_month(self) -> bool:
        if self.month == 1:
            return await self.load(self.year - 1, 12)
        return await self.load(self.year, self.month - 1)

    async def mark_day(self, fecha: DateLike) -> bool:
        fecha = coerce_date(fecha)
        return await self._change(
            self.service.block_day, (self.medico_id, fecha),
            f"{fecha.isoformat()} marked as unavailable.",
        )

    async def mark_range(self, fecha_inicio: DateLike, fecha_fin: DateLike) -> bool:
        """
        Raises:
            ValidationError: fecha_fin before fecha_inicio (nothing sent)
        """
        start, end = self._ordered(fecha_inicio, fecha_fin)
        return await self._change(
            self.service.block_range, (self.medico_id, start, end),
            f"{start.isoformat()} to {end.isoformat()} marked as unavailable.",
        )

    async def unmark_day(self, day: Union[CalendarDay, BlockedInterval, int]) -> bool:
        """
        Make a blocked day bookable again.

        Args:
            day: A CalendarDay from ``calendar``, a BlockedInterval, or its id

        Raises:
            ValidationError: The day is not blocked
        """
        if isinstance(day, CalendarDay):
            interval_id = day.blocked_interval_id
        elif isinstance(day, BlockedInterval):
            interval_id = day.id
        else:
            interval_id = day
        if interval_id is None:
            raise ValidationError("That day is not marked as unavailable.")
        return await self._change(
            self.service.unblock_day, (interval_id,), "Day marked as available again."
        )

    async def unmark_range(self, fecha_inicio: DateLike, fecha_fin: DateLike) -> bool:
        start, end = self._ordered(fecha_inicio, fecha_fin)
        return await self._change(
            self.service.unblock_range, (self.medico_id, start, end),
            f"{start.isoformat()} to {end.isoformat()} marked as available again.",
        )

    async def _change(self, func: Callable, args: tuple, done_message: str) -> bool:
        if self.saving:
            return False
        self.saving = True
        self.error = None
        self.notice = None
        try:
            await asyncio.to_thread(func, *args)
        except MedicitasError as e:
            self.error = e.message
            return False
        finally:
            self.saving = False

        self.notice = done_message
        await self.invalidate()
        return True

    @staticmethod
    def _ordered(fecha_inicio: DateLike, fecha_fin: DateLike):
        start = coerce_date(fecha_inicio, "fechaInicio")
        end = coerce_date(fecha_fin, "fechaFin")
        if end < start:
            raise ValidationError("The end date must be on or after the start date.")
        return start, end
