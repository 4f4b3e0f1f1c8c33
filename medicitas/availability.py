"""Doctor availability: blocked days, month calendars and bookable slots.

A date is bookable for a doctor iff no BlockedInterval of that doctor covers
it. Slot generation (working hours, granularity, conflicts) belongs to the
backend; the client only asks for a date and shows what comes back.
"""
import calendar
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple, Union

from medicitas.errors import ValidationError
from medicitas.models import (
    BlockedInterval,
    CalendarDay,
    MonthCalendar,
    SlotAvailability,
    parse,
    parse_list,
)

DateLike = Union[date, str]


def coerce_date(value: DateLike, field: str = "fecha") -> date:
    """Accept a date or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD.") from None


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """First and last day of a month."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12.")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def blocking_interval(day: date, intervals: Iterable[BlockedInterval]) -> Optional[BlockedInterval]:
    return next((interval for interval in intervals if interval.covers(day)), None)


def is_date_available(day: date, intervals: Iterable[BlockedInterval]) -> bool:
    return blocking_interval(day, intervals) is None


def build_month_calendar(
    year: int, month: int, intervals: Iterable[BlockedInterval]
) -> MonthCalendar:
    """
    Merge a doctor's blocked intervals over one month.

    Args:
        year: Calendar year
        month: 1-12
        intervals: The doctor's blocked intervals (any range; only overlap matters)

    Returns:
        MonthCalendar with one CalendarDay per day of the month
    """
    first, last = month_bounds(year, month)
    intervals = [
        interval for interval in intervals
        if interval.fecha_inicio <= last and interval.fecha_fin >= first
    ]

    dias = []
    day = first
    while day <= last:
        blocker = blocking_interval(day, intervals)
        dias.append(CalendarDay(
            fecha=day,
            disponible=blocker is None,
            blocked_interval_id=blocker.id if blocker else None,
        ))
        day += timedelta(days=1)

    return MonthCalendar(mes=month, ano=year, dias=dias)


class AvailabilityService:
    """Availability endpoints for doctors (blocking) and patients (slot lookup)."""

    def __init__(self, gateway):
        self.gateway = gateway

    def block_day(self, medico_id: int, fecha: DateLike) -> Optional[BlockedInterval]:
        """Mark one day as unavailable."""
        fecha = coerce_date(fecha)
        envelope = self.gateway.post(
            f"/medicos/{medico_id}/disponibilidad", json={"fecha": fecha.isoformat()}
        )
        return self._interval_or_none(envelope.data)

    def block_range(
        self, medico_id: int, fecha_inicio: DateLike, fecha_fin: DateLike
    ) -> None:
        """
        Mark an inclusive range of days as unavailable.

        Raises:
            ValidationError: fecha_fin before fecha_inicio (no request sent)
        """
        start, end = self._ordered_range(fecha_inicio, fecha_fin)
        self.gateway.post(
            f"/medicos/{medico_id}/disponibilidad-rango",
            json={"fechaInicio": start.isoformat(), "fechaFin": end.isoformat()},
        )

    def list_blocked(
        self,
        medico_id: int,
        desde: Optional[DateLike] = None,
        hasta: Optional[DateLike] = None,
    ) -> List[BlockedInterval]:
        """Blocked intervals of a doctor, optionally limited to a date window."""
        params = {
            "fechaInicio": coerce_date(desde, "fechaInicio").isoformat() if desde else None,
            "fechaFin": coerce_date(hasta, "fechaFin").isoformat() if hasta else None,
        }
        envelope = self.gateway.get(f"/medicos/{medico_id}/disponibilidades", params=params)
        rows = envelope.data or []
        # Rows flagged disponible=true are explicit "available" marks, not blocks
        rows = [
            row for row in rows
            if not (isinstance(row, dict) and row.get("disponible") is True)
        ]
        return parse_list(BlockedInterval, rows)

    def remote_calendar(self, medico_id: int, mes: int, ano: int) -> MonthCalendar:
        """Month calendar as computed by the backend."""
        month_bounds(ano, mes)
        envelope = self.gateway.get(
            f"/medicos/{medico_id}/calendario", params={"mes": mes, "ano": ano}
        )
        return parse(MonthCalendar, envelope.data)

    def unblock_day(self, interval_id: int) -> None:
        """Revert one blocked day to available."""
        self.gateway.delete(f"/medicos/disponibilidad/{interval_id}")

    def unblock_range(
        self, medico_id: int, fecha_inicio: DateLike, fecha_fin: DateLike
    ) -> None:
        """Revert an inclusive range of blocked days to available."""
        start, end = self._ordered_range(fecha_inicio, fecha_fin)
        self.gateway.delete(
            f"/medicos/{medico_id}/disponibilidad-rango",
            json={"fechaInicio": start.isoformat(), "fechaFin": end.isoformat()},
        )

    def query_slots(
        self, medico_id: int, fecha: DateLike, today: Optional[date] = None
    ) -> SlotAvailability:
        """
        Ask the backend which slots of a doctor can be booked on a date.

        Args:
            medico_id: Doctor ID
            fecha: Requested date, today or later
            today: Reference date (defaults to date.today())

        Returns:
            SlotAvailability exactly as reported by the backend

        Raises:
            ValidationError: fecha is in the past (no request sent)
        """
        fecha = coerce_date(fecha)
        if fecha < (today or date.today()):
            raise ValidationError("Please choose today or a future date.")

        envelope = self.gateway.get(
            f"/citas/medico/{medico_id}/disponibilidad",
            params={"fecha": fecha.isoformat()},
        )
        data = envelope.data
        if isinstance(data, list):
            data = {"disponible": bool(data), "horarios": data}
        return parse(SlotAvailability, data)

    @staticmethod
    def _ordered_range(fecha_inicio: DateLike, fecha_fin: DateLike) -> Tuple[date, date]:
        start = coerce_date(fecha_inicio, "fechaInicio")
        end = coerce_date(fecha_fin, "fechaFin")
        if end < start:
            raise ValidationError("The end date must be on or after the start date.")
        return start, end

    @staticmethod
    def _interval_or_none(data) -> Optional[BlockedInterval]:
        if isinstance(data, dict) and ("fecha" in data or "fecha_inicio" in data):
            return parse(BlockedInterval, data)
        return None
