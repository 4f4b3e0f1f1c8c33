"""Tests for the availability resolver (debounce and last-selection-wins)."""
import asyncio
import threading
from datetime import date

import pytest

from medicitas.errors import NetworkFailure
from medicitas.models import SlotAvailability
from medicitas.resolver import AvailabilityResolver

DATE_X = date(2030, 1, 7)
DATE_Y = date(2030, 1, 8)


class FakeSlotService:
    """Slot lookups that can be held open per date."""

    def __init__(self, responses):
        self.responses = responses
        self.gates = {}
        self.calls = []

    def hold(self, fecha):
        self.gates[fecha] = threading.Event()
        return self.gates[fecha]

    def query_slots(self, medico_id, fecha):
        self.calls.append((medico_id, fecha))
        gate = self.gates.get(fecha)
        if gate is not None:
            gate.wait(timeout=5)
        response = self.responses[fecha]
        if isinstance(response, Exception):
            raise response
        return response


def available(*labels):
    return SlotAvailability(disponible=True, horarios=list(labels))


async def wait_for_call(service, fecha):
    for _ in range(500):
        if any(call[1] == fecha for call in service.calls):
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"query for {fecha} never started")


class TestAvailabilityResolver:
    """Test slot resolution for the booking flow."""

    @pytest.mark.asyncio
    async def test_shows_backend_slots(self):
        service = FakeSlotService({DATE_X: available("09:00", "09:30")})
        resolver = AvailabilityResolver(service, debounce=0)

        applied = await resolver.select(3, DATE_X)

        assert applied
        assert [slot.label for slot in resolver.slots] == ["09:00", "09:30"]
        assert resolver.available is True
        assert resolver.loading is False
        assert resolver.is_for(3, DATE_X)

    @pytest.mark.asyncio
    async def test_late_response_for_old_date_is_discarded(self):
        """Y is selected while X is in flight; X answers last and must be ignored."""
        service = FakeSlotService({
            DATE_X: available("09:00", "09:30"),
            DATE_Y: available("15:00"),
        })
        gate_x = service.hold(DATE_X)
        resolver = AvailabilityResolver(service, debounce=0)

        task_x = asyncio.create_task(resolver.select(3, DATE_X))
        await wait_for_call(service, DATE_X)

        applied_y = await resolver.select(3, DATE_Y)
        gate_x.set()
        applied_x = await task_x

        assert applied_y is True
        assert applied_x is False
        assert resolver.fecha == DATE_Y
        assert [slot.label for slot in resolver.slots] == ["15:00"]
        assert resolver.loading is False

    @pytest.mark.asyncio
    async def test_debounce_skips_superseded_selection(self):
        """Only the selection that stays put long enough is queried."""
        service = FakeSlotService({DATE_X: available("09:00"), DATE_Y: available("10:00")})
        resolver = AvailabilityResolver(service, debounce=0.05)

        first = asyncio.create_task(resolver.select(3, DATE_X))
        await asyncio.sleep(0)
        second = await resolver.select(3, DATE_Y)

        assert await first is False
        assert second is True
        assert service.calls == [(3, DATE_Y)]

    @pytest.mark.asyncio
    async def test_unavailable_date_keeps_reason(self):
        service = FakeSlotService({
            DATE_X: SlotAvailability(disponible=False, razon="El médico no está disponible en esta fecha"),
        })
        resolver = AvailabilityResolver(service, debounce=0)

        await resolver.select(3, DATE_X)

        assert resolver.available is False
        assert resolver.slots == []
        assert resolver.reason == "El médico no está disponible en esta fecha"

    @pytest.mark.asyncio
    async def test_error_clears_slots(self):
        service = FakeSlotService({DATE_X: available("09:00"), DATE_Y: NetworkFailure()})
        resolver = AvailabilityResolver(service, debounce=0)
        await resolver.select(3, DATE_X)

        applied = await resolver.select(3, DATE_Y)

        assert applied
        assert resolver.slots == []
        assert resolver.error == NetworkFailure.default_message
        assert resolver.loading is False

    @pytest.mark.asyncio
    async def test_unset_selection_clears(self):
        service = FakeSlotService({DATE_X: available("09:00")})
        resolver = AvailabilityResolver(service, debounce=0)
        await resolver.select(3, DATE_X)

        assert await resolver.select(3, None) is False

        assert resolver.slots == []
        assert resolver.fecha is None
        assert resolver.medico_id is None

    @pytest.mark.asyncio
    async def test_clear_discards_in_flight_lookup(self):
        service = FakeSlotService({DATE_X: available("09:00")})
        gate = service.hold(DATE_X)
        resolver = AvailabilityResolver(service, debounce=0)

        task = asyncio.create_task(resolver.select(3, DATE_X))
        await wait_for_call(service, DATE_X)
        resolver.clear()
        gate.set()

        assert await task is False
        assert resolver.result is None
        assert resolver.loading is False
