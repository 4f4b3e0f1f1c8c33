"""Tests for the transport circuit breaker."""
import pytest

from medicitas.circuit_breaker import CircuitBreaker
from medicitas.errors import BackendUnavailable, NetworkFailure, RemoteRejection


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def network_down():
    raise NetworkFailure()


def backend_refuses():
    raise RemoteRejection("Fecha inválida", status=400)


class TestCircuitBreaker:
    """Test circuit breaker behavior."""

    def test_allows_requests_when_closed(self):
        """Should allow requests when circuit is closed."""
        cb = CircuitBreaker(failure_threshold=3, timeout=1)

        assert cb.call(lambda: "success") == "success"
        assert cb.state == "closed"

    def test_opens_after_threshold_failures(self):
        """Should open circuit after 3 consecutive network failures."""
        cb = CircuitBreaker(failure_threshold=3, timeout=60)

        for _ in range(3):
            with pytest.raises(NetworkFailure):
                cb.call(network_down)

        assert cb.state == "open"

        calls = []
        with pytest.raises(BackendUnavailable):
            cb.call(lambda: calls.append("attempted"))
        assert calls == []

    def test_backend_rejections_do_not_count(self):
        """A backend that answers with an error is reachable."""
        cb = CircuitBreaker(failure_threshold=2, timeout=60)

        with pytest.raises(NetworkFailure):
            cb.call(network_down)
        for _ in range(5):
            with pytest.raises(RemoteRejection):
                cb.call(backend_refuses)

        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_half_open_trial_failure_reopens(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, timeout=30, clock=clock)

        with pytest.raises(NetworkFailure):
            cb.call(network_down)
        assert cb.state == "open"

        clock.now += 31
        with pytest.raises(NetworkFailure):
            cb.call(network_down)

        assert cb.state == "open"
        assert cb.opened_at == clock.now

    def test_closes_on_successful_half_open_attempt(self):
        """Should close circuit on successful half-open attempt."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, timeout=30, clock=clock)

        with pytest.raises(NetworkFailure):
            cb.call(network_down)

        clock.now += 10
        with pytest.raises(BackendUnavailable):
            cb.call(lambda: "too early")

        clock.now += 25
        assert cb.call(lambda: "success") == "success"
        assert cb.state == "closed"
        assert cb.failure_count == 0
