"""Circuit breaker around the backend transport.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Backend unreachable, requests fail immediately with BackendUnavailable
- HALF_OPEN: Reset timeout elapsed, one trial request is let through

Only transport failures (NetworkFailure) count. A backend that answers,
even with an error, is reachable.
"""
import logging
import time
from enum import Enum
from typing import Any, Callable, Optional

from medicitas.errors import BackendUnavailable, MedicitasError, NetworkFailure

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Fail fast while the backend is unreachable."""

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            failure_threshold: Consecutive network failures before opening
            timeout: Seconds to stay open before a half-open trial call
            clock: Monotonic time source (injectable for tests)
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self._clock = clock
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self._state = CircuitState.CLOSED

    @property
    def state(self) -> str:
        """Get current state as string."""
        return self._state.value

    def call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """
        Execute func with circuit breaker protection.

        Raises:
            BackendUnavailable: If circuit is open
            Exception: Whatever func raises
        """
        if self._state == CircuitState.OPEN:
            if self._clock() - self.opened_at >= self.timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info("Circuit breaker transitioning to HALF_OPEN")
            else:
                raise BackendUnavailable()

        try:
            result = func(*args, **kwargs)
        except NetworkFailure:
            self._on_failure()
            raise
        except MedicitasError:
            # The backend answered
            self._on_success()
            raise

        self._on_success()
        return result

    def reset(self):
        """Force the circuit closed."""
        self.failure_count = 0
        self.opened_at = None
        self._state = CircuitState.CLOSED

    def _on_success(self):
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker closed after successful trial call")
        self.reset()

    def _on_failure(self):
        self.failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            self._open()
            logger.warning("Circuit breaker re-opened after failed trial call")
        elif self.failure_count >= self.failure_threshold:
            self._open()
            logger.error(
                "Circuit breaker opened after %d network failures, timeout %.0fs",
                self.failure_count,
                self.timeout,
            )

    def _open(self):
        self._state = CircuitState.OPEN
        self.opened_at = self._clock()
