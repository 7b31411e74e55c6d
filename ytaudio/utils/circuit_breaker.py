"""
Circuit breaker guarding calls to the metadata endpoint.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Optional

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Calls pass through
    OPEN = "open"  # Calls rejected until the cooldown elapses
    HALF_OPEN = "half_open"  # One trial call decides


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open."""


class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive failures and rejects calls for
    `recovery_timeout` seconds. After the cooldown a single trial call is let
    through: success closes the circuit, failure re-opens it.

    Used as an async context manager around the protected call.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    async def __aenter__(self):
        async with self._lock:
            if self._state == CircuitState.OPEN:
                elapsed = self._clock() - (self._opened_at or 0.0)
                if elapsed < self.recovery_timeout:
                    raise CircuitBreakerError(
                        f"Circuit is open; retrying after {self.recovery_timeout:.0f}s."
                    )
                log.debug("Circuit breaker half-open: allowing a trial call.")
                self._state = CircuitState.HALF_OPEN
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        async with self._lock:
            if exc_type is None:
                if self._state != CircuitState.CLOSED:
                    log.info("[green]✓ Metadata lookups recovered.[/green]")
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                return False

            self._failure_count += 1
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            ):
                if self._state != CircuitState.OPEN:
                    log.warning(
                        f"[yellow]Circuit breaker opened after {self._failure_count} "
                        f"failures; pausing for {self.recovery_timeout:.0f}s.[/yellow]"
                    )
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()
        return False
