"""
Redis circuit breaker for Runboard.

Purpose
-------
Fail fast while the ranking store is down. After a run of connectivity
failures the circuit opens and calls are rejected without a round trip,
until a cool-down elapses and a few probe calls succeed.

Responsibilities
----------------
- Gate every store round trip through `execute()`
- Track consecutive connectivity failures and circuit state transitions
- Provide a status snapshot and manual reset / force-open controls
- Emit structured logs for every state change

Non-Responsibilities
--------------------
- Retrying. A retried mutating script could double-apply when its first
  attempt actually ran, so the engine surfaces failures and leaves
  re-delivery to callers with the same event id.
- Translating errors (handled by RedisService)

Configuration Keys
------------------
- core.redis.resilience.circuit.failure_threshold    : int (default 5)
- core.redis.resilience.circuit.success_threshold    : int (default 2)
- core.redis.resilience.circuit.timeout_seconds      : int (default 60)

Architecture Notes
------------------
- Only connectivity errors (connection refused / reset, timeouts) count as
  failures. A script error means the store answered, so the state is left
  untouched.
- State mutations are serialized with an asyncio.Lock.
- The clock is injectable so tests can advance time.
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, reject requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit is OPEN and a call is rejected without a round trip."""

    def __init__(self, operation_name: str, retry_after: float) -> None:
        self.operation_name = operation_name
        self.retry_after = retry_after
        super().__init__(
            f"Redis circuit breaker is OPEN, operation '{operation_name}' rejected "
            f"(retry after {retry_after:.1f}s)"
        )


# ═════════════════════════════════════════════════════════════════════════════
# REDIS RESILIENCE
# ═════════════════════════════════════════════════════════════════════════════


class RedisResilience:
    """
    Circuit breaker wrapped around every Redis round trip.

    Example
    -------
    >>> resilience = RedisResilience()
    >>> total = await resilience.execute(
    ...     operation=lambda: client.zcard("lb:distance:all-time"),
    ...     operation_name="member_count",
    ... )
    """

    CONNECTIVITY_EXCEPTIONS = (
        RedisConnectionError,
        RedisTimeoutError,
        asyncio.TimeoutError,
        ConnectionError,
    )

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._circuit_state: CircuitState = CircuitState.CLOSED
        self._failure_count: int = 0
        self._success_count: int = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._lock: asyncio.Lock = asyncio.Lock()

        self._failure_threshold = ConfigManager.get_int(
            "core.redis.resilience.circuit.failure_threshold", 5, min_value=1
        )
        self._success_threshold = ConfigManager.get_int(
            "core.redis.resilience.circuit.success_threshold", 2, min_value=1
        )
        self._timeout_seconds = ConfigManager.get_float(
            "core.redis.resilience.circuit.timeout_seconds", 60
        )

        logger.info(
            "RedisResilience initialized",
            extra={
                "circuit_state": self._circuit_state.value,
                "failure_threshold": self._failure_threshold,
                "success_threshold": self._success_threshold,
                "timeout_seconds": self._timeout_seconds,
            },
        )

    # ═════════════════════════════════════════════════════════════════════════
    # MAIN EXECUTION API
    # ═════════════════════════════════════════════════════════════════════════

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        operation_name: str,
    ) -> Any:
        """
        Run `operation` once if the circuit allows it.

        Raises
        ------
        CircuitBreakerOpenError
            If the circuit is OPEN and the cool-down has not elapsed.
        Exception
            Whatever `operation` raised; it is never retried.
        """
        if not await self._can_execute():
            raise CircuitBreakerOpenError(operation_name, self._time_until_half_open())

        try:
            result = await operation()
        except self.CONNECTIVITY_EXCEPTIONS as exc:
            await self._record_failure()
            logger.warning(
                "Redis round trip failed",
                extra={
                    "operation": operation_name,
                    "circuit_state": self._circuit_state.value,
                    "failure_count": self._failure_count,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        await self._record_success()
        return result

    # ═════════════════════════════════════════════════════════════════════════
    # CIRCUIT BREAKER LOGIC
    # ═════════════════════════════════════════════════════════════════════════

    async def _can_execute(self) -> bool:
        async with self._lock:
            if self._circuit_state is CircuitState.OPEN:
                if self._time_until_half_open() > 0:
                    return False
                self._transition_to_half_open()
            return True

    async def _record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            self._success_count += 1

            if (
                self._circuit_state is CircuitState.HALF_OPEN
                and self._success_count >= self._success_threshold
            ):
                self._transition_to_closed()

    async def _record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            self._success_count = 0
            self._last_failure_time = self._clock()

            if self._circuit_state is CircuitState.HALF_OPEN:
                self._transition_to_open()
            elif (
                self._circuit_state is CircuitState.CLOSED
                and self._failure_count >= self._failure_threshold
            ):
                self._transition_to_open()

    def _time_until_half_open(self) -> float:
        if self._circuit_state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._timeout_seconds - (self._clock() - self._opened_at))

    def _transition_to_open(self) -> None:
        previous = self._circuit_state
        self._circuit_state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._success_count = 0

        logger.warning(
            "Circuit breaker transitioned to OPEN",
            extra={
                "previous_state": previous.value,
                "failure_count": self._failure_count,
                "failure_threshold": self._failure_threshold,
                "timeout_seconds": self._timeout_seconds,
            },
        )

    def _transition_to_half_open(self) -> None:
        self._circuit_state = CircuitState.HALF_OPEN
        self._failure_count = 0
        self._success_count = 0
        logger.info("Circuit breaker transitioned to HALF_OPEN")

    def _transition_to_closed(self) -> None:
        self._circuit_state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at = None
        logger.info(
            "Circuit breaker transitioned to CLOSED",
            extra={"success_threshold": self._success_threshold},
        )

    # ═════════════════════════════════════════════════════════════════════════
    # MANUAL CONTROL
    # ═════════════════════════════════════════════════════════════════════════

    async def reset(self) -> None:
        """Force the circuit CLOSED, e.g. after confirming the store recovered."""
        async with self._lock:
            previous = self._circuit_state
            self._transition_to_closed()
            self._last_failure_time = None
        logger.info(
            "Redis resilience manually reset",
            extra={"previous_state": previous.value},
        )

    async def force_open(self) -> None:
        """Force the circuit OPEN for maintenance."""
        async with self._lock:
            self._transition_to_open()

    # ═════════════════════════════════════════════════════════════════════════
    # STATUS API
    # ═════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> CircuitState:
        return self._circuit_state

    @property
    def is_open(self) -> bool:
        return self._circuit_state is CircuitState.OPEN

    def get_status(self) -> Dict[str, Any]:
        return {
            "circuit_state": self._circuit_state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self._failure_threshold,
            "success_threshold": self._success_threshold,
            "timeout_seconds": self._timeout_seconds,
            "last_failure_time": self._last_failure_time,
            "time_until_half_open": (
                self._time_until_half_open() if self.is_open else None
            ),
        }
