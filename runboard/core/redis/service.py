"""
RedisService: async Redis infrastructure for Runboard

Purpose
-------
Single async client to the ranking store with one execution path for every
round trip:

    circuit breaker -> optional deadline -> command / script -> metrics + logs

and a single place where redis-py errors become engine errors.

Responsibilities
----------------
- Initialize and tear down a singleton connection pool
- Run Lua scripts (`eval_script`) and the few plain commands the engine
  needs (GET / SET / DEL / PTTL / ZCARD / HGET)
- Route every call through RedisResilience and record RedisMetrics
- Translate failures:
  - open circuit, uninitialized client, reads that fail -> StoreUnavailableError
  - mutating calls that time out or lose the connection -> AmbiguousOutcomeError
- Health check and status snapshot

Non-Responsibilities
--------------------
- Key layout, scripts and result parsing (leaderboard / idempotency modules)
- Retrying (never; see RedisResilience)

Configuration Keys
------------------
- core.redis.url                        : str (default Config.REDIS_URL)
- core.redis.socket_timeout_seconds     : int (default Config.REDIS_SOCKET_TIMEOUT)
- core.redis.max_connections            : int (default Config.REDIS_MAX_CONNECTIONS)
- core.redis.decode_responses           : bool (default True)
- core.redis.operation_timeout_seconds  : float (default 2.0, 0 disables)

Architecture Notes
------------------
- redis-py asyncio client with connection pooling; `retry_on_timeout` is off
  so a timed-out script is never resent by the driver either
- Connection errors on mutating calls are reported as ambiguous even when
  the request may never have left the process; re-delivery is safe
- Initialization is idempotent and serialized via asyncio.Lock
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from runboard.core.config import ConfigManager
from runboard.core.config.config import Config
from runboard.core.exceptions import AmbiguousOutcomeError, StoreUnavailableError
from runboard.core.logging.logger import get_logger
from runboard.core.redis.metrics import RedisMetrics
from runboard.core.redis.resilience import CircuitBreakerOpenError, RedisResilience

logger = get_logger(__name__)

# Errors after which a mutating call may or may not have been applied
_AMBIGUOUS_ERRORS = (
    RedisTimeoutError,
    RedisConnectionError,
    asyncio.TimeoutError,
    ConnectionError,
)


class RedisService:
    """
    Async Redis infrastructure service.

    All methods are class methods; the client is a process-wide singleton.
    """

    _client: Optional[AsyncRedis] = None
    _resilience: Optional[RedisResilience] = None
    _init_lock: asyncio.Lock = asyncio.Lock()
    _is_healthy: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE MANAGEMENT
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect the singleton client and verify it with PING.

        `url` overrides `core.redis.url` (integration tests pass the
        container URL). Idempotent.

        Raises
        ------
        StoreUnavailableError
            If the store cannot be reached.
        """
        if cls._client is not None:
            logger.debug("RedisService already initialized, skipping")
            return

        async with cls._init_lock:
            if cls._client is not None:
                return

            url = url or ConfigManager.get_str("core.redis.url", Config.REDIS_URL)
            socket_timeout = ConfigManager.get_int(
                "core.redis.socket_timeout_seconds", Config.REDIS_SOCKET_TIMEOUT, min_value=1
            )
            max_connections = ConfigManager.get_int(
                "core.redis.max_connections", Config.REDIS_MAX_CONNECTIONS, min_value=1
            )
            decode_responses = bool(
                ConfigManager.get("core.redis.decode_responses", Config.REDIS_DECODE_RESPONSES)
            )
            url_scheme = url.split("://")[0] if "://" in url else "unknown"

            start_time = time.monotonic()
            client: AsyncRedis = AsyncRedis.from_url(
                url,
                password=Config.REDIS_PASSWORD,
                socket_timeout=socket_timeout,
                decode_responses=decode_responses,
                max_connections=max_connections,
                retry_on_timeout=False,
            )

            try:
                await client.ping()  # type: ignore[misc]
            except (RedisError, OSError) as exc:
                await client.aclose()
                logger.critical(
                    "Failed to initialize RedisService",
                    extra={
                        "url_scheme": url_scheme,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                    exc_info=True,
                )
                raise StoreUnavailableError("initialize", original_error=exc) from exc

            cls._client = client
            cls._resilience = RedisResilience()
            cls._is_healthy = True

            logger.info(
                "RedisService initialized successfully",
                extra={
                    "url_scheme": url_scheme,
                    "socket_timeout_seconds": socket_timeout,
                    "max_connections": max_connections,
                    "decode_responses": decode_responses,
                    "initialization_time_ms": round(
                        (time.monotonic() - start_time) * 1000, 2
                    ),
                },
            )

    @classmethod
    async def shutdown(cls) -> None:
        """Close the client. Safe to call when not initialized."""
        client = cls._client
        cls._client = None
        cls._resilience = None
        cls._is_healthy = False

        if client is None:
            logger.debug("RedisService not initialized, nothing to shutdown")
            return

        await client.aclose()
        logger.info("RedisService shutdown complete")

    # ═══════════════════════════════════════════════════════════════════════
    # HEALTH & STATUS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def health_check(cls) -> bool:
        """PING the store; False (never an exception) when it is unreachable."""
        if cls._client is None:
            logger.warning("Health check failed: RedisService not initialized")
            cls._is_healthy = False
            return False

        start_time = time.monotonic()
        try:
            pong = await cls._client.ping()  # type: ignore[misc]
        except (RedisError, OSError) as exc:
            pong = False
            logger.error(
                "Redis health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )

        latency_ms = (time.monotonic() - start_time) * 1000
        cls._is_healthy = bool(pong)
        RedisMetrics.record_health_check(cls._is_healthy, latency_ms)
        return cls._is_healthy

    @classmethod
    def is_healthy(cls) -> bool:
        """Return cached health status without performing I/O."""
        return cls._is_healthy

    @classmethod
    def get_status(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._client is not None,
            "healthy": cls._is_healthy,
            "resilience": cls._resilience.get_status() if cls._resilience else None,
            "metrics": RedisMetrics.get_summary(),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # CLIENT ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def client(cls) -> AsyncRedis:
        """
        Return the singleton Redis client.

        Raises
        ------
        StoreUnavailableError
            If RedisService has not been initialized.
        """
        if cls._client is None:
            raise StoreUnavailableError(
                "client",
                original_error=RuntimeError(
                    "RedisService not initialized. "
                    "Call `await RedisService.initialize()` first."
                ),
            )
        return cls._client

    @classmethod
    def get_resilience(cls) -> RedisResilience:
        if cls._resilience is None:
            cls._resilience = RedisResilience()
        return cls._resilience

    # ═══════════════════════════════════════════════════════════════════════
    # EXECUTION PATH
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _operation_timeout() -> Optional[float]:
        timeout = ConfigManager.get_float("core.redis.operation_timeout_seconds", 2.0)
        return timeout if timeout > 0 else None

    @classmethod
    async def _run(
        cls,
        operation: str,
        key: Optional[str],
        call: Callable[[AsyncRedis], Awaitable[Any]],
        mutating: bool = False,
    ) -> Any:
        """
        Execute one round trip with circuit breaking, deadline, metrics and
        error translation.
        """
        client = cls.client()
        timeout = cls._operation_timeout()

        async def _attempt() -> Any:
            if timeout is None:
                return await call(client)
            return await asyncio.wait_for(call(client), timeout)

        start_time = time.monotonic()
        try:
            result = await cls.get_resilience().execute(_attempt, operation)
        except CircuitBreakerOpenError as exc:
            logger.warning(
                "Redis call rejected by open circuit",
                extra={"operation": operation, "key": key, "retry_after": exc.retry_after},
            )
            raise StoreUnavailableError(operation, key, exc) from exc
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            latency_ms = (time.monotonic() - start_time) * 1000
            RedisMetrics.record_operation(operation, latency_ms, success=False)
            ambiguous = mutating and isinstance(exc, _AMBIGUOUS_ERRORS)
            logger.error(
                "Redis operation failed",
                extra={
                    "operation": operation,
                    "key": key,
                    "mutating": mutating,
                    "ambiguous": ambiguous,
                    "latency_ms": round(latency_ms, 2),
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            if ambiguous:
                raise AmbiguousOutcomeError(operation, key, exc) from exc
            raise StoreUnavailableError(operation, key, exc) from exc

        latency_ms = (time.monotonic() - start_time) * 1000
        RedisMetrics.record_operation(operation, latency_ms, success=True)
        logger.debug(
            "Redis operation completed",
            extra={"operation": operation, "key": key, "latency_ms": round(latency_ms, 2)},
        )
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # SCRIPTS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def eval_script(
        cls,
        script: str,
        keys: Sequence[str],
        args: Sequence[Any] = (),
        operation: str = "eval",
        mutating: bool = False,
    ) -> Any:
        """
        Run a Lua script atomically on the server.

        `operation` names the call in logs and metrics; `mutating` decides
        whether a timeout is reported as ambiguous. The first key is logged
        as the primary key.
        """
        return await cls._run(
            operation,
            keys[0] if keys else None,
            lambda client: client.eval(script, len(keys), *keys, *args),  # type: ignore[misc]
            mutating=mutating,
        )

    # ═══════════════════════════════════════════════════════════════════════
    # COMMANDS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    async def delete(cls, *keys: str) -> int:
        """Delete `keys`; returns how many existed."""
        count = await cls._run(
            "delete",
            keys[0] if keys else None,
            lambda client: client.delete(*keys),
            mutating=True,
        )
        return int(count)

    @classmethod
    async def pttl(cls, key: str) -> int:
        """Remaining TTL in ms; -1 without expiry, -2 when the key is absent."""
        return int(await cls._run("pttl", key, lambda client: client.pttl(key)))

    @classmethod
    async def zcard(cls, key: str) -> int:
        return int(await cls._run("zcard", key, lambda client: client.zcard(key)))
