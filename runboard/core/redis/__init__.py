"""
Redis Infrastructure for Runboard

Exports
-------
Core Service:
    RedisService - async client, scripts, commands, error translation

Resilience:
    RedisResilience - circuit breaker around every round trip
    CircuitState - circuit breaker state enum
    CircuitBreakerOpenError - raised internally when the circuit is open

Metrics:
    RedisMetrics - per-operation latency and outcome counters

Example Usage
-------------
>>> await RedisService.initialize()
>>> await RedisService.zcard("lb:distance:all-time")
0
>>> await RedisService.shutdown()
"""

from runboard.core.redis.metrics import RedisMetrics
from runboard.core.redis.resilience import (
    CircuitBreakerOpenError,
    CircuitState,
    RedisResilience,
)
from runboard.core.redis.service import RedisService

__all__ = [
    "RedisService",
    "RedisResilience",
    "CircuitState",
    "CircuitBreakerOpenError",
    "RedisMetrics",
]
