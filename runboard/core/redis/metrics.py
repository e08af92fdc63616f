"""
Redis metrics collector for Runboard.

Purpose
-------
In-memory latency and outcome counters for every store round trip, keyed by
engine operation name ("increment_once_many", "top_n", "try_claim", ...).

Responsibilities
----------------
- Count successes and failures per operation
- Keep a bounded window of latency samples for p50 / p95 / p99
- Warn on slow round trips
- Record health check probes
- Expose a summary snapshot

Non-Responsibilities
--------------------
- Exporting to a metrics backend
- Alerting

Configuration Keys
------------------
- core.redis.metrics.slow_operation_ms   : int (default 100)
- core.redis.metrics.retention_samples   : int (default 1000)

Architecture Notes
------------------
- Class-level singleton, guarded by threading.Lock (no await inside)
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Deque, Dict

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import get_logger

logger = get_logger(__name__)


def _sample_window() -> Deque[float]:
    return deque(maxlen=ConfigManager.get_int("core.redis.metrics.retention_samples", 1000, min_value=1))


# ═════════════════════════════════════════════════════════════════════════════
# METRIC DATA STRUCTURES
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class OperationMetrics:
    """Counters and latency samples for one operation name."""

    total_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    latencies: Deque[float] = field(default_factory=_sample_window)

    def record(self, latency_ms: float, success: bool) -> None:
        self.total_count += 1
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1

        self.total_latency_ms += latency_ms
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)
        self.latencies.append(latency_ms)

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.total_count if self.total_count else 0.0

    @property
    def success_rate(self) -> float:
        return self.success_count / self.total_count * 100 if self.total_count else 0.0

    def percentile(self, p: int) -> float:
        """Nearest-rank percentile over the retained samples."""
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        idx = int(len(ordered) * (p / 100.0))
        return ordered[min(idx, len(ordered) - 1)]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "total_count": self.total_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "success_rate_pct": round(self.success_rate, 2),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "max_latency_ms": round(self.max_latency_ms, 2),
            "p50_latency_ms": round(self.percentile(50), 2),
            "p95_latency_ms": round(self.percentile(95), 2),
            "p99_latency_ms": round(self.percentile(99), 2),
        }


# ═════════════════════════════════════════════════════════════════════════════
# REDIS METRICS COLLECTOR
# ═════════════════════════════════════════════════════════════════════════════


class RedisMetrics:
    """
    Process-wide Redis metrics.

    All methods are class methods; there is nothing to instantiate.
    """

    _operations: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
    _health_checks: Deque[Dict[str, Any]] = deque(maxlen=100)
    _lock = Lock()
    _start_time: float = time.time()

    @classmethod
    def record_operation(
        cls,
        operation: str,
        latency_ms: float,
        success: bool = True,
    ) -> None:
        """Record one round trip of `operation`."""
        slow_threshold = ConfigManager.get_int("core.redis.metrics.slow_operation_ms", 100)

        with cls._lock:
            cls._operations[operation].record(latency_ms, success)

        if latency_ms > slow_threshold:
            logger.warning(
                "Slow Redis operation detected",
                extra={
                    "operation": operation,
                    "latency_ms": round(latency_ms, 2),
                    "threshold_ms": slow_threshold,
                },
            )

    @classmethod
    def record_health_check(cls, success: bool, latency_ms: float) -> None:
        with cls._lock:
            cls._health_checks.append(
                {"timestamp": time.time(), "success": success, "latency_ms": latency_ms}
            )

    @classmethod
    def get_operation_metrics(cls, operation: str) -> Dict[str, Any]:
        """Snapshot for a single operation; empty dict if never recorded."""
        with cls._lock:
            metrics = cls._operations.get(operation)
            return metrics.snapshot() if metrics else {}

    @classmethod
    def get_summary(cls) -> Dict[str, Any]:
        with cls._lock:
            checks = list(cls._health_checks)
            operations = {name: m.snapshot() for name, m in cls._operations.items()}

        passed = sum(1 for check in checks if check["success"])
        return {
            "uptime_seconds": round(time.time() - cls._start_time, 2),
            "operations": operations,
            "health": {
                "total_checks": len(checks),
                "successful_checks": passed,
                "failed_checks": len(checks) - passed,
            },
        }

    @classmethod
    def reset(cls) -> None:
        """Reset all metrics (useful for testing)."""
        with cls._lock:
            cls._operations.clear()
            cls._health_checks.clear()
            cls._start_time = time.time()
