"""
Pytest Configuration and Fixtures for Runboard Tests
=====================================================

Purpose
-------
Centralized fixtures for the Runboard test suite: in-memory fakes for unit
tests, a Redis testcontainer for integration tests, and resets for the
process-wide singletons (ConfigManager overrides, RedisMetrics, log context).

Responsibilities
----------------
- Testcontainers setup for Redis
- RedisService lifecycle per integration test (clean database each time)
- Mocked RedisService for script shaping / parsing tests
- Service factories wired to in-memory fakes and a fixed clock

Non-Responsibilities
--------------------
- Test implementation (delegated to test files)
- Production configuration (test-specific only)

Architecture Notes
------------------
- Unit tests use fakes and mocks (fast, no Docker)
- Integration tests use testcontainers and need a running Docker daemon;
  `pytest -m "not integration"` runs without one
- Environment is set before any runboard import so Config.validate() and
  setup_logging() see test values
"""

from __future__ import annotations

import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import random
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from testcontainers.redis import RedisContainer

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import clear_log_context, get_logger
from runboard.core.redis.metrics import RedisMetrics
from runboard.core.redis.service import RedisService
from runboard.modules.leaderboard.keys import ScopeKeyResolver
from runboard.modules.leaderboard.service import LeaderboardService
from runboard.modules.orders.repository import InMemoryOrderRepository
from runboard.modules.orders.service import OrderService
from tests.fakes import FakeClock, InMemoryIdempotencyGuard, InMemoryRankedAggregateStore

logger = get_logger(__name__)

# 2025-09-09 is a Tuesday in ISO week 37
FIXED_NOW = datetime(2025, 9, 9, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# SINGLETON RESETS
# ============================================================================


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    """Clear config overrides, metrics and log context around every test."""
    ConfigManager.clear_overrides()
    RedisMetrics.reset()
    clear_log_context()
    yield
    ConfigManager.clear_overrides()
    RedisMetrics.reset()
    clear_log_context()


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    Uses: Integration tests that need real Redis
    """
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()

    logger.info(
        "Redis testcontainer started: %s:%s",
        container.get_container_host_ip(),
        container.get_exposed_port(6379),
    )

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


@pytest_asyncio.fixture(scope="function")
async def redis_service(redis_url: str) -> AsyncGenerator[type[RedisService], None]:
    """
    Initialized RedisService against an empty database.

    Scope: function (fresh client per test, database flushed before and after)
    """
    await RedisService.initialize(redis_url)
    await RedisService.client().flushdb()
    yield RedisService
    await RedisService.client().flushdb()
    await RedisService.shutdown()


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock RedisService for unit tests.

    Scope: function
    Uses: Store / guard tests that check script keys, args and reply parsing
    """
    mock_service = mocker.MagicMock()
    mock_service.eval_script = mocker.AsyncMock()
    mock_service.delete = mocker.AsyncMock(return_value=0)
    mock_service.zcard = mocker.AsyncMock(return_value=0)
    mock_service.pttl = mocker.AsyncMock(return_value=-2)
    return mock_service


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_resolver() -> ScopeKeyResolver:
    return ScopeKeyResolver(clock=lambda: FIXED_NOW)


@pytest.fixture
def fake_store(fake_clock: FakeClock) -> InMemoryRankedAggregateStore:
    return InMemoryRankedAggregateStore(clock=fake_clock)


@pytest.fixture
def leaderboard_service(
    fake_store: InMemoryRankedAggregateStore,
    key_resolver: ScopeKeyResolver,
) -> LeaderboardService:
    return LeaderboardService(store=fake_store, keys=key_resolver, rng=random.Random(7))


@pytest.fixture
def fake_guard(fake_clock: FakeClock) -> InMemoryIdempotencyGuard:
    return InMemoryIdempotencyGuard(clock=fake_clock)


@pytest.fixture
def order_repository() -> InMemoryOrderRepository:
    return InMemoryOrderRepository()


@pytest.fixture
def order_service(
    fake_guard: InMemoryIdempotencyGuard,
    order_repository: InMemoryOrderRepository,
) -> OrderService:
    return OrderService(guard=fake_guard, repository=order_repository)
