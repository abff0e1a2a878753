from datetime import datetime, timedelta, timezone

import pytest

from nodekit.database import ConnectionPool, DatabaseConfig
from nodekit.errors import ConnectionFailedError
from nodekit.health import HealthService, HealthStatus


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


class FailingPool:
    async def health_check(self) -> bool:
        raise ConnectionFailedError("down")


async def _stuck_pool(clock: FakeClock) -> ConnectionPool:
    pool = ConnectionPool(DatabaseConfig(min_connections=0, max_connections=1), clock=clock)
    await pool.get_connection()
    clock.now += timedelta(minutes=10)
    return pool


@pytest.mark.asyncio
async def test_check_healthy_pool():
    pool = await ConnectionPool.open("sqlite::memory:")
    response = await HealthService(pool).check()
    assert response.status is HealthStatus.SERVING
    assert response.message == "All systems operational"
    assert response.details == {
        "database": "healthy",
        "memory_usage": "45%",
        "cpu_usage": "23%",
    }


@pytest.mark.asyncio
async def test_check_stuck_pool_is_not_serving():
    clock = FakeClock()
    pool = await _stuck_pool(clock)
    response = await HealthService(pool, clock=clock).check()
    assert response.status is HealthStatus.NOT_SERVING
    assert response.message == "Some systems are unhealthy"
    assert response.details["database"] == "unhealthy"
    assert response.timestamp == clock.now


@pytest.mark.asyncio
async def test_check_failing_pool_is_not_serving():
    response = await HealthService(FailingPool()).check()
    assert response.status is HealthStatus.NOT_SERVING
    assert response.details["database"] == "unhealthy"


@pytest.mark.asyncio
async def test_watch_yields_repeated_reports():
    pool = await ConnectionPool.open("sqlite::memory:")
    stream = HealthService(pool).watch(interval=0.01)
    first = await stream.__anext__()
    second = await stream.__anext__()
    await stream.aclose()
    assert first.status is HealthStatus.SERVING
    assert second.status is HealthStatus.SERVING
    assert second.timestamp >= first.timestamp


@pytest.mark.asyncio
async def test_watch_reflects_state_changes():
    clock = FakeClock()
    pool = ConnectionPool(DatabaseConfig(min_connections=0, max_connections=1), clock=clock)
    stream = HealthService(pool, clock=clock).watch(interval=0.01)
    first = await stream.__anext__()
    await pool.get_connection()
    clock.now += timedelta(minutes=10)
    second = await stream.__anext__()
    await stream.aclose()
    assert first.status is HealthStatus.SERVING
    assert second.status is HealthStatus.NOT_SERVING


@pytest.mark.asyncio
async def test_watch_rejects_non_positive_interval():
    pool = await ConnectionPool.open("sqlite::memory:")
    stream = HealthService(pool).watch(interval=0)
    with pytest.raises(ValueError):
        await stream.__anext__()