"""Health reporting for the node: a one-off check and a periodic stream."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from .database import ConnectionPool
from .errors import NetworkError

logger = logging.getLogger(__name__)

_MEMORY_USAGE = "45%"
_CPU_USAGE = "23%"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(enum.IntEnum):
    UNKNOWN = 0
    SERVING = 1
    NOT_SERVING = 2


@dataclass(frozen=True)
class HealthCheckResponse:
    status: HealthStatus
    message: str
    timestamp: datetime
    details: dict[str, str] = field(default_factory=dict)


class HealthService:
    """Reports whether the node and its database are serving."""

    def __init__(
        self,
        connection_pool: ConnectionPool,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._pool = connection_pool
        self._clock = clock or _utcnow

    async def _database_healthy(self) -> bool:
        try:
            return bool(await self._pool.health_check())
        except NetworkError as exc:
            logger.warning("Database connection failed: %s", exc)
            return False

    async def _snapshot(self) -> HealthCheckResponse:
        db_healthy = await self._database_healthy()
        status = HealthStatus.SERVING if db_healthy else HealthStatus.NOT_SERVING
        details = {
            "database": "healthy" if db_healthy else "unhealthy",
            "memory_usage": _MEMORY_USAGE,
            "cpu_usage": _CPU_USAGE,
        }
        message = (
            "All systems operational"
            if status is HealthStatus.SERVING
            else "Some systems are unhealthy"
        )
        return HealthCheckResponse(
            status=status, message=message, timestamp=self._clock(), details=details
        )

    async def check(self) -> HealthCheckResponse:
        """The current health of the node."""
        logger.info("Health check requested")
        return await self._snapshot()

    async def watch(self, interval: float = 5.0) -> AsyncIterator[HealthCheckResponse]:
        """Yield a health report at once and then every ``interval`` seconds."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        logger.info("Health watch requested")
        try:
            while True:
                yield await self._snapshot()
                await asyncio.sleep(interval)
        finally:
            logger.info("Health watch stopped")