"""A bounded pool of database connections handed out through releasable handles."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from .errors import InvalidConnectionStringError, PoolExhaustedError

logger = logging.getLogger(__name__)

_CLOSE_POLL_INTERVAL = 0.1
_CLOSE_MAX_ATTEMPTS = 30
_STUCK_AFTER = timedelta(minutes=5)
_QUERY_LATENCY = 0.01


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DatabaseConfig:
    """Sizing and timeouts of a connection pool."""

    min_connections: int = 2
    max_connections: int = 10
    connection_timeout: timedelta = timedelta(seconds=5)
    idle_timeout: timedelta = timedelta(seconds=300)

    @classmethod
    def from_url(cls, database_url: str) -> DatabaseConfig:
        """Default settings for a database URL; raises if the URL is unusable."""
        scheme, sep, rest = database_url.strip().partition(":")
        if not sep or not scheme or not rest:
            raise InvalidConnectionStringError()
        return cls()


@dataclass
class _Connection:
    id: str
    created_at: datetime
    last_used: datetime
    in_use: bool = field(default=False)


class ConnectionPool:
    """Hands out connections up to ``config.max_connections`` at a time."""

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config if config is not None else DatabaseConfig()
        self.max_connections = self.config.max_connections
        self._clock = clock or _utcnow
        self._connections: list[_Connection] = []
        self._active = 0

    @classmethod
    async def open(cls, database_url: str) -> ConnectionPool:
        """Create a pool for the URL and open its minimum number of connections."""
        config = DatabaseConfig.from_url(database_url)
        logger.info(
            "Creating database connection pool with max %d connections",
            config.max_connections,
        )
        pool = cls(config)
        for index in range(config.min_connections):
            pool._connections.append(pool._create_connection(index, in_use=False))
        logger.info("Initialized %d database connections", config.min_connections)
        return pool

    def _create_connection(self, index: int, *, in_use: bool) -> _Connection:
        connection_id = f"conn_{index}_{uuid.uuid4()}"
        logger.info("Creating database connection: %s", connection_id)
        now = self._clock()
        return _Connection(id=connection_id, created_at=now, last_used=now, in_use=in_use)

    async def get_connection(self) -> ConnectionHandle:
        """Take an idle connection, or open a new one; raises when the pool is full."""
        for conn in self._connections:
            if not conn.in_use:
                conn.in_use = True
                conn.last_used = self._clock()
                self._active += 1
                logger.debug("Reusing existing connection: %s", conn.id)
                return ConnectionHandle(conn.id, self)

        if len(self._connections) < self.max_connections:
            conn = self._create_connection(len(self._connections), in_use=True)
            self._connections.append(conn)
            self._active += 1
            logger.debug("Created new connection: %s", conn.id)
            return ConnectionHandle(conn.id, self)

        logger.error("Database connection pool exhausted")
        raise PoolExhaustedError()

    def _return_connection(self, connection_id: str) -> None:
        for conn in self._connections:
            if conn.id == connection_id:
                conn.in_use = False
                conn.last_used = self._clock()
                break
        if self._active > 0:
            self._active -= 1

    def active_connections(self) -> int:
        """Number of connections currently handed out."""
        return self._active

    def total_connections(self) -> int:
        """Number of connections the pool holds, idle or not."""
        return len(self._connections)

    async def close_all(self) -> bool:
        """Wait a bounded time for handed-out connections to come back.

        Returns whether every connection was returned in time.
        """
        logger.info("Closing all database connections...")
        for attempt in range(_CLOSE_MAX_ATTEMPTS):
            active = self._active
            if active == 0:
                logger.info("All database connections closed")
                return True
            if attempt % 5 == 0:
                logger.info("Waiting for %d active connections to close...", active)
            await asyncio.sleep(_CLOSE_POLL_INTERVAL)
        drained = self._active == 0
        if not drained:
            logger.warning("Some connections did not close gracefully")
        logger.info("All database connections closed")
        return drained

    async def health_check(self) -> bool:
        """False when a handed-out connection has gone unused for too long."""
        now = self._clock()
        for conn in self._connections:
            if conn.in_use and now - conn.last_used > _STUCK_AFTER:
                logger.warning("Connection %s appears to be stuck", conn.id)
                return False
        return True


class ConnectionHandle:
    """A connection taken from a pool; give it back with :meth:`release` or ``with``."""

    def __init__(self, connection_id: str, pool: ConnectionPool) -> None:
        self.connection_id = connection_id
        self._pool = pool
        self._released = False

    @property
    def id(self) -> str:
        return self.connection_id

    @property
    def released(self) -> bool:
        return self._released

    async def execute_query(self, query: str) -> str:
        """Run a query on this connection and report where it ran."""
        started = time.monotonic()
        query_hash = hashlib.sha256(query.encode()).hexdigest()
        logger.info(
            "Executing query on connection %s: %s (hash %s)",
            self.connection_id,
            query,
            query_hash,
        )
        await asyncio.sleep(_QUERY_LATENCY)
        logger.debug(
            "Query executed in %.3fs on connection %s",
            time.monotonic() - started,
            self.connection_id,
        )
        return f"Query executed on connection {self.connection_id}"

    def release(self) -> None:
        """Return the connection to its pool; later calls do nothing."""
        if self._released:
            return
        self._released = True
        self._pool._return_connection(self.connection_id)

    def __enter__(self) -> ConnectionHandle:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    async def __aenter__(self) -> ConnectionHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.release()