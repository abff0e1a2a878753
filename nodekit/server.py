"""HTTP front end of the node: health probes, error statistics and breaker status."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable

from aiohttp import web

from .database import ConnectionPool
from .error_middleware import ErrorMiddleware
from .errors import (
    ConfigError,
    ContextualError,
    ErrorContext,
    NetworkError,
    ServerError,
)

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "0.1.0"

_Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_bind_address(bind_address: str) -> tuple[str, int]:
    host, sep, port_text = bind_address.rpartition(":")
    if not sep or not host:
        raise ConfigError(f"Invalid bind address: {bind_address!r}")
    host = host.removeprefix("[").removesuffix("]")
    try:
        ipaddress.ip_address(host)
    except ValueError as exc:
        raise ConfigError(f"Invalid bind address: {exc}") from exc
    if not port_text.isdigit() or int(port_text) > 65535:
        raise ConfigError(f"Invalid bind address: invalid port {port_text!r}")
    return host, int(port_text)


def error_response(error: ContextualError) -> web.Response:
    """JSON response describing an error, with the error's HTTP status."""
    status = error.error.http_status_code()
    if not 100 <= status <= 599:
        status = 500
    body = {
        "error": {
            "code": error.error.error_code(),
            "message": str(error.error),
            "request_id": error.context.request_id,
            "timestamp": error.context.timestamp.isoformat(),
        }
    }
    return web.json_response(body, status=status)


class EnhancedHttpServer:
    """HTTP server that tracks live requests and can drain them before stopping."""

    def __init__(
        self,
        bind_address: str,
        connection_pool: ConnectionPool,
        error_middleware: ErrorMiddleware | None = None,
        *,
        version: str = DEFAULT_VERSION,
        poll_interval: float = 1.0,
    ) -> None:
        self.bind_address = bind_address
        self.connection_pool = connection_pool
        self.error_middleware = error_middleware if error_middleware is not None else ErrorMiddleware()
        self.version = version
        self.poll_interval = poll_interval
        self._accepting = True
        self._active = 0
        self._runner: web.AppRunner | None = None

    @property
    def is_accepting_connections(self) -> bool:
        return self._accepting

    @property
    def active_connections(self) -> int:
        return self._active

    def build_app(self) -> web.Application:
        """The application with its routes and middleware stack."""
        app = web.Application(
            middlewares=[
                self._connection_tracker,
                self._connection_limiter,
                self._error_handler,
            ]
        )
        app.router.add_get("/health", self._health_check)
        app.router.add_get("/ready", self._ready_check)
        app.router.add_get("/error-stats", self._error_stats)
        app.router.add_get("/circuit-breaker-status", self._circuit_breaker_status)
        app.router.add_get("/health/liveness", self._health_liveness)
        app.router.add_get("/health/readiness", self._health_readiness)
        return app

    async def start(self) -> tuple[str, int]:
        """Start listening; returns the host and port actually bound."""
        if self._runner is not None:
            raise ServerError("HTTP server is already running")
        host, port = _parse_bind_address(self.bind_address)
        logger.info("Starting enhanced HTTP server on %s", self.bind_address)
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise ServerError(f"Failed to bind to {self.bind_address}: {exc}") from exc
        self._runner = runner
        bound_port = port
        for address in runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                bound_port = int(address[1])
                break
        logger.info("HTTP server listening on %s:%d", host, bound_port)
        return host, bound_port

    async def stop_accepting_new_connections(self) -> None:
        """Answer every further request with 503."""
        logger.info("Stopping acceptance of new HTTP connections")
        self._accepting = False

    async def wait_for_connections_to_complete(self, max_attempts: int = 60) -> bool:
        """Poll until no request is in flight; returns whether that happened in time."""
        logger.info("Waiting for active HTTP connections to complete")
        for attempt in range(max_attempts):
            if self._active == 0:
                logger.info("All HTTP connections have completed")
                return True
            if attempt % 10 == 0:
                logger.info("Waiting for %d active HTTP connections...", self._active)
            await asyncio.sleep(self.poll_interval)
        if self._active == 0:
            return True
        logger.warning("HTTP connections did not complete within timeout period")
        return False

    async def stop(self) -> None:
        """Shut the server down; does nothing if it is not running."""
        logger.info("Stopping HTTP server")
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()

    @web.middleware
    async def _connection_tracker(self, request: web.Request, handler: _Handler) -> web.StreamResponse:
        self._active += 1
        try:
            return await handler(request)
        finally:
            self._active -= 1

    @web.middleware
    async def _connection_limiter(self, request: web.Request, handler: _Handler) -> web.StreamResponse:
        if not self._accepting:
            return web.Response(status=503, text="Server is shutting down")
        return await handler(request)

    @web.middleware
    async def _error_handler(self, request: web.Request, handler: _Handler) -> web.StreamResponse:
        context = ErrorContext("http_request", "http_server").with_request_id(str(uuid.uuid4()))
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except NetworkError as exc:
            error: NetworkError = exc
        except Exception as exc:
            error = ServerError(f"Internal server error: {exc}")
        contextual = await self.error_middleware.handle_error(error, context)
        contextual.log_error()
        return error_response(contextual)

    async def _health_check(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "healthy", "timestamp": _now_iso(), "version": self.version}
        )

    async def _health_liveness(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "alive", "timestamp": _now_iso()})

    async def _database_ready(self) -> bool:
        try:
            return bool(await self.connection_pool.health_check())
        except NetworkError:
            return False

    async def _health_readiness(self, request: web.Request) -> web.Response:
        database_ready = await self._database_ready()
        accepting = self._accepting
        if database_ready and accepting:
            return web.json_response(
                {
                    "status": "ready",
                    "database": "connected",
                    "accepting_connections": True,
                    "timestamp": _now_iso(),
                }
            )
        reasons = []
        if not database_ready:
            reasons.append("database not connected")
        if not accepting:
            reasons.append("not accepting connections")
        return web.json_response(
            {
                "status": "not ready",
                "reasons": reasons,
                "database": "connected" if database_ready else "disconnected",
                "accepting_connections": accepting,
                "timestamp": _now_iso(),
            },
            status=503,
        )

    async def _ready_check(self, request: web.Request) -> web.Response:
        try:
            database_healthy = bool(await self.connection_pool.health_check())
        except NetworkError:
            return web.Response(status=500)
        active = self.connection_pool.active_connections()
        return web.json_response(
            {
                "ready": database_healthy and active > 0,
                "database_healthy": database_healthy,
                "active_connections": active,
                "timestamp": _now_iso(),
            }
        )

    async def _error_stats(self, request: web.Request) -> web.Response:
        stats = await self.error_middleware.get_error_stats()
        return web.json_response(
            {
                "total_errors": stats.total_errors,
                "errors_by_type": stats.errors_by_type,
                "errors_by_component": stats.errors_by_component,
                "recent_errors_count": len(stats.recent_errors),
                "last_updated": stats.last_updated.isoformat(),
            }
        )

    async def _circuit_breaker_status(self, request: web.Request) -> web.Response:
        breakers = await self.error_middleware.get_circuit_breaker_status()
        return web.json_response(
            {
                "circuit_breakers": {
                    component: breaker.state.value for component, breaker in breakers.items()
                },
                "timestamp": _now_iso(),
            }
        )