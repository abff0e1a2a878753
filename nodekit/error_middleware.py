"""Central error handling: statistics, logging and per-component circuit breakers."""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable

from .errors import (
    ConfigError,
    ContextualError,
    DatabaseError,
    ErrorContext,
    InternalError,
    IoError,
    NetworkError,
    NodeConnectionError,
    OperationCancelledError,
    SerializationError,
    ServerError,
    ShutdownTimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_RECENT_ERRORS_LIMIT = 100
_SUCCESSES_TO_CLOSE = 3

_EPOCH = datetime.fromtimestamp(0, timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_LOG_LEVELS: tuple[tuple[type[NetworkError], int], ...] = (
    (DatabaseError, logging.ERROR),
    (ServerError, logging.ERROR),
    (NodeConnectionError, logging.WARNING),
    (ValidationError, logging.INFO),
    (ConfigError, logging.ERROR),
    (IoError, logging.ERROR),
    (SerializationError, logging.WARNING),
    (ShutdownTimeoutError, logging.WARNING),
    (OperationCancelledError, logging.INFO),
    (InternalError, logging.ERROR),
)

_LOG_MESSAGES = {
    logging.ERROR: "Network error occurred",
    logging.WARNING: "Network warning occurred",
    logging.INFO: "Network info occurred",
    logging.DEBUG: "Network debug occurred",
}


@dataclass
class ErrorMiddlewareConfig:
    enable_circuit_breaker: bool = True
    enable_rate_limiting: bool = True
    max_errors_per_minute: int = 100
    circuit_breaker_threshold: int = 10
    circuit_breaker_timeout: timedelta = timedelta(seconds=60)
    enable_error_aggregation: bool = True
    log_internal_errors: bool = True
    expose_error_details: bool = False


@dataclass
class ErrorRecord:
    id: str
    error_type: str
    component: str
    operation: str
    message: str
    timestamp: datetime
    request_id: str | None = None
    stack_trace: str | None = None


@dataclass
class ErrorStats:
    total_errors: int = 0
    errors_by_type: dict[str, int] = field(default_factory=dict)
    errors_by_component: dict[str, int] = field(default_factory=dict)
    recent_errors: list[ErrorRecord] = field(default_factory=list)
    last_updated: datetime = _EPOCH


class CircuitBreakerState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    state: CircuitBreakerState = CircuitBreakerState.CLOSED
    failure_count: int = 0
    last_failure_time: datetime | None = None
    success_count: int = 0


class ErrorMiddleware:
    """Records, logs and counts errors, and trips breakers per component."""

    def __init__(
        self,
        config: ErrorMiddlewareConfig | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config if config is not None else ErrorMiddlewareConfig()
        self._clock = clock or _utcnow
        self._stats = ErrorStats()
        self._breakers: dict[str, CircuitBreaker] = {}

    async def handle_error(self, error: NetworkError, context: ErrorContext) -> ContextualError:
        """Record, log and wrap an error."""
        record = self._create_record(error, context)
        self._record_stats(error, record)
        if self.config.enable_circuit_breaker:
            self._register_failure(context.component)
        self._log(error, context, record)
        contextual = ContextualError(error, context)
        logger.debug("Sending error to monitoring systems", extra={"error_id": record.id})
        return contextual

    def _create_record(self, error: NetworkError, context: ErrorContext) -> ErrorRecord:
        return ErrorRecord(
            id=str(uuid.uuid4()),
            error_type=error.error_code(),
            component=context.component,
            operation=context.operation,
            message=str(error),
            timestamp=self._clock(),
            request_id=context.request_id,
            stack_trace=repr(error) if self.config.log_internal_errors else None,
        )

    def _record_stats(self, error: NetworkError, record: ErrorRecord) -> None:
        stats = self._stats
        stats.total_errors += 1
        stats.last_updated = self._clock()
        code = error.error_code()
        stats.errors_by_type[code] = stats.errors_by_type.get(code, 0) + 1
        stats.errors_by_component[record.component] = (
            stats.errors_by_component.get(record.component, 0) + 1
        )
        stats.recent_errors.append(record)
        if len(stats.recent_errors) > _RECENT_ERRORS_LIMIT:
            del stats.recent_errors[0]

    @staticmethod
    def _log_level(error: NetworkError) -> int:
        for error_type, level in _LOG_LEVELS:
            if isinstance(error, error_type):
                return level
        return logging.ERROR

    def _log(self, error: NetworkError, context: ErrorContext, record: ErrorRecord) -> None:
        level = self._log_level(error)
        logger.log(
            level,
            _LOG_MESSAGES[level],
            extra={
                "error_type": error.error_code(),
                "component": context.component,
                "operation": context.operation,
                "request_id": context.request_id,
                "error_id": record.id,
                "error": str(error),
            },
        )
        if self.config.log_internal_errors and record.stack_trace is not None:
            logger.error(
                "Internal error stack trace",
                extra={"error_id": record.id, "stack_trace": record.stack_trace},
            )

    def _register_failure(self, component: str) -> None:
        breaker = self._breakers.setdefault(component, CircuitBreaker())
        breaker.failure_count += 1

        if breaker.state is CircuitBreakerState.CLOSED:
            if breaker.failure_count >= self.config.circuit_breaker_threshold:
                breaker.state = CircuitBreakerState.OPEN
                breaker.last_failure_time = self._clock()
                logger.warning("Circuit breaker opened for component %s", component)
        elif breaker.state is CircuitBreakerState.OPEN:
            last_failure = breaker.last_failure_time
            if last_failure is not None and (
                self._clock() - last_failure > self.config.circuit_breaker_timeout
            ):
                breaker.state = CircuitBreakerState.HALF_OPEN
                logger.info("Circuit breaker moved to half-open state for %s", component)
        else:
            breaker.state = CircuitBreakerState.OPEN
            breaker.last_failure_time = self._clock()
            logger.warning("Circuit breaker opened again from half-open state for %s", component)

    async def record_success(self, component: str) -> None:
        """Count a successful operation; closes a half-open breaker after enough of them."""
        if not self.config.enable_circuit_breaker:
            return
        breaker = self._breakers.get(component)
        if breaker is None:
            return
        breaker.success_count += 1
        if (
            breaker.state is CircuitBreakerState.HALF_OPEN
            and breaker.success_count >= _SUCCESSES_TO_CLOSE
        ):
            breaker.state = CircuitBreakerState.CLOSED
            breaker.failure_count = 0
            breaker.success_count = 0
            logger.info("Circuit breaker closed after successful operations for %s", component)

    async def is_circuit_breaker_open(self, component: str) -> bool:
        """Whether operations on the component are currently blocked."""
        if not self.config.enable_circuit_breaker:
            return False
        breaker = self._breakers.get(component)
        return breaker is not None and breaker.state is CircuitBreakerState.OPEN

    async def get_error_stats(self) -> ErrorStats:
        """A snapshot of the error statistics."""
        stats = self._stats
        return ErrorStats(
            total_errors=stats.total_errors,
            errors_by_type=dict(stats.errors_by_type),
            errors_by_component=dict(stats.errors_by_component),
            recent_errors=list(stats.recent_errors),
            last_updated=stats.last_updated,
        )

    async def get_circuit_breaker_status(self) -> dict[str, CircuitBreaker]:
        """A snapshot of every component's breaker."""
        return {name: replace(breaker) for name, breaker in self._breakers.items()}

    async def reset_stats(self) -> None:
        self._stats = ErrorStats()
        logger.info("Error statistics reset")

    async def reset_circuit_breaker(self, component: str) -> None:
        self._breakers[component] = CircuitBreaker()
        logger.info("Circuit breaker reset for %s", component)


class DefaultErrorHandler:
    """Error handler that hands every error to a shared middleware."""

    def __init__(self, middleware: ErrorMiddleware) -> None:
        self.middleware = middleware

    async def handle_error(self, error: NetworkError, context: ErrorContext) -> ContextualError:
        return await self.middleware.handle_error(error, context)