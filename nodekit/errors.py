"""Error types reported by the node, with their API codes and HTTP statuses."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import ClassVar

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NetworkError(Exception):
    """Base class of every error the node reports."""

    _template: ClassVar[str] = "{detail}"
    _code: ClassVar[str] = "INTERNAL_ERROR"
    _status: ClassVar[int] = 500
    _retryable: ClassVar[bool] = False

    def __init__(self, detail: object = "") -> None:
        self.detail = str(detail)
        super().__init__(self._template.format(detail=self.detail))

    def is_retryable(self) -> bool:
        """Whether the failed operation may be attempted again."""
        return self._retryable

    def error_code(self) -> str:
        """Stable code used in API responses."""
        return self._code

    def http_status_code(self) -> int:
        """HTTP status that represents this error."""
        return self._status


class ConfigError(NetworkError):
    _template = "Configuration error: {detail}"
    _code = "CONFIG_ERROR"


class DatabaseError(NetworkError):
    _template = "Database error: {detail}"
    _code = "DATABASE_ERROR"


class ConnectionFailedError(DatabaseError):
    _template = "Database error: Connection failed: {detail}"
    _retryable = True


class QueryFailedError(DatabaseError):
    _template = "Database error: Query failed: {detail}"


class TransactionFailedError(DatabaseError):
    _template = "Database error: Transaction failed: {detail}"


class PoolExhaustedError(DatabaseError):
    _template = "Database error: Pool exhausted"
    _retryable = True


class InvalidConnectionStringError(DatabaseError):
    _template = "Database error: Invalid connection string"


class MigrationFailedError(DatabaseError):
    _template = "Database error: Migration failed: {detail}"


class ServerError(NetworkError):
    _template = "Server error: {detail}"
    _code = "SERVER_ERROR"


class NodeConnectionError(NetworkError):
    _template = "Connection error: {detail}"
    _code = "CONNECTION_ERROR"
    _status = 503
    _retryable = True


class ValidationError(NetworkError):
    _template = "Validation error: {detail}"
    _code = "VALIDATION_ERROR"
    _status = 400


class IoError(NetworkError):
    _template = "IO error: {detail}"
    _code = "IO_ERROR"


class SerializationError(NetworkError):
    _template = "Serialization error: {detail}"
    _code = "SERIALIZATION_ERROR"
    _status = 400


class ShutdownTimeoutError(NetworkError):
    _template = "Shutdown timeout exceeded"
    _code = "SHUTDOWN_TIMEOUT"
    _status = 503


class OperationCancelledError(NetworkError):
    _template = "Operation cancelled"
    _code = "CANCELLED"
    _status = 503


class InternalError(NetworkError):
    _template = "Internal error: {detail}"
    _code = "INTERNAL_ERROR"


class CryptoError(NetworkError):
    _template = "Cryptographic error: {detail}"
    _code = "CRYPTO_ERROR"
    _status = 400


class KmsError(NetworkError):
    _template = "KMS error: {detail}"
    _code = "KMS_ERROR"
    _status = 502
    _retryable = True


class KmsTimeoutError(NetworkError):
    _template = "KMS timeout: {detail}"
    _code = "KMS_TIMEOUT"
    _status = 504
    _retryable = True


class KmsRateLimitError(NetworkError):
    _template = "KMS rate limit: {detail}"
    _code = "KMS_RATE_LIMIT"
    _status = 429
    _retryable = True


class SignerError(NetworkError):
    _template = "Signer error: {detail}"
    _code = "SIGNER_ERROR"


class NotImplementedFeatureError(NetworkError):
    _template = "Not implemented: {detail}"
    _code = "NOT_IMPLEMENTED"
    _status = 501


class RequestValidationError(ValueError):
    """A malformed incoming request."""


class InvalidFormatError(RequestValidationError):
    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid request format: {detail}")


class MissingFieldError(RequestValidationError):
    def __init__(self, field_name: str) -> None:
        self.field = field_name
        super().__init__(f"Missing required field: {field_name}")


class InvalidValueError(RequestValidationError):
    def __init__(self, field_name: str, value: str) -> None:
        self.field = field_name
        self.value = value
        super().__init__(f"Invalid value for field '{field_name}': {value}")


class RequestTooLargeError(RequestValidationError):
    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(f"Request size exceeds limit: {size} bytes")


@dataclass(frozen=True)
class ErrorContext:
    """Where and when an error happened."""

    operation: str
    component: str
    request_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)

    def with_request_id(self, request_id: str) -> ErrorContext:
        """Return a copy carrying the given request id."""
        return replace(self, request_id=request_id)


class ContextualError(Exception):
    """A network error together with its context."""

    def __init__(self, error: NetworkError, context: ErrorContext) -> None:
        super().__init__(str(error))
        self.error = error
        self.context = context
        self.__cause__ = error

    def log_error(self) -> None:
        """Write the error and its context to the log."""
        logger.error(
            "Network error occurred",
            extra={
                "operation": self.context.operation,
                "component": self.context.component,
                "request_id": self.context.request_id,
                "error": str(self.error),
            },
        )