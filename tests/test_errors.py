import pytest

from nodekit.errors import (
    ConfigError,
    ConnectionFailedError,
    ContextualError,
    CryptoError,
    DatabaseError,
    ErrorContext,
    InternalError,
    InvalidConnectionStringError,
    InvalidFormatError,
    InvalidValueError,
    IoError,
    KmsError,
    KmsRateLimitError,
    KmsTimeoutError,
    MigrationFailedError,
    MissingFieldError,
    NetworkError,
    NodeConnectionError,
    NotImplementedFeatureError,
    OperationCancelledError,
    PoolExhaustedError,
    QueryFailedError,
    RequestTooLargeError,
    RequestValidationError,
    SerializationError,
    ServerError,
    ShutdownTimeoutError,
    SignerError,
    TransactionFailedError,
    ValidationError,
)


@pytest.mark.parametrize(
    "cls, code",
    [
        (ConfigError, "CONFIG_ERROR"),
        (DatabaseError, "DATABASE_ERROR"),
        (PoolExhaustedError, "DATABASE_ERROR"),
        (ServerError, "SERVER_ERROR"),
        (NodeConnectionError, "CONNECTION_ERROR"),
        (ValidationError, "VALIDATION_ERROR"),
        (IoError, "IO_ERROR"),
        (SerializationError, "SERIALIZATION_ERROR"),
        (ShutdownTimeoutError, "SHUTDOWN_TIMEOUT"),
        (OperationCancelledError, "CANCELLED"),
        (InternalError, "INTERNAL_ERROR"),
        (CryptoError, "CRYPTO_ERROR"),
        (KmsError, "KMS_ERROR"),
        (KmsTimeoutError, "KMS_TIMEOUT"),
        (KmsRateLimitError, "KMS_RATE_LIMIT"),
        (SignerError, "SIGNER_ERROR"),
        (NotImplementedFeatureError, "NOT_IMPLEMENTED"),
    ],
)
def test_error_codes(cls, code):
    assert cls("x").error_code() == code


@pytest.mark.parametrize(
    "cls, retryable",
    [
        (ConfigError, False),
        (DatabaseError, False),
        (ConnectionFailedError, True),
        (QueryFailedError, False),
        (TransactionFailedError, False),
        (PoolExhaustedError, True),
        (InvalidConnectionStringError, False),
        (MigrationFailedError, False),
        (ServerError, False),
        (NodeConnectionError, True),
        (ValidationError, False),
        (IoError, False),
        (SerializationError, False),
        (ShutdownTimeoutError, False),
        (OperationCancelledError, False),
        (InternalError, False),
        (CryptoError, False),
        (KmsError, True),
        (KmsTimeoutError, True),
        (KmsRateLimitError, True),
        (SignerError, False),
        (NotImplementedFeatureError, False),
    ],
)
def test_retryable(cls, retryable):
    assert cls("x").is_retryable() is retryable


@pytest.mark.parametrize(
    "cls, status",
    [
        (ConfigError, 500),
        (DatabaseError, 500),
        (ConnectionFailedError, 500),
        (QueryFailedError, 500),
        (TransactionFailedError, 500),
        (PoolExhaustedError, 500),
        (InvalidConnectionStringError, 500),
        (MigrationFailedError, 500),
        (ServerError, 500),
        (NodeConnectionError, 503),
        (ValidationError, 400),
        (IoError, 500),
        (SerializationError, 400),
        (ShutdownTimeoutError, 503),
        (OperationCancelledError, 503),
        (InternalError, 500),
        (CryptoError, 400),
        (KmsError, 502),
        (KmsTimeoutError, 504),
        (KmsRateLimitError, 429),
        (SignerError, 500),
        (NotImplementedFeatureError, 501),
    ],
)
def test_status_codes(cls, status):
    assert cls("x").http_status_code() == status


def test_pinned_status_codes():
    assert ValidationError("bad").http_status_code() == 400
    assert KmsRateLimitError("slow down").http_status_code() == 429
    assert NotImplementedFeatureError("later").http_status_code() == 501


def test_database_errors_share_status_with_base():
    base = DatabaseError("x").http_status_code()
    for cls in (ConnectionFailedError, QueryFailedError, PoolExhaustedError):
        assert cls("x").http_status_code() == base
        assert isinstance(cls("x"), NetworkError)


def test_messages_carry_detail():
    assert str(ConfigError("missing port")) == "Configuration error: missing port"
    assert str(ConnectionFailedError("test")) == "Database error: Connection failed: test"
    assert str(PoolExhaustedError()) == "Database error: Pool exhausted"
    assert ConfigError("missing port").detail == "missing port"


def test_fixed_messages_ignore_detail():
    assert str(ShutdownTimeoutError()) == "Shutdown timeout exceeded"
    assert str(OperationCancelledError("ignored")) == "Operation cancelled"


def test_request_validation_errors():
    assert str(MissingFieldError("amount")) == "Missing required field: amount"
    assert str(InvalidValueError("amount", "-1")) == "Invalid value for field 'amount': -1"
    assert str(RequestTooLargeError(2048)) == "Request size exceeds limit: 2048 bytes"
    assert str(InvalidFormatError("not json")) == "Invalid request format: not json"
    with pytest.raises(RequestValidationError):
        raise MissingFieldError("amount")


def test_error_context_with_request_id():
    ctx = ErrorContext("op", "comp")
    assert ctx.request_id is None
    updated = ctx.with_request_id("req-1")
    assert updated.request_id == "req-1"
    assert updated.operation == "op"
    assert updated.component == "comp"
    assert updated.timestamp == ctx.timestamp
    assert ctx.request_id is None


def test_contextual_error_wraps_error():
    err = ServerError("boom")
    ctx = ErrorContext("http_request", "http_server")
    wrapped = ContextualError(err, ctx)
    assert str(wrapped) == str(err)
    assert wrapped.error is err
    assert wrapped.context is ctx
    assert wrapped.__cause__ is err


def test_contextual_error_logs(caplog):
    wrapped = ContextualError(ServerError("boom"), ErrorContext("op", "comp", "r1"))
    with caplog.at_level("ERROR"):
        wrapped.log_error()
    assert len(caplog.records) == 1
    assert caplog.records[0].component == "comp"
    assert caplog.records[0].request_id == "r1"