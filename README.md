# nodekit

Asyncio building blocks for a network node service.

- `nodekit.errors` – the `NetworkError` hierarchy (`ConfigError`, `DatabaseError`
  and its subclasses such as `PoolExhaustedError`, `ValidationError`,
  `CryptoError`, `KmsTimeoutError` and others). Every error has
  `error_code()`, `http_status_code()` and `is_retryable()`. `ErrorContext`
  records the operation, the component, an optional request id and a timestamp.
  `ContextualError` wraps an error together with its context. The
  `RequestValidationError` family (`InvalidFormatError`, `MissingFieldError`,
  `InvalidValueError`, `RequestTooLargeError`) describes malformed requests.
- `nodekit.error_middleware` – `ErrorMiddleware.handle_error()` counts errors by
  type and by component. It keeps the last 100 `ErrorRecord`s, logs each error at
  a level that fits its kind and drives a `CircuitBreaker` per component.
  A breaker opens after `circuit_breaker_threshold` failures. It goes half-open on
  a failure that comes after `circuit_breaker_timeout`, and closes after three
  `record_success()` calls while half-open. `DefaultErrorHandler` passes errors on
  to a shared middleware.
- `nodekit.database` – `ConnectionPool` is a simulated pool of connections.
  `ConnectionPool.open(url)` opens `min_connections` connections.
  `get_connection()` hands out a `ConnectionHandle` and raises
  `PoolExhaustedError` once `max_connections` are in use. Give a handle back with
  `release()` or with a `with` / `async with` block. `health_check()` returns
  `False` when a handed-out connection has been idle for more than five minutes.
- `nodekit.health` – `HealthService.check()` returns a `HealthCheckResponse` with
  status `SERVING` or `NOT_SERVING`, based on the pool's health check.
  `HealthService.watch(interval)` yields such a response at once and then every
  `interval` seconds.
- `nodekit.crypto` – `verify_signature()` checks one Ed25519 signature and raises
  `CryptoError` if it does not hold. `CryptoWorkerPool` gathers requests into
  batches of up to `batch_size`. A batch goes out when it is full or after
  `batch_timeout_ms`, and its requests are verified concurrently.
  `SignatureVerificationService.verify_batch()` submits requests and returns the
  next `BatchVerificationResult`.
- `nodekit.server` – `EnhancedHttpServer` is an aiohttp server with the routes
  `/health`, `/ready`, `/health/liveness`, `/health/readiness`, `/error-stats` and
  `/circuit-breaker-status`. It counts requests in flight. After
  `stop_accepting_new_connections()` it answers every request with 503.
  `wait_for_connections_to_complete()` lets it drain, and `stop()` shuts it down.
  Exceptions raised by handlers become JSON error responses via
  `error_response()`.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install ".[test]"
```

## Example

```python
import asyncio

from nodekit.database import ConnectionPool
from nodekit.error_middleware import ErrorMiddleware, ErrorMiddlewareConfig
from nodekit.errors import ErrorContext, ValidationError
from nodekit.server import EnhancedHttpServer


async def main():
    pool = await ConnectionPool.open("sqlite::memory:")
    with await pool.get_connection() as conn:
        print(await conn.execute_query("SELECT 1"))

    middleware = ErrorMiddleware(ErrorMiddlewareConfig(circuit_breaker_threshold=2))
    wrapped = await middleware.handle_error(
        ValidationError("bad input"), ErrorContext("parse", "api")
    )
    print(wrapped.error.error_code(), wrapped.error.http_status_code())  # VALIDATION_ERROR 400
    print((await middleware.get_error_stats()).total_errors)  # 1

    server = EnhancedHttpServer("127.0.0.1:0", pool, middleware)
    host, port = await server.start()
    print(f"listening on {host}:{port}")
    await server.stop_accepting_new_connections()
    await server.wait_for_connections_to_complete()
    await server.stop()


asyncio.run(main())
```

## What it does not do

- The connection pool only simulates connections. It opens no real database
  connection, and `execute_query()` returns a message instead of query results.
- There is no command-line program. The server has to be started from your own
  code, as in the example.
- The HTTP server has no metrics endpoint, no rate limiting and no TLS. The package
  has no gRPC services, peer-to-peer networking or transaction handling.

## Running the tests

```
pytest
```