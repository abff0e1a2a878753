"""Batched Ed25519 signature verification on a small pool of concurrent workers."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .errors import CryptoError

logger = logging.getLogger(__name__)

_SIGNATURE_LENGTH = 64
_CLOSED = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


@dataclass(frozen=True)
class SignatureVerificationRequest:
    """A message, its signature and the public key that should have made it."""

    public_key: bytes
    message: bytes
    signature: bytes
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def message_hash(self) -> str:
        """Hex SHA-256 digest of the message."""
        return hashlib.sha256(self.message).hexdigest()


@dataclass(frozen=True)
class SignatureVerificationResult:
    request_id: str
    is_valid: bool
    error: str | None
    verification_time_ms: int
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class BatchVerificationResult:
    batch_id: str
    total_requests: int
    valid_signatures: int
    invalid_signatures: int
    failed_verifications: list[str]
    total_time_ms: int
    results: list[SignatureVerificationResult]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class CryptoWorkerPoolStats:
    worker_count: int
    pending_requests: int
    available_workers: int
    batch_size: int
    batch_timeout_ms: int


def verify_signature(request: SignatureVerificationRequest) -> None:
    """Check one Ed25519 signature; raises :class:`CryptoError` if it does not hold."""
    logger.debug("Verifying signature for request: %s", request.id)
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes(request.public_key))
    except ValueError as exc:
        raise CryptoError(f"Invalid public key: {exc}") from exc

    if len(request.signature) != _SIGNATURE_LENGTH:
        raise CryptoError(
            f"Invalid signature: expected {_SIGNATURE_LENGTH} bytes, "
            f"got {len(request.signature)}"
        )

    try:
        public_key.verify(bytes(request.signature), bytes(request.message))
    except InvalidSignature as exc:
        raise CryptoError(
            "Signature verification failed: signature does not match"
        ) from exc
    logger.debug("Signature verification successful for request: %s", request.id)


class CryptoWorkerPool:
    """Collects submitted requests into batches and verifies each batch concurrently.

    A batch is verified once it holds ``batch_size`` requests, or once
    ``batch_timeout_ms`` has passed since its first request arrived.
    Results come out of :meth:`next_result` in the order batches finish.
    """

    def __init__(self, worker_count: int, batch_size: int, batch_timeout_ms: int) -> None:
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if batch_timeout_ms < 0:
            raise ValueError("batch_timeout_ms must not be negative")
        self.worker_count = worker_count
        self.batch_size = batch_size
        self.batch_timeout_ms = batch_timeout_ms
        self._work: asyncio.Queue[SignatureVerificationRequest] = asyncio.Queue()
        self._results: asyncio.Queue[object] = asyncio.Queue()
        self._pending: dict[str, SignatureVerificationRequest] = {}
        self._semaphore: asyncio.Semaphore | None = None
        self._busy = 0
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the batch processor; needs a running event loop."""
        if self._closed:
            raise CryptoError("Crypto worker pool is closed")
        if self._task is not None:
            return
        self._semaphore = asyncio.Semaphore(self.worker_count)
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(
            "Batch processor started with batch size: %d, timeout: %dms",
            self.batch_size,
            self.batch_timeout_ms,
        )

    def submit(self, requests: Iterable[SignatureVerificationRequest]) -> None:
        """Queue requests for verification."""
        batch_id = _new_id()
        requests = list(requests)
        logger.info(
            "Submitting batch %s with %d signature verification requests",
            batch_id,
            len(requests),
        )
        for request in requests:
            if self._closed:
                logger.error("Failed to send verification request to worker pool")
                raise CryptoError("Failed to queue verification request: pool is closed")
            self._pending[request.id] = request
            self._work.put_nowait(request)
        logger.debug("Batch %s submitted successfully", batch_id)

    async def next_result(self) -> BatchVerificationResult:
        """Wait for the next finished batch; raises once the pool is closed."""
        if self._closed and self._results.empty():
            raise CryptoError("Failed to receive verification result")
        item = await self._results.get()
        if item is _CLOSED:
            self._results.put_nowait(_CLOSED)
            raise CryptoError("Failed to receive verification result")
        assert isinstance(item, BatchVerificationResult)
        return item

    def get_stats(self) -> CryptoWorkerPoolStats:
        return CryptoWorkerPoolStats(
            worker_count=self.worker_count,
            pending_requests=len(self._pending),
            available_workers=self.worker_count - self._busy,
            batch_size=self.batch_size,
            batch_timeout_ms=self.batch_timeout_ms,
        )

    async def close(self) -> None:
        """Stop the batch processor and wake anyone waiting for results."""
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down crypto worker pool")
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._results.put_nowait(_CLOSED)

    async def __aenter__(self) -> CryptoWorkerPool:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        timeout = self.batch_timeout_ms / 1000
        while True:
            batch = [await self._work.get()]
            deadline = loop.time() + timeout
            while len(batch) < self.batch_size:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    batch.append(await asyncio.wait_for(self._work.get(), remaining))
                except asyncio.TimeoutError:
                    logger.info(
                        "Batch timeout reached, processing %d pending requests", len(batch)
                    )
                    break
            await self._process(batch)

    async def _verify_one(
        self, request: SignatureVerificationRequest
    ) -> SignatureVerificationResult:
        assert self._semaphore is not None
        async with self._semaphore:
            self._busy += 1
            started = time.monotonic()
            try:
                await asyncio.to_thread(verify_signature, request)
                error = None
            except CryptoError as exc:
                error = str(exc)
            finally:
                self._busy -= 1
        return SignatureVerificationResult(
            request_id=request.id,
            is_valid=error is None,
            error=error,
            verification_time_ms=_elapsed_ms(started),
        )

    async def _process(self, batch: list[SignatureVerificationRequest]) -> None:
        batch_id = _new_id()
        started = time.monotonic()
        logger.info("Processing batch %s with %d requests", batch_id, len(batch))

        results = list(await asyncio.gather(*(self._verify_one(r) for r in batch)))
        for request in batch:
            self._pending.pop(request.id, None)

        failed = [result.request_id for result in results if not result.is_valid]
        batch_result = BatchVerificationResult(
            batch_id=batch_id,
            total_requests=len(batch),
            valid_signatures=len(results) - len(failed),
            invalid_signatures=len(failed),
            failed_verifications=failed,
            total_time_ms=_elapsed_ms(started),
            results=results,
        )
        logger.info(
            "Batch %s completed: %d/%d valid signatures in %dms",
            batch_id,
            batch_result.valid_signatures,
            batch_result.total_requests,
            batch_result.total_time_ms,
        )
        self._results.put_nowait(batch_result)


class SignatureVerificationService:
    """Verifies batches of signatures on a worker pool it owns."""

    def __init__(self, worker_count: int, batch_size: int, batch_timeout_ms: int) -> None:
        self._pool = CryptoWorkerPool(worker_count, batch_size, batch_timeout_ms)

    async def verify_batch(
        self, requests: Iterable[SignatureVerificationRequest]
    ) -> BatchVerificationResult:
        """Submit requests and return the next batch result the pool produces."""
        requests = list(requests)
        if not requests:
            raise ValueError("at least one request is required")
        logger.info("Starting batch verification of %d signatures", len(requests))
        if not self._pool.started:
            self._pool.start()
        self._pool.submit(requests)
        try:
            result = await self._pool.next_result()
        except CryptoError:
            logger.error("Failed to receive batch verification result")
            raise
        logger.info(
            "Batch verification completed: %d/%d valid",
            result.valid_signatures,
            result.total_requests,
        )
        return result

    def get_stats(self) -> CryptoWorkerPoolStats:
        return self._pool.get_stats()

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> SignatureVerificationService:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()