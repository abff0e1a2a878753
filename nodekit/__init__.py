"""Asyncio building blocks for a network node: errors, error middleware, a simulated connection pool, health checks, Ed25519 batch verification and an HTTP server."""

__version__ = "0.1.0"

__all__ = ["crypto", "database", "error_middleware", "errors", "health", "server"]