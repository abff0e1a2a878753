[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nodekit"
version = "0.1.0"
description = "Asyncio building blocks for a network node: typed errors, error middleware with circuit breakers, a simulated connection pool, health checks, batched Ed25519 verification and an aiohttp server."
requires-python = ">=3.10"
keywords = ["network", "node", "circuit-breaker", "health-check", "ed25519", "aiohttp", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Framework :: aiohttp",
    "Topic :: System :: Networking",
]
dependencies = [
    "aiohttp>=3.9",
    "cryptography>=41",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
    "pytest-asyncio>=0.23",
]

[tool.hatch.build.targets.wheel]
packages = ["nodekit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
