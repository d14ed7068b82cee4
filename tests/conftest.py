"""Pytest configuration and fixtures for routebridge testing.

Async fixtures stop every aggregator and driver they hand out, so a failing
test never leaves an actor task or a child process behind.
"""

import asyncio
from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from loguru import logger

from routebridge.config import RouteBridgeSettings
from routebridge.datastructures.route_trie import RouteTrie
from routebridge.router.aggregator import Aggregator
from routebridge.router.driver import Driver
from tests.helpers import MockSink, create_registry, make_settings


class AsyncTestContext:
    """Context manager for async test operations with automatic cleanup."""

    def __init__(self) -> None:
        self.aggregators: list[Aggregator] = []
        self.drivers: list[Driver] = []
        self.tasks: list[asyncio.Task[Any]] = []

    async def __aenter__(self) -> "AsyncTestContext":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for task in self.tasks:
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception as e:
                    logger.warning(f"Task failed during cleanup: {e}")

        for aggregator in self.aggregators:
            if aggregator.running:
                await aggregator.stop()

        for driver in self.drivers:
            process = driver._process
            if process is not None and process.returncode is None:
                process.kill()
                await process.wait()
            await driver.shutdown()

        self.aggregators.clear()
        self.drivers.clear()
        self.tasks.clear()


@pytest_asyncio.fixture
async def test_context() -> AsyncGenerator[AsyncTestContext, None]:
    """Provides a clean async test context with automatic resource cleanup."""
    async with AsyncTestContext() as ctx:
        yield ctx


@pytest.fixture
def settings() -> RouteBridgeSettings:
    return make_settings()


@pytest.fixture
def sink() -> MockSink:
    return MockSink()


@pytest.fixture
def registry() -> RouteTrie:
    return create_registry()


@pytest.fixture
def log_records() -> Generator[list[dict[str, Any]], None, None]:
    """Every loguru record emitted during the test, DEBUG and up."""
    records: list[dict[str, Any]] = []
    handler_id = logger.add(
        lambda message: records.append(message.record), level="DEBUG"
    )
    yield records
    logger.remove(handler_id)
