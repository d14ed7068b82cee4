"""Builders shared by the routebridge test modules."""

from __future__ import annotations

import asyncio
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import orjson

from routebridge.config import BigIPSettings, RouteBridgeSettings
from routebridge.core.errors import SinkWriteError
from routebridge.datastructures.route_trie import (
    Endpoint,
    ModificationTag,
    Pool,
    RouteTrie,
)
from routebridge.router.config_model import ConfigModel, RouteDefaults
from routebridge.router.registry import RouteEvent, read_view
from routebridge.router.snapshot import SnapshotSerializer

TEST_BIGIP = {
    "url": "http://example.com",
    "user": "admin",
    "password": "pass",
    "partitions": ["cf"],
    "external_addr": "127.0.0.1",
}

# (uri, context path, endpoint addresses)
TEST_ROUTES: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    ("foo.cf.com", "/", ("127.0.0.1",)),
    ("bar.cf.com", "/", ("127.0.1.1", "127.0.1.2")),
    ("baz.cf.com", "/", ("127.0.2.1",)),
    ("baz.cf.com/segment1", "/segment1", ("127.0.3.1", "127.0.3.2")),
    (
        "baz.cf.com/segment1/segment2/segment3",
        "/segment1/segment2/segment3",
        ("127.0.4.1", "127.0.4.2"),
    ),
    ("*.cf.com", "/", ("127.0.5.1",)),
    ("*.foo.cf.com", "/", ("127.0.6.1",)),
)


def make_settings(**overrides: Any) -> RouteBridgeSettings:
    bigip = dict(TEST_BIGIP)
    bigip.update(overrides.pop("bigip", {}))
    return RouteBridgeSettings(bigip=BigIPSettings(**bigip), **overrides)


def make_endpoint(addr: str, port: int = 80) -> Endpoint:
    return Endpoint(
        app_id="1",
        host=addr,
        port=port,
        private_instance_id="1",
        private_instance_index="1",
        modification_tag=ModificationTag(guid="1", index=1),
    )


def make_pool(context_path: str, *addrs: str) -> Pool:
    pool = Pool(context_path=context_path)
    for addr in addrs:
        pool.put(make_endpoint(addr))
    return pool


def create_registry(
    routes: tuple[tuple[str, str, tuple[str, ...]], ...] = TEST_ROUTES,
) -> RouteTrie:
    registry = RouteTrie()
    for uri, context_path, addrs in routes:
        registry.insert(uri, make_pool(context_path, *addrs))
    return registry


def render_registry(settings: RouteBridgeSettings, registry: RouteTrie) -> bytes:
    """Snapshot bytes for ``registry`` built directly, without an aggregator."""
    model = ConfigModel(RouteDefaults.from_settings(settings))
    model.apply(RouteEvent.ADD, "", read_view(registry))
    return SnapshotSerializer(settings).serialize(model.snapshot())


def services_by_uri(data: bytes) -> dict[str, list[str]]:
    """Map each service's uri to its pool member list."""
    payload = orjson.loads(data)
    return {
        service["uri"]: service["poolMemberAddrs"] for service in payload["services"]
    }


class MockSink:
    """Records every write; can be told to fail or to block mid-write."""

    def __init__(self, filename: str = "/tmp/routebridge-test.json") -> None:
        self.filename = filename
        self.writes: list[bytes] = []
        self.fail_next = 0
        self.entered = threading.Event()
        self._gate = threading.Event()
        self._gate.set()
        self._lock = threading.Lock()
        self.on_write: Callable[[bytes], None] | None = None

    def get_output_filename(self) -> str:
        return self.filename

    def block(self) -> None:
        self.entered.clear()
        self._gate.clear()

    def release(self) -> None:
        self._gate.set()

    def write(self, data: bytes) -> int:
        self.entered.set()
        self._gate.wait(10)
        with self._lock:
            if self.fail_next > 0:
                self.fail_next -= 1
                raise SinkWriteError("mock sink refused the write")
            self.writes.append(data)
        if self.on_write is not None:
            self.on_write(data)
        return len(data)

    @property
    def last(self) -> bytes:
        return self.writes[-1]


async def wait_for_condition(
    condition: Callable[[], bool], timeout: float = 10.0, interval: float = 0.02
) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


DRIVER_SCRIPT = """
import signal
import sys
import time
from pathlib import Path

args = sys.argv[1:]
config_file = args[args.index("--config-file") + 1]
received = Path(config_file + ".signal")


def _handle(signum, frame):
    received.write_text(str(signum))
    sys.stderr.write(f"[DEBUG] caught signal {signum}\\n")
    sys.stderr.flush()
    sys.exit(0)


for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGUSR1):
    signal.signal(sig, _handle)

sys.stderr.write("2017/01/01 [DEBUG] debug line\\n")
sys.stderr.write("2017/01/01 [Warn] warning line\\n")
sys.stderr.write("2017/01/01 [ERROR] error line\\n")
sys.stderr.write("2017/01/01 [CRITICAL] critical line\\n")
sys.stderr.write("plain line\\n")
sys.stderr.write("driver ready\\n")
sys.stderr.flush()
while True:
    time.sleep(0.05)
"""


def write_driver_script(directory: Path, body: str = DRIVER_SCRIPT) -> Path:
    script = directory / "fake_driver.py"
    script.write_text(body)
    return script


PYTHON = sys.executable
