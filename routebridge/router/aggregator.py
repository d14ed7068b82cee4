"""Update-coalescing aggregator.

Route updates arrive from many concurrent callers. Each call reads its
registry view and appends a message to the aggregator's pending list under
one lock, so messages are applied in exactly the order their views were
read: a view read later always wins over one read earlier. Callers never
wait for I/O. A single actor task owns the config model: it takes every
message that is pending, applies them in order and then writes one snapshot
if anything changed.

Exactly one flush runs at a time. Messages that arrive while a snapshot is
being written stay pending and are folded into the next flush, which starts
as soon as the current one returns. A burst of N updates therefore produces
between one and N writes, and the last write always reflects the state after
the whole burst.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from dataclasses import dataclass

from loguru import logger

from routebridge.config import RouteBridgeSettings, missing_bigip_fields
from routebridge.core.errors import ConfigurationError, SinkWriteError
from routebridge.core.task_manager import TaskManager
from routebridge.datastructures.route_trie import normalize_uri
from routebridge.datastructures.type_aliases import (
    RouteUri,
    SignalNumber,
    SnapshotBytes,
    SnapshotDigest,
)

from .config_model import ConfigModel, RouteDefaults, Snapshot
from .registry import PoolContents, RegistryView, RouteEvent, read_view
from .sink import ConfigSink
from .snapshot import SnapshotSerializer, snapshot_digest


@dataclass(frozen=True, slots=True)
class RouteUpdateMessage:
    event: RouteEvent
    uri: RouteUri
    pools: tuple[PoolContents, ...]


def validate_router_settings(
    settings: RouteBridgeSettings | None, sink: ConfigSink | None
) -> tuple[RouteBridgeSettings, ConfigSink]:
    """Raise :class:`ConfigurationError` unless the aggregator can be built."""
    if settings is None:
        raise ConfigurationError("no controller settings provided")
    if sink is None:
        raise ConfigurationError("no config sink provided")
    missing = missing_bigip_fields(settings.bigip)
    if missing:
        raise ConfigurationError(
            f"BIG-IP settings incomplete, missing: {', '.join(missing)}",
            missing=missing,
        )
    return settings, sink


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Aggregator:
    """Coalesces route updates into deterministic device config snapshots."""

    def __init__(
        self, settings: RouteBridgeSettings | None, sink: ConfigSink | None
    ) -> None:
        self.settings, self.sink = validate_router_settings(settings, sink)
        self.serializer = SnapshotSerializer(self.settings)
        self.model = ConfigModel(RouteDefaults.from_settings(self.settings))

        # Guards _pending, _unfinished and _stopped; held while a view is read.
        self._lock = threading.Lock()
        self._pending: deque[RouteUpdateMessage] = deque()
        self._unfinished = 0
        self._stopped = False
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()

        self._tasks = TaskManager("aggregator")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._actor: asyncio.Task[None] | None = None
        self._dirty = False

        self.flush_count = 0
        self.last_digest: SnapshotDigest | None = None

        # The reconciler always gets a valid starting point, even if empty.
        data = self.serializer.serialize(self.model.snapshot())
        self._dirty = not self._write(data)

    @property
    def pending_updates(self) -> int:
        """Messages queued but not yet picked up by the actor."""
        with self._lock:
            return len(self._pending)

    @property
    def running(self) -> bool:
        return self._actor is not None and not self._actor.done()

    def snapshot(self) -> Snapshot:
        """Current model contents; only consistent when the actor is idle."""
        return self.model.snapshot()

    def route_update(
        self, event: RouteEvent | str, view: RegistryView, uri: RouteUri
    ) -> None:
        """Queue a registry change for the actor.

        The registry view is read here, at call time, and not retained.
        Reading and queueing happen under one lock, so concurrent callers are
        applied in the order they read the registry. Safe to call from any
        thread.
        """
        event = RouteEvent(event)
        uri = normalize_uri(uri)
        with self._lock:
            if self._stopped:
                logger.warning(
                    "[aggregator] Dropping {} for {} after stop", event, uri
                )
                return
            self._pending.append(
                RouteUpdateMessage(event=event, uri=uri, pools=read_view(view))
            )
            self._unfinished += 1
            loop = self._loop

        if loop is None:
            # start() wakes the actor for anything queued before it.
            return
        if _running_loop() is loop:
            self._wakeup.set()
        else:
            loop.call_soon_threadsafe(self._wakeup.set)

    def start(self) -> None:
        """Spawn the actor on the running loop; updates queued earlier are kept."""
        self._spawn_actor()

    def _spawn_actor(self) -> asyncio.Task[None]:
        if self._actor is not None:
            return self._actor
        loop = asyncio.get_running_loop()
        actor = self._tasks.create_task(self._actor_loop(), name="aggregator-actor")
        self._actor = actor
        with self._lock:
            self._loop = loop
            if self._pending:
                self._wakeup.set()
        logger.info(
            "[aggregator] Started, writing snapshots to {}",
            self.sink.get_output_filename(),
        )
        return actor

    async def wait_idle(self) -> None:
        """Wait until every update queued so far has been applied and flushed.

        Covers updates queued from other threads too: ``route_update`` counts
        a message before it returns.
        """
        actor = self._actor
        if actor is None:
            raise RuntimeError("aggregator is not started")

        while True:
            with self._lock:
                if self._unfinished == 0:
                    return
            self._idle.clear()
            waiter = asyncio.ensure_future(self._idle.wait())
            done, _ = await asyncio.wait(
                {waiter, actor}, return_when=asyncio.FIRST_COMPLETED
            )
            if actor in done:
                waiter.cancel()
                # Only reached when the actor died; surface its exception.
                actor.result()
                raise RuntimeError("aggregator actor exited unexpectedly")

    async def stop(self) -> None:
        """Apply and flush everything queued, then stop the actor."""
        actor = self._actor
        if actor is None:
            with self._lock:
                self._stopped = True
            return
        try:
            if not actor.done():
                await self.wait_idle()
        finally:
            with self._lock:
                self._stopped = True
            await self._tasks.shutdown()
            self._actor = None
        logger.info("[aggregator] Stopped after {} flushes", self.flush_count)

    async def run(
        self, signals: asyncio.Queue[SignalNumber], ready: asyncio.Event
    ) -> None:
        """Run until a shutdown signal arrives on ``signals``."""
        actor = self._spawn_actor()
        ready.set()

        signal_waiter = asyncio.ensure_future(signals.get())
        done, _ = await asyncio.wait(
            {signal_waiter, actor}, return_when=asyncio.FIRST_COMPLETED
        )
        if signal_waiter not in done:
            signal_waiter.cancel()
            with self._lock:
                self._stopped = True
            await self._tasks.shutdown()
            self._actor = None
            actor.result()
            raise RuntimeError("aggregator actor exited unexpectedly")

        logger.info("[aggregator] Stopping on signal {}", signal_waiter.result())
        await self.stop()

    async def _actor_loop(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            with self._lock:
                batch = list(self._pending)
                self._pending.clear()
            if not batch:
                continue

            try:
                self._apply_batch(batch)
                if self._dirty:
                    await self._flush()
            finally:
                with self._lock:
                    self._unfinished -= len(batch)
                    idle = self._unfinished == 0
                if idle:
                    self._idle.set()

    def _apply_batch(self, batch: list[RouteUpdateMessage]) -> None:
        for message in batch:
            changed = self.model.apply(message.event, message.uri, message.pools)
            logger.debug(
                "[aggregator] {} {} ({} pools read, changed={})",
                message.event,
                message.uri,
                len(message.pools),
                changed,
            )
            if changed:
                self._dirty = True
        if len(batch) > 1:
            logger.debug("[aggregator] Coalesced {} updates", len(batch))

    async def _flush(self) -> None:
        data = self.serializer.serialize(self.model.snapshot())
        # Sink I/O runs off the loop so callers keep queueing updates.
        written = await asyncio.to_thread(self._write, data)
        self._dirty = not written

    def _write(self, data: SnapshotBytes) -> bool:
        try:
            self.sink.write(data)
        except (SinkWriteError, OSError) as e:
            # The model is still valid; the next flush retries the write.
            logger.error(
                "[aggregator] Failed writing snapshot to {}: {}",
                self.sink.get_output_filename(),
                e,
            )
            return False

        self.flush_count += 1
        self.last_digest = snapshot_digest(data)
        logger.info(
            "[aggregator] Wrote snapshot #{} ({} services, {} rules, sha256 {})",
            self.flush_count,
            len(self.model.route_configs),
            len(self.model.rules),
            self.last_digest[:12],
        )
        return True
