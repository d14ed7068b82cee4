"""Supervisor for the external reconciler process (the config driver).

The driver is launched as ``<interpreter> <command> --config-file <path>``.
Its stderr is read line by line and re-logged through loguru. Severity is
taken from literal markers the reconciler's own log format embeds
(``DEBUG]``, ``Warn]``, ``ERROR]``, ``CRITICAL]``); this is a text contract
with the child, there is no structured channel.

A dead reconciler means the device is no longer being reconciled, so any
abnormal exit is fatal: :meth:`Driver.run` raises :class:`ProcessExitError`
and the orchestrator terminates the whole service.
"""

from __future__ import annotations

import asyncio
import signal
from enum import StrEnum
from pathlib import Path

from loguru import logger

from routebridge.core.errors import (
    ProcessExitError,
    ProcessStartError,
    SignalDeliveryError,
)
from routebridge.core.task_manager import TaskManager
from routebridge.datastructures.type_aliases import ProcessId, SignalNumber

DEFAULT_INTERPRETER = "python3"
DEFAULT_DRIVER_COMMAND = "python/bigipconfigdriver.py"

# Checked in order; the first marker found wins.
SEVERITY_MARKERS: tuple[tuple[str, str], ...] = (
    ("DEBUG]", "DEBUG"),
    ("Warn]", "WARNING"),
    ("ERROR]", "ERROR"),
    ("CRITICAL]", "CRITICAL"),
)


def classify_driver_line(line: str) -> str:
    """Return the loguru level name for one line of driver output."""
    for marker, level in SEVERITY_MARKERS:
        if marker in line:
            return level
    return "INFO"


def _signal_name(sig: SignalNumber) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


class DriverState(StrEnum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Driver:
    """Launches the reconciler, forwards its logs and its shutdown signal."""

    def __init__(
        self,
        config_file: Path | str,
        driver_cmd: str = DEFAULT_DRIVER_COMMAND,
        interpreter: str = DEFAULT_INTERPRETER,
    ) -> None:
        self.config_file = str(config_file)
        self.driver_cmd = driver_cmd
        self.interpreter = interpreter
        self.state = DriverState.NOT_STARTED
        self.pid: ProcessId | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._stop_requested = False
        self._tasks = TaskManager("driver")

    def command_line(self) -> list[str]:
        return [self.interpreter, self.driver_cmd, "--config-file", self.config_file]

    async def run(
        self, signals: asyncio.Queue[SignalNumber], ready: asyncio.Event
    ) -> None:
        """Supervise the reconciler until a forwarded shutdown completes.

        Raises:
            ProcessStartError: the process could not be launched (fatal).
            ProcessExitError: the process died abnormally (fatal).
            SignalDeliveryError: the shutdown signal could not be delivered.
        """
        logger.info("[driver] Starting: {}", " ".join(self.command_line()))
        process = await self._launch()
        ready.set()
        logger.info("[driver] Started")

        watcher = self._tasks.create_task(self._supervise(process), name="driver-exit")
        sig = await self._wait_for_signal(signals, watcher)

        if self.state is DriverState.RUNNING:
            self.state = DriverState.STOPPING
        self._stop_requested = True
        self.forward_signal(sig)

        await watcher
        logger.info("[driver] Stopped")

    async def _launch(self) -> asyncio.subprocess.Process:
        self.state = DriverState.STARTING
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command_line(),
                stdin=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            self.state = DriverState.STOPPED
            raise ProcessStartError(f"failed to start config driver: {e}") from e

        self._process = process
        self.pid = process.pid
        self.state = DriverState.RUNNING
        logger.info("[driver] Process pid {}", process.pid)
        return process

    async def _wait_for_signal(
        self, signals: asyncio.Queue[SignalNumber], watcher: asyncio.Task[None]
    ) -> SignalNumber:
        signal_waiter = asyncio.ensure_future(signals.get())
        pending: set[asyncio.Future[object]] = {signal_waiter, watcher}
        while True:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED
            )
            if watcher in done:
                try:
                    # Raises ProcessExitError for an abnormal exit.
                    watcher.result()
                except BaseException:
                    signal_waiter.cancel()
                    raise
            if signal_waiter in done:
                return signal_waiter.result()

    def forward_signal(self, sig: SignalNumber) -> None:
        """Send ``sig`` to the reconciler process.

        Raises:
            SignalDeliveryError: no live process, or the signal was rejected.
        """
        process = self._process
        if process is None or process.returncode is not None:
            logger.warning(
                "[driver] Cannot forward {}: no running process (pid {})",
                _signal_name(sig),
                self.pid,
            )
            raise SignalDeliveryError(f"no running driver process for pid {self.pid}")
        try:
            process.send_signal(sig)
        except (ProcessLookupError, OSError, ValueError) as e:
            logger.warning(
                "[driver] Failed signalling pid {} with {}: {}",
                self.pid,
                _signal_name(sig),
                e,
            )
            raise SignalDeliveryError(
                f"failed to deliver signal {sig} to pid {self.pid}: {e}"
            ) from e
        logger.info("[driver] Forwarded {} to pid {}", _signal_name(sig), self.pid)

    async def _supervise(self, process: asyncio.subprocess.Process) -> None:
        if process.stderr is not None:
            await self._forward_output(process.stderr)
        returncode = await process.wait()
        self.state = DriverState.STOPPED

        if returncode < 0:
            raise ProcessExitError(
                f"config driver killed by signal {_signal_name(-returncode)}",
                signal_number=-returncode,
            )
        if returncode > 0:
            raise ProcessExitError(
                f"config driver exited with status {returncode}",
                exit_status=returncode,
            )
        if not self._stop_requested:
            logger.warning("[driver] Process exited normally without being asked to")

    async def _forward_output(self, stream: asyncio.StreamReader) -> None:
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if line:
                logger.log(classify_driver_line(line), line)

    async def shutdown(self) -> None:
        """Cancel the output reader and exit watcher."""
        await self._tasks.shutdown()
