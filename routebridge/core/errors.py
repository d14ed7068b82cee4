"""Error taxonomy for routebridge.

Errors fall into two groups. Recoverable errors are raised to the caller,
which decides whether to retry or escalate. :class:`FatalError` subclasses
mean the hosting process must exit; the CLI orchestrator catches them and
terminates with :attr:`FatalError.exit_code`.
"""

from __future__ import annotations

from routebridge.datastructures.type_aliases import ExitStatus, SignalNumber


class RouteBridgeError(Exception):
    """Base exception for routebridge errors."""


class ConfigurationError(RouteBridgeError):
    """Device settings are missing or invalid."""

    def __init__(self, message: str, missing: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.missing = missing


class SinkWriteError(RouteBridgeError):
    """A snapshot could not be persisted by the config sink."""


class SignalDeliveryError(RouteBridgeError):
    """A shutdown signal could not be forwarded to the reconciler process."""


class FatalError(RouteBridgeError):
    """A condition after which the hosting process must terminate."""

    exit_code: int = 1


class ProcessStartError(FatalError):
    """The reconciler process could not be launched."""


class ProcessExitError(FatalError):
    """The reconciler process exited with a non-zero status or was killed."""

    def __init__(
        self,
        message: str,
        *,
        exit_status: ExitStatus | None = None,
        signal_number: SignalNumber | None = None,
    ) -> None:
        super().__init__(message)
        self.exit_status = exit_status
        self.signal_number = signal_number

    @property
    def signaled(self) -> bool:
        return self.signal_number is not None
