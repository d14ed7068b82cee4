from .errors import (
    ConfigurationError,
    FatalError,
    ProcessExitError,
    ProcessStartError,
    RouteBridgeError,
    SignalDeliveryError,
    SinkWriteError,
)
from .logging import configure_logging
from .task_manager import TaskManager

__all__ = [
    "ConfigurationError",
    "FatalError",
    "ProcessExitError",
    "ProcessStartError",
    "RouteBridgeError",
    "SignalDeliveryError",
    "SinkWriteError",
    "TaskManager",
    "configure_logging",
]
