"""
Route aggregation and reconciler supervision.

- ``aggregator``: coalesces registry route updates into config snapshots
- ``config_model`` / ``ordering``: the desired device state and its orderings
- ``snapshot`` / ``sink``: deterministic serialization and atomic file output
- ``driver``: supervises the external reconciler process
"""

from .aggregator import Aggregator, RouteUpdateMessage, validate_router_settings
from .config_model import (
    ConfigModel,
    PoolMember,
    RouteConfig,
    RouteDefaults,
    Rule,
    Snapshot,
    make_object_name,
)
from .driver import Driver, DriverState, classify_driver_line
from .registry import PoolContents, PoolView, RegistryView, RouteEvent, read_view
from .sink import ConfigSink, FileConfigSink
from .snapshot import SnapshotSerializer, snapshot_digest

__all__ = [
    "Aggregator",
    "ConfigModel",
    "ConfigSink",
    "Driver",
    "DriverState",
    "FileConfigSink",
    "PoolContents",
    "PoolMember",
    "PoolView",
    "RegistryView",
    "RouteConfig",
    "RouteDefaults",
    "RouteEvent",
    "RouteUpdateMessage",
    "Rule",
    "Snapshot",
    "SnapshotSerializer",
    "classify_driver_line",
    "make_object_name",
    "read_view",
    "snapshot_digest",
    "validate_router_settings",
]
