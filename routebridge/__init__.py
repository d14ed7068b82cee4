"""
routebridge - route registry to load-balancer configuration bridge

Watches route and endpoint changes from a service-route registry, keeps an
in-memory model of what the BIG-IP configuration should be, and writes a
deterministic snapshot of that model for an external reconciler process
(the config driver) that applies it to the device.

## Architecture

- **router**: the update-coalescing aggregator, the snapshot serializer and
  the supervisor for the reconciler process
- **datastructures**: the in-memory route registry and type aliases
- **core**: errors, logging and background task helpers
- **cli**: the ``routebridge`` command

## Quick Start

```python
from routebridge import Aggregator, FileConfigSink, RouteEvent, load_settings

settings = load_settings("settings.json")
aggregator = Aggregator(settings, FileConfigSink(settings.config_file))
aggregator.start()
aggregator.route_update(RouteEvent.ADD, registry, "foo.cf.com")
await aggregator.wait_idle()
```
"""

from .config import BigIPSettings, DriverSettings, RouteBridgeSettings, load_settings
from .core import ConfigurationError, FatalError, configure_logging
from .datastructures import Endpoint, Pool, RouteTrie
from .router import Aggregator, Driver, FileConfigSink, RouteEvent

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = [
    "Aggregator",
    "BigIPSettings",
    "ConfigurationError",
    "Driver",
    "DriverSettings",
    "Endpoint",
    "FatalError",
    "FileConfigSink",
    "Pool",
    "RouteBridgeSettings",
    "RouteEvent",
    "RouteTrie",
    "configure_logging",
    "load_settings",
]
