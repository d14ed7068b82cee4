"""
Semantic type aliases for routebridge datastructures.

Aliases keep signatures readable where a plain ``str`` or ``int`` would hide
what the value means (a route URI versus a service name, for example).
"""

from collections.abc import Mapping
from typing import Any, TypeAlias

# Registry types
RouteUri: TypeAlias = str  # host plus optional path, e.g. "baz.cf.com/segment1"
ContextPath: TypeAlias = str  # path part of a route, "/" for host-only routes
HostAddress: TypeAlias = str
PortNumber: TypeAlias = int
CanonicalAddress: TypeAlias = str  # "host:port"
AppId: TypeAlias = str
InstanceId: TypeAlias = str
EndpointTags: TypeAlias = Mapping[str, str]

# Device model types
ServiceName: TypeAlias = str
PartitionName: TypeAlias = str
RuleName: TypeAlias = str
RouteConfigKey: TypeAlias = tuple[ServiceName, PortNumber]

# Process types
ProcessId: TypeAlias = int
SignalNumber: TypeAlias = int
ExitStatus: TypeAlias = int

# Serialization types
JsonDict: TypeAlias = dict[str, Any]
SnapshotBytes: TypeAlias = bytes
SnapshotDigest: TypeAlias = str
