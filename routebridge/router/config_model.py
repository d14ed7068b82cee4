"""In-memory model of the desired device configuration.

The model holds two maps: route configs keyed by ``(service_name,
service_port)`` and L7 rules keyed by full URI. One registry URI yields
exactly one route config and one rule, both named after the URI, so the two
maps always move together.

The model is not thread-safe. The aggregator actor is its only writer.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Any

from routebridge.config import RouteBridgeSettings, primary_partition
from routebridge.datastructures.route_trie import split_uri
from routebridge.datastructures.type_aliases import (
    ContextPath,
    HostAddress,
    JsonDict,
    PartitionName,
    PortNumber,
    RouteConfigKey,
    RouteUri,
    RuleName,
    ServiceName,
)

from .ordering import rule_ordinals, sort_route_configs, sort_rules
from .registry import PoolContents, RouteEvent

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
WILDCARD_PREFIX = "*."


def make_object_name(uri: RouteUri) -> ServiceName:
    """Derive a device-safe object name from a route URI.

    BIG-IP object names cannot hold ``*`` or ``/``, so those are replaced and
    a short digest of the original URI keeps otherwise-colliding names apart
    (``a-b.com`` versus ``a.com/b``).
    """
    readable = uri.replace("*", "_").replace("/", "-")
    readable = _UNSAFE_NAME_CHARS.sub("_", readable)
    digest = hashlib.sha256(uri.encode("utf-8")).hexdigest()[:8]
    return f"cf-{readable}-{digest}"


@dataclass(frozen=True, slots=True, order=True)
class PoolMember:
    address: HostAddress
    port: PortNumber

    def to_wire(self) -> str:
        return f"{self.address}:{self.port}"


@dataclass(frozen=True, slots=True)
class RouteDefaults:
    """Per-deployment values stamped onto every route config."""

    partition: PartitionName
    service_port: PortNumber = 80
    balance: str = "round-robin"
    health_monitors: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: RouteBridgeSettings) -> RouteDefaults:
        return cls(
            partition=primary_partition(settings.bigip),
            service_port=settings.route_port,
            balance=settings.bigip.balance,
            health_monitors=tuple(settings.bigip.health_monitors),
        )


@dataclass(frozen=True, slots=True)
class RouteConfig:
    """Desired state of one backend service (a device pool)."""

    service_name: ServiceName
    service_port: PortNumber
    partition: PartitionName
    uri: RouteUri
    context_path: ContextPath
    balance: str
    health_monitors: tuple[str, ...]
    members: tuple[PoolMember, ...]

    @property
    def key(self) -> RouteConfigKey:
        return (self.service_name, self.service_port)

    def to_dict(self) -> JsonDict:
        return {
            "name": self.service_name,
            "partition": self.partition,
            "servicePort": self.service_port,
            "uri": self.uri,
            "contextPath": self.context_path,
            "balance": self.balance,
            "healthMonitors": list(self.health_monitors),
            "poolMemberAddrs": [member.to_wire() for member in self.members],
        }


@dataclass(frozen=True, slots=True)
class Rule:
    """L7 routing directive forwarding one full URI to one route config."""

    full_uri: RouteUri
    name: RuleName
    hostname: HostAddress
    path_segments: tuple[str, ...]
    service_name: ServiceName
    partition: PartitionName

    @property
    def is_wildcard(self) -> bool:
        return self.hostname.startswith(WILDCARD_PREFIX)

    def _host_condition(self) -> JsonDict:
        if self.is_wildcard:
            # "*.cf.com" matches any host ending in ".cf.com".
            return {
                "httpHost": True,
                "host": True,
                "endsWith": True,
                "values": [self.hostname[1:]],
            }
        return {
            "httpHost": True,
            "host": True,
            "equals": True,
            "values": [self.hostname],
        }

    def to_dict(self, ordinal: int) -> JsonDict:
        conditions: list[dict[str, Any]] = [self._host_condition()]
        for index, segment in enumerate(self.path_segments, start=1):
            conditions.append(
                {
                    "httpUri": True,
                    "pathSegment": True,
                    "index": index,
                    "equals": True,
                    "values": [segment],
                }
            )
        return {
            "name": self.name,
            "fullURI": self.full_uri,
            "ordinal": ordinal,
            "conditions": conditions,
            "actions": [
                {
                    "forward": True,
                    "request": True,
                    "pool": f"/{self.partition}/{self.service_name}",
                }
            ],
        }


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable, fully ordered view of the model at one instant."""

    route_configs: tuple[RouteConfig, ...] = ()
    rules: tuple[Rule, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.route_configs and not self.rules

    def rule_ordinals(self) -> dict[RouteUri, int]:
        return rule_ordinals(self.rules)


class ConfigModel:
    """Route configs and rules for the device, keyed for uniqueness."""

    def __init__(self, defaults: RouteDefaults) -> None:
        self.defaults = defaults
        self.route_configs: dict[RouteConfigKey, RouteConfig] = {}
        self.rules: dict[RouteUri, Rule] = {}

    def _key_for(self, uri: RouteUri) -> RouteConfigKey:
        return (make_object_name(uri), self.defaults.service_port)

    def build_route_config(self, contents: PoolContents) -> RouteConfig:
        members = sorted(
            {PoolMember(address=e.host, port=e.port) for e in contents.endpoints}
        )
        return RouteConfig(
            service_name=make_object_name(contents.uri),
            service_port=self.defaults.service_port,
            partition=self.defaults.partition,
            uri=contents.uri,
            context_path=contents.context_path,
            balance=self.defaults.balance,
            health_monitors=self.defaults.health_monitors,
            members=tuple(members),
        )

    def build_rule(self, route_config: RouteConfig) -> Rule:
        segments = split_uri(route_config.uri)
        hostname = segments[0] if segments else ""
        return Rule(
            full_uri=route_config.uri,
            name=route_config.service_name,
            hostname=hostname,
            path_segments=tuple(segments[1:]),
            service_name=route_config.service_name,
            partition=route_config.partition,
        )

    def upsert_route(self, contents: PoolContents) -> bool:
        """Merge one pool into the model; an empty pool removes the route.

        Returns True if the model changed.
        """
        if contents.is_empty:
            return self.remove_route(contents.uri)

        route_config = self.build_route_config(contents)
        rule = self.build_rule(route_config)
        changed = False
        if self.route_configs.get(route_config.key) != route_config:
            self.route_configs[route_config.key] = route_config
            changed = True
        if self.rules.get(rule.full_uri) != rule:
            self.rules[rule.full_uri] = rule
            changed = True
        return changed

    def remove_route(self, uri: RouteUri) -> bool:
        """Drop the route config and rule for ``uri``; True if either existed."""
        removed_config = self.route_configs.pop(self._key_for(uri), None)
        removed_rule = self.rules.pop(uri, None)
        return removed_config is not None or removed_rule is not None

    def apply(
        self,
        event: RouteEvent,
        uri: RouteUri,
        pools: tuple[PoolContents, ...],
    ) -> bool:
        """Apply one registry event read at call time. Returns True on change.

        Every pool in the view is merged. A removal also drops ``uri`` itself
        unless the view still holds endpoints for it.
        """
        changed = False
        still_served = False
        for contents in pools:
            if self.upsert_route(contents):
                changed = True
            if contents.uri == uri and not contents.is_empty:
                still_served = True

        if event is RouteEvent.REMOVE and not still_served:
            if self.remove_route(uri):
                changed = True
        return changed

    def snapshot(self) -> Snapshot:
        return Snapshot(
            route_configs=tuple(sort_route_configs(self.route_configs.values())),
            rules=tuple(sort_rules(self.rules.values())),
        )

    def __len__(self) -> int:
        return len(self.route_configs)
