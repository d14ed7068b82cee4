"""Total orderings for device configuration entries.

Python sorts are stable, so entries that compare equal keep their insertion
order. The model never holds two entries with the same key, so a tie here
points at a bug elsewhere rather than a case to rely on.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from routebridge.datastructures.type_aliases import PortNumber, RouteUri, ServiceName

if TYPE_CHECKING:
    from .config_model import RouteConfig, Rule


def route_config_key(route_config: RouteConfig) -> tuple[ServiceName, PortNumber]:
    return (route_config.service_name, route_config.service_port)


def rule_key(rule: Rule) -> RouteUri:
    return rule.full_uri


def rule_specificity_key(rule: Rule) -> tuple[int, int, int, RouteUri]:
    """Order rules so that the most specific match comes first.

    Exact hosts beat wildcard domains, deeper paths beat shallower ones and,
    among wildcard domains, the longer suffix wins (``*.foo.cf.com`` before
    ``*.cf.com``). The full URI breaks any remaining tie.
    """
    return (
        1 if rule.is_wildcard else 0,
        -len(rule.path_segments),
        -len(rule.hostname),
        rule.full_uri,
    )


def sort_route_configs(route_configs: Iterable[RouteConfig]) -> list[RouteConfig]:
    return sorted(route_configs, key=route_config_key)


def sort_rules(rules: Iterable[Rule]) -> list[Rule]:
    return sorted(rules, key=rule_key)


def rule_ordinals(rules: Iterable[Rule]) -> dict[RouteUri, int]:
    """Map each rule's full URI to its rank by specificity."""
    ranked = sorted(rules, key=rule_specificity_key)
    return {rule.full_uri: ordinal for ordinal, rule in enumerate(ranked)}
