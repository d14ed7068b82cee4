"""Registry boundary consumed by the aggregator.

The aggregator never keeps a reference to a registry object beyond a single
``route_update`` call. It reads the view once, at call time, into
:class:`PoolContents` values and works only with those.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol, runtime_checkable

from routebridge.datastructures.route_trie import Endpoint, normalize_uri
from routebridge.datastructures.type_aliases import ContextPath, RouteUri


class RouteEvent(StrEnum):
    """Kind of registry change delivered to ``route_update``."""

    ADD = "add"
    REMOVE = "remove"


@runtime_checkable
class PoolView(Protocol):
    context_path: ContextPath

    def endpoints(self) -> list[Endpoint]: ...


@runtime_checkable
class RegistryView(Protocol):
    """A registry node (or whole registry) that enumerates its pools."""

    def each_node_with_pool(self) -> Iterable[tuple[RouteUri, PoolView]]: ...


@dataclass(frozen=True, slots=True)
class PoolContents:
    """Endpoints of one registry pool as read at event time."""

    uri: RouteUri
    context_path: ContextPath
    endpoints: tuple[Endpoint, ...]

    @property
    def is_empty(self) -> bool:
        return not self.endpoints


def read_view(view: RegistryView) -> tuple[PoolContents, ...]:
    """Copy every pool reachable from ``view``."""
    contents: list[PoolContents] = []
    for uri, pool in view.each_node_with_pool():
        contents.append(
            PoolContents(
                uri=normalize_uri(uri),
                context_path=pool.context_path or "/",
                endpoints=tuple(pool.endpoints()),
            )
        )
    return tuple(contents)
