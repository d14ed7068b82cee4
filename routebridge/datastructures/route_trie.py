"""
In-memory route registry keyed by URI path segments.

A route URI such as ``baz.cf.com/segment1/segment2`` is split on ``/`` into
segments; the first segment is the host (which may be a wildcard domain like
``*.cf.com``). Each trie node can hold a :class:`Pool` of endpoints. The trie
only stores and enumerates pools; it does not match request hosts against
wildcard domains, that is the load balancer's job.

The registry satisfies the :class:`routebridge.router.registry.RegistryView`
protocol at two levels: the whole :class:`RouteTrie`, and any
:class:`RouteTrieNode` (the sub-tree rooted at one URI).

Examples:
    >>> trie = RouteTrie()
    >>> pool = Pool(context_path="/")
    >>> pool.put(Endpoint(app_id="app", host="127.0.0.1", port=80))
    True
    >>> trie.insert("foo.cf.com", pool) is pool
    True
    >>> [uri for uri, _ in trie.each_node_with_pool()]
    ['foo.cf.com']
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from threading import Lock, RLock
from types import MappingProxyType

from routebridge.datastructures.type_aliases import (
    AppId,
    CanonicalAddress,
    ContextPath,
    EndpointTags,
    HostAddress,
    InstanceId,
    PortNumber,
    RouteUri,
)

SEGMENT_SEPARATOR = "/"


def normalize_uri(uri: RouteUri) -> RouteUri:
    """Lowercase a route URI and drop surrounding slashes and any query."""
    uri = uri.strip().split("?", 1)[0]
    return uri.strip(SEGMENT_SEPARATOR).lower()


def split_uri(uri: RouteUri) -> list[str]:
    normalized = normalize_uri(uri)
    if normalized == "":
        return []
    return [segment for segment in normalized.split(SEGMENT_SEPARATOR) if segment]


@dataclass(frozen=True, slots=True)
class ModificationTag:
    """Registry-side version of an endpoint registration."""

    guid: str = ""
    index: int = 0

    def succeeded_by(self, other: ModificationTag) -> bool:
        """Return True if ``other`` is the same or a newer registration."""
        if not self.guid or not other.guid:
            return True
        return self.guid != other.guid or self.index < other.index


def _frozen_tags(tags: EndpointTags | None) -> EndpointTags:
    return MappingProxyType(dict(tags or {}))


@dataclass(frozen=True, slots=True)
class Endpoint:
    """A backend address registered for a route."""

    app_id: AppId
    host: HostAddress
    port: PortNumber
    private_instance_id: InstanceId = ""
    private_instance_index: str = ""
    tags: EndpointTags = field(default_factory=dict, compare=False, hash=False)
    stale_threshold_seconds: int = 120
    route_service_url: str = ""
    modification_tag: ModificationTag = field(default_factory=ModificationTag)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", _frozen_tags(self.tags))

    @property
    def canonical_addr(self) -> CanonicalAddress:
        return f"{self.host}:{self.port}"


class Pool:
    """Thread-safe set of endpoints serving one route, keyed by address."""

    def __init__(self, context_path: ContextPath = "/") -> None:
        self.context_path = context_path or "/"
        self._endpoints: dict[CanonicalAddress, Endpoint] = {}
        self._lock = Lock()

    def put(self, endpoint: Endpoint) -> bool:
        """Add or refresh an endpoint; return True if the pool changed."""
        with self._lock:
            existing = self._endpoints.get(endpoint.canonical_addr)
            if existing is not None:
                if existing == endpoint:
                    return False
                if not existing.modification_tag.succeeded_by(
                    endpoint.modification_tag
                ):
                    return False
            self._endpoints[endpoint.canonical_addr] = endpoint
            return True

    def remove(self, endpoint: Endpoint) -> bool:
        """Remove the endpoint with the same address; return True if found."""
        with self._lock:
            return self._endpoints.pop(endpoint.canonical_addr, None) is not None

    def endpoints(self) -> list[Endpoint]:
        with self._lock:
            return list(self._endpoints.values())

    def is_empty(self) -> bool:
        with self._lock:
            return not self._endpoints

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self.endpoints())

    def __repr__(self) -> str:
        return f"Pool(context_path={self.context_path!r}, size={len(self)})"


@dataclass(eq=False, slots=True)
class RouteTrieNode:
    """One URI segment in the registry trie."""

    segment: str = ""
    parent: RouteTrieNode | None = None
    children: dict[str, RouteTrieNode] = field(default_factory=dict)
    pool: Pool | None = None
    _lock: RLock = field(default_factory=RLock, repr=False)

    def to_path(self) -> RouteUri:
        segments: list[str] = []
        node: RouteTrieNode | None = self
        while node is not None and node.parent is not None:
            segments.append(node.segment)
            node = node.parent
        return SEGMENT_SEPARATOR.join(reversed(segments))

    def each_node_with_pool(self) -> Iterator[tuple[RouteUri, Pool]]:
        """Yield ``(uri, pool)`` for this node and every descendant with a pool.

        Traversal order is depth first with children visited in sorted order,
        so repeated walks over the same registry state yield the same order.
        """
        with self._lock:
            found = list(self._walk())
        return iter(found)

    def _walk(self) -> Iterator[tuple[RouteUri, Pool]]:
        if self.pool is not None:
            yield self.to_path(), self.pool
        for segment in sorted(self.children):
            yield from self.children[segment]._walk()

    def is_prunable(self) -> bool:
        return self.pool is None and not self.children


@dataclass(slots=True)
class RouteTrie:
    """Registry of pools keyed by route URI."""

    root: RouteTrieNode = field(default_factory=RouteTrieNode)
    _lock: RLock = field(default_factory=RLock, repr=False)

    def __post_init__(self) -> None:
        # Share one lock so node-level walks see a consistent trie.
        self.root._lock = self._lock

    def insert(self, uri: RouteUri, pool: Pool) -> Pool:
        """Store ``pool`` at ``uri``, replacing any pool already there."""
        with self._lock:
            node = self.root
            for segment in split_uri(uri):
                child = node.children.get(segment)
                if child is None:
                    child = RouteTrieNode(segment=segment, parent=node, _lock=self._lock)
                    node.children[segment] = child
                node = child
            node.pool = pool
            return pool

    def find_node(self, uri: RouteUri) -> RouteTrieNode | None:
        with self._lock:
            node = self.root
            for segment in split_uri(uri):
                child = node.children.get(segment)
                if child is None:
                    return None
                node = child
            return node

    def find(self, uri: RouteUri) -> Pool | None:
        node = self.find_node(uri)
        return node.pool if node is not None else None

    def delete(self, uri: RouteUri) -> bool:
        """Remove the pool stored at ``uri`` and prune empty nodes."""
        with self._lock:
            node = self.find_node(uri)
            if node is None or node.pool is None:
                return False
            node.pool = None
            while node.parent is not None and node.is_prunable():
                del node.parent.children[node.segment]
                node = node.parent
            return True

    def each_node_with_pool(self) -> Iterator[tuple[RouteUri, Pool]]:
        return self.root.each_node_with_pool()

    def pool_count(self) -> int:
        return sum(1 for _ in self.each_node_with_pool())

    def endpoint_count(self) -> int:
        return sum(len(pool) for _, pool in self.each_node_with_pool())
