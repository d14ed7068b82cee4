"""Datastructures shared across routebridge: the route registry and type aliases."""

from .route_trie import (
    Endpoint,
    ModificationTag,
    Pool,
    RouteTrie,
    RouteTrieNode,
    normalize_uri,
    split_uri,
)

__all__ = [
    "Endpoint",
    "ModificationTag",
    "Pool",
    "RouteTrie",
    "RouteTrieNode",
    "normalize_uri",
    "split_uri",
]
