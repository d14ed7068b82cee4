"""Static route tables: seed the registry from a JSON file.

Format::

    [
      {"uri": "foo.cf.com", "context_path": "/",
       "endpoints": [{"host": "10.0.0.1", "port": 8080, "app_id": "foo"}]}
    ]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson

from routebridge.datastructures.route_trie import Endpoint, Pool, RouteTrie

from .aggregator import Aggregator
from .registry import RouteEvent


def _endpoint_from_dict(entry: dict[str, Any], uri: str) -> Endpoint:
    try:
        host = str(entry["host"])
        port = int(entry["port"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"route {uri}: endpoint needs host and port ({e})") from e
    return Endpoint(
        app_id=str(entry.get("app_id", "")),
        host=host,
        port=port,
        private_instance_id=str(entry.get("instance_id", "")),
        tags={str(k): str(v) for k, v in dict(entry.get("tags", {})).items()},
    )


def parse_static_routes(payload: Any) -> RouteTrie:
    if not isinstance(payload, list):
        raise ValueError("static routes must be a JSON list")

    registry = RouteTrie()
    for item in payload:
        if not isinstance(item, dict) or not item.get("uri"):
            raise ValueError(f"static route entry needs a uri: {item!r}")
        uri = str(item["uri"])
        pool = registry.find(uri)
        if pool is None:
            pool = Pool(context_path=str(item.get("context_path", "/")))
        for entry in item.get("endpoints", []):
            pool.put(_endpoint_from_dict(entry, uri))
        registry.insert(uri, pool)
    return registry


def load_static_routes(path: Path | str) -> RouteTrie:
    return parse_static_routes(orjson.loads(Path(path).read_bytes()))


def seed_routes(aggregator: Aggregator, registry: RouteTrie) -> int:
    """Issue one Add per route in ``registry``; returns the number issued."""
    issued = 0
    for uri, _ in registry.each_node_with_pool():
        node = registry.find_node(uri)
        if node is None:
            continue
        aggregator.route_update(RouteEvent.ADD, node, uri)
        issued += 1
    return issued
