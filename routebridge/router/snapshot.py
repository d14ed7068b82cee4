"""Deterministic rendering of config snapshots for the reconciler.

The output depends only on the logical content of the snapshot: entries are
already ordered by the model, member lists are sorted, and orjson sorts every
mapping's keys. Two models with the same routes therefore produce identical
bytes regardless of the order their updates arrived in.
"""

from __future__ import annotations

import hashlib
from typing import Any

import orjson

from routebridge.config import RouteBridgeSettings, primary_partition
from routebridge.datastructures.type_aliases import JsonDict, SnapshotBytes, SnapshotDigest

from .config_model import Snapshot

SNAPSHOT_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE
POLICY_STRATEGY = "/Common/first-match"


def snapshot_digest(data: SnapshotBytes) -> SnapshotDigest:
    return hashlib.sha256(data).hexdigest()


class SnapshotSerializer:
    """Serializes snapshots to JSON bytes using orjson."""

    def __init__(self, settings: RouteBridgeSettings) -> None:
        self.settings = settings

    @property
    def partition(self) -> str:
        return primary_partition(self.settings.bigip)

    def _bigip_section(self) -> JsonDict:
        bigip = self.settings.bigip
        return {
            "url": bigip.url,
            "username": bigip.user,
            "password": bigip.password,
            "partitions": list(bigip.partitions),
        }

    def _global_section(self) -> JsonDict:
        return {
            "log-level": self.settings.log_level.upper(),
            "verify-interval": self.settings.bigip.verify_interval,
        }

    def _virtual_server(self) -> JsonDict:
        return {
            "name": self.settings.virtual_server_name,
            "partition": self.partition,
            "destination": self.settings.bigip.external_addr,
            "port": self.settings.route_port,
            "policies": [self.settings.policy_name],
        }

    def to_payload(self, snapshot: Snapshot) -> JsonDict:
        ordinals = snapshot.rule_ordinals()
        return {
            "bigip": self._bigip_section(),
            "global": self._global_section(),
            "virtualServer": self._virtual_server(),
            "services": [rc.to_dict() for rc in snapshot.route_configs],
            "l7Policies": [
                {
                    "name": self.settings.policy_name,
                    "partition": self.partition,
                    "strategy": POLICY_STRATEGY,
                    "rules": [
                        rule.to_dict(ordinals[rule.full_uri]) for rule in snapshot.rules
                    ],
                }
            ],
        }

    def serialize(self, snapshot: Snapshot) -> SnapshotBytes:
        return orjson.dumps(self.to_payload(snapshot), option=SNAPSHOT_OPTIONS)

    def deserialize(self, data: SnapshotBytes) -> Any:
        return orjson.loads(data)
