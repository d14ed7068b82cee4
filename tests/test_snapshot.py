"""Snapshot serialization: wire shape and byte-level determinism."""

import orjson
from hypothesis import given
from hypothesis import settings as hypothesis_settings
from hypothesis import strategies as st

from routebridge.datastructures.route_trie import RouteTrie
from routebridge.router.config_model import ConfigModel, RouteDefaults
from routebridge.router.registry import RouteEvent, read_view
from routebridge.router.snapshot import SnapshotSerializer, snapshot_digest
from tests.helpers import (
    TEST_ROUTES,
    create_registry,
    make_pool,
    make_settings,
    render_registry,
)

SETTINGS = make_settings()


def render_events(registry, uris):
    """Apply one Add per uri, each reading only that uri's sub-tree."""
    model = ConfigModel(RouteDefaults.from_settings(SETTINGS))
    for uri in uris:
        node = registry.find_node(uri)
        model.apply(RouteEvent.ADD, uri, read_view(node))
    return SnapshotSerializer(SETTINGS).serialize(model.snapshot())


class TestWireShape:
    def test_top_level_sections(self):
        payload = orjson.loads(render_registry(SETTINGS, create_registry()))
        assert set(payload) == {
            "bigip",
            "global",
            "virtualServer",
            "services",
            "l7Policies",
        }
        assert payload["bigip"] == {
            "url": "http://example.com",
            "username": "admin",
            "password": "pass",
            "partitions": ["cf"],
        }
        assert payload["virtualServer"]["destination"] == "127.0.0.1"
        assert payload["virtualServer"]["partition"] == "cf"
        assert payload["virtualServer"]["policies"] == ["cf-routing-policy"]

    def test_services_and_rules(self):
        payload = orjson.loads(render_registry(SETTINGS, create_registry()))
        services = {s["uri"]: s for s in payload["services"]}
        assert set(services) == {uri for uri, _, _ in TEST_ROUTES}
        assert services["bar.cf.com"]["poolMemberAddrs"] == [
            "127.0.1.1:80",
            "127.0.1.2:80",
        ]
        assert services["baz.cf.com/segment1"]["contextPath"] == "/segment1"

        (policy,) = payload["l7Policies"]
        rules = policy["rules"]
        assert len(rules) == len(TEST_ROUTES)
        ordinals = {rule["fullURI"]: rule["ordinal"] for rule in rules}
        assert sorted(ordinals.values()) == list(range(len(TEST_ROUTES)))
        assert ordinals["foo.cf.com"] < ordinals["*.foo.cf.com"] < ordinals["*.cf.com"]

    def test_empty_snapshot_is_valid(self):
        payload = orjson.loads(render_registry(SETTINGS, RouteTrie()))
        assert payload["services"] == []
        assert payload["l7Policies"][0]["rules"] == []

    def test_keys_are_sorted(self):
        data = render_registry(SETTINGS, create_registry())
        payload = orjson.loads(data)
        assert list(payload) == sorted(payload)
        assert data.endswith(b"\n")

    def test_deserialize_round_trip(self):
        serializer = SnapshotSerializer(SETTINGS)
        data = render_registry(SETTINGS, create_registry())
        assert orjson.dumps(
            serializer.deserialize(data),
            option=orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2 | orjson.OPT_APPEND_NEWLINE,
        ) == data


class TestDeterminism:
    def test_repeated_serialization_is_identical(self):
        registry = create_registry()
        first = render_registry(SETTINGS, registry)
        second = render_registry(SETTINGS, registry)
        assert first == second
        assert snapshot_digest(first) == snapshot_digest(second)

    def test_settings_change_output(self):
        registry = create_registry()
        other = make_settings(bigip={"external_addr": "10.1.1.1"})
        assert render_registry(SETTINGS, registry) != render_registry(other, registry)

    @given(st.permutations([uri for uri, _, _ in TEST_ROUTES]))
    @hypothesis_settings(max_examples=50, deadline=None)
    def test_event_order_does_not_change_bytes(self, order):
        registry = create_registry()
        baseline = render_events(registry, [uri for uri, _, _ in TEST_ROUTES])
        assert render_events(registry, order) == baseline

    @given(
        st.permutations(list(TEST_ROUTES)),
        st.lists(st.booleans(), min_size=len(TEST_ROUTES), max_size=len(TEST_ROUTES)),
    )
    @hypothesis_settings(max_examples=50, deadline=None)
    def test_registry_history_does_not_change_bytes(self, routes, reverse_addrs):
        """Same final registry, built in a different order, same bytes."""
        registry = RouteTrie()
        for (uri, context_path, addrs), reverse in zip(routes, reverse_addrs):
            ordered_addrs = tuple(reversed(addrs)) if reverse else addrs
            registry.insert(uri, make_pool(context_path, *ordered_addrs))

        assert render_registry(SETTINGS, registry) == render_registry(
            SETTINGS, create_registry()
        )
