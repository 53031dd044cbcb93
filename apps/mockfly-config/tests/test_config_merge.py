from __future__ import annotations

import copy
from typing import Any

import pytest

from mockfly_config.errors import ConfigError
from mockfly_config.merge import deep_merge, group_applies, resolve_routes, validate_raw_config
from mockfly_config.models import GlobalConfig, RouteDefaultGroup


def _config(**overrides: Any) -> GlobalConfig:
    payload: dict[str, Any] = {"routes": [{"path": "/users", "response": {"ok": True}}]}
    payload.update(overrides)
    return GlobalConfig.model_validate(payload)


def test_deep_merge_recurses_into_mappings_without_mutating_inputs() -> None:
    base = {"headers": {"A": "1"}, "tags": ["x"], "delay": 10}
    override = {"headers": {"B": "2"}, "tags": ["y", "z"]}

    merged = deep_merge(base, override)

    assert merged == {"headers": {"A": "1", "B": "2"}, "tags": ["y", "z"], "delay": 10}
    assert base == {"headers": {"A": "1"}, "tags": ["x"], "delay": 10}
    assert override == {"headers": {"B": "2"}, "tags": ["y", "z"]}


def test_deep_merge_is_idempotent() -> None:
    base = {"headers": {"A": "1"}, "nested": {"deep": {"x": 1}}}
    override = {"headers": {"A": "2"}, "nested": {"deep": {"y": 2}}}

    once = deep_merge(base, override)

    assert deep_merge(once, override) == once


def test_resolving_twice_gives_equal_routes_and_leaves_groups_untouched() -> None:
    config = _config(
        delay=50,
        headers={"X-Global": "g"},
        routeDefaults=[
            {"name": "auth", "config": {"headers": {"Authorization": "Bearer t"}, "statusCode": 201}},
            {"name": "slow", "config": {"delay": 200, "headers": {"X-Slow": "1"}}, "includes": ["/users"]},
        ],
        routes=[{"path": "/users", "response": {"id": 1}, "headers": {"X-Route": "r"}}],
    )
    before = [copy.deepcopy(group.config) for group in config.route_defaults]

    first = resolve_routes(config)
    second = resolve_routes(config)

    assert first == second
    assert first[0].headers == {"X-Global": "g", "Authorization": "Bearer t", "X-Slow": "1", "X-Route": "r"}
    assert [group.config for group in config.route_defaults] == before


def test_excludes_win_over_includes() -> None:
    group = RouteDefaultGroup(name="auth", config={}, includes=["*"], excludes=["/admin/*"])

    assert not group_applies("/admin/users", group)
    assert group_applies("/public/users", group)


def test_group_without_includes_applies_to_all_non_excluded_routes() -> None:
    group = RouteDefaultGroup(name="all", config={})

    assert group_applies("/anything", group)


def test_layers_apply_in_precedence_order() -> None:
    config = _config(
        delay=100,
        headers={"X-Global": "g", "X-Shared": "global"},
        routeDefaults=[
            {"name": "first", "config": {"headers": {"X-Shared": "first", "X-First": "1"}, "statusCode": 202}},
            {"name": "second", "config": {"headers": {"X-Shared": "second"}}, "includes": ["/users"]},
        ],
        routes=[
            {"path": "/users", "response": [], "headers": {"X-Route": "r"}},
            {"path": "/orders", "response": [], "delay": 0, "statusCode": 200},
        ],
    )

    users, orders = resolve_routes(config)

    assert users.headers == {
        "X-Global": "g",
        "X-Shared": "second",
        "X-First": "1",
        "X-Route": "r",
    }
    assert users.delay == 100
    assert users.status_code == 202
    assert orders.headers["X-Shared"] == "first"
    assert orders.delay == 0
    assert orders.status_code == 200


def test_identity_fields_come_from_the_route() -> None:
    config = _config(
        routeDefaults=[{"name": "sneaky", "config": {"path": "/hijacked", "method": "DELETE", "description": "group"}}],
        routes=[{"path": "/users", "method": "POST", "response": {}}],
    )

    (route,) = resolve_routes(config)

    assert route.path == "/users"
    assert route.method == "POST"
    assert route.description is None


def test_top_level_settings_are_not_route_defaults() -> None:
    config = _config(port=4000, baseUrl="/api", cors=False)

    (route,) = resolve_routes(config)

    assert "port" not in route.extras
    assert "cors" not in route.extras
    assert route.delay == 0
    assert route.status_code == 200
    assert route.headers == {}


def test_unknown_route_fields_are_carried_through() -> None:
    config = _config(routes=[{"path": "/x", "response": {}, "myPluginOption": {"depth": 2}}])

    (route,) = resolve_routes(config)

    assert route.extras == {"myPluginOption": {"depth": 2}}


def test_header_values_are_stringified() -> None:
    config = _config(headers={"X-Count": 3})

    (route,) = resolve_routes(config)

    assert route.headers == {"X-Count": "3"}


@pytest.mark.parametrize(
    "raw, message",
    [
        ([], "configuration root must be a mapping"),
        ({}, "missing routes"),
        ({"routes": {}}, "routes must be a list"),
        ({"routes": [{"response": {}}]}, "missing path"),
        ({"routes": [{"path": "/a"}]}, "missing response source"),
        ({"routes": [{"path": "/a", "response": {}, "method": "TRACE"}]}, "invalid method"),
        ({"routes": [], "routeDefaults": [{"config": {}}]}, "missing name"),
        ({"routes": [], "routeDefaults": [{"name": "g"}]}, "missing config"),
    ],
)
def test_structural_validation(raw: Any, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        validate_raw_config(raw)
