"""Route-default resolution.

Every route is resolved by layering, lowest precedence first:

1. top-level defaults (``delay``, ``headers``, ``statusCode`` only);
2. each matching ``routeDefaults`` group, in declaration order;
3. the fields literally present on the route entry.

Mappings are merged key by key, lists and scalars are replaced. ``path``,
``method``, ``description`` and ``name`` always come from the route entry.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any, Iterable

from pydantic import ValidationError

from .errors import ConfigError
from .models import (
    HTTP_METHODS,
    ROUTE_IDENTITY_FIELDS,
    GlobalConfig,
    MergedRouteDescriptor,
    RouteConfig,
    RouteDefaultGroup,
)
from .patterns import matches


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new mapping with ``override`` merged over ``base``; inputs are not mutated."""

    result: dict[str, Any] = deepcopy(base)
    for key, override_value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = deep_merge(base_value, override_value)
        else:
            result[key] = deepcopy(override_value)
    return result


def validate_raw_config(raw: Any) -> None:
    """Check the structural invariants that must hold before any route is resolved."""

    if not isinstance(raw, dict):
        raise ConfigError("configuration root must be a mapping")
    if "routes" not in raw:
        raise ConfigError("missing routes")
    routes = raw["routes"]
    if not isinstance(routes, list):
        raise ConfigError("routes must be a list")
    for index, route in enumerate(routes):
        validate_route_entry(index, route)

    groups = raw.get("routeDefaults")
    if groups is None:
        return
    if not isinstance(groups, list):
        raise ConfigError("routeDefaults must be a list")
    for index, group in enumerate(groups):
        if not isinstance(group, dict) or not group.get("name"):
            raise ConfigError(f"routeDefaults[{index}]: missing name")
        if not isinstance(group.get("config"), dict):
            raise ConfigError(f"routeDefaults[{index}] ({group['name']}): missing config")


def validate_route_entry(index: int, route: Any) -> None:
    if not isinstance(route, dict):
        raise ConfigError(f"routes[{index}]: route entry must be a mapping")
    path = route.get("path")
    if not path:
        raise ConfigError(f"routes[{index}]: missing path")
    if route.get("response") is None and not route.get("responseFile"):
        raise ConfigError(f"routes[{index}] ({path}): missing response source")
    method = route.get("method")
    if method is not None and method not in HTTP_METHODS:
        raise ConfigError(
            f"routes[{index}] ({path}): invalid method {method!r}, expected one of {', '.join(HTTP_METHODS)}"
        )


def group_applies(route_path: str, group: RouteDefaultGroup) -> bool:
    """Return whether ``group`` selects the route at ``route_path``.

    Excludes are checked first. Without includes every non-excluded route is
    selected; with includes at least one of them has to match.
    """

    if group.excludes and any(matches(route_path, pattern) for pattern in group.excludes):
        return False
    if group.includes:
        return any(matches(route_path, pattern) for pattern in group.includes)
    return True


def matching_groups(route_path: str, groups: Iterable[RouteDefaultGroup]) -> list[RouteDefaultGroup]:
    return [group for group in groups if group_applies(route_path, group)]


def merge_route(
    route: RouteConfig,
    global_defaults: dict[str, Any],
    groups: Iterable[RouteDefaultGroup],
) -> MergedRouteDescriptor:
    """Resolve a single route entry into its descriptor."""

    merged = deep_merge({}, global_defaults)
    for group in matching_groups(route.path, groups):
        merged = deep_merge(merged, group.config)

    explicit = {
        key: value
        for key, value in route.explicit_fields().items()
        if key not in ROUTE_IDENTITY_FIELDS and value is not None
    }
    merged = deep_merge(merged, explicit)

    for key in ROUTE_IDENTITY_FIELDS:
        merged.pop(key, None)
    merged.update(
        path=route.path,
        method=route.method,
        description=route.description,
        name=route.name,
    )

    try:
        return MergedRouteDescriptor.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"route {route.method} {route.path} is invalid after merge: {exc}") from exc


def resolve_routes(global_config: GlobalConfig) -> list[MergedRouteDescriptor]:
    """Resolve every route of ``global_config`` in declaration order."""

    global_defaults = global_config.global_defaults()
    groups = tuple(global_config.route_defaults)
    return [merge_route(route, global_defaults, groups) for route in global_config.routes]
