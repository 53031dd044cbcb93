"""Binds resolved routes to ``(method, full path)`` pairs.

A fresh :class:`ActiveRouteSet` is built for every configuration load and
swapped in whole. ``clear()`` only forgets bindings held by this object; HTTP
frameworks that cannot unregister a route keep serving stale bindings unless
their router or listener is recreated, which is why reloads never patch a live
set in place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

import structlog

from mockfly_config.errors import ConfigError, PatternError
from mockfly_config.models import MergedRouteDescriptor
from mockfly_config.patterns import PathPattern, compile_pattern

LOGGER = structlog.get_logger("mockfly")


def full_path_for(path: str, base_url: str) -> str:
    if base_url and not path.startswith(base_url):
        return f"{base_url.rstrip('/')}{path}"
    return path


@dataclass(frozen=True)
class RouteBinding:
    method: str
    full_path: str
    route: MergedRouteDescriptor
    pattern: PathPattern

    @property
    def key(self) -> str:
        return f"{self.method.lower()}:{self.full_path}"


class ActiveRouteSet:
    """Ordered bindings; a duplicate ``(method, path)`` replaces the earlier one."""

    def __init__(self) -> None:
        self._bindings: dict[str, RouteBinding] = {}

    def bind(self, route: MergedRouteDescriptor, base_url: str = "") -> RouteBinding:
        full_path = full_path_for(route.path, base_url)
        try:
            pattern = compile_pattern(full_path)
        except PatternError as exc:
            raise ConfigError(f"route {route.method} {route.path} has an invalid path: {exc}") from exc
        binding = RouteBinding(method=route.method, full_path=full_path, route=route, pattern=pattern)
        if binding.key in self._bindings:
            LOGGER.warning("route_overridden", key=binding.key)
        self._bindings[binding.key] = binding
        return binding

    def keys(self) -> list[str]:
        return list(self._bindings)

    def bindings(self) -> list[RouteBinding]:
        return list(self._bindings.values())

    def resolve(self, method: str, path: str) -> tuple[RouteBinding, dict[str, str]] | None:
        """Return the first binding serving ``method path`` and its path params.

        ``HEAD`` falls back to ``GET`` bindings.
        """

        method = method.upper()
        candidates = (method, "GET") if method == "HEAD" else (method,)
        for candidate in candidates:
            for binding in self._bindings.values():
                if binding.method != candidate:
                    continue
                params = binding.pattern.match(path)
                if params is not None:
                    return binding, params
        return None

    def clear(self) -> None:
        self._bindings.clear()

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self) -> Iterator[RouteBinding]:
        return iter(self.bindings())


def register(routes: Iterable[MergedRouteDescriptor], base_url: str = "") -> ActiveRouteSet:
    """Build a new :class:`ActiveRouteSet` for ``routes``; raises :class:`ConfigError` on invalid paths."""

    active = ActiveRouteSet()
    for route in routes:
        binding = active.bind(route, base_url)
        LOGGER.debug("route_registered", method=binding.method, path=binding.full_path, description=route.description)
    return active
