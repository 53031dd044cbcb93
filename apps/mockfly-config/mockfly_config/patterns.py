"""Route path patterns: parameters, optional groups and wildcards.

Supported syntax::

    /users/:id            named parameter, one path segment
    /users{/:id}/delete   optional group
    /files/*path          named wildcard, one or more characters across segments
    /api/*                unnamed trailing wildcard, same as /api/*path
    *                     every path
    /literal\\:colon      backslash escapes the next character

Matching is case-insensitive and tolerates a single trailing slash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal
from urllib.parse import unquote

import structlog

from .errors import PatternError

LOGGER = structlog.get_logger("mockfly")

MATCH_ALL = "*"
REST_TOKEN = "/*path"

_RESERVED_CHARS = frozenset("()[]?+!")
_NAME_START = re.compile(r"[A-Za-z_$]")
_NAME_CHAR = re.compile(r"[A-Za-z0-9_$]")
_PARAM_EXPR = r"[^/]+"
_WILDCARD_EXPR = r"[\s\S]+"


@dataclass(frozen=True)
class PatternKey:
    """A named capture declared by a pattern."""

    name: str
    kind: Literal["param", "wildcard"]
    optional: bool = False


@dataclass(frozen=True)
class PathPattern:
    """Compiled route pattern."""

    pattern: str
    regex: re.Pattern[str]
    keys: tuple[PatternKey, ...] = field(default_factory=tuple)

    def match(self, path: str) -> dict[str, str] | None:
        """Return decoded captures when ``path`` matches, otherwise ``None``."""

        found = self.regex.match(path)
        if found is None:
            return None
        params: dict[str, str] = {}
        for index, key in enumerate(self.keys):
            value = found.group(f"k{index}")
            if value is not None:
                params[key.name] = unquote(value)
        return params


class _PatternParser:
    def __init__(self, pattern: str) -> None:
        self._pattern = pattern
        self._index = 0
        self.keys: list[PatternKey] = []

    def parse(self) -> str:
        body = self._sequence(depth=0)
        if self._index < len(self._pattern):
            raise PatternError(f"Unexpected '}}' at position {self._index} in {self._pattern!r}")
        return body

    def _sequence(self, depth: int) -> str:
        parts: list[str] = []
        pattern = self._pattern
        while self._index < len(pattern):
            char = pattern[self._index]
            if char == "}":
                if depth == 0:
                    raise PatternError(f"Unexpected '}}' at position {self._index} in {pattern!r}")
                return "".join(parts)
            self._index += 1
            if char == "\\":
                if self._index >= len(pattern):
                    raise PatternError(f"Unterminated escape at end of {pattern!r}")
                parts.append(re.escape(pattern[self._index]))
                self._index += 1
            elif char == "{":
                inner = self._sequence(depth + 1)
                self._index += 1
                parts.append(f"(?:{inner})?")
            elif char == ":":
                name = self._name()
                if not name:
                    raise PatternError(f"Missing parameter name at position {self._index} in {pattern!r}")
                parts.append(self._capture(name, "param", depth > 0, _PARAM_EXPR))
            elif char == "*":
                name = self._name() or ("path" if self._index >= len(pattern) else "segment")
                parts.append(self._capture(name, "wildcard", depth > 0, _WILDCARD_EXPR))
            elif char in _RESERVED_CHARS:
                raise PatternError(f"Unexpected {char!r} at position {self._index - 1} in {pattern!r}")
            else:
                parts.append(re.escape(char))
        if depth > 0:
            raise PatternError(f"Unbalanced '{{' in {pattern!r}")
        return "".join(parts)

    def _name(self) -> str:
        pattern = self._pattern
        if self._index < len(pattern) and pattern[self._index] == '"':
            end = pattern.find('"', self._index + 1)
            if end == -1:
                raise PatternError(f"Unterminated quoted name in {pattern!r}")
            name = pattern[self._index + 1 : end]
            self._index = end + 1
            return name
        start = self._index
        if start < len(pattern) and _NAME_START.match(pattern[start]):
            self._index += 1
            while self._index < len(pattern) and _NAME_CHAR.match(pattern[self._index]):
                self._index += 1
        return pattern[start : self._index]

    def _capture(self, name: str, kind: Literal["param", "wildcard"], optional: bool, expr: str) -> str:
        group = f"k{len(self.keys)}"
        self.keys.append(PatternKey(name=name, kind=kind, optional=optional))
        return f"(?P<{group}>{expr})"


def normalize_pattern(pattern: str) -> str:
    """Map the legacy bare ``*`` onto the rest-wildcard syntax."""

    if pattern.strip() == MATCH_ALL:
        return REST_TOKEN
    return pattern


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> PathPattern:
    """Compile ``pattern`` or raise :class:`PatternError` on malformed syntax."""

    parser = _PatternParser(normalize_pattern(pattern))
    body = parser.parse()
    regex = re.compile(rf"^{body}(?:/)?$", re.IGNORECASE)
    return PathPattern(pattern=pattern, regex=regex, keys=tuple(parser.keys))


def matches(route_path: str, pattern: str) -> bool:
    """Return whether ``route_path`` is selected by ``pattern``.

    Malformed patterns never raise: a warning is logged and the check falls
    back to exact string equality.
    """

    if pattern.strip() == MATCH_ALL:
        return True
    try:
        compiled = compile_pattern(pattern)
    except PatternError as exc:
        LOGGER.warning("pattern_parse_failed", pattern=pattern, error=str(exc))
        return route_path == pattern
    return compiled.match(route_path) is not None
