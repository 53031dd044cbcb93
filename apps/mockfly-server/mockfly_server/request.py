"""Incoming request representation shared by the dispatcher and data sources."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from functools import cached_property
from typing import Any
from urllib.parse import parse_qs, urlsplit


def _flatten(values: dict[str, list[str]]) -> dict[str, Any]:
    return {key: items[0] if len(items) == 1 else items for key, items in values.items()}


@dataclass
class MockRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes = b""
    params: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = {key.lower(): value for key, value in self.headers.items()}

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @cached_property
    def query(self) -> dict[str, Any]:
        return _flatten(parse_qs(urlsplit(self.url).query, keep_blank_values=True))

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    @cached_property
    def parsed_body(self) -> Any:
        """Decoded body: JSON, urlencoded form or an empty mapping."""

        if not self.body:
            return {}
        text = self.body.decode("utf-8", errors="replace")
        if self.content_type == "application/x-www-form-urlencoded":
            return _flatten(parse_qs(text, keep_blank_values=True))
        if self.content_type.endswith("json") or not self.content_type:
            try:
                return json.loads(text)
            except ValueError:
                return {}
        return {}

    def with_params(self, params: dict[str, str]) -> "MockRequest":
        return replace(self, params=dict(params))
