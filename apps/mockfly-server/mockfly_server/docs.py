"""
Markdown documentation for a resolved mock configuration.

One file per route (``<method>-<path>.md``) plus an ``index.md`` table.
Output is derived only from the resolved routes: the same configuration
always produces the same files, and unchanged files are not rewritten.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import structlog

from mockfly_config.errors import PatternError
from mockfly_config.loader import ResolvedConfig
from mockfly_config.models import MergedRouteDescriptor
from mockfly_config.patterns import compile_pattern

from .registrar import full_path_for
from .templating import extract_variables

LOGGER = structlog.get_logger("mockfly")

INDEX_FILENAME = "index.md"
BODY_METHODS = ("POST", "PUT", "PATCH")

_LOCATIONS = {
    "path": "Path parameters",
    "query": "Query parameters",
    "body": "Body parameters",
    "headers": "Header parameters",
    "template": "Template variables",
}
_LOCATION_LABELS = {
    "query": "query",
    "body": "body",
    "params": "path",
    "headers": "header",
}
_COLON_PARAM = re.compile(r":([^/]+)")
_TOKEN = re.compile(r"\{\{\{?\s*([^}]+?)\s*\}?\}\}")
_BODY_TOKEN = re.compile(r"\{\{\{?\s*body\.([\w$@.-]+)\s*\}?\}\}")


@dataclass(frozen=True)
class RouteParameter:
    name: str
    location: str
    required: bool = False
    description: str = ""
    data_type: str = "string"


def generate_file_name(route: MergedRouteDescriptor) -> str:
    """``GET /users/:id`` -> ``get-users-id.md``; ``*`` becomes ``wildcard``."""

    segments = route.path.lstrip("/")
    segments = segments.replace("/", "-").replace(":", "")
    segments = re.sub(r"[{}]", "", segments).replace("*", "wildcard")
    segments = re.sub(r"[^a-zA-Z0-9\-_]", "", segments)
    return f"{route.method.lower()}-{segments or 'root'}.md"


def route_file_names(routes: Iterable[MergedRouteDescriptor]) -> list[str]:
    """File name per route, in order; repeated names get a ``-2``, ``-3`` suffix."""

    names: list[str] = []
    taken: set[str] = set()
    for route in routes:
        name = generate_file_name(route)
        stem = name[: -len(".md")]
        counter = 1
        while name in taken:
            counter += 1
            name = f"{stem}-{counter}.md"
        taken.add(name)
        names.append(name)
    return names


def _path_parameters(path: str) -> list[RouteParameter]:
    try:
        keys = compile_pattern(path).keys
    except PatternError as exc:
        LOGGER.warning("docs_pattern_fallback", path=path, error=str(exc))
        return [
            RouteParameter(name=name, location="path", required=True, description=f"Path parameter {name}")
            for name in _COLON_PARAM.findall(path)
        ]
    params: list[RouteParameter] = []
    for key in keys:
        if key.kind == "wildcard":
            description = f"Wildcard segment {key.name}"
        else:
            description = f"Path parameter {key.name}" + (" (optional)" if key.optional else "")
        params.append(RouteParameter(name=key.name, location="path", required=not key.optional, description=description))
    return params


def route_parameters(route: MergedRouteDescriptor) -> list[RouteParameter]:
    """Path keys from the pattern followed by variables referenced in the response template."""

    params = _path_parameters(route.path)
    seen = {(param.location, param.name) for param in params}
    sources = [route.response, (route.sqlite_query or {}).get("params")]
    for variable in extract_variables(sources):
        if variable.segment == "params":
            location = "path"
        elif variable.segment in _LOCATIONS:
            location = variable.segment
        else:
            location = "template"
        if (location, variable.name) in seen:
            continue
        seen.add((location, variable.name))
        label = _LOCATION_LABELS.get(variable.segment, variable.segment)
        params.append(
            RouteParameter(
                name=variable.name,
                location=location,
                description=f"Template variable {variable.name}" if location == "template" else f"Referenced {label} value {variable.name}",
            )
        )
    return params


def example_value(field_name: str) -> Any:
    lowered = field_name.lower()
    if "email" in lowered:
        return "user@example.com"
    if "id" in lowered:
        return 1
    if "name" in lowered:
        return "Example name"
    if "phone" in lowered:
        return "+1-555-0100"
    if "age" in lowered:
        return 25
    if "price" in lowered:
        return 99.99
    if "count" in lowered:
        return 10
    if "date" in lowered or "time" in lowered:
        return "2024-01-01T00:00:00Z"
    if "url" in lowered:
        return "https://example.com"
    if "description" in lowered:
        return "Example description"
    return "example"


def request_example(route: MergedRouteDescriptor) -> dict[str, Any] | None:
    """Example JSON body for write methods, built from ``body.*`` references."""

    if route.method not in BODY_METHODS:
        return None
    example: dict[str, Any] = {}
    for text in _strings(route.response):
        for field_path in _BODY_TOKEN.findall(text):
            field_name = field_path.split(".", 1)[0]
            example.setdefault(field_name, example_value(field_name))
    return example or None


def response_example(template: Any) -> Any:
    if isinstance(template, str):
        return _TOKEN.sub(lambda found: str(example_value(found.group(1).split(".")[-1])), template)
    if isinstance(template, list):
        return [response_example(item) for item in template]
    if isinstance(template, dict):
        return {key: response_example(value) for key, value in template.items()}
    return template


def _strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [text for item in value for text in _strings(item)]
    if isinstance(value, dict):
        return [text for item in value.values() for text in _strings(item)]
    return []


def _json_block(value: Any) -> list[str]:
    return ["```json", json.dumps(value, ensure_ascii=False, indent=2), "```"]


def _params_table(params: list[RouteParameter]) -> list[str]:
    lines = ["| Name | Type | Required | Description |", "| --- | --- | --- | --- |"]
    for param in params:
        required = "yes" if param.required else "no"
        lines.append(f"| {param.name} | {param.data_type} | {required} | {param.description} |")
    return lines


def render_route_markdown(route: MergedRouteDescriptor, base_url: str = "") -> str:
    full_path = full_path_for(route.path, base_url)
    lines: list[str] = []

    lines.append(f"# {route.name or route.path}")
    lines.append("")
    if route.description:
        lines.append(route.description)
        lines.append("")

    lines.append("## Overview")
    lines.append("")
    lines.append(f"- **Method**: `{route.method}`")
    lines.append(f"- **URL**: `{full_path}`")
    lines.append(f"- **Status**: `{route.status_code}`")
    if route.delay > 0:
        lines.append(f"- **Delay**: {route.delay}ms")
    if route.data_source_type:
        lines.append(f"- **Data source**: `{route.data_source_type}` ({route.response_file})")
    elif route.is_blob:
        lines.append(f"- **Download**: `{route.response_file}`")
    lines.append("")

    params = route_parameters(route)
    for location, title in _LOCATIONS.items():
        if location == "body" and route.method not in BODY_METHODS:
            continue
        selected = [param for param in params if param.location == location]
        if not selected:
            continue
        lines.append(f"## {title}")
        lines.append("")
        lines.extend(_params_table(selected))
        lines.append("")

    body_example = request_example(route)
    if body_example:
        lines.append("## Request example")
        lines.append("")
        lines.extend(_json_block(body_example))
        lines.append("")

    lines.append("## Response example")
    lines.append("")
    if route.is_blob:
        content_type = route.content_type or "application/octet-stream"
        lines.append(f"Binary download `{route.file_name or route.response_file}` served as `{content_type}`.")
    elif route.data_source_type:
        lines.append(f"Rows loaded from `{route.response_file}` at request time.")
    else:
        lines.extend(_json_block(response_example(route.response)))
    lines.append("")

    if route.headers:
        lines.append("## Response headers")
        lines.append("")
        for key, value in sorted(route.headers.items()):
            lines.append(f"- **{key}**: {value}")
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def render_index_markdown(resolved: ResolvedConfig) -> str:
    lines: list[str] = []
    lines.append("# API Documentation")
    lines.append("")
    if resolved.base_url:
        lines.append(f"Base URL: `{resolved.base_url}`")
        lines.append("")
    lines.append(f"Routes: {len(resolved.routes)}")
    lines.append("")
    lines.append("| Method | Path | Description |")
    lines.append("| --- | --- | --- |")
    for route, file_name in zip(resolved.routes, route_file_names(resolved.routes)):
        full_path = full_path_for(route.path, resolved.base_url)
        title = route.description or route.name or ""
        lines.append(f"| {route.method} | [`{full_path}`]({file_name}) | {title} |")
    return "\n".join(lines) + "\n"


def _write_if_changed(path: Path, content: str) -> bool:
    if path.exists() and path.read_text(encoding="utf-8") == content:
        LOGGER.debug("docs_file_unchanged", file=path.name)
        return False
    path.write_text(content, encoding="utf-8")
    return True


def generate_docs(resolved: ResolvedConfig, output_dir: Path) -> list[Path]:
    """Write the index and one page per route; returns every documentation path."""

    output_dir.mkdir(parents=True, exist_ok=True)
    paths: list[Path] = []
    written = 0
    for route, file_name in zip(resolved.routes, route_file_names(resolved.routes)):
        target = output_dir / file_name
        written += _write_if_changed(target, render_route_markdown(route, resolved.base_url))
        paths.append(target)

    index = output_dir / INDEX_FILENAME
    written += _write_if_changed(index, render_index_markdown(resolved))
    paths.append(index)

    LOGGER.info("docs_generated", output_dir=str(output_dir), files=len(paths), written=written)
    return paths
