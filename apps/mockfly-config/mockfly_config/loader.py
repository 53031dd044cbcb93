"""Configuration loading: parse, validate, resolve response files, merge."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import structlog
import yaml
from pydantic import ValidationError

from .errors import ConfigError, ConfigFileError
from .filetypes import BLOB_EXTENSIONS, DATA_FILE_TYPES, content_type_for
from .merge import resolve_routes, validate_raw_config
from .models import NO_DATA_SOURCE, GlobalConfig, MergedRouteDescriptor, RouteConfig

LOGGER = structlog.get_logger("mockfly")

SUPPORTED_SUFFIXES = {".json", ".yaml", ".yml"}
YAML_SUFFIXES = {".yaml", ".yml"}


@dataclass(frozen=True)
class ResolvedConfig:
    """Validated configuration plus the resolved route descriptors, in declaration order."""

    config: GlobalConfig
    routes: tuple[MergedRouteDescriptor, ...]
    base_dir: Path
    source: Path | None = None

    @property
    def mock_root(self) -> Path:
        return (self.base_dir / self.config.mock_dir).resolve()

    @property
    def base_url(self) -> str:
        return self.config.base_url


def _parse_document(path: Path, text: str) -> Any:
    if path.suffix.lower() in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML configuration document."""

    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ConfigFileError(f"Unsupported configuration format {path.suffix!r} for {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigFileError(f"Cannot read configuration file {path}: {exc}") from exc
    try:
        payload = _parse_document(path, text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigFileError(f"Configuration file {path} is not valid: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return payload


def parse_config(raw: Any) -> GlobalConfig:
    """Validate a raw configuration mapping into a :class:`GlobalConfig`."""

    validate_raw_config(raw)
    try:
        return GlobalConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def _with_updates(route: RouteConfig, updates: Mapping[str, Any], drop: tuple[str, ...] = ()) -> RouteConfig:
    data = route.explicit_fields()
    data.update(updates)
    for key in drop:
        data.pop(key, None)
    return RouteConfig.model_validate(data)


def _resolve_route_file(
    route: RouteConfig,
    mock_root: Path,
    extension_types: Mapping[str, str],
) -> RouteConfig:
    if not route.response_file:
        return route

    file_path = (mock_root / route.response_file).resolve()
    ext = file_path.suffix.lower()

    # Blob files are checked when requested so a missing file becomes a 404.
    if route.response_type == "blob" or ext in BLOB_EXTENSIONS:
        return _with_updates(
            route,
            {
                "responseType": "blob",
                "responseFilePath": str(file_path),
                "contentType": route.content_type or content_type_for(ext),
            },
        )

    if not file_path.is_file():
        raise ConfigFileError(f"Response file {route.response_file} for {route.path} does not exist ({file_path})")

    if route.response_file_type == NO_DATA_SOURCE:
        file_type = None
    else:
        file_type = route.response_file_type or extension_types.get(ext)
    if file_type:
        return _with_updates(
            route,
            {"responseFileType": file_type, "responseFilePath": str(file_path)},
        )

    try:
        payload = _parse_document(file_path, file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigFileError(f"Response file {route.response_file} for {route.path} is not valid JSON: {exc}") from exc
    return _with_updates(route, {"response": payload}, drop=("responseFile",))


def resolve_config(
    raw: Any,
    base_dir: Path,
    *,
    source: Path | None = None,
    extension_types: Mapping[str, str] | None = None,
) -> ResolvedConfig:
    """Validate ``raw``, resolve file references relative to ``base_dir`` and merge every route."""

    config = parse_config(raw)
    types = dict(DATA_FILE_TYPES)
    types.update({key.lower(): value for key, value in (extension_types or {}).items()})

    mock_root = (base_dir / config.mock_dir).resolve()
    routes = [_resolve_route_file(route, mock_root, types) for route in config.routes]
    config = config.model_copy(update={"routes": routes})

    descriptors = tuple(resolve_routes(config))
    LOGGER.debug(
        "config_resolved",
        source=str(source) if source else None,
        routes=len(descriptors),
        route_defaults=len(config.route_defaults),
    )
    return ResolvedConfig(config=config, routes=descriptors, base_dir=base_dir, source=source)


def load_config(path: Path, *, extension_types: Mapping[str, str] | None = None) -> ResolvedConfig:
    """Load, validate and resolve the configuration file at ``path``.

    Raises :class:`ConfigError` on any failure; nothing is partially applied.
    """

    path = path.resolve()
    raw = read_config_file(path)
    return resolve_config(raw, path.parent, source=path, extension_types=extension_types)
