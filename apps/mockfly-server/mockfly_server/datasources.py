"""Data-source providers that turn CSV/SQLite files into JSON payloads."""

from __future__ import annotations

import csv
import importlib
import re
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable

import structlog

from mockfly_config.models import MergedRouteDescriptor

from .request import MockRequest
from .templating import TemplateContext, render_string

LOGGER = structlog.get_logger("mockfly")

CSV_DEFAULTS: dict[str, Any] = {
    "delimiter": ",",
    "columns": True,
    "skip_empty_lines": True,
    "trim": False,
}

SQLITE_DEFAULTS: dict[str, Any] = {
    "table": "data",
    "limit": 100,
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DataSourceError(RuntimeError):
    """Raised when a provider is missing or fails to load data for a route."""


@runtime_checkable
class DataSourceProvider(Protocol):
    """Loads the payload of routes whose ``responseFileType`` equals :attr:`name`."""

    name: str

    def supported_extensions(self) -> list[str]:
        ...

    def load_data(self, route: MergedRouteDescriptor, request: MockRequest) -> Any:
        ...


def _source_path(route: MergedRouteDescriptor) -> Path:
    if not route.response_file_path:
        raise DataSourceError(f"Route {route.method} {route.path} has no data file")
    return Path(route.response_file_path)


class CsvDataSource:
    """Returns CSV rows, keyed by the header row unless ``csvConfig.columns`` is false."""

    name = "csv"

    def supported_extensions(self) -> list[str]:
        return [".csv"]

    def load_data(self, route: MergedRouteDescriptor, request: MockRequest) -> list[Any]:
        path = _source_path(route)
        options = {**CSV_DEFAULTS, **(route.csv_config or {})}
        delimiter = str(options["delimiter"])
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                if options["columns"]:
                    rows: list[Any] = list(csv.DictReader(handle, delimiter=delimiter))
                else:
                    rows = list(csv.reader(handle, delimiter=delimiter))
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise DataSourceError(f"CSV parsing failed for {path.name}: {exc}") from exc

        if options["trim"]:
            rows = [_trim(row) for row in rows]
        if options["skip_empty_lines"]:
            rows = [row for row in rows if _has_content(row)]
        return rows


def _trim(row: Any) -> Any:
    if isinstance(row, dict):
        return {
            key.strip() if isinstance(key, str) else key: value.strip() if isinstance(value, str) else value
            for key, value in row.items()
        }
    return [value.strip() for value in row]


def _has_content(row: Any) -> bool:
    values: Iterable[Any] = row.values() if isinstance(row, dict) else row
    return any(value not in (None, "") for value in values)


class SqliteDataSource:
    """Runs ``sqliteQuery`` against a database file opened read-only for the request."""

    name = "sqlite"

    def supported_extensions(self) -> list[str]:
        return [".db", ".sqlite", ".sqlite3"]

    def load_data(self, route: MergedRouteDescriptor, request: MockRequest) -> list[dict[str, Any]]:
        path = _source_path(route)
        sql, params = self._build_query({**SQLITE_DEFAULTS, **(route.sqlite_query or {})}, request)
        try:
            with closing(sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True)) as connection:
                connection.row_factory = sqlite3.Row
                rows = connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise DataSourceError(f"SQLite query failed for {path.name}: {exc}") from exc
        return [dict(row) for row in rows]

    @staticmethod
    def _build_query(query_config: dict[str, Any], request: MockRequest) -> tuple[str, list[Any]]:
        if query_config.get("query"):
            context = TemplateContext.from_request(request)
            params = [
                render_string(param, context) if isinstance(param, str) else param
                for param in query_config.get("params") or []
            ]
            return str(query_config["query"]), params

        table = str(query_config["table"])
        if not _IDENTIFIER.match(table):
            raise DataSourceError(f"Invalid table name {table!r}")
        try:
            limit = int(query_config["limit"])
        except (TypeError, ValueError) as exc:
            raise DataSourceError(f"Invalid limit {query_config['limit']!r}") from exc
        sql = f'SELECT * FROM "{table}"'
        if query_config.get("where"):
            sql += f" WHERE {query_config['where']}"
        sql += f" LIMIT {limit}"
        return sql, []


class DataSourceRegistry:
    """Providers keyed by type name, with a secondary index by file extension."""

    def __init__(self) -> None:
        self._providers: dict[str, DataSourceProvider] = {}
        self._extensions: dict[str, str] = {}

    @classmethod
    def with_defaults(cls) -> "DataSourceRegistry":
        registry = cls()
        registry.register(CsvDataSource())
        registry.register(SqliteDataSource())
        return registry

    def register(self, provider: DataSourceProvider) -> None:
        if not isinstance(provider, DataSourceProvider):
            raise TypeError(f"{provider!r} does not implement the DataSourceProvider protocol")
        self._providers[provider.name] = provider
        for ext in provider.supported_extensions():
            normalized = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            self._extensions[normalized] = provider.name
        LOGGER.debug(
            "data_source_registered",
            provider=provider.name,
            extensions=sorted(provider.supported_extensions()),
        )

    def get(self, file_type: str) -> DataSourceProvider:
        provider = self._providers.get(file_type)
        if provider is None:
            raise DataSourceError(f"No data source registered for type {file_type!r}")
        return provider

    def for_extension(self, ext: str) -> DataSourceProvider | None:
        normalized = ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        name = self._extensions.get(normalized)
        return self._providers.get(name) if name else None

    def extension_types(self) -> dict[str, str]:
        return dict(self._extensions)

    def names(self) -> list[str]:
        return list(self._providers)

    def load_data(self, route: MergedRouteDescriptor, request: MockRequest) -> Any:
        if not route.data_source_type:
            raise DataSourceError(f"Route {route.method} {route.path} has no responseFileType")
        return self.get(route.data_source_type).load_data(route, request)


def load_provider(reference: str) -> DataSourceProvider:
    """Import a provider from ``module:attribute``; classes are instantiated."""

    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Provider reference {reference!r} must use module:attribute format")
    module = importlib.import_module(module_name)
    target = getattr(module, attribute, None)
    if target is None:
        raise AttributeError(f"Provider {attribute} not found in {module_name}")
    return target() if isinstance(target, type) else target
