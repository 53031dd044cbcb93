from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any

import pytest

from mockfly_config.models import MergedRouteDescriptor
from mockfly_server.datasources import (
    CsvDataSource,
    DataSourceError,
    DataSourceRegistry,
    SqliteDataSource,
    load_provider,
)
from mockfly_server.request import MockRequest


def _request(params: dict[str, str] | None = None) -> MockRequest:
    return MockRequest(method="GET", url="/", headers={}, params=params or {})


def _route(path: Path, file_type: str, **extra: Any) -> MergedRouteDescriptor:
    return MergedRouteDescriptor(
        path="/data",
        response_file=path.name,
        response_file_path=str(path),
        response_file_type=file_type,
        **extra,
    )


def _create_db(path: Path) -> Path:
    with closing(sqlite3.connect(path)) as connection:
        connection.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, active INTEGER)")
        connection.executemany(
            "INSERT INTO users (id, name, active) VALUES (?, ?, ?)",
            [(1, "Ada", 1), (2, "Grace", 1), (3, "Alan", 0)],
        )
        connection.commit()
    return path


def test_csv_rows_are_keyed_by_header(tmp_path: Path) -> None:
    csv_file = tmp_path / "products.csv"
    csv_file.write_text("id,name\n1,Keyboard\n,\n2,Mouse\n", encoding="utf-8")

    rows = CsvDataSource().load_data(_route(csv_file, "csv"), _request())

    assert rows == [{"id": "1", "name": "Keyboard"}, {"id": "2", "name": "Mouse"}]


def test_csv_options(tmp_path: Path) -> None:
    csv_file = tmp_path / "raw.csv"
    csv_file.write_text("a; b\n 1 ; 2 \n", encoding="utf-8")

    rows = CsvDataSource().load_data(
        _route(csv_file, "csv", csv_config={"delimiter": ";", "columns": False, "trim": True}),
        _request(),
    )

    assert rows == [["a", "b"], ["1", "2"]]


def test_sqlite_table_query(tmp_path: Path) -> None:
    db = _create_db(tmp_path / "shop.db")

    rows = SqliteDataSource().load_data(
        _route(db, "sqlite", sqlite_query={"table": "users", "where": "active = 1", "limit": 1}),
        _request(),
    )

    assert rows == [{"id": 1, "name": "Ada", "active": 1}]


def test_sqlite_parameters_are_templated(tmp_path: Path) -> None:
    db = _create_db(tmp_path / "shop.db")
    route = _route(
        db,
        "sqlite",
        sqlite_query={"query": "SELECT name FROM users WHERE id = ?", "params": ["{{params.id}}"]},
    )

    rows = SqliteDataSource().load_data(route, _request({"id": "2"}))

    assert rows == [{"name": "Grace"}]


def test_sqlite_rejects_invalid_table_names(tmp_path: Path) -> None:
    db = _create_db(tmp_path / "shop.db")

    with pytest.raises(DataSourceError, match="Invalid table name"):
        SqliteDataSource().load_data(_route(db, "sqlite", sqlite_query={"table": "users; DROP"}), _request())


def test_sqlite_errors_are_wrapped(tmp_path: Path) -> None:
    db = _create_db(tmp_path / "shop.db")

    with pytest.raises(DataSourceError, match="SQLite query failed"):
        SqliteDataSource().load_data(_route(db, "sqlite", sqlite_query={"table": "missing"}), _request())


def test_registry_indexes_providers_by_type_and_extension() -> None:
    registry = DataSourceRegistry.with_defaults()

    assert registry.names() == ["csv", "sqlite"]
    assert registry.extension_types()[".db"] == "sqlite"
    assert isinstance(registry.for_extension("CSV"), CsvDataSource)
    assert registry.for_extension(".xml") is None


def test_unknown_provider_type_is_an_error(tmp_path: Path) -> None:
    registry = DataSourceRegistry.with_defaults()

    with pytest.raises(DataSourceError, match="No data source registered"):
        registry.load_data(_route(tmp_path / "feed.xml", "xml"), _request())


class _UpperProvider:
    name = "upper"

    def supported_extensions(self) -> list[str]:
        return ["txt2"]

    def load_data(self, route: MergedRouteDescriptor, request: MockRequest) -> Any:
        return Path(route.response_file_path).read_text(encoding="utf-8").upper()


def test_custom_provider_registration(tmp_path: Path) -> None:
    source = tmp_path / "greeting.txt2"
    source.write_text("hello", encoding="utf-8")
    registry = DataSourceRegistry()
    registry.register(_UpperProvider())

    assert registry.extension_types() == {".txt2": "upper"}
    assert registry.load_data(_route(source, "upper"), _request()) == "HELLO"


def test_register_rejects_objects_without_the_protocol() -> None:
    with pytest.raises(TypeError):
        DataSourceRegistry().register(object())  # type: ignore[arg-type]


def test_load_provider_instantiates_classes() -> None:
    provider = load_provider("mockfly_server.datasources:CsvDataSource")

    assert isinstance(provider, CsvDataSource)
    with pytest.raises(ValueError):
        load_provider("mockfly_server.datasources")
    with pytest.raises(AttributeError):
        load_provider("mockfly_server.datasources:Missing")
