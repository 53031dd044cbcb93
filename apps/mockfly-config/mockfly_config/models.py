"""Pydantic models describing mock server configuration."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
ResponseType = Literal["json", "blob"]

# Explicit responseFileType meaning "no data source": the file is inlined as JSON.
NO_DATA_SOURCE = "none"

# Fields that may flow down from the top-level config object into every route.
GLOBAL_DEFAULT_FIELDS: tuple[str, ...] = ("delay", "headers", "statusCode")

# Fields owned by the route entry itself; defaults never touch them.
ROUTE_IDENTITY_FIELDS: tuple[str, ...] = ("path", "method", "description", "name")


def _stringify_headers(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): str(item) for key, item in value.items()}
    return value


class _ConfigModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RouteConfig(_ConfigModel):
    """Single route entry as written in the configuration file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    path: str
    method: HttpMethod = "GET"
    name: str | None = None
    description: str | None = None
    response: Any = None
    response_file: str | None = None
    response_file_path: str | None = None
    response_file_type: str | None = None
    response_type: ResponseType | None = None
    status_code: int | None = None
    delay: int | None = Field(default=None, ge=0)
    headers: dict[str, str] | None = None
    content_type: str | None = None
    file_name: str | None = None
    csv_config: dict[str, Any] | None = None
    sqlite_query: dict[str, Any] | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, value: Any) -> Any:
        return _stringify_headers(value)

    def explicit_fields(self) -> dict[str, Any]:
        """Return the fields literally present on the entry, keyed by their config name."""

        return self.model_dump(by_alias=True, exclude_unset=True)


class RouteDefaultGroup(_ConfigModel):
    """Named bundle of defaults applied to routes selected by include/exclude patterns."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    description: str | None = None
    config: dict[str, Any]
    includes: list[str] | None = None
    excludes: list[str] | None = None


class GlobalConfig(_ConfigModel):
    """Top-level configuration consumed by the mock runtime."""

    port: int = 3000
    host: str = "127.0.0.1"
    base_url: str = ""
    delay: int = Field(default=0, ge=0)
    cors: bool = True
    mock_dir: str = "./data"
    headers: dict[str, str] | None = None
    status_code: int | None = None
    route_defaults: list[RouteDefaultGroup] = Field(default_factory=list)
    routes: list[RouteConfig] = Field(default_factory=list)

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, value: Any) -> Any:
        return _stringify_headers(value)

    def global_defaults(self) -> dict[str, Any]:
        """Return the subset of top-level fields that flow down into routes."""

        dumped = self.model_dump(by_alias=True, exclude_unset=True)
        return {key: dumped[key] for key in GLOBAL_DEFAULT_FIELDS if dumped.get(key) is not None}


class MergedRouteDescriptor(_ConfigModel):
    """Resolved, read-only configuration for one mock endpoint."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    path: str
    method: HttpMethod = "GET"
    name: str | None = None
    description: str | None = None
    response: Any = None
    response_file: str | None = None
    response_file_path: str | None = None
    response_file_type: str | None = None
    response_type: ResponseType = "json"
    status_code: int = 200
    delay: int = Field(default=0, ge=0)
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: str | None = None
    file_name: str | None = None
    csv_config: dict[str, Any] | None = None
    sqlite_query: dict[str, Any] | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def coerce_headers(cls, value: Any) -> Any:
        return _stringify_headers(value)

    @property
    def is_blob(self) -> bool:
        return self.response_type == "blob"

    @property
    def data_source_type(self) -> str | None:
        """Provider type serving this route, or None for inline and blob routes."""

        if self.is_blob or self.response_file_type in (None, "", NO_DATA_SOURCE):
            return None
        return self.response_file_type

    @property
    def extras(self) -> dict[str, Any]:
        """Unrecognised keys carried through for custom data-source providers."""

        return dict(self.model_extra or {})

    def as_serializable(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
