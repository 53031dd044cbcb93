"""Turns a resolved route and an incoming request into a response."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Iterator, Union

import structlog

from mockfly_config.filetypes import content_type_for
from mockfly_config.models import MergedRouteDescriptor

from .datasources import DataSourceError, DataSourceRegistry
from .request import MockRequest
from .templating import UNDEFINED, TemplateContext, render

LOGGER = structlog.get_logger("mockfly")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
STREAM_CHUNK_SIZE = 64 * 1024


class FileStream:
    """Open file read lazily in chunks; the server closes it once the transfer ends."""

    def __init__(self, handle: BinaryIO, size: int, chunk_size: int = STREAM_CHUNK_SIZE) -> None:
        self._handle = handle
        self.size = size
        self._chunk_size = chunk_size

    @classmethod
    def open(cls, path: Path) -> "FileStream":
        handle = path.open("rb")
        try:
            size = path.stat().st_size
        except OSError:
            handle.close()
            raise
        return cls(handle, size)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self._handle.read(self._chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        self._handle.close()


@dataclass
class MockResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Union[bytes, FileStream] = b""

    @classmethod
    def json(cls, status: int, payload: Any, headers: dict[str, str] | None = None) -> "MockResponse":
        merged = dict(headers or {})
        if not any(key.lower() == "content-type" for key in merged):
            merged["Content-Type"] = JSON_CONTENT_TYPE
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        return cls(status=status, headers=merged, body=body)

    @classmethod
    def error(
        cls,
        status: int,
        error: str,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> "MockResponse":
        merged = {key: value for key, value in (headers or {}).items() if key.lower() != "content-type"}
        return cls.json(status, {"error": error, "message": message}, merged)

    @property
    def is_stream(self) -> bool:
        return isinstance(self.body, FileStream)

    def json_body(self) -> Any:
        if isinstance(self.body, FileStream):
            raise TypeError("Streamed responses have no JSON body")
        return json.loads(self.body.decode("utf-8"))


class ResponseDispatcher:
    """Builds the response for one request to one route; never mutates the route."""

    def __init__(self, data_sources: DataSourceRegistry, mock_root: Path) -> None:
        self._data_sources = data_sources
        self._mock_root = mock_root

    def handle(self, route: MergedRouteDescriptor, request: MockRequest) -> MockResponse:
        if route.delay > 0:
            time.sleep(route.delay / 1000)

        headers = dict(route.headers)
        logger = LOGGER.bind(method=route.method, route=route.path)
        try:
            if route.is_blob:
                return self._blob_response(route, headers)
            if route.data_source_type:
                payload = self._data_sources.load_data(route, request)
            else:
                payload = render(route.response, TemplateContext.from_request(request))
            if payload is UNDEFINED:
                payload = None
            return MockResponse.json(route.status_code, payload, headers)
        except DataSourceError as exc:
            logger.error("data_source_failed", file_type=route.data_source_type, error=str(exc))
            return MockResponse.error(500, "Internal Server Error", str(exc), headers)
        except Exception as exc:
            logger.exception("route_handler_failed")
            return MockResponse.error(500, "Internal Server Error", str(exc), headers)

    def resolve_blob_path(self, route: MergedRouteDescriptor) -> Path | None:
        if route.response_file_path:
            return Path(route.response_file_path)
        if route.response_file:
            return (self._mock_root / route.response_file).resolve()
        return None

    def _blob_response(self, route: MergedRouteDescriptor, headers: dict[str, str]) -> MockResponse:
        path = self.resolve_blob_path(route)
        if path is None or not path.is_file():
            LOGGER.warning("blob_not_found", route=route.path, file=route.response_file)
            return MockResponse.error(404, "File Not Found", f"File {route.response_file} not found", headers)

        try:
            stream = FileStream.open(path)
        except OSError as exc:
            LOGGER.error("blob_open_failed", route=route.path, file=str(path), error=str(exc))
            return MockResponse.error(500, "Internal Server Error", "File stream error", headers)

        file_name = route.file_name or path.name
        headers.update(
            {
                "Content-Type": route.content_type or content_type_for(path.suffix),
                "Content-Disposition": f'attachment; filename="{file_name}"',
                "Content-Length": str(stream.size),
            }
        )
        return MockResponse(status=200, headers=headers, body=stream)
