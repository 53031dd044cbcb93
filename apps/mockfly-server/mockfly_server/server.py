"""HTTP runtime serving the active route set of a resolved configuration."""

from __future__ import annotations

import socketserver
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable

import structlog

from mockfly_config.errors import ConfigError
from mockfly_config.loader import ResolvedConfig

from .datasources import DataSourceRegistry
from .dispatcher import FileStream, MockResponse, ResponseDispatcher
from .registrar import ActiveRouteSet, register
from .request import MockRequest

LOGGER = structlog.get_logger("mockfly")

HEALTH_PATH = "/health"
DEFAULT_DOCS_PATH = "/api/docs"
CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization"


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def docs_path_for(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/docs" if base_url else DEFAULT_DOCS_PATH


@dataclass(frozen=True)
class ServerContext:
    """Everything one request needs; replaced as a whole on reload."""

    resolved: ResolvedConfig
    routes: ActiveRouteSet
    dispatcher: ResponseDispatcher
    data_sources: DataSourceRegistry
    docs_path: str

    @classmethod
    def build(cls, resolved: ResolvedConfig, data_sources: DataSourceRegistry) -> "ServerContext":
        return cls(
            resolved=resolved,
            routes=register(resolved.routes, resolved.base_url),
            dispatcher=ResponseDispatcher(data_sources, resolved.mock_root),
            data_sources=data_sources,
            docs_path=docs_path_for(resolved.base_url),
        )

    @property
    def cors(self) -> bool:
        return self.resolved.config.cors

    def route_index(self, host: str, port: int) -> dict[str, Any]:
        return {
            "title": "Mock API",
            "timestamp": _utc_timestamp(),
            "routes": [
                {
                    "method": binding.method,
                    "path": binding.full_path,
                    "url": f"http://{host}:{port}{binding.full_path}",
                    "description": binding.route.description,
                }
                for binding in self.routes.bindings()
            ],
        }


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


class MockServerRunner:
    """Runs the HTTP listener and swaps its :class:`ServerContext` on reload."""

    def __init__(self, context: ServerContext, *, host: str | None = None, port: int | None = None) -> None:
        self._context = context
        self._host = host or context.resolved.config.host
        self._port = context.resolved.config.port if port is None else port
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._swap_lock = threading.Lock()
        self._logger = LOGGER.bind(component="server")

    @property
    def context(self) -> ServerContext:
        return self._context

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        if self._httpd is not None:
            return self._httpd.server_address[1]
        return self._port

    def start(self) -> None:
        self._logger.info("server_starting", host=self._host, port=self._port)
        httpd = ThreadedHTTPServer((self._host, self._port), self._build_handler_factory())
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        self._ready.set()
        self._logger = self._logger.bind(host=httpd.server_address[0], port=httpd.server_address[1])
        self._logger.info("server_started", routes=len(self._context.routes))
        for line in _server_console_summary(self._context, self._host, self.port):
            print(line)

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def reload(self, load: Callable[[], ResolvedConfig]) -> bool:
        """Load a new configuration and swap it in.

        On :class:`ConfigError` the running context is left untouched and
        ``False`` is returned. The listening port never changes.
        """

        try:
            resolved = load()
            context = ServerContext.build(resolved, self._context.data_sources)
        except ConfigError as exc:
            self._logger.error("config_reload_failed", error=str(exc))
            return False

        if resolved.config.port != self._context.resolved.config.port:
            self._logger.warning(
                "config_port_change_ignored",
                configured=resolved.config.port,
                listening=self.port,
            )
        with self._swap_lock:
            self._context = context
        self._logger.info("config_reloaded", routes=len(context.routes))
        for line in _server_console_summary(context, self._host, self.port):
            print(line)
        return True

    def __enter__(self) -> "MockServerRunner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        runner = self
        handler_logger = LOGGER.bind(component="handler")

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                handler_logger.debug(
                    "http_trace",
                    client_ip=self.client_address[0],
                    message=format % args,
                )

            def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._handle()

            def do_POST(self) -> None:  # noqa: N802
                self._handle()

            def do_PUT(self) -> None:  # noqa: N802
                self._handle()

            def do_DELETE(self) -> None:  # noqa: N802
                self._handle()

            def do_PATCH(self) -> None:  # noqa: N802
                self._handle()

            def do_HEAD(self) -> None:  # noqa: N802
                self._handle(head_only=True)

            def do_OPTIONS(self) -> None:  # noqa: N802
                self._handle()

            def _handle(self, *, head_only: bool = False) -> None:
                context = runner.context
                started = time.perf_counter()
                request = MockRequest(
                    method=self.command,
                    url=self.path,
                    headers={key: value for key, value in self.headers.items()},
                    body=self.rfile.read(int(self.headers.get("Content-Length", 0) or 0)),
                )
                request_logger = handler_logger.bind(method=request.method, path=request.path)
                request_logger.info("request_received", content_length=len(request.body))
                try:
                    response = self._route(context, request, request_logger)
                except Exception:
                    request_logger.exception("request_failed")
                    response = MockResponse.error(500, "Internal Server Error", "Unexpected mock failure")

                if context.cors:
                    response.headers.update(self._cors_headers(request))
                status = self._write(response, request_logger, head_only=head_only)
                request_logger.info(
                    "request_served",
                    status=status,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )

            def _route(self, context: ServerContext, request: MockRequest, logger: Any) -> MockResponse:
                if request.method == "OPTIONS" and context.cors:
                    return MockResponse(status=HTTPStatus.NO_CONTENT, headers={"Content-Length": "0"})
                if request.method in {"GET", "HEAD"}:
                    if request.path == HEALTH_PATH:
                        return MockResponse.json(200, {"status": "ok", "timestamp": _utc_timestamp()})
                    if request.path == context.docs_path:
                        return MockResponse.json(200, context.route_index(runner.host, runner.port))

                resolved = context.routes.resolve(request.method, request.path)
                if resolved is None:
                    logger.warning("request_unmatched")
                    return MockResponse.error(
                        404,
                        "Not Found",
                        f"Route {request.method} {request.path} not found",
                    )
                binding, params = resolved
                logger.debug("request_matched", route=binding.key, params=params)
                return context.dispatcher.handle(binding.route, request.with_params(params))

            def _cors_headers(self, request: MockRequest) -> dict[str, str]:
                return {
                    "Access-Control-Allow-Origin": request.headers.get("origin", "*"),
                    "Access-Control-Allow-Methods": CORS_ALLOW_METHODS,
                    "Access-Control-Allow-Headers": request.headers.get(
                        "access-control-request-headers", CORS_ALLOW_HEADERS
                    ),
                }

            def _send_head(self, status: int, headers: dict[str, str]) -> None:
                self.send_response(status)
                for key, value in headers.items():
                    self.send_header(key, value)
                self.end_headers()

            def _write(self, response: MockResponse, logger: Any, *, head_only: bool) -> int:
                if isinstance(response.body, FileStream):
                    return self._write_stream(response, response.body, logger, head_only=head_only)
                headers = dict(response.headers)
                headers.setdefault("Content-Length", str(len(response.body)))
                self._send_head(response.status, headers)
                if not head_only and response.body:
                    self.wfile.write(response.body)
                return response.status

            def _write_stream(self, response: MockResponse, stream: FileStream, logger: Any, *, head_only: bool) -> int:
                try:
                    chunks = iter(stream)
                    try:
                        first = next(chunks, b"")
                    except OSError as exc:
                        logger.error("file_stream_failed", error=str(exc))
                        failure = MockResponse.error(500, "Internal Server Error", "File stream error")
                        return self._write(failure, logger, head_only=head_only)

                    self._send_head(response.status, response.headers)
                    if head_only:
                        return response.status
                    try:
                        self.wfile.write(first)
                        for chunk in chunks:
                            self.wfile.write(chunk)
                    except ConnectionError:
                        logger.warning("client_disconnected")
                    except OSError as exc:
                        logger.error("file_stream_failed", error=str(exc), headers_sent=True)
                    return response.status
                finally:
                    stream.close()

        return Handler


def _server_console_summary(context: ServerContext, host: str, port: int) -> list[str]:
    header = f"[mockfly] listening on http://{host}:{port}"
    route_lines = ["    routes:"]
    bindings = context.routes.bindings()
    if bindings:
        for binding in bindings:
            line = f"      - {binding.method:<6} {binding.full_path}"
            if binding.route.description:
                line += f"  ({binding.route.description})"
            route_lines.append(line)
    else:
        route_lines.append("      (no routes configured)")
    route_lines.append(f"    health: {HEALTH_PATH}  docs: {context.docs_path}")
    return [header, *route_lines]
