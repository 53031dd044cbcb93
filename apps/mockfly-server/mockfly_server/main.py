"""CLI entrypoint for the mockfly server."""

from __future__ import annotations

import json
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Optional

import typer

if __package__ in {None, ""}:
    current_file = Path(__file__).resolve()
    package_root = current_file.parents[1]
    apps_dir = current_file.parents[2]
    for candidate in (package_root, apps_dir / "mockfly-config"):
        candidate_str = str(candidate)
        if candidate_str not in sys.path and candidate.exists():
            sys.path.insert(0, candidate_str)
    __package__ = "mockfly_server"

from mockfly_config.errors import ConfigError
from mockfly_config.loader import ResolvedConfig, load_config
from mockfly_config.scaffold import CONFIG_FILENAME

from .datasources import DataSourceRegistry, load_provider
from .docs import generate_docs
from .logging_utils import configure_logging
from .output_config import get_log_format
from .registrar import register
from .server import MockServerRunner, ServerContext
from .watcher import ConfigWatcher

app = typer.Typer(help="Serve mock HTTP APIs described by a JSON/YAML configuration file.")

DEFAULT_CONFIG = Path(CONFIG_FILENAME)
DEFAULT_DOCS_DIR = Path("docs")


def _plugin_option() -> Any:
    return typer.Option([], "--plugin", help="Extra data source provider as module:attribute (repeatable).")


def _build_registry(plugins: list[str]) -> DataSourceRegistry:
    registry = DataSourceRegistry.with_defaults()
    for reference in plugins:
        try:
            provider = load_provider(reference)
            registry.register(provider)
        except (ImportError, AttributeError, ValueError, TypeError) as exc:
            raise typer.BadParameter(f"Cannot load data source plugin {reference}: {exc}") from exc
    return registry


def _load_or_exit(config: Path, registry: DataSourceRegistry) -> ResolvedConfig:
    try:
        return load_config(config, extension_types=registry.extension_types())
    except ConfigError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def start(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to the mock configuration file."),
    host: Optional[str] = typer.Option(None, help="Override the configured host."),
    port: Optional[int] = typer.Option(None, "--port", "-p", min=0, max=65535, help="Override the configured port."),
    watch: bool = typer.Option(True, "--watch/--no-watch", help="Reload when configuration files change."),
    docs_dir: Optional[Path] = typer.Option(None, help="Regenerate Markdown docs into this directory on every load."),
    plugin: list[str] = _plugin_option(),
    log_level: str = typer.Option("info", help="Log level (debug, info, warning, error)."),
    log_format: Optional[str] = typer.Option(
        None,
        help="Log format: console, plain or json (defaults to CONSOLE_OUTPUT_FORMAT or console).",
    ),
) -> None:
    """Start the mock server and block until interrupted."""

    logger = configure_logging(log_level, get_log_format(log_format))
    registry = _build_registry(plugin)
    config = config.resolve()

    def load() -> ResolvedConfig:
        return load_config(config, extension_types=registry.extension_types())

    resolved = _load_or_exit(config, registry)
    try:
        context = ServerContext.build(resolved, registry)
    except ConfigError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    if docs_dir:
        generate_docs(resolved, docs_dir)

    runner = MockServerRunner(context, host=host, port=port)
    try:
        runner.start()
    except OSError as exc:
        typer.secho(f"Cannot listen on {runner.host}:{runner.port}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    watcher: ConfigWatcher | None = None
    if watch:

        def on_change(_changed: set[Path]) -> None:
            if runner.reload(load) and docs_dir:
                generate_docs(runner.context.resolved, docs_dir)

        watcher = ConfigWatcher(config, on_change, data_dirs=[resolved.mock_root])
        watcher.start()

    stop_requested = threading.Event()

    def _request_stop(signum: int, _frame: object) -> None:
        logger.info("shutdown_requested", signal=signal.Signals(signum).name)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    try:
        while not stop_requested.wait(0.5):
            pass
    finally:
        if watcher:
            watcher.stop()
        runner.stop()


@app.command()
def routes(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to the mock configuration file."),
    show_json: bool = typer.Option(False, "--json", help="Print the active routes as JSON."),
    plugin: list[str] = _plugin_option(),
    log_level: str = typer.Option("warning", help="Log level (debug, info, warning, error)."),
) -> None:
    """Print the routes the server would bind, with the base URL applied."""

    configure_logging(log_level, get_log_format(None))
    resolved = _load_or_exit(config, _build_registry(plugin))
    try:
        active = register(resolved.routes, resolved.base_url)
    except ConfigError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if show_json:
        payload = [
            {"key": binding.key, "method": binding.method, "path": binding.full_path, "description": binding.route.description}
            for binding in active.bindings()
        ]
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    for binding in active.bindings():
        line = f"{binding.method:<6} {binding.full_path}"
        if binding.route.description:
            line += f"  # {binding.route.description}"
        typer.echo(line)
    typer.secho(f"{len(active)} route(s)", fg=typer.colors.GREEN)


@app.command()
def docs(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to the mock configuration file."),
    output: Path = typer.Option(DEFAULT_DOCS_DIR, "--output", "-o", help="Directory for the generated Markdown."),
    plugin: list[str] = _plugin_option(),
    log_level: str = typer.Option("warning", help="Log level (debug, info, warning, error)."),
) -> None:
    """Generate Markdown documentation for every configured route."""

    configure_logging(log_level, get_log_format(None))
    resolved = _load_or_exit(config, _build_registry(plugin))
    written = generate_docs(resolved, output)
    typer.secho(f"Documentation written -> {output} ({len(written)} files)", fg=typer.colors.GREEN)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
