"""CLI entrypoint for validating and scaffolding mock configuration."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import structlog
import typer

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parents[1]))
    __package__ = "mockfly_config"

from .errors import ConfigError
from .loader import load_config
from .scaffold import CONFIG_FILENAME, write_scaffold

app = typer.Typer(help="Validate mock server configuration and inspect resolved routes.")

DEFAULT_CONFIG = Path(CONFIG_FILENAME)


def _configure_logging(log_level: str) -> None:
    level = getattr(logging, log_level.upper(), logging.WARNING)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


@app.command()
def validate(
    config: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to the mock configuration file."),
    show_json: bool = typer.Option(False, "--json", help="Print the resolved routes as JSON."),
    log_level: str = typer.Option("warning", help="Log level for diagnostics written to stderr."),
) -> None:
    """Load the configuration, apply route defaults and print the resolved routes."""

    _configure_logging(log_level)
    try:
        resolved = load_config(config)
    except ConfigError as exc:
        typer.secho(f"Invalid configuration: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    if show_json:
        payload = [route.as_serializable() for route in resolved.routes]
        typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    typer.secho(f"Configuration OK -> {resolved.source}", fg=typer.colors.GREEN)
    for route in resolved.routes:
        line = f"  {route.method:<6} {route.path}  status={route.status_code} delay={route.delay}ms"
        if route.description:
            line += f"  # {route.description}"
        typer.echo(line)


@app.command()
def init(
    directory: Path = typer.Option(Path("."), "--dir", "-d", help="Target directory for the sample project."),
) -> None:
    """Write a sample configuration and data directory."""

    directory.mkdir(parents=True, exist_ok=True)
    created = write_scaffold(directory)
    if not created:
        typer.secho("Nothing to do, sample files already exist", fg=typer.colors.YELLOW)
        return
    for path in created:
        typer.secho(f"Created -> {path}", fg=typer.colors.GREEN)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
