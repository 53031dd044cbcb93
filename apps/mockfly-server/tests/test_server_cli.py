from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mockfly_server.main import app
from mockfly_server.output_config import ENV_VAR_NAME, get_log_format

runner = CliRunner()


def _write_config(tmp_path: Path) -> Path:
    config = tmp_path / "mock.config.json"
    config.write_text(
        json.dumps(
            {
                "baseUrl": "/api",
                "routes": [
                    {"path": "/users", "description": "List users", "response": []},
                    {"path": "/users/:id", "response": {"id": "{{params.id}}"}},
                ],
            }
        ),
        encoding="utf-8",
    )
    return config


def test_routes_command_lists_full_paths(tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    result = runner.invoke(app, ["routes", "--config", str(config), "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert [entry["key"] for entry in payload] == ["get:/api/users", "get:/api/users/:id"]


def test_docs_command_writes_markdown(tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    output = tmp_path / "docs"

    result = runner.invoke(app, ["docs", "--config", str(config), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert (output / "index.md").exists()
    assert (output / "get-users-id.md").exists()


def test_start_rejects_invalid_configuration(tmp_path: Path) -> None:
    config = tmp_path / "mock.config.json"
    config.write_text(json.dumps({"routes": [{"path": "/users"}]}), encoding="utf-8")

    result = runner.invoke(app, ["start", "--config", str(config), "--no-watch", "--log-format", "plain"])

    assert result.exit_code == 1
    assert "missing response source" in result.output


def test_start_rejects_unknown_plugin(tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    result = runner.invoke(
        app,
        ["start", "--config", str(config), "--plugin", "mockfly_server.datasources:Missing", "--log-format", "plain"],
    )

    assert result.exit_code == 2


@pytest.mark.parametrize(
    "cli_value, env_value, expected",
    [
        ("json", "plain", "json"),
        (None, "plain", "plain"),
        (None, "rich", "console"),
        (None, "bogus", "console"),
        (None, None, "console"),
    ],
)
def test_log_format_priority(
    monkeypatch: pytest.MonkeyPatch,
    cli_value: str | None,
    env_value: str | None,
    expected: str,
) -> None:
    if env_value is None:
        monkeypatch.delenv(ENV_VAR_NAME, raising=False)
    else:
        monkeypatch.setenv(ENV_VAR_NAME, env_value)

    assert get_log_format(cli_value) == expected


def test_routes_and_docs_accept_plugins(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "feed_plugin.py").write_text(
        "class FeedDataSource:\n"
        "    name = 'feed'\n"
        "\n"
        "    def supported_extensions(self):\n"
        "        return ['.xml']\n"
        "\n"
        "    def load_data(self, route, request):\n"
        "        return []\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "feed.xml").write_text("<feed/>", encoding="utf-8")
    config = tmp_path / "mock.config.json"
    config.write_text(json.dumps({"routes": [{"path": "/feed", "responseFile": "feed.xml"}]}), encoding="utf-8")
    plugin = ["--plugin", "feed_plugin:FeedDataSource"]
    output = tmp_path / "docs"

    without_plugin = runner.invoke(app, ["routes", "--config", str(config)])
    listed = runner.invoke(app, ["routes", "--config", str(config), "--json", *plugin])
    documented = runner.invoke(app, ["docs", "--config", str(config), "--output", str(output), *plugin])

    assert without_plugin.exit_code == 1
    assert listed.exit_code == 0, listed.output
    assert [entry["key"] for entry in json.loads(listed.output)] == ["get:/feed"]
    assert documented.exit_code == 0, documented.output
    assert "**Data source**: `feed`" in (output / "get-feed.md").read_text(encoding="utf-8")
