from __future__ import annotations

from pathlib import Path

import pytest

from mockfly_config.loader import resolve_config
from mockfly_config.models import MergedRouteDescriptor
from mockfly_server.docs import (
    generate_docs,
    generate_file_name,
    render_route_markdown,
    request_example,
    route_parameters,
)


@pytest.mark.parametrize(
    "method, path, expected",
    [
        ("GET", "/users/:id", "get-users-id.md"),
        ("POST", "/users", "post-users.md"),
        ("GET", "/", "get-root.md"),
        ("GET", "/files/*", "get-files-wildcard.md"),
        ("DELETE", "/users{/:id}", "delete-users-id.md"),
    ],
)
def test_generate_file_name(method: str, path: str, expected: str) -> None:
    route = MergedRouteDescriptor(path=path, method=method, response={})

    assert generate_file_name(route) == expected


def test_route_parameters_combine_path_and_template_references() -> None:
    route = MergedRouteDescriptor(
        path="/users/:id{/:tab}",
        response={"id": "{{params.id}}", "q": "{{query.q}}", "token": "{{headers.authorization}}"},
    )

    params = {(param.location, param.name): param for param in route_parameters(route)}

    assert set(params) == {("path", "id"), ("path", "tab"), ("query", "q"), ("headers", "authorization")}
    assert params[("path", "id")].required is True
    assert params[("path", "tab")].required is False


def test_request_example_only_for_write_methods() -> None:
    response = {"name": "{{body.name}}", "email": "{{body.email}}", "userId": "{{body.userId}}"}

    assert request_example(MergedRouteDescriptor(path="/u", response=response)) is None
    assert request_example(MergedRouteDescriptor(path="/u", method="POST", response=response)) == {
        "name": "Example name",
        "email": "user@example.com",
        "userId": 1,
    }


def test_route_markdown_sections() -> None:
    route = MergedRouteDescriptor(
        path="/users/:id",
        name="Get user",
        description="Fetch one user",
        status_code=200,
        delay=150,
        headers={"X-Mock": "users"},
        response={"id": "{{params.id}}"},
    )

    markdown = render_route_markdown(route, "/api")

    assert markdown.startswith("# Get user\n")
    assert "- **URL**: `/api/users/:id`" in markdown
    assert "- **Delay**: 150ms" in markdown
    assert "## Path parameters" in markdown
    assert "| id | string | yes | Path parameter id |" in markdown
    assert "## Response headers" in markdown
    assert "- **X-Mock**: users" in markdown
    assert "## Request example" not in markdown


def test_generate_docs_writes_index_and_route_pages(tmp_path: Path) -> None:
    resolved = resolve_config(
        {
            "baseUrl": "/api",
            "routes": [
                {"path": "/users", "description": "List users", "response": []},
                {"path": "/users", "method": "POST", "response": {"name": "{{body.name}}"}},
                {"path": "/export", "responseFile": "export.pdf"},
            ],
        },
        tmp_path,
    )
    output = tmp_path / "docs"

    paths = generate_docs(resolved, output)

    assert [path.name for path in paths] == ["get-users.md", "post-users.md", "get-export.md", "index.md"]
    index = (output / "index.md").read_text(encoding="utf-8")
    assert "| GET | [`/api/users`](get-users.md) | List users |" in index
    post_page = (output / "post-users.md").read_text(encoding="utf-8")
    assert "## Request example" in post_page
    assert '"name": "Example name"' in post_page
    assert "Binary download `export.pdf`" in (output / "get-export.md").read_text(encoding="utf-8")

    assert generate_docs(resolved, output) == paths


def test_colliding_file_names_get_a_counter_suffix(tmp_path: Path) -> None:
    resolved = resolve_config(
        {
            "routes": [
                {"path": "/users/:id", "description": "By id", "response": {}},
                {"path": "/users/id", "description": "Literal", "response": {}},
            ]
        },
        tmp_path,
    )
    output = tmp_path / "docs"

    paths = generate_docs(resolved, output)

    assert [path.name for path in paths] == ["get-users-id.md", "get-users-id-2.md", "index.md"]
    assert "By id" in (output / "get-users-id.md").read_text(encoding="utf-8")
    assert "Literal" in (output / "get-users-id-2.md").read_text(encoding="utf-8")
    assert "(get-users-id-2.md) | Literal |" in (output / "index.md").read_text(encoding="utf-8")
