"""Sample configuration written by ``mockfly-config init``."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "mock.config.json"

SAMPLE_CONFIG: dict[str, Any] = {
    "port": 3000,
    "baseUrl": "/api",
    "mockDir": "./data",
    "cors": True,
    "delay": 0,
    "routeDefaults": [
        {
            "name": "json-api",
            "description": "Headers shared by every API route",
            "config": {"headers": {"X-Powered-By": "mockfly"}},
        },
        {
            "name": "slow-admin",
            "config": {"delay": 300},
            "includes": ["/admin/*"],
        },
    ],
    "routes": [
        {
            "path": "/users",
            "method": "GET",
            "description": "List users",
            "responseFile": "users.json",
        },
        {
            "path": "/users/:id",
            "method": "GET",
            "description": "Fetch one user",
            "response": {"id": "{{params.id}}", "name": "User {{params.id}}", "verbose": "{{query.verbose}}"},
        },
        {
            "path": "/users",
            "method": "POST",
            "description": "Create a user",
            "statusCode": 201,
            "response": {"id": "1001", "name": "{{body.name}}", "email": "{{body.email}}"},
        },
        {
            "path": "/products",
            "method": "GET",
            "description": "Products loaded from CSV",
            "responseFile": "products.csv",
        },
        {
            "path": "/admin/stats",
            "method": "GET",
            "description": "Slow admin endpoint",
            "response": {"users": "3", "healthy": "true"},
        },
    ],
}

SAMPLE_USERS: list[dict[str, Any]] = [
    {"id": 1, "name": "Ada Lovelace", "email": "ada@example.com", "city": "London"},
    {"id": 2, "name": "Grace Hopper", "email": "grace@example.com", "city": "New York"},
    {"id": 3, "name": "Alan Turing", "email": "alan@example.com", "city": "Manchester"},
]

SAMPLE_PRODUCTS_CSV = "id,name,price,category\n1,Keyboard,49.90,peripherals\n2,Monitor,219.00,displays\n3,Mouse,19.50,peripherals\n"


def write_scaffold(target_dir: Path) -> list[Path]:
    """Create the sample config and data files that do not exist yet; return the created paths."""

    data_dir = target_dir / SAMPLE_CONFIG["mockDir"]
    data_dir.mkdir(parents=True, exist_ok=True)

    files: dict[Path, str] = {
        target_dir / CONFIG_FILENAME: json.dumps(SAMPLE_CONFIG, indent=2),
        data_dir / "users.json": json.dumps(SAMPLE_USERS, indent=2),
        data_dir / "products.csv": SAMPLE_PRODUCTS_CSV,
    }
    created: list[Path] = []
    for destination, content in files.items():
        if destination.exists():
            continue
        destination.write_text(content, encoding="utf-8")
        created.append(destination)
    return created
