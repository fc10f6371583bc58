"""Shared fixtures: throwaway project trees with general and local memory banks."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

DEFAULT_MAP = {
    "API-CONTRACTS.md": "03-API-CONTRACTS-GLOBAL.md",
    "DATABASE-SCHEMA.md": "04-DATABASE-SCHEMA-GLOBAL.md",
}


def service_config(name: str, **overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "service_name": name,
        "version": "1.0.0",
        "description": f"{name} service",
        "port": 5001,
        "technology": "node",
        "sync_to_general": dict(DEFAULT_MAP),
        "dependencies": [],
        "auto_sync": True,
        "status": "active",
    }
    data.update(overrides)
    return data


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "shop"
    root.mkdir()
    return root


@pytest.fixture
def make_service(project: Path) -> Callable[..., Path]:
    """Create ``<project>/<name>/memory-bank`` with files and an optional sync config.

    ``config`` may be a dict (written as JSON), a raw string (written as-is),
    or None (no config file).
    """

    def _make(
        name: str,
        files: dict[str, str] | None = None,
        config: dict[str, Any] | str | None = "default",
    ) -> Path:
        mb = project / name / "memory-bank"
        mb.mkdir(parents=True)
        if config == "default":
            config = service_config(name)
        if isinstance(config, dict):
            (mb / ".sync-config.json").write_text(json.dumps(config), encoding="utf-8")
        elif isinstance(config, str):
            (mb / ".sync-config.json").write_text(config, encoding="utf-8")
        for file_name, content in (files or {}).items():
            (mb / file_name).write_text(content, encoding="utf-8")
        return mb

    return _make
