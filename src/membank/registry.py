"""Project registry: resolves a project id to its root directory and display name."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from membank.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class Project:
    id: str
    name: str
    path: Path


@runtime_checkable
class ProjectRegistry(Protocol):
    """Anything that can look up a project by id."""

    def get(self, project_id: str) -> Project | None: ...


class InMemoryProjectRegistry:
    """Registry backed by a plain dict, for embedding and tests."""

    def __init__(self, projects: list[Project] | None = None) -> None:
        self._projects = {p.id: p for p in projects or []}

    def add(self, project: Project) -> None:
        self._projects[project.id] = project

    def get(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)


class JsonProjectRegistry:
    """Read-only registry over a ``projects.json`` list of ``{id, name, path}`` objects.

    The file is re-read on every lookup so edits made by other processes are
    picked up. A missing file is an empty registry.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> list[dict]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid projects file {self.path}: {e}") from e
        if not isinstance(data, list):
            raise ConfigError(f"Projects file {self.path} must contain a JSON list")
        return data

    def get(self, project_id: str) -> Project | None:
        for entry in self._load():
            if not isinstance(entry, dict) or entry.get("id") != project_id:
                continue
            raw_path = entry.get("path")
            if not raw_path:
                logger.warning("Project %s has no path in %s", project_id, self.path)
                return None
            path = Path(raw_path)
            return Project(id=project_id, name=entry.get("name") or path.name, path=path)
        return None
