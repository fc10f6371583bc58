"""Records exchanged between the loaders, the sync orchestrator and the context assembler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Literal, get_args

from membank.errors import ConfigError, ValidationError

ServiceStatus = Literal["active", "development", "deprecated", "planned"]
SERVICE_STATUSES: tuple[str, ...] = get_args(ServiceStatus)

_CONFIG_KEYS = {
    "service_name",
    "version",
    "description",
    "port",
    "technology",
    "sync_to_general",
    "dependencies",
    "last_sync",
    "auto_sync",
    "status",
}


def is_plain_name(name: str) -> bool:
    """True for a bare file/directory name that cannot escape its parent."""
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name


class ContextLevel(str, Enum):
    """Detail level for assembled memory bank context."""

    SUMMARY = "summary"
    RELEVANT = "relevant"
    FULL = "full"

    @classmethod
    def parse(cls, value: str | ContextLevel) -> ContextLevel:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(
                f"Unknown context level {value!r} (expected one of: "
                f"{', '.join(level.value for level in cls)})"
            ) from None


class CodeAccessLevel(str, Enum):
    """How much source code to include in code context."""

    READ = "read"
    RELEVANT = "relevant"
    FULL = "full"

    @classmethod
    def parse(cls, value: str | CodeAccessLevel) -> CodeAccessLevel:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValidationError(f"Unknown code access level {value!r}") from None


@dataclass
class ServiceConfig:
    """Contents of a service's ``.sync-config.json``."""

    service_name: str
    version: str
    description: str = ""
    port: int | None = None
    technology: str | None = None
    sync_to_general: dict[str, str] = field(default_factory=dict)
    dependencies: list[Any] = field(default_factory=list)
    last_sync: str | None = None
    auto_sync: bool = True
    status: ServiceStatus | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> ServiceConfig:
        """Validate parsed JSON and build a config. Raises ConfigError."""
        if not isinstance(data, dict):
            raise ConfigError("sync config must be a JSON object")

        service_name = data.get("service_name")
        if not isinstance(service_name, str) or not service_name.strip():
            raise ConfigError("service_name must be a non-empty string")
        version = data.get("version")
        if not isinstance(version, str) or not version.strip():
            raise ConfigError("version must be a non-empty string")

        port = data.get("port")
        if port is not None and (isinstance(port, bool) or not isinstance(port, int)):
            raise ConfigError(f"port must be an integer, got {port!r}")

        status = data.get("status")
        if status is not None and status not in SERVICE_STATUSES:
            raise ConfigError(
                f"status must be one of {', '.join(SERVICE_STATUSES)}, got {status!r}"
            )

        mapping = data.get("sync_to_general", {})
        if not isinstance(mapping, dict):
            raise ConfigError("sync_to_general must be an object of local file -> general file")
        for local_file, general_file in mapping.items():
            if not isinstance(general_file, str):
                raise ConfigError(f"sync_to_general[{local_file!r}] must be a string")
            if not is_plain_name(local_file) or not is_plain_name(general_file):
                raise ConfigError(
                    f"sync_to_general entry {local_file!r} -> {general_file!r} "
                    "must use plain file names"
                )
            if not general_file.endswith(".md"):
                raise ConfigError(f"general file {general_file!r} must be a .md file")

        dependencies = data.get("dependencies") or []
        if not isinstance(dependencies, list):
            raise ConfigError("dependencies must be a list")

        last_sync = data.get("last_sync")
        if last_sync is not None and not isinstance(last_sync, str):
            raise ConfigError("last_sync must be an ISO-8601 string")

        return cls(
            service_name=service_name,
            version=version,
            description=str(data.get("description") or ""),
            port=port,
            technology=data.get("technology"),
            sync_to_general=dict(mapping),
            dependencies=list(dependencies),
            last_sync=last_sync,
            auto_sync=bool(data.get("auto_sync", True)),
            status=status,
            extra={k: v for k, v in data.items() if k not in _CONFIG_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON shape written back to ``.sync-config.json``. Optional keys left unset are omitted."""
        data: dict[str, Any] = {
            "service_name": self.service_name,
            "version": self.version,
            "description": self.description,
        }
        if self.port is not None:
            data["port"] = self.port
        if self.technology is not None:
            data["technology"] = self.technology
        data["sync_to_general"] = dict(self.sync_to_general)
        data["dependencies"] = list(self.dependencies)
        if self.last_sync is not None:
            data["last_sync"] = self.last_sync
        data["auto_sync"] = self.auto_sync
        if self.status is not None:
            data["status"] = self.status
        data.update(self.extra)
        return data


@dataclass
class MemoryBankFile:
    """Snapshot of one Markdown file in a memory bank."""

    name: str
    path: Path
    content: str
    last_modified: str
    size: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        """Front-matter ``title``, else the first non-empty line without heading marks."""
        title = self.metadata.get("title")
        if isinstance(title, str) and title.strip():
            return title.strip()
        for line in self.content.splitlines():
            line = line.strip()
            if line and line != "---":
                return line.lstrip("# ").strip()
        return ""


@dataclass
class ServiceSummary:
    """Lightweight counters for one discovered service."""

    name: str
    version: str
    description: str = ""
    port: int | None = None
    technology: str | None = None
    endpoints_count: int = 0
    tables_count: int = 0
    status: ServiceStatus | None = None
    last_sync: str | None = None
    has_local_memory_bank: bool = True
    directory: str = ""


@dataclass
class LocalMemoryBank:
    service_name: str
    service_path: Path
    config: ServiceConfig | None = None
    files: list[MemoryBankFile] = field(default_factory=list)
    exists: bool = False

    def get_file(self, name: str) -> MemoryBankFile | None:
        return next((f for f in self.files if f.name == name), None)


@dataclass
class GeneralMemoryBank:
    project_name: str
    project_path: Path
    files: list[MemoryBankFile] = field(default_factory=list)
    services: list[ServiceSummary] = field(default_factory=list)
    exists: bool = False

    def get_file(self, name: str) -> MemoryBankFile | None:
        return next((f for f in self.files if f.name == name), None)


@dataclass
class SyncResult:
    """Outcome of syncing one service into the general memory bank."""

    service: str
    timestamp: str
    success: bool = False
    files_updated: list[str] = field(default_factory=list)
    general_files_updated: list[str] = field(default_factory=list)
    files_skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "service": self.service,
            "filesUpdated": list(self.files_updated),
            "generalFilesUpdated": list(self.general_files_updated),
            "filesSkipped": list(self.files_skipped),
            "errors": list(self.errors),
            "timestamp": self.timestamp,
        }


@dataclass
class InitResult:
    path: Path
    files_created: list[str]
    config: ServiceConfig | None = None


@dataclass
class UpdateResult:
    path: Path
    sync_result: SyncResult | None = None
