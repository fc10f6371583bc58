"""Read side of the memory banks: discovery, loading and service summaries.

Read paths never raise for absent data. A missing memory bank is
``exists=False``, an unreadable directory entry is skipped. The only hard
failure is a present-but-malformed ``.sync-config.json`` when loading a
single local memory bank.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

import frontmatter

from membank.errors import ConfigError
from membank.models import (
    GeneralMemoryBank,
    LocalMemoryBank,
    MemoryBankFile,
    ServiceConfig,
    ServiceSummary,
)

logger = logging.getLogger(__name__)

MEMORY_BANK_DIR = "memory-bank"
SYNC_CONFIG_FILE = ".sync-config.json"
API_CONTRACTS_FILE = "API-CONTRACTS.md"
DATABASE_SCHEMA_FILE = "DATABASE-SCHEMA.md"

_EXCLUDED_DIRS = {MEMORY_BANK_DIR, "node_modules"}
_ENDPOINT_RE = re.compile(r"^- (GET|POST|PUT|PATCH|DELETE)\s", re.MULTILINE)
_TABLE_RE = re.compile(r"^##\s+\w+|CREATE TABLE", re.MULTILINE)


def general_dir(project_path: Path) -> Path:
    return project_path / MEMORY_BANK_DIR


def local_dir(project_path: Path, service: str) -> Path:
    return project_path / service / MEMORY_BANK_DIR


# ── Files ──────────────────────────────────────────────────


def _parse_frontmatter(content: str) -> dict:
    """Parse YAML front matter from markdown text."""
    try:
        return dict(frontmatter.loads(content).metadata)
    except Exception:
        return {}


def read_md_file(path: Path) -> MemoryBankFile:
    stat = path.stat()
    content = path.read_text(encoding="utf-8")
    return MemoryBankFile(
        name=path.name,
        path=path.resolve(),
        content=content,
        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
        size=stat.st_size,
        metadata=_parse_frontmatter(content),
    )


def read_md_files(directory: Path) -> list[MemoryBankFile]:
    """Read every ``*.md`` directly under ``directory``, sorted by name."""
    if not directory.is_dir():
        return []
    files: list[MemoryBankFile] = []
    for path in sorted(directory.glob("*.md")):
        if not path.is_file():
            continue
        try:
            files.append(read_md_file(path))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Skipping unreadable memory bank file %s: %s", path, e)
    return files


# ── Sync config ────────────────────────────────────────────


def read_service_config(mb_path: Path) -> ServiceConfig | None:
    """Parse ``.sync-config.json`` in a local memory bank. None when absent."""
    config_path = mb_path / SYNC_CONFIG_FILE
    if not config_path.exists():
        return None
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Malformed {SYNC_CONFIG_FILE} in {mb_path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e
    return ServiceConfig.from_dict(data)


def write_service_config(mb_path: Path, config: ServiceConfig) -> None:
    config_path = mb_path / SYNC_CONFIG_FILE
    config_path.write_text(
        json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
    )


# ── Discovery ──────────────────────────────────────────────


def discover_services(project_path: Path) -> list[str]:
    """Directory names directly under the project root that hold a local memory bank."""
    try:
        entries = sorted(project_path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.debug("Cannot list project %s: %s", project_path, e)
        return []

    services: list[str] = []
    for entry in entries:
        name = entry.name
        if name in _EXCLUDED_DIRS or name.startswith("."):
            continue
        try:
            if entry.is_dir() and (entry / MEMORY_BANK_DIR).exists():
                services.append(name)
        except OSError as e:
            logger.debug("Skipping %s during discovery: %s", entry, e)
    return services


def count_endpoints(content: str) -> int:
    return len(_ENDPOINT_RE.findall(content))


def count_tables(content: str) -> int:
    return len(_TABLE_RE.findall(content))


def _read_optional(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


def summarize_service(project_path: Path, service: str) -> ServiceSummary:
    """Derive a ServiceSummary from a service's local memory bank.

    A malformed sync config does not drop the service from listings; it is
    summarized with defaults and a warning is logged.
    """
    mb_path = local_dir(project_path, service)
    try:
        config = read_service_config(mb_path)
    except ConfigError as e:
        logger.warning("Ignoring invalid sync config for %s: %s", service, e)
        config = None

    return ServiceSummary(
        name=config.service_name if config else service,
        version=config.version if config else "0.0.0",
        description=config.description if config else "",
        port=config.port if config else None,
        technology=config.technology if config else None,
        endpoints_count=count_endpoints(_read_optional(mb_path / API_CONTRACTS_FILE)),
        tables_count=count_tables(_read_optional(mb_path / DATABASE_SCHEMA_FILE)),
        status=config.status if config else None,
        last_sync=config.last_sync if config else None,
        has_local_memory_bank=True,
        directory=service,
    )


def list_service_summaries(project_path: Path) -> list[ServiceSummary]:
    return [summarize_service(project_path, s) for s in discover_services(project_path)]


# ── Memory banks ───────────────────────────────────────────


def load_local_memory_bank(
    project_path: Path, service: str, *, strict: bool = True
) -> LocalMemoryBank:
    """Load a service's local memory bank.

    With ``strict`` a malformed sync config raises ConfigError; otherwise it is
    logged and the bank is returned with ``config=None``.
    """
    service_path = project_path / service
    mb_path = service_path / MEMORY_BANK_DIR
    if not mb_path.is_dir():
        return LocalMemoryBank(service_name=service, service_path=service_path, exists=False)

    try:
        config = read_service_config(mb_path)
    except ConfigError as e:
        if strict:
            raise
        logger.warning("Ignoring invalid sync config for %s: %s", service, e)
        config = None

    return LocalMemoryBank(
        service_name=service,
        service_path=service_path,
        config=config,
        files=read_md_files(mb_path),
        exists=True,
    )


def load_general_memory_bank(project_path: Path, project_name: str) -> GeneralMemoryBank:
    """Load the project-wide memory bank. Services are discovered even when it is absent."""
    services = list_service_summaries(project_path)
    mb_path = general_dir(project_path)
    if not mb_path.is_dir():
        return GeneralMemoryBank(
            project_name=project_name,
            project_path=project_path,
            services=services,
            exists=False,
        )
    return GeneralMemoryBank(
        project_name=project_name,
        project_path=project_path,
        files=read_md_files(mb_path),
        services=services,
        exists=True,
    )
