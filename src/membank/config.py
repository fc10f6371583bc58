"""Configuration loading from environment variables and membank.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from enum import Enum

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from membank.errors import ConfigError, ValidationError
from membank.models import ContextLevel

_CONFIG_FILENAME = "membank.toml"
_DEFAULT_PROJECTS_FILE = Path("data") / "projects.json"
_TRUE_VALUES = ("1", "true", "yes", "on")


class LastSyncPolicy(str, Enum):
    """When a sync attempt may advance ``last_sync`` in the service config.

    ALWAYS advances after every completed attempt, even one that recorded
    per-file errors. ON_SUCCESS advances only when ``errors`` is empty.
    """

    ALWAYS = "always"
    ON_SUCCESS = "on_success"


@dataclass
class SyncConfig:
    """Sync orchestrator configuration."""

    last_sync_policy: LastSyncPolicy = LastSyncPolicy.ALWAYS
    parallel: bool = False


@dataclass
class ContextConfig:
    """Context assembly budgets."""

    default_level: ContextLevel = ContextLevel.RELEVANT
    summary_lines: int = 30
    relevant_chars: int = 5000
    warn_tokens: int = 8000


@dataclass
class MembankConfig:
    """Top-level membank configuration."""

    sync: SyncConfig = field(default_factory=SyncConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    projects_file: Path = _DEFAULT_PROJECTS_FILE
    log_level: str = "INFO"


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_policy(value: str) -> LastSyncPolicy:
    try:
        return LastSyncPolicy(str(value).lower())
    except ValueError:
        raise ConfigError(
            f"last_sync_policy must be 'always' or 'on_success', got {value!r}"
        ) from None


def _parse_level(value: str) -> ContextLevel:
    try:
        return ContextLevel.parse(value)
    except ValidationError as e:
        raise ConfigError(str(e)) from None


def load_config(config_path: Path | None = None) -> MembankConfig:
    """Load configuration from environment variables and optional membank.toml.

    Priority: environment variables > membank.toml > defaults.
    """
    file_data: dict = {}
    candidates = (
        [config_path]
        if config_path
        else [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".membank" / _CONFIG_FILENAME]
    )
    for candidate in candidates:
        if candidate.exists():
            try:
                file_data = tomllib.loads(candidate.read_text(encoding="utf-8"))
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid {candidate}: {e}") from e
            break

    sync_data = file_data.get("sync", {})
    context_data = file_data.get("context", {})

    try:
        config = MembankConfig(
            sync=SyncConfig(
                last_sync_policy=_parse_policy(
                    os.getenv(
                        "MEMBANK_LAST_SYNC_POLICY", sync_data.get("last_sync_policy", "always")
                    )
                ),
                parallel=_as_bool(
                    os.getenv("MEMBANK_PARALLEL_SYNC", sync_data.get("parallel", False))
                ),
            ),
            context=ContextConfig(
                default_level=_parse_level(
                    os.getenv(
                        "MEMBANK_CONTEXT_LEVEL", context_data.get("default_level", "relevant")
                    )
                ),
                summary_lines=int(context_data.get("summary_lines", 30)),
                relevant_chars=int(context_data.get("relevant_chars", 5000)),
                warn_tokens=int(
                    os.getenv("MEMBANK_WARN_TOKENS", context_data.get("warn_tokens", 8000))
                ),
            ),
            projects_file=Path(
                os.getenv(
                    "MEMBANK_PROJECTS_FILE",
                    file_data.get("projects_file", str(_DEFAULT_PROJECTS_FILE)),
                )
            ),
            log_level=os.getenv("MEMBANK_LOG_LEVEL", file_data.get("log_level", "INFO")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid membank configuration: {e}") from e
    return config
