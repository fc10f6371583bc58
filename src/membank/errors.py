"""Exception types shared across the memory bank layers.

Absent memory banks are not errors: loaders return ``exists=False``.
Sync paths turn per-file failures into ``SyncResult.errors`` entries, so
only configuration and caller mistakes surface as exceptions.
"""

from __future__ import annotations


class MemoryBankError(Exception):
    """Base class for all membank errors."""


class ConfigError(MemoryBankError):
    """A sync config or membank.toml is missing, malformed or invalid."""


class ValidationError(MemoryBankError):
    """The caller passed missing or unusable parameters."""


class ProjectNotFoundError(ValidationError):
    """The project registry has no entry for the requested id."""


class AlreadyExistsError(MemoryBankError):
    """Initialization target already exists."""
