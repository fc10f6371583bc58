"""Per-path asyncio locks serializing writes to shared general files."""

from __future__ import annotations

import asyncio
from pathlib import Path


class PathLocks:
    """One ``asyncio.Lock`` per resolved file path.

    Owned by whoever drives syncs and passed explicitly to the orchestrator,
    so two services merging into the same general file never interleave
    their read-modify-write cycles.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, path: Path) -> asyncio.Lock:
        key = str(path.resolve())
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
