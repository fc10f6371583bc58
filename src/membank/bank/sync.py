"""Sync orchestrator: merge local memory banks into the general one.

Failures are reported, not raised. A service that cannot be synced at all
(no local bank, missing or invalid config) yields a failed SyncResult; a
single mapped file that cannot be merged adds an error and the loop moves
on to the remaining files.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from membank.bank.loader import (
    SYNC_CONFIG_FILE,
    discover_services,
    general_dir,
    local_dir,
    read_service_config,
    write_service_config,
)
from membank.bank.merge import INDEX_FILE, iso_now, merge_section, upsert_index_row
from membank.config import LastSyncPolicy
from membank.errors import ConfigError
from membank.locks import PathLocks
from membank.models import ServiceConfig, SyncResult

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drives local → general sync for one project."""

    def __init__(
        self,
        project_path: Path,
        locks: PathLocks | None = None,
        *,
        policy: LastSyncPolicy = LastSyncPolicy.ALWAYS,
        parallel: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.project_path = project_path
        self.locks = locks if locks is not None else PathLocks()
        self.policy = policy
        self.parallel = parallel
        self._clock = clock

    def _now(self) -> datetime | None:
        return self._clock() if self._clock else None

    async def _load_config(self, mb_path: Path) -> ServiceConfig:
        config = await asyncio.to_thread(read_service_config, mb_path)
        if config is None:
            raise ConfigError(f"{SYNC_CONFIG_FILE} not found")
        return config

    # ── Single service ───────────────────────────────────────

    async def sync_service(self, service: str) -> SyncResult:
        """Merge every mapped local file of ``service`` and upsert its index row."""
        result = SyncResult(service=service, timestamp=iso_now(self._now()))
        mb_path = local_dir(self.project_path, service)

        if not mb_path.is_dir():
            result.errors.append("Local Memory Bank not found")
            return result

        try:
            config = await self._load_config(mb_path)
        except ConfigError as e:
            logger.warning("Cannot sync %s: %s", service, e)
            result.errors.append(str(e))
            return result

        gdir = general_dir(self.project_path)
        await asyncio.to_thread(gdir.mkdir, parents=True, exist_ok=True)

        for local_file, general_file in config.sync_to_general.items():
            local_path = mb_path / local_file
            if not local_path.is_file():
                logger.warning("%s: mapped file %s does not exist, skipping", service, local_file)
                result.files_skipped.append(local_file)
                continue
            general_path = gdir / general_file
            try:
                body = await asyncio.to_thread(local_path.read_text, encoding="utf-8")
                async with self.locks.get(general_path):
                    await asyncio.to_thread(
                        merge_section, general_path, service, config.version, body, self._now()
                    )
            except (OSError, UnicodeError) as e:
                logger.warning("%s: failed to merge %s into %s: %s", service, local_file, general_file, e)
                result.errors.append(f"{local_file} -> {general_file}: {e}")
                continue
            result.files_updated.append(local_file)
            result.general_files_updated.append(general_file)

        try:
            async with self.locks.get(gdir / INDEX_FILE):
                await asyncio.to_thread(upsert_index_row, gdir, config, self._now())
            result.general_files_updated.append(INDEX_FILE)
        except (OSError, UnicodeError) as e:
            logger.warning("%s: failed to update %s: %s", service, INDEX_FILE, e)
            result.errors.append(f"{INDEX_FILE}: {e}")

        if self._should_advance_last_sync(result, config):
            config.last_sync = result.timestamp
            try:
                await asyncio.to_thread(write_service_config, mb_path, config)
            except OSError as e:
                result.errors.append(f"{SYNC_CONFIG_FILE}: {e}")

        result.success = not result.errors
        logger.info(
            "Synced %s: %d file(s) merged, %d skipped, %d error(s)",
            service,
            len(result.files_updated),
            len(result.files_skipped),
            len(result.errors),
        )
        return result

    def _should_advance_last_sync(self, result: SyncResult, config: ServiceConfig) -> bool:
        if self.policy is LastSyncPolicy.ON_SUCCESS and result.errors:
            return False
        # ISO-8601 UTC strings with the same layout order chronologically
        return config.last_sync is None or result.timestamp >= config.last_sync

    # ── All services ─────────────────────────────────────────

    async def _sync_isolated(self, service: str) -> SyncResult:
        try:
            return await self.sync_service(service)
        except Exception as e:
            logger.error("Unexpected error syncing %s: %s", service, e)
            result = SyncResult(service=service, timestamp=iso_now(self._now()))
            result.errors.append(str(e) or type(e).__name__)
            return result

    async def sync_all(self) -> list[SyncResult]:
        """Sync every discovered service. One service failing never stops the others."""
        services = await asyncio.to_thread(discover_services, self.project_path)
        if self.parallel:
            return list(await asyncio.gather(*(self._sync_isolated(s) for s in services)))
        return [await self._sync_isolated(s) for s in services]
