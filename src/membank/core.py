"""MemoryBankService: the operations exposed to request handlers.

Responsibilities:
1. Resolve a project id to its root directory via the project registry
2. Validate caller parameters before touching the filesystem
3. Run blocking file I/O off the event loop
4. Own the per-path locks shared by every sync it drives
5. Apply configured policies (last_sync advancement, parallel sync, context budgets)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from membank.bank import loader, scaffold
from membank.bank.sync import SyncOrchestrator
from membank.config import MembankConfig
from membank.context.assembler import AssembledContext, build_memory_bank_context
from membank.context.code import CodeContext, build_code_context
from membank.errors import ProjectNotFoundError, ValidationError
from membank.locks import PathLocks
from membank.models import (
    CodeAccessLevel,
    ContextLevel,
    GeneralMemoryBank,
    InitResult,
    LocalMemoryBank,
    ServiceSummary,
    SyncResult,
    UpdateResult,
)
from membank.registry import Project, ProjectRegistry

logger = logging.getLogger(__name__)


class MemoryBankService:
    """Facade over loaders, sync and context assembly for registered projects."""

    def __init__(self, config: MembankConfig, registry: ProjectRegistry) -> None:
        self.config = config
        self.registry = registry
        self.locks = PathLocks()

    # ── Projects ─────────────────────────────────────────────

    def resolve(self, project_id: str) -> Project:
        if not project_id or not str(project_id).strip():
            raise ValidationError("projectId is required")
        project = self.registry.get(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project not found: {project_id}")
        return project

    def _orchestrator(self, project: Project) -> SyncOrchestrator:
        return SyncOrchestrator(
            project.path,
            self.locks,
            policy=self.config.sync.last_sync_policy,
            parallel=self.config.sync.parallel,
        )

    # ── Read ─────────────────────────────────────────────────

    async def get_general_memory_bank(self, project_id: str) -> GeneralMemoryBank:
        project = self.resolve(project_id)
        return await asyncio.to_thread(loader.load_general_memory_bank, project.path, project.name)

    async def get_local_memory_bank(self, project_id: str, service: str) -> LocalMemoryBank:
        project = self.resolve(project_id)
        scaffold.require_name(service, "service")
        return await asyncio.to_thread(loader.load_local_memory_bank, project.path, service)

    async def list_services(self, project_id: str) -> list[ServiceSummary]:
        project = self.resolve(project_id)
        return await asyncio.to_thread(loader.list_service_summaries, project.path)

    # ── Sync ─────────────────────────────────────────────────

    async def sync_local_to_general(self, project_id: str, service: str) -> SyncResult:
        project = self.resolve(project_id)
        scaffold.require_name(service, "service")
        return await self._orchestrator(project).sync_service(service)

    async def sync_all_services(self, project_id: str) -> list[SyncResult]:
        project = self.resolve(project_id)
        results = await self._orchestrator(project).sync_all()
        failed = [r.service for r in results if not r.success]
        if failed:
            logger.warning("Sync finished with failures in: %s", ", ".join(failed))
        return results

    # ── Write ────────────────────────────────────────────────

    async def init_general_memory_bank(self, project_id: str) -> InitResult:
        project = self.resolve(project_id)
        return await asyncio.to_thread(
            scaffold.init_general_memory_bank, project.path, project.name
        )

    async def init_local_memory_bank(
        self,
        project_id: str,
        service: str,
        overrides: dict[str, Any] | None = None,
    ) -> InitResult:
        project = self.resolve(project_id)
        return await asyncio.to_thread(
            scaffold.init_local_memory_bank, project.path, service, overrides
        )

    async def update_local_memory_bank_file(
        self,
        project_id: str,
        service: str,
        file_name: str,
        content: str,
        trigger_sync: bool | None = None,
    ) -> UpdateResult:
        """Write a local file, then sync if asked to (or, when unspecified, if the service auto-syncs)."""
        project = self.resolve(project_id)
        path = await asyncio.to_thread(
            scaffold.write_local_file, project.path, service, file_name, content
        )
        result = UpdateResult(path=path)

        if trigger_sync is None:
            local = await asyncio.to_thread(
                loader.load_local_memory_bank, project.path, service, strict=False
            )
            trigger_sync = bool(local.config and local.config.auto_sync)
        if trigger_sync:
            result.sync_result = await self._orchestrator(project).sync_service(service)
        return result

    # ── Context ──────────────────────────────────────────────

    async def build_memory_bank_context(
        self,
        project_id: str,
        level: ContextLevel | str | None = None,
        service: str | None = None,
    ) -> AssembledContext:
        project = self.resolve(project_id)
        if service:
            scaffold.require_name(service, "service")
        return await build_memory_bank_context(
            project.path,
            project.name,
            level or self.config.context.default_level,
            service,
            self.config.context,
        )

    async def build_code_context(
        self,
        project_id: str,
        level: CodeAccessLevel | str = CodeAccessLevel.READ,
        service: str | None = None,
    ) -> CodeContext | None:
        project = self.resolve(project_id)
        if service:
            scaffold.require_name(service, "service")
        return await build_code_context(project.path, level, service)
