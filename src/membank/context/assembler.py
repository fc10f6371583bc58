"""Memory bank context assembly for assistant prompts.

Output layout:
    === MEMORY BANK GENERAL ===
    ### Resumen                       (summary level only)
    ### META-MEMORY-BANK.md           (always first, never truncated)
    ### <other general files>         (name order, level-truncated)
    ### Servicios Disponibles         (one row per discovered service)
    === MEMORY BANK LOCAL: <service> ===
    ### <local files>                 (name order, level-truncated)
    ### Configuración del Servicio
    === FIN MEMORY BANK ===

Per-file budgets include the truncation marker, and truncation never makes a
file longer than it was, so summary <= relevant <= full for every file.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

from membank.bank.loader import load_general_memory_bank, load_local_memory_bank
from membank.config import ContextConfig
from membank.models import (
    ContextLevel,
    GeneralMemoryBank,
    LocalMemoryBank,
    MemoryBankFile,
    ServiceSummary,
)

logger = logging.getLogger(__name__)

META_FILE = "META-MEMORY-BANK.md"
SUMMARY_MARKER = "[... contenido truncado ...]"
RELEVANT_MARKER = "[... truncado, archivo muy largo ...]"
NO_MEMORY_BANK = "[No hay Memory Bank disponible]"


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters."""
    return math.ceil(len(text) / 4)


@dataclass
class RenderedFile:
    name: str
    content: str
    truncated: bool = False


@dataclass
class AssembledContext:
    """Assembled text plus the numbers a prompt builder needs."""

    text: str
    level: ContextLevel
    estimated_tokens: int
    truncated_files: list[str] = field(default_factory=list)


def _with_marker(head: str, marker: str, budget: int) -> str:
    suffix = f"\n\n{marker}"
    return head[: max(budget - len(suffix), 0)] + suffix


def truncate(
    content: str,
    level: ContextLevel,
    *,
    summary_lines: int = 30,
    relevant_chars: int = 5000,
) -> tuple[str, bool]:
    """Apply a level's budget to one file body. Returns (text, truncated)."""
    if level is ContextLevel.FULL:
        return content, False

    if level is ContextLevel.SUMMARY:
        lines = content.splitlines()
        if len(lines) <= summary_lines and len(content) <= relevant_chars:
            return content, False
        # drop lines until the marker fits inside the original length
        keep = min(len(lines), summary_lines)
        while True:
            rendered = _with_marker("\n".join(lines[:keep]), SUMMARY_MARKER, relevant_chars)
            if len(rendered) < len(content) or keep == 0:
                break
            keep -= 1
    else:
        if len(content) <= relevant_chars:
            return content, False
        rendered = _with_marker(content, RELEVANT_MARKER, relevant_chars)

    if len(rendered) >= len(content):
        return content, False
    return rendered, True


def summarize_files(files: list[MemoryBankFile]) -> str:
    """One-paragraph overview of a memory bank: file names, titles and total size."""
    lines = ["Archivos en Memory Bank:"]
    for f in files:
        title = f.title
        lines.append(f"- {f.name}: {title}" if title else f"- {f.name}")
    total_kb = round(sum(f.size for f in files) / 1024)
    lines.append("")
    lines.append(f"Total: {len(files)} archivos, {total_kb}KB")
    return "\n".join(lines)


def render_services_table(services: list[ServiceSummary]) -> str:
    rows = [
        "### Servicios Disponibles",
        "",
        "| Servicio | Versión | Puerto | Endpoints |",
        "|----------|---------|--------|-----------|",
    ]
    for svc in services:
        rows.append(f"| {svc.name} | {svc.version} | {svc.port or 'N/A'} | {svc.endpoints_count} |")
    return "\n".join(rows)


class ContextAssembler:
    """Render loaded memory banks into a bounded context blob."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self.config = config or ContextConfig()

    def render_file(
        self, file: MemoryBankFile, level: ContextLevel, *, exempt: bool = False
    ) -> RenderedFile:
        if exempt:
            return RenderedFile(file.name, file.content)
        content, truncated = truncate(
            file.content,
            level,
            summary_lines=self.config.summary_lines,
            relevant_chars=self.config.relevant_chars,
        )
        return RenderedFile(file.name, content, truncated)

    def _render_section(
        self,
        files: list[MemoryBankFile],
        level: ContextLevel,
        truncated: list[str],
        *,
        meta_first: bool,
    ) -> list[str]:
        parts: list[str] = []
        if level is ContextLevel.SUMMARY and files:
            parts.append(f"### Resumen\n\n{summarize_files(files)}")

        ordered = sorted(files, key=lambda f: f.name)
        if meta_first:
            meta = [f for f in ordered if f.name == META_FILE]
            ordered = meta + [f for f in ordered if f.name != META_FILE]

        for f in ordered:
            rendered = self.render_file(f, level, exempt=meta_first and f.name == META_FILE)
            if rendered.truncated:
                truncated.append(str(f.path))
            parts.append(f"### {rendered.name}\n\n{rendered.content.rstrip()}")
        return parts

    def assemble(
        self,
        general: GeneralMemoryBank,
        local: LocalMemoryBank | None,
        level: ContextLevel,
    ) -> AssembledContext:
        parts: list[str] = []
        truncated: list[str] = []

        if general.exists:
            parts.append("=== MEMORY BANK GENERAL ===")
            parts.extend(self._render_section(general.files, level, truncated, meta_first=True))
        if general.services:
            parts.append(render_services_table(general.services))

        service = local.service_name if local else None
        if local and local.exists:
            parts.append(f"=== MEMORY BANK LOCAL: {local.service_name} ===")
            parts.extend(self._render_section(local.files, level, truncated, meta_first=False))
            if local.config:
                cfg = local.config
                parts.append(
                    "### Configuración del Servicio\n\n"
                    f"- Versión: {cfg.version}\n"
                    f"- Puerto: {cfg.port or 'N/A'}\n"
                    f"- Tecnología: {cfg.technology or 'N/A'}\n"
                    f"- Auto-sync: {'sí' if cfg.auto_sync else 'no'}"
                )

        if not parts:
            parts.append(NO_MEMORY_BANK)

        parts.append(
            "=== FIN MEMORY BANK ===\n\n"
            "INSTRUCCIONES:\n"
            f'1. Si modificas código de "{service or "cualquier servicio"}", '
            "actualiza su Memory Bank local\n"
            "2. El sync al Memory Bank general es automático\n"
            "3. Siempre verifica que el código coincida con las especificaciones del Memory Bank"
        )

        text = "\n\n".join(parts) + "\n"
        tokens = estimate_tokens(text)
        if tokens > self.config.warn_tokens:
            logger.warning(
                "Memory bank context ~%d tokens at level %s (threshold: %d)",
                tokens,
                level.value,
                self.config.warn_tokens,
            )
        return AssembledContext(
            text=text, level=level, estimated_tokens=tokens, truncated_files=truncated
        )


async def build_memory_bank_context(
    project_path: Path,
    project_name: str,
    level: ContextLevel | str = ContextLevel.RELEVANT,
    service: str | None = None,
    config: ContextConfig | None = None,
) -> AssembledContext:
    """Load the general (and optionally one local) memory bank and assemble context."""
    level = ContextLevel.parse(level)
    general = await asyncio.to_thread(load_general_memory_bank, project_path, project_name)
    local = None
    if service:
        local = await asyncio.to_thread(
            load_local_memory_bank, project_path, service, strict=False
        )
    return ContextAssembler(config).assemble(general, local, level)
