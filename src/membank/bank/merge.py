"""Write side of the general memory bank: service sections and the microservices index.

Both writers are read-modify-write over a whole file. Callers that run
them concurrently must hold the file's lock from ``membank.locks.PathLocks``.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from membank.models import ServiceConfig

logger = logging.getLogger(__name__)

INDEX_FILE = "02-MICROSERVICES-INDEX.md"
INDEX_COLUMNS = ("Servicio", "Versión", "Puerto", "Tecnología", "Estado", "Última Sync")

STATUS_EMOJI = {
    "active": "🟢",
    "development": "🟡",
    "deprecated": "🔴",
}
DEFAULT_STATUS_EMOJI = "⚪"

_TIMESTAMP_PREFIX = "> Última actualización:"
_TIMESTAMP_RE = re.compile(r"^> Última actualización:.*$", re.MULTILINE)
_MARKER_RE = re.compile(r"<!--(\s*(?:BEGIN|END):[^>]*?)-->")
_INDEX_HEADER_RE = re.compile(r"^\|\s*Servicio\s*\|")


def iso_now(now: datetime | None = None) -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def begin_marker(service: str) -> str:
    return f"<!-- BEGIN:{service} -->"


def end_marker(service: str) -> str:
    return f"<!-- END:{service} -->"


# ── Service sections ───────────────────────────────────────


def escape_markers(body: str) -> str:
    """Turn any BEGIN/END section marker inside ``body`` into visible, inert text."""
    return _MARKER_RE.sub(r"&lt;!--\1--&gt;", body)


def build_section_block(service: str, version: str, body: str, timestamp: str) -> str:
    """Render the canonical marker-delimited block for one service."""
    body = body.rstrip("\n")
    # A body never carries live section markers
    body = escape_markers(body)
    return (
        f"{begin_marker(service)}\n"
        f"## {service} (v{version})\n"
        f"> Sincronizado automáticamente desde: {service}/memory-bank/\n"
        f"{_TIMESTAMP_PREFIX} {timestamp}\n"
        f"\n"
        f"{body}\n"
        f"\n"
        f"{end_marker(service)}"
    )


def find_section(text: str, service: str) -> tuple[int, int] | None:
    """Locate the first well-formed ``[begin, end)`` region for ``service``.

    Scans for an END marker and pairs it with the nearest BEGIN before it, so
    a dangling BEGIN left by a hand edit is never paired with a later END
    across unrelated content.
    """
    begin, end = begin_marker(service), end_marker(service)
    pos = 0
    while True:
        end_idx = text.find(end, pos)
        if end_idx == -1:
            return None
        begin_idx = text.rfind(begin, pos, end_idx)
        if begin_idx != -1:
            return begin_idx, end_idx + len(end)
        pos = end_idx + len(end)


def splice_section(text: str, service: str, block: str) -> str:
    """Replace the service's region in place, or append the block at end of file."""
    span = find_section(text, service)
    if span is not None:
        start, stop = span
        return text[:start] + block + text[stop:]
    if text and not text.endswith("\n"):
        text += "\n"
    return text + "\n" + block + "\n"


def _title_for(general_path: Path) -> str:
    return f"# {general_path.stem.replace('-', ' ')}"


def merge_section(
    general_path: Path,
    service: str,
    version: str,
    body: str,
    now: datetime | None = None,
) -> None:
    """Write ``body`` into the service's section of a general file, creating the file if needed."""
    block = build_section_block(service, version, body, iso_now(now))
    if general_path.exists():
        text = general_path.read_text(encoding="utf-8")
        updated = splice_section(text, service, block)
    else:
        general_path.parent.mkdir(parents=True, exist_ok=True)
        updated = f"{_title_for(general_path)}\n\n{block}\n"
    general_path.write_text(updated, encoding="utf-8")
    logger.debug("Merged section %s into %s", service, general_path.name)


# ── Microservices index ────────────────────────────────────


def index_template(timestamp: str) -> str:
    header = "| " + " | ".join(INDEX_COLUMNS) + " |"
    separator = "|" + "|".join("-" * (len(c) + 2) for c in INDEX_COLUMNS) + "|"
    return (
        "# Microservices Index\n"
        "\n"
        "> Auto-generado por Memory Bank Sync\n"
        f"{_TIMESTAMP_PREFIX} {timestamp}\n"
        "\n"
        "## Servicios\n"
        "\n"
        f"{header}\n"
        f"{separator}\n"
    )


def render_index_row(config: ServiceConfig, now: datetime | None = None) -> str:
    emoji = STATUS_EMOJI.get(config.status or "", DEFAULT_STATUS_EMOJI)
    day = iso_now(now)[:10]
    return (
        f"| {config.service_name} | {config.version} | {config.port or 'N/A'} "
        f"| {config.technology or 'N/A'} | {emoji} {config.status or 'development'} "
        f"| {day} |\n"
    )


def _insert_row(text: str, row: str) -> str:
    """Insert ``row`` after the last row of the services table, keeping trailing content below it."""
    lines = text.splitlines(keepends=True)
    header_idx = next((i for i, line in enumerate(lines) if _INDEX_HEADER_RE.match(line)), None)
    if header_idx is None:
        header = "| " + " | ".join(INDEX_COLUMNS) + " |\n"
        separator = "|" + "|".join("-" * (len(c) + 2) for c in INDEX_COLUMNS) + "|\n"
        body = text.rstrip("\n")
        prefix = body + "\n\n" if body else ""
        return prefix + header + separator + row

    last = header_idx
    while last + 1 < len(lines) and lines[last + 1].lstrip().startswith("|"):
        last += 1
    if not lines[last].endswith("\n"):
        lines[last] += "\n"
    lines.insert(last + 1, row)
    return "".join(lines)


def upsert_row(text: str, name: str, row: str) -> str:
    """Replace the row keyed by ``name`` (dropping duplicates) or insert a new one."""
    row_re = re.compile(rf"^\| {re.escape(name)} \|[^\n]*(?:\n|\Z)", re.MULTILINE)
    matches = list(row_re.finditer(text))
    if not matches:
        return _insert_row(text, row)

    parts: list[str] = []
    pos = 0
    for i, match in enumerate(matches):
        parts.append(text[pos : match.start()])
        if i == 0:
            parts.append(row)
        pos = match.end()
    parts.append(text[pos:])
    return "".join(parts)


def touch_index_timestamp(text: str, timestamp: str) -> str:
    """Rewrite the ``> Última actualización:`` line. Unchanged when the line is missing."""
    if not _TIMESTAMP_RE.search(text):
        logger.debug("Index has no timestamp line, skipping timestamp update")
        return text
    return _TIMESTAMP_RE.sub(f"{_TIMESTAMP_PREFIX} {timestamp}", text, count=1)


def upsert_index_row(
    general_dir: Path,
    config: ServiceConfig,
    now: datetime | None = None,
) -> Path:
    """Upsert the service's row in the microservices index. Returns the index path."""
    index_path = general_dir / INDEX_FILE
    timestamp = iso_now(now)
    if index_path.exists():
        text = index_path.read_text(encoding="utf-8")
    else:
        general_dir.mkdir(parents=True, exist_ok=True)
        text = index_template(timestamp)

    text = upsert_row(text, config.service_name, render_index_row(config, now))
    text = touch_index_timestamp(text, timestamp)
    index_path.write_text(text, encoding="utf-8")
    return index_path
