"""Code context: directory tree, declared dependencies and a capped selection of source files."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from membank.models import CodeAccessLevel

logger = logging.getLogger(__name__)

TREE_DEPTH = 3
MAX_WALK_DEPTH = 5  # depth 0..5: six directory levels
MAX_DEPENDENCIES = 20

CODE_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".py", ".go", ".sql", ".json"}
IGNORE_DIRS = {"node_modules", ".git", "dist", "build", "__pycache__", ".venv", ".next", "coverage"}
PRIORITY_NAMES = {"package.json", "tsconfig.json"}
PRIORITY_STEMS = {"index", "main"}

# level -> (max files, max chars per file)
FILE_LIMITS: dict[CodeAccessLevel, tuple[int, int]] = {
    CodeAccessLevel.READ: (10, 2000),
    CodeAccessLevel.RELEVANT: (20, 3000),
    CodeAccessLevel.FULL: (50, 10000),
}

LANGUAGES = {
    ".ts": "typescript",
    ".tsx": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".py": "python",
    ".go": "go",
    ".sql": "sql",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}

_REQUIREMENT_NAME_RE = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")


@dataclass
class CodeFile:
    path: str
    content: str
    language: str
    truncated: bool = False


@dataclass
class CodeContext:
    root: Path
    structure: str = ""
    dependencies: list[str] = field(default_factory=list)
    files: list[CodeFile] = field(default_factory=list)


def _ignored(name: str) -> bool:
    return name in IGNORE_DIRS or name.startswith(".")


def _is_priority(name: str) -> bool:
    return name in PRIORITY_NAMES or name.split(".", 1)[0] in PRIORITY_STEMS


def _list_dir(path: Path) -> list[Path]:
    try:
        return list(path.iterdir())
    except OSError:
        return []


# ── Tree ───────────────────────────────────────────────────


def directory_tree(root: Path, max_depth: int = TREE_DEPTH) -> str:
    """Box-drawing tree of ``root``, directories first, ignoring build and VCS dirs."""
    lines = [f"📁 {root.name}/"]

    def walk(path: Path, prefix: str, depth: int) -> None:
        if depth > max_depth:
            return
        entries = sorted(
            (e for e in _list_dir(path) if not _ignored(e.name)),
            key=lambda e: (not e.is_dir(), e.name),
        )
        for i, entry in enumerate(entries):
            last = i == len(entries) - 1
            is_dir = entry.is_dir()
            icon = "📁" if is_dir else "📄"
            lines.append(f"{prefix}{'└── ' if last else '├── '}{icon} {entry.name}")
            if is_dir:
                walk(entry, prefix + ("    " if last else "│   "), depth + 1)

    walk(root, "", 0)
    return "\n".join(lines) + "\n"


# ── Dependencies ───────────────────────────────────────────


def _package_json_dependencies(path: Path) -> list[str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Ignoring unreadable %s: %s", path, e)
        return []
    deps = data.get("dependencies") if isinstance(data, dict) else None
    return list(deps)[:MAX_DEPENDENCIES] if isinstance(deps, dict) else []


def _requirements_dependencies(path: Path) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Ignoring unreadable %s: %s", path, e)
        return []
    names: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", "-")):
            continue
        match = _REQUIREMENT_NAME_RE.match(line)
        if match:
            names.append(match.group(1))
    return names[:MAX_DEPENDENCIES]


def load_dependencies(root: Path) -> list[str]:
    """Dependency names from package.json and requirements.txt, at most 20 from each."""
    deps: list[str] = []
    if (root / "package.json").is_file():
        deps.extend(_package_json_dependencies(root / "package.json"))
    if (root / "requirements.txt").is_file():
        deps.extend(_requirements_dependencies(root / "requirements.txt"))
    return deps


# ── Source files ───────────────────────────────────────────


def find_code_files(root: Path, max_files: int) -> list[Path]:
    """Depth-first walk collecting code files, entry points before alphabetical order."""
    found: list[Path] = []

    def walk(path: Path, depth: int) -> None:
        if len(found) >= max_files or depth > MAX_WALK_DEPTH:
            return
        entries = sorted(_list_dir(path), key=lambda e: (not _is_priority(e.name), e.name))
        for entry in entries:
            if len(found) >= max_files:
                break
            if entry.is_dir():
                if not _ignored(entry.name):
                    walk(entry, depth + 1)
            elif entry.is_file() and entry.suffix in CODE_EXTENSIONS:
                found.append(entry)

    walk(root, 0)
    return found


def load_code_context(root: Path, level: CodeAccessLevel | str = CodeAccessLevel.READ) -> CodeContext | None:
    """Collect tree, dependencies and source files under ``root``. None if it does not exist."""
    level = CodeAccessLevel.parse(level)
    if not root.is_dir():
        return None

    max_files, max_chars = FILE_LIMITS[level]
    context = CodeContext(
        root=root,
        structure=directory_tree(root),
        dependencies=load_dependencies(root),
    )
    for path in find_code_files(root, max_files):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        truncated = len(content) > max_chars
        if truncated:
            content = content[:max_chars] + "\n// ... truncado ..."
        context.files.append(
            CodeFile(
                path=path.relative_to(root).as_posix(),
                content=content,
                language=LANGUAGES.get(path.suffix, "text"),
                truncated=truncated,
            )
        )
    return context


def format_code_context(context: CodeContext | None) -> str:
    if context is None:
        return "[No hay codigo disponible]"

    parts: list[str] = []
    if context.structure:
        parts.append(f"### Estructura del Proyecto\n\n```\n{context.structure}```")
    if context.dependencies:
        parts.append(f"### Dependencias Principales\n\n{', '.join(context.dependencies)}")
    if context.files:
        parts.append(f"### Archivos de Codigo ({len(context.files)})")
        for f in context.files:
            parts.append(f"#### {f.path}\n\n```{f.language}\n{f.content}\n```")
    return "\n\n".join(parts) + "\n"


async def build_code_context(
    project_path: Path,
    level: CodeAccessLevel | str = CodeAccessLevel.READ,
    service: str | None = None,
) -> CodeContext | None:
    root = project_path / service if service else project_path
    return await asyncio.to_thread(load_code_context, root, level)
