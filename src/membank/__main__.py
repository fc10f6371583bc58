"""Entry point: python -m membank <command>

- services:  List services that have a local memory bank
- sync:      Sync one service (or all) into the general memory bank
- context:   Print assembled memory bank context
- code:      Print code context (tree, dependencies, source files)
- init:      Create the general memory bank, or a service's local one

Commands work on a project directory (--project, default: cwd) or on a
registered project id (--project-id, looked up in the projects file).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from membank.config import load_config
from membank.context.code import format_code_context
from membank.core import MemoryBankService
from membank.errors import MemoryBankError
from membank.registry import InMemoryProjectRegistry, JsonProjectRegistry, Project

_LOCAL_PROJECT_ID = "local"


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="membank", description="Hierarchical memory banks")
    parser.add_argument("--project", type=Path, default=None, help="project root directory")
    parser.add_argument("--project-id", default=None, help="id in the projects file")
    parser.add_argument("--config", type=Path, default=None, help="path to membank.toml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("services", help="list services with a local memory bank")

    p_sync = sub.add_parser("sync", help="sync local memory banks into the general one")
    p_sync.add_argument("service", nargs="?")

    p_ctx = sub.add_parser("context", help="print memory bank context")
    p_ctx.add_argument("--level", choices=["summary", "relevant", "full"], default=None)
    p_ctx.add_argument("--service", default=None)

    p_code = sub.add_parser("code", help="print code context")
    p_code.add_argument("--level", choices=["read", "relevant", "full"], default="read")
    p_code.add_argument("--service", default=None)

    p_init = sub.add_parser("init", help="create the general or a local memory bank")
    p_init.add_argument("service", nargs="?")
    return parser


async def _run(service: MemoryBankService, project_id: str, args: argparse.Namespace) -> int:
    if args.command == "services":
        for svc in await service.list_services(project_id):
            print(
                f"{svc.name}\tv{svc.version}\tport={svc.port or 'N/A'}\t"
                f"endpoints={svc.endpoints_count}\ttables={svc.tables_count}"
            )
        return 0

    if args.command == "sync":
        if args.service:
            results = [await service.sync_local_to_general(project_id, args.service)]
        else:
            results = await service.sync_all_services(project_id)
        print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
        return 0 if all(r.success for r in results) else 1

    if args.command == "context":
        ctx = await service.build_memory_bank_context(project_id, args.level, args.service)
        print(ctx.text)
        print(f"(~{ctx.estimated_tokens} tokens)", file=sys.stderr)
        return 0

    if args.command == "code":
        code = await service.build_code_context(project_id, args.level, args.service)
        print(format_code_context(code))
        return 0

    if args.command == "init":
        if args.service:
            result = await service.init_local_memory_bank(project_id, args.service)
        else:
            result = await service.init_general_memory_bank(project_id)
        print(f"Created {result.path}:")
        for name in result.files_created:
            print(f"  {name}")
        return 0

    return 2


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except MemoryBankError as e:
        print(f"membank: {e}", file=sys.stderr)
        sys.exit(1)
    _setup_logging(config.log_level)

    if args.project_id:
        registry = JsonProjectRegistry(config.projects_file)
        project_id = args.project_id
    else:
        root = (args.project or Path.cwd()).resolve()
        registry = InMemoryProjectRegistry([Project(_LOCAL_PROJECT_ID, root.name, root)])
        project_id = _LOCAL_PROJECT_ID

    service = MemoryBankService(config, registry)
    try:
        code = asyncio.run(_run(service, project_id, args))
    except MemoryBankError as e:
        print(f"membank: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
