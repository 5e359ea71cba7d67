"""Command-line entry point: fix a module, rebuild the index, or search it."""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import Config, get_env_config
from .container import build_components
from .exceptions import AutofixerError
from .logging_setup import configure_logging

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    ivalue = int(value)
    if ivalue < 1:
        raise argparse.ArgumentTypeError("Value must be >= 1")
    return ivalue


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autofixer",
        description="Run a Python module and repair it with retrieval-augmented LLM fixes",
    )
    parser.add_argument("--workspace", help="Project root (default: WORKSPACE_PATH or cwd)")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    fix = subparsers.add_parser("fix", help="Repair a module until its entry point runs")
    fix.add_argument("path", help="Module file to repair")
    fix.add_argument("--entry-point", help="Name of the validating callable (default: run)")
    fix.add_argument("--max-rounds", type=_positive_int, help="Maximum repair rounds")
    fix.add_argument(
        "--context",
        help="User-reported errors and instructions (prompted for when omitted on a TTY)",
    )

    subparsers.add_parser("index", help="Rebuild the vector index")

    search = subparsers.add_parser("search", help="Search the vector index")
    search.add_argument("query")
    search.add_argument("-k", type=_positive_int, default=10, help="Number of results")

    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    updates = {}
    if args.workspace:
        workspace = Path(args.workspace).resolve()
        updates["workspace_path"] = workspace
        updates["index_file"] = workspace / ".autofixer" / "vector_index.json"
    if args.log_level:
        updates["log_level"] = args.log_level
    if getattr(args, "entry_point", None):
        updates["entry_point"] = args.entry_point
    if getattr(args, "max_rounds", None):
        updates["max_rounds"] = args.max_rounds
    return dataclasses.replace(config, **updates) if updates else config


def read_extra_context(args: argparse.Namespace) -> str:
    """User-reported errors and instructions for a fix run."""
    if args.context is not None:
        text = args.context.strip()
    elif sys.stdin.isatty():
        text = input(
            "Paste the errors you are facing and any additional instructions "
            "(or press Enter to skip): "
        ).strip()
    else:
        text = ""
    return f"User-reported errors and instructions: {text}\n" if text else ""


async def run_command(args: argparse.Namespace, config: Config) -> int:
    components = build_components(config)
    try:
        if args.command == "index":
            snapshot = await components.index.load_or_build(force=True)
            print(f"Indexed {len(snapshot.chunks)} chunks into {config.index_file}")
            return 0

        if args.command == "search":
            chunks = await components.search.search(args.query, args.k)
            for i, chunk in enumerate(chunks, 1):
                print(f"{i}. {chunk.file_path}:{chunk.start_line}-{chunk.end_line} ({chunk.name})")
            return 0

        target = Path(args.path).resolve()
        if not target.exists():
            print(f"Error: File {target} does not exist.", file=sys.stderr)
            return 1

        extra_context = read_extra_context(args)
        print(f"Attempting to fix and test: {target}")
        result = await components.repair_loop.run(target, extra_context)
        summary = [
            {"round": record.round, "error": record.error, "fixed": bool(record.fix and record.fix.applied)}
            for record in result.history
        ]

        if result.ok:
            print(f"Success after {result.rounds} round(s)! Output: {result.out!r}")
        else:
            print(
                f"Failed to fix after {result.rounds} round(s). Last error: {result.error}",
                file=sys.stderr,
            )
            print(f"Backups of edited files are in {config.backup_dir}")
        print("Fix history:", json.dumps(summary, indent=2))
        for warning in result.warnings:
            print(f"warning: {warning}", file=sys.stderr)
        return 0 if result.ok else 1

    finally:
        await components.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(get_env_config(), args)
    except AutofixerError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_file)

    try:
        return asyncio.run(run_command(args, config))
    except AutofixerError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
