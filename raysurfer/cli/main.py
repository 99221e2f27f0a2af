"""CLI: raysurfer search, materialize, upload, config validate."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from ..client import RaySurfer
from ..config import load_config, validate_config
from ..programmatic import ProgrammaticToolCallingSession
from ..types import RaysurferConfig, RaysurferError


def _get_client(args) -> tuple[RaySurfer, RaysurferConfig]:
    config = load_config(args.config)
    return RaySurfer.from_config(config), config


async def _search(args) -> None:
    client, config = _get_client(args)
    async with client:
        result = await client.search(
            args.task,
            top_k=args.top_k or config.retrieval.top_k,
            min_verdict_score=config.retrieval.min_verdict_score,
            prefer_complete=config.retrieval.prefer_complete,
        )

    if args.json:
        output = {
            "total_found": result.total_found,
            "cache_hit": result.cache_hit,
            "artifacts": [
                {
                    "id": a.id,
                    "filename": a.filename,
                    "language": a.language,
                    "entrypoint": a.entrypoint,
                    "description": a.description,
                    "score": a.score,
                    "thumbs_up": a.thumbs_up,
                    "thumbs_down": a.thumbs_down,
                }
                for a in result.artifacts
            ],
        }
        print(json.dumps(output, indent=2))
        return

    if not result.artifacts:
        print("No cached code found for this task.")
        return

    print(f"{'Filename':<32} {'Language':<12} {'Score':>6} {'Votes':>9}")
    print("-" * 62)
    for a in result.artifacts:
        votes = f"+{a.thumbs_up}/-{a.thumbs_down}"
        print(f"{a.filename:<32} {a.language:<12} {a.score:>6.0%} {votes:>9}")
    print(f"\n{len(result.artifacts)} of {result.total_found} matches shown")


async def _materialize(args) -> None:
    client, config = _get_client(args)
    async with client:
        session = ProgrammaticToolCallingSession(
            client,
            top_k=args.top_k or config.retrieval.top_k,
            workspace_id=config.namespace.workspace_id,
            scratch_dir=args.dir,
            min_verdict_score=config.retrieval.min_verdict_score,
            prefer_complete=config.retrieval.prefer_complete,
        )
        ctx = await session.prepare_turn(args.task)

    if not ctx.artifacts:
        print(f"No cached code found. {ctx.scratch_dir} is unchanged.", file=sys.stderr)
        return
    print(f"Wrote {len(ctx.artifacts)} files to {ctx.scratch_dir}", file=sys.stderr)
    print(ctx.prompt_fragment)


async def _upload(args) -> None:
    client, config = _get_client(args)
    async with client:
        # No baseline: every text file in the directory counts as changed
        session = ProgrammaticToolCallingSession(
            client,
            workspace_id=config.namespace.workspace_id,
            scratch_dir=args.dir,
        )
        result = await session.upload_changed_code(args.task, succeeded=not args.failed)

    if result is None:
        print(f"No text files found in {args.dir}.")
        return
    status = "ok" if result.success else "rejected"
    print(f"Upload {status}: {result.code_blocks_stored} code blocks stored")
    if result.message:
        print(f"  {result.message}")


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except RaysurferError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_search(args):
    """Search the cache for a task."""
    _run(_search(args))


def cmd_materialize(args):
    """Write matching artifacts into a directory and print the prompt fragment."""
    _run(_materialize(args))


def cmd_upload(args):
    """Upload every text file in a directory."""
    _run(_upload(args))


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    else:
        print("Config is valid.")
        print(f"  Base URL: {config.base_url}")
        print(f"  API key: {'set' if config.api_key else 'not set (caching disabled)'}")
        print(f"  Retrieval: top_k={config.retrieval.top_k}, min_verdict_score={config.retrieval.min_verdict_score}")
        print(f"  Cache dir: {config.cache_dir}")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="raysurfer",
        description="Code cache for AI coding agents",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # search
    search_parser = subparsers.add_parser("search", help="Search cached code for a task")
    search_parser.add_argument("task", help="Task description")
    search_parser.add_argument("--top-k", "-k", type=int, default=None, help="Max matches")
    search_parser.add_argument("--json", action="store_true", help="Print JSON")

    # materialize
    mat_parser = subparsers.add_parser("materialize", help="Write cached code into a directory")
    mat_parser.add_argument("task", help="Task description")
    mat_parser.add_argument("--dir", "-d", required=True, help="Target directory")
    mat_parser.add_argument("--top-k", "-k", type=int, default=None, help="Max matches")

    # upload
    upload_parser = subparsers.add_parser("upload", help="Upload code from a directory")
    upload_parser.add_argument("task", help="Task the code was written for")
    upload_parser.add_argument("--dir", "-d", required=True, help="Directory to upload")
    upload_parser.add_argument("--failed", action="store_true", help="Mark the run as failed")

    # config
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "search":
        cmd_search(args)
    elif args.command == "materialize":
        cmd_materialize(args)
    elif args.command == "upload":
        cmd_upload(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            print("Usage: raysurfer config validate")
            sys.exit(1)


if __name__ == "__main__":
    main()
