from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from pydantic import ValidationError

from mirrorgate.domain.entities import SnapshotWriteError
from mirrorgate.infrastructure.config import AppConfig, load_config
from mirrorgate.infrastructure.logging.setup import configure_logging
from mirrorgate.infrastructure.persistence.snapshot_file import FileSnapshotStore
from mirrorgate.interfaces.app import create_app
from mirrorgate.interfaces.composition import build_pipeline, create_http_client

log = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_FATAL = 2


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--source-url",
        default=None,
        help="Override registry source URL.",
    )
    parser.add_argument(
        "--fallback-url",
        default=None,
        help="Override fallback instance URL.",
    )
    parser.add_argument(
        "--snapshot-path",
        default=None,
        help="Override snapshot artifact path.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mirrorgate")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the failover proxy server.")
    serve.add_argument(
        "--host",
        default=None,
        help="Bind host (overrides HOST env).",
    )
    serve.add_argument(
        "--port",
        default=None,
        type=int,
        help="Bind port (overrides PORT env).",
    )
    _add_config_args(serve)

    check = sub.add_parser(
        "check", help="Run one health-check cycle and write the snapshot file."
    )
    _add_config_args(check)

    argv = list(argv) if argv is not None else sys.argv[1:]
    # Bare `mirrorgate [--flags]` behaves like `mirrorgate serve [--flags]`.
    if not argv or (argv[0].startswith("-") and argv[0] not in ("-h", "--help")):
        argv = ["serve", *argv]
    return parser.parse_args(argv)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.source_url:
        overrides["registry_source_url"] = args.source_url
    if args.fallback_url:
        overrides["registry_fallback_url"] = args.fallback_url
    if args.snapshot_path:
        overrides["snapshot_path"] = args.snapshot_path
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    return overrides


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=_cli_overrides(args),
    )


async def run_check(config: AppConfig) -> int:
    """Build one Snapshot and persist it.  Returns the process exit code."""
    store = FileSnapshotStore(config.snapshot.path)
    async with create_http_client(config) as http_client:
        snapshot = await build_pipeline(config, http_client).build()
    try:
        await store.save(snapshot)
    except SnapshotWriteError as e:
        log.error("snapshot_write_failed", path=str(store.path), error=str(e))
        return EXIT_FATAL
    log.info(
        "check_complete",
        path=str(store.path),
        instances=len(snapshot),
        version_priority=snapshot.version_priority,
    )
    return EXIT_OK


def start(argv: Iterable[str] | None = None) -> int:
    """
    Process entrypoint.

    Loads config exactly once here, then dispatches to the sub-command.
    """
    if argv is None:
        argv = sys.argv[1:]
    argv = list(argv)

    args = _parse_args(argv)

    try:
        config = _load(args)
    except (ValidationError, FileNotFoundError, ValueError) as e:
        print(f"mirrorgate: configuration error: {e}", file=sys.stderr)
        return EXIT_FATAL

    log_config = configure_logging(config)

    if args.command == "check":
        try:
            return asyncio.run(run_check(config))
        except Exception:
            log.error("check_failed", exc_info=True)
            return EXIT_FATAL

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = int(args.port or os.getenv("PORT", "8080"))

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_config=log_config,
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(start())
