"""Command line interface: ``settings-sync``.

Subcommands:

- ``sync``        -- run one sync cycle and print the report.
- ``daemon``      -- become the machine's sync runner and sync periodically.
- ``status``      -- show the stored baseline and whether a token is cached.
- ``init-config`` -- write a commented starter config file.
"""

import argparse
import asyncio
import json
import logging
import os
import socket
import sys

from . import __version__
from .config_loader import ensure_config
from .logger import setup_logging
from .runtime import SyncRuntime, build_runtime, load_runtime_config
from .sync.coordination import (
    LEADER_LOCK_FILE,
    InstanceRegistry,
    ProcessLeaderLock,
)
from .sync.reporter import format_status, format_sync_report, report_to_json

logger = logging.getLogger(__name__)


async def _sync_once(runtime: SyncRuntime):
    try:
        return await runtime.orchestrator.sync()
    finally:
        runtime.orchestrator.stop()


async def _run_daemon(runtime: SyncRuntime, poll_interval: float) -> None:
    """Wait for leadership, then sync now and on every timer tick until
    cancelled."""
    leader = ProcessLeaderLock(runtime.config.state_dir / LEADER_LOCK_FILE)
    if not leader.try_acquire():
        print(
            "Another settings-sync runner is active; waiting to take over...",
            file=sys.stderr,
        )
        await leader.wait_for_leadership(poll_interval)

    registry = InstanceRegistry()
    instance_id = f"{socket.gethostname()}:{os.getpid()}"
    registry.register(instance_id, runtime.orchestrator.start)
    print(
        f"Syncing every {runtime.config.interval:g}s "
        f"(editor: {runtime.config.editor_config_dir})",
        file=sys.stderr,
    )
    try:
        report = await runtime.orchestrator.sync()
        logger.info(report.summary())
        await asyncio.Event().wait()
    finally:
        registry.unregister(instance_id)
        runtime.orchestrator.stop()
        leader.release()


def _cmd_sync(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    report = asyncio.run(_sync_once(runtime))
    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    else:
        print(format_sync_report(report))
    return 0 if report.success else 1


def _cmd_daemon(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    try:
        asyncio.run(_run_daemon(runtime, args.poll_interval))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
    return 0


def _cmd_status(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    baseline = runtime.state.read_baseline()
    has_token = runtime.state.get_token() is not None
    if args.json:
        print(
            json.dumps(
                {
                    "last_update": (
                        baseline.last_update.isoformat()
                        if baseline.last_update
                        else None
                    ),
                    "checksum": baseline.checksum,
                    "authenticated": has_token,
                    "state_file": str(runtime.state.path),
                },
                indent=2,
            )
        )
    else:
        print(format_status(baseline, has_token))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="settings-sync",
        description="Keep editor packages and settings in sync with a settings server",
    )
    parser.add_argument(
        "--api-url",
        help="Override settings server URL (takes precedence over SETTINGS_SYNC_API_URL and config files)",
    )
    parser.add_argument(
        "--state-dir",
        help="Directory holding state.json (default: ~/.settings_sync)",
    )
    parser.add_argument(
        "--editor-dir",
        help="Editor configuration directory (default: ~/.atom)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--debug-format",
        choices=["text", "json"],
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"settings-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Run one sync cycle")
    sync_p.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    daemon_p = sub.add_parser(
        "daemon", help="Sync periodically until interrupted"
    )
    daemon_p.add_argument(
        "--poll-interval",
        type=float,
        default=5.0,
        help="Seconds between attempts to become the runner (default: 5)",
    )

    status_p = sub.add_parser("status", help="Show the stored sync state")
    status_p.add_argument(
        "--json", action="store_true", help="Print the status as JSON"
    )

    sub.add_parser("init-config", help="Write a starter config file")
    return parser


_COMMANDS = {
    "sync": _cmd_sync,
    "daemon": _cmd_daemon,
    "status": _cmd_status,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init-config":
        path = ensure_config()
        print(f"Config file: {path}")
        return 0

    try:
        config = load_runtime_config(
            {
                "api_url": args.api_url,
                "state_dir": args.state_dir,
                "editor_config_dir": args.editor_dir,
                "debug": args.debug,
            }
        )
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        mode="cli",
        debug=config.debug,
        log_file=args.log_file or config.log_file,
        debug_format=args.debug_format,
        level=config.log_level,
    )

    runtime = build_runtime(config)
    return _COMMANDS[args.command](runtime, args)


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
