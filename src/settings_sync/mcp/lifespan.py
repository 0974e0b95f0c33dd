"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..core.auth import StoredTokenOnly
from ..runtime import build_runtime, load_runtime_config
from ..sync.coordination import LEADER_LOCK_FILE, ProcessLeaderLock

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env and the YAML config, merged via load_config():
      CLI > env vars > .env > YAML > defaults
    - Build the sync runtime (never prompts for sign-in; stdin belongs to
      the MCP transport)
    - Start the periodic sync if no other runner holds the leader lock

    On shutdown:
    - Stop the periodic sync and release the leader lock

    Args:
        config_overrides: Optional dict with config values from CLI
            (api_url, state_dir, editor_config_dir, debug)

    Yields:
        Dict with 'runtime' key containing the ``SyncRuntime``

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("MCP server starting...")
    _stderr_print("Settings Sync MCP Server starting...")

    try:
        config = load_runtime_config(config_overrides)
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    _stderr_print(f"  Settings server: {config.api_url}")
    _stderr_print(f"  Editor config: {config.editor_config_dir}")

    runtime = build_runtime(config, authenticator=StoredTokenOnly())
    leader = ProcessLeaderLock(config.state_dir / LEADER_LOCK_FILE)
    if leader.try_acquire():
        runtime.orchestrator.start()
        _stderr_print(f"  Periodic sync every {config.interval:g}s")
    else:
        logger.info("Another runner holds %s; manual sync only", leader.path)
        _stderr_print("  Another sync runner is active; manual sync only")

    _stderr_print("Server ready. Waiting for MCP client connection...")
    try:
        yield {"runtime": runtime}
    finally:
        runtime.orchestrator.stop()
        leader.release()
        logger.info("MCP server shutting down")
        _stderr_print("Settings Sync MCP Server shutting down.")
