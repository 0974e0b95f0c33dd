"""MCP tool handlers for settings sync.

Defines two tools:

- ``settings_sync`` -- run one sync cycle now.
- ``settings_sync_status`` -- show the stored baseline and timer state.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...runtime import SyncRuntime
from ...sync.reporter import format_status, format_sync_report, report_to_json
from .errors import build_error_response

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="settings_sync",
        description=(
            "Synchronize editor packages and settings with the settings "
            "server now. Skipped if a sync is already running."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    types.Tool(
        name="settings_sync_status",
        description=(
            "Show sync state -- last synced server timestamp, checksum, "
            "whether a token is stored and whether the periodic sync runs."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Tool handler
# ---------------------------------------------------------------------------


async def handle_sync_tool(
    name: str,
    arguments: dict[str, Any] | None,
    runtime: SyncRuntime,
) -> types.CallToolResult:
    """Dispatch and execute a sync tool.

    Args:
        name: Tool name (``settings_sync`` or ``settings_sync_status``).
        arguments: Tool arguments dict (unused; both tools take none).
        runtime: The server's sync runtime.

    Returns:
        ``CallToolResult`` with tool output or error details.
    """
    try:
        match name:
            case "settings_sync":
                return await _handle_settings_sync(runtime)
            case "settings_sync_status":
                return await _handle_settings_sync_status(runtime)
            case _:
                raise ValueError(f"Unknown sync tool: {name}")

    except ValueError as exc:
        return build_error_response(
            "validation_error",
            str(exc),
            "Use list_tools to see available tools.",
        )
    except Exception as exc:
        logger.exception("Sync tool error: %s", exc)
        return build_error_response(
            "server_error",
            str(exc),
            "Check the settings-sync configuration and state directory.",
        )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_settings_sync(
    runtime: SyncRuntime,
) -> types.CallToolResult:
    """Handle the ``settings_sync`` tool."""
    report = await runtime.orchestrator.sync()
    return types.CallToolResult(
        content=[
            types.TextContent(type="text", text=format_sync_report(report))
        ],
        structuredContent=report_to_json(report),
        isError=report.error is not None,
    )


async def _handle_settings_sync_status(
    runtime: SyncRuntime,
) -> types.CallToolResult:
    """Handle the ``settings_sync_status`` tool."""
    baseline = await run_sync(runtime.state.read_baseline)
    has_token = await run_sync(runtime.state.get_token) is not None
    orchestrator = runtime.orchestrator

    lines = [
        format_status(baseline, has_token),
        f"  Periodic sync: {'running' if orchestrator.running else 'stopped'}",
        f"  Sync running:  {'yes' if orchestrator.lock.held else 'no'}",
    ]
    structured = {
        "last_update": (
            baseline.last_update.isoformat() if baseline.last_update else None
        ),
        "checksum": baseline.checksum,
        "authenticated": has_token,
        "timer_running": orchestrator.running,
        "sync_in_progress": orchestrator.lock.held,
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )
