"""MCP server for editor settings sync using stdio transport.

Transport: stdio
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import setup_logging
from ..runtime import SyncRuntime
from .lifespan import server_lifespan
from .tools import SYNC_TOOLS, build_error_response, handle_sync_tool

logger = logging.getLogger(__name__)

server = Server("settings-sync")

# Global runtime instance (initialized in main)
_runtime: SyncRuntime | None = None


def get_runtime() -> SyncRuntime:
    """Get the global SyncRuntime instance.

    Raises:
        RuntimeError: If the runtime is not initialized
    """
    if _runtime is None:
        raise RuntimeError(
            "SyncRuntime not initialized. Server lifespan not started."
        )
    return _runtime


def set_runtime(runtime: SyncRuntime | None) -> None:
    global _runtime
    _runtime = runtime


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    return list(SYNC_TOOLS)


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    if name not in {tool.name for tool in SYNC_TOOLS}:
        return build_error_response(
            "unknown_tool",
            f"Unknown tool: {name}",
            "Use list_tools to see available tools.",
        )
    return await handle_sync_tool(name, arguments, get_runtime())


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Logging goes to a file only; stdout carries the protocol.

    Args:
        config_overrides: Optional dict with config values to override
            (api_url, state_dir, editor_config_dir, debug, log_file)
    """
    overrides = dict(config_overrides or {})
    log_file = overrides.pop("log_file", None)

    # must run before stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp", debug=overrides.get("debug", False), log_file=log_file
    )

    # set_runtime() is called here rather than in the lifespan so that
    # running this file as __main__ updates the right module's global.
    async with server_lifespan(config_overrides=overrides) as ctx:
        set_runtime(ctx["runtime"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="settings-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_runtime(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Settings Sync MCP Server - trigger and inspect editor settings sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .settings_sync/config.yml)
  settings-sync-mcp

  # Point at a different editor directory
  settings-sync-mcp --editor-dir ~/.atom-beta

Note: This server never prompts for sign-in. Run `settings-sync sync` once in
a terminal to store a token before starting it.
        """,
    )
    parser.add_argument(
        "--api-url",
        help="Override settings server URL (takes precedence over SETTINGS_SYNC_API_URL and config files)",
    )
    parser.add_argument("--state-dir", help="Directory holding state.json")
    parser.add_argument(
        "--editor-dir", help="Editor configuration directory"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/settings-sync.log",
        help="Log file path (default: /tmp/settings-sync.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"settings-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides: dict = {"log_file": args.log_file}
    if args.api_url:
        config_overrides["api_url"] = args.api_url
    if args.state_dir:
        config_overrides["state_dir"] = args.state_dir
    if args.editor_dir:
        config_overrides["editor_config_dir"] = args.editor_dir
    if args.debug:
        config_overrides["debug"] = True

    try:
        asyncio.run(main(config_overrides=config_overrides))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
