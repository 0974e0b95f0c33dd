"""Settings server access shared by the CLI, the daemon and the MCP server."""

from .async_utils import gather_limited, run_sync

__all__ = ["gather_limited", "run_sync"]
