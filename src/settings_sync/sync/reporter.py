"""Sync report formatting functions.

- ``format_sync_report`` -- human-readable summary of one cycle.
- ``format_status`` -- human-readable baseline/token status.
- ``report_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Baseline, SyncReport


def format_sync_report(report: SyncReport) -> str:
    """Format a sync report as human-readable text.

    Args:
        report: The completed sync report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = [report.summary()]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")

    if report.changes:
        lines.append("")
        lines.append("Changes:")
        for index, kind in enumerate(report.changes):
            mark = "done" if index < len(report.applied) else "not applied"
            lines.append(f"  {kind.value} ({mark})")

    return "\n".join(lines)


def format_status(baseline: Baseline, has_token: bool) -> str:
    last_update = (
        baseline.last_update.isoformat() if baseline.last_update else "never"
    )
    return "\n".join(
        [
            "Settings sync status",
            f"  Last update:   {last_update}",
            f"  Checksum:      {baseline.checksum or '-'}",
            f"  Authenticated: {'yes' if has_token else 'no'}",
        ]
    )


def report_to_json(report: SyncReport) -> dict:
    """Convert a sync report to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.
    """
    result: dict = {
        "success": report.success,
        "skipped": report.skipped,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "changes": [kind.value for kind in report.changes],
        "applied": [kind.value for kind in report.applied],
    }
    if report.error:
        result["error"] = report.error
    return result
