"""Settings reconciliation engine.

Keeps one editor installation and the settings server in step.  A sync
cycle compares the local baseline with the server's ``lastUpdate``,
classifies the divergence into ``ChangeRecord`` objects and applies them in
order.

Modules:

- ``models``       -- ``ChangeKind``, ``ChangeRecord``, ``PackageDescriptor``
  and the other data contracts.
- ``state``        -- ``SyncStateStore`` (persisted baseline and token) and
  ``SyncLock``.
- ``classifier``   -- ``ChangeClassifier`` and ``diff_packages``.
- ``handlers``     -- ``ApplyHandlers``: backup, install, uninstall, apply.
- ``orchestrator`` -- ``SyncOrchestrator``: lock, dispatch, periodic timer.
- ``coordination`` -- ``InstanceRegistry`` and ``ProcessLeaderLock``.
- ``notifier``     -- success notifications.
- ``reporter``     -- human-readable and JSON report formatting.
"""

from .models import (
    Baseline,
    ChangeKind,
    ChangeRecord,
    PackageDescriptor,
    PackageDiff,
    RemoteSettingsInfo,
    RemoteSnapshot,
    SaveResult,
    SettingsFile,
    SyncReport,
)
from .state import SyncLock, SyncStateStore, snapshot_checksum
from .classifier import ChangeClassifier, diff_packages
from .handlers import ApplyHandlers
from .notifier import ConsoleNotifier, Notifier
from .orchestrator import SUCCESS_MESSAGE, SyncOrchestrator
from .coordination import InstanceRegistry, ProcessLeaderLock
from .reporter import format_status, format_sync_report, report_to_json

__all__ = [
    "ApplyHandlers",
    "Baseline",
    "ChangeClassifier",
    "ChangeKind",
    "ChangeRecord",
    "ConsoleNotifier",
    "InstanceRegistry",
    "Notifier",
    "PackageDescriptor",
    "PackageDiff",
    "ProcessLeaderLock",
    "RemoteSettingsInfo",
    "RemoteSnapshot",
    "SUCCESS_MESSAGE",
    "SaveResult",
    "SettingsFile",
    "SyncLock",
    "SyncOrchestrator",
    "SyncReport",
    "SyncStateStore",
    "diff_packages",
    "format_status",
    "format_sync_report",
    "report_to_json",
    "snapshot_checksum",
]
