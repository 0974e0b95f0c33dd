"""Apply handlers: the side effects a sync cycle performs.

Every successful handler stores a fresh baseline, so the next
classification does not see the same change again:

- ``backup()`` stores the ``lastUpdate`` the server returned for the save.
- ``install_packages()``, ``uninstall_packages()`` and
  ``apply_settings_files()`` store the server's current ``lastUpdate``.

In both cases the stored checksum is that of the local snapshot right after
the handler ran.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Protocol

from ..core.async_utils import run_sync
from ..core.exceptions import BackupRejectedError
from ..editor.settings_manager import SettingsSnapshotProvider
from .models import (
    Baseline,
    PackageDescriptor,
    RemoteSettingsInfo,
    SaveResult,
    SettingsFile,
)
from .state import SyncStateStore, snapshot_checksum

logger = logging.getLogger(__name__)


class SettingsGateway(Protocol):
    """Remote operations the handlers need."""

    def fetch_info(self) -> RemoteSettingsInfo: ...

    def save_snapshot(
        self, files: Mapping[str, SettingsFile]
    ) -> SaveResult: ...


class ApplyHandlers:
    """Backup, package and settings-file handlers bound to one client.

    Args:
        gateway: Settings server access.
        provider: Local snapshot provider.
        state: Sync state store receiving the new baselines.
        install_concurrency: Maximum number of concurrent installs.
    """

    def __init__(
        self,
        gateway: SettingsGateway,
        provider: SettingsSnapshotProvider,
        state: SyncStateStore,
        install_concurrency: int = 5,
    ) -> None:
        self.gateway = gateway
        self.provider = provider
        self.state = state
        self.install_concurrency = install_concurrency

    async def backup(self) -> Baseline:
        """Push the local snapshot to the server.

        Raises:
            BackupRejectedError: If the server did not accept the snapshot.
        """
        files = await run_sync(self.provider.list_files)
        result = await run_sync(self.gateway.save_snapshot, files)
        if not result.success:
            raise BackupRejectedError("Server rejected the settings backup")

        last_update = result.last_update
        if last_update is None:
            info = await run_sync(self.gateway.fetch_info)
            last_update = info.last_update

        logger.info("Settings backed up (%d files)", len(files))
        return await run_sync(
            self.state.write_baseline, last_update, snapshot_checksum(files)
        )

    async def install_packages(
        self, packages: Iterable[PackageDescriptor]
    ) -> Baseline:
        """Install the packages that are missing locally, best-effort."""
        failed = await self.provider.install_missing_packages(
            packages, limit=self.install_concurrency
        )
        if failed:
            logger.warning("Packages not installed: %s", ", ".join(failed))
        return await self._refresh_baseline()

    async def uninstall_packages(
        self, packages: Iterable[PackageDescriptor]
    ) -> Baseline:
        """Uninstall packages one by one, best-effort."""
        failed = await self.provider.uninstall_packages(packages)
        if failed:
            logger.warning(
                "Packages not uninstalled: %s", ", ".join(failed)
            )
        return await self._refresh_baseline()

    async def apply_settings_files(
        self, files: Mapping[str, SettingsFile]
    ) -> Baseline:
        """Write the recognised server files to their local locations."""
        await run_sync(self.provider.apply_settings_files, files)
        return await self._refresh_baseline()

    async def _refresh_baseline(self) -> Baseline:
        info = await run_sync(self.gateway.fetch_info)
        checksum = await run_sync(self.provider.checksum)
        return await run_sync(
            self.state.write_baseline, info.last_update, checksum
        )
