"""Sync orchestrator: one reconciliation cycle plus the periodic timer.

A cycle runs ``Idle -> Locked -> Classifying -> Applying -> Notifying ->
Idle``.  A call made while another cycle holds the lock returns at once with
a skipped report; it is neither queued nor an error.

Changes are applied strictly in classifier order.  The first handler that
fails aborts the rest of the cycle.  Failures never escape ``sync()``: they
are logged and the next timer tick tries again.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Protocol

from ..core.async_utils import run_sync
from ..core.exceptions import AuthWindowClosedError
from ..editor.settings_manager import SETTINGS_FILE, SettingsSnapshotProvider
from .classifier import ChangeClassifier
from .handlers import ApplyHandlers
from .models import (
    ChangeKind,
    ChangeRecord,
    RemoteSettingsInfo,
    SettingsFile,
    SyncReport,
)
from .notifier import Notifier
from .state import SyncLock, SyncStateStore

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Packages synced successfully"
DEFAULT_INTERVAL = 60.0

ChangeHandler = Callable[[ChangeRecord], Awaitable[Any]]


class InfoSource(Protocol):
    def fetch_info(self) -> RemoteSettingsInfo: ...


def check_dispatch(dispatch: Mapping[ChangeKind, ChangeHandler]) -> None:
    """Raise ``ValueError`` unless every ``ChangeKind`` has a handler."""
    missing = [kind.value for kind in ChangeKind if kind not in dispatch]
    if missing:
        raise ValueError(f"No handler for change kinds: {', '.join(missing)}")


def _settings_files_of(record: ChangeRecord) -> dict[str, SettingsFile]:
    if record.settings_files is not None:
        return dict(record.settings_files)
    return {
        SETTINGS_FILE: SettingsFile(
            content=json.dumps(record.package_settings or {})
        )
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncOrchestrator:
    """Run sync cycles and the timer that triggers them.

    Args:
        classifier: Produces the changes for a cycle.
        handlers: Apply handlers the changes are dispatched to.
        gateway: Source of the remote settings summary.
        state: Sync state store holding the local baseline.
        notifier: Receives the success notification.
        lock: Lock shared by everything that may trigger a cycle.
        interval: Seconds between timer-driven cycles.
        provider: When given, local edits are detected before each
            timer-driven cycle.
    """

    def __init__(
        self,
        classifier: ChangeClassifier,
        handlers: ApplyHandlers,
        gateway: InfoSource,
        state: SyncStateStore,
        notifier: Notifier,
        lock: SyncLock | None = None,
        interval: float = DEFAULT_INTERVAL,
        provider: SettingsSnapshotProvider | None = None,
    ) -> None:
        self.classifier = classifier
        self.handlers = handlers
        self.gateway = gateway
        self.state = state
        self.notifier = notifier
        self.lock = lock or SyncLock()
        self.interval = interval
        self.provider = provider
        self._timer: asyncio.Task | None = None
        self._enabled = False

        self._dispatch: dict[ChangeKind, ChangeHandler] = {
            ChangeKind.FIRST_TIME_CONNECT: self._backup,
            ChangeKind.SETTINGS_CHANGED_FROM_CLIENT: self._backup,
            ChangeKind.ADD_PACKAGES_FROM_CLIENT: self._backup,
            ChangeKind.REMOVE_PACKAGES_FROM_CLIENT: self._backup,
            ChangeKind.ADD_PACKAGES_FROM_SERVER: self._install,
            ChangeKind.REMOVE_PACKAGES_FROM_SERVER: self._uninstall,
            ChangeKind.PACKAGE_SETTINGS_CHANGED_FROM_SERVER: self._apply_settings,
            ChangeKind.NEW_ATOM_INSTANCE: self._new_instance,
        }
        check_dispatch(self._dispatch)

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------

    async def sync(self) -> SyncReport:
        """Run one cycle.  Never raises.

        The periodic timer is restarted afterwards only if it was enabled
        with ``start()``; a manual cycle never enables it.

        Returns:
            A ``SyncReport``; ``skipped`` is set when another cycle was
            already running.
        """
        return await self._cycle(detect_local=False)

    async def _cycle(self, detect_local: bool) -> SyncReport:
        started_at = _now()
        if not self.lock.try_acquire():
            logger.debug("Sync already in progress, skipping")
            return SyncReport(
                started_at=started_at, completed_at=_now(), skipped=True
            )

        changes: list[ChangeKind] = []
        applied: list[ChangeKind] = []
        error: str | None = None
        try:
            if detect_local and self.provider is not None:
                # under the lock so no handler baseline is overwritten
                try:
                    await run_sync(
                        self.provider.refresh_last_client_update, self.state
                    )
                except Exception as exc:
                    logger.warning("Local change detection failed: %s", exc)

            baseline = await run_sync(self.state.read_baseline)
            remote_info = await run_sync(self.gateway.fetch_info)
            records = await self.classifier.classify(
                baseline.last_update, remote_info
            )
            changes = [record.kind for record in records]
            logger.info(
                "Classified changes: %s",
                [kind.value for kind in changes] or "none",
            )

            for record in records:
                await self._dispatch[record.kind](record)
                applied.append(record.kind)

            if applied:
                self.notifier.success(SUCCESS_MESSAGE)
        except AuthWindowClosedError:
            logger.info("Sign-in window closed, sync postponed")
            error = "sign-in window closed"
        except Exception as exc:
            logger.exception("Sync failed: %s", exc)
            error = str(exc) or type(exc).__name__
        finally:
            self.lock.release()
            if self._enabled:
                self.start()

        return SyncReport(
            started_at=started_at,
            completed_at=_now(),
            changes=changes,
            applied=applied,
            error=error,
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _backup(self, record: ChangeRecord) -> None:
        await self.handlers.backup()

    async def _install(self, record: ChangeRecord) -> None:
        await self.handlers.install_packages(record.packages or [])

    async def _uninstall(self, record: ChangeRecord) -> None:
        await self.handlers.uninstall_packages(record.packages or [])

    async def _apply_settings(self, record: ChangeRecord) -> None:
        await self.handlers.apply_settings_files(_settings_files_of(record))

    async def _new_instance(self, record: ChangeRecord) -> None:
        # settings may reference packages, so install first
        await self.handlers.install_packages(record.packages or [])
        await self.handlers.apply_settings_files(_settings_files_of(record))
        await self.handlers.backup()

    # ------------------------------------------------------------------
    # Periodic timer
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> bool:
        """Enable and start the periodic timer.  No-op if it is already running.

        Must be called from a running event loop.

        Returns:
            ``True`` if the timer was started by this call.
        """
        self._enabled = True
        if self.running:
            return False
        self._timer = asyncio.get_running_loop().create_task(
            self._run_timer()
        )
        logger.debug("Sync timer started (every %ss)", self.interval)
        return True

    def stop(self) -> None:
        """Disable and cancel the periodic timer.  No-op if it is not running."""
        self._enabled = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Sync timer stopped")

    async def tick(self) -> SyncReport:
        """Timer-driven cycle: record local edits, then sync."""
        return await self._cycle(detect_local=True)

    async def _run_timer(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.tick()
