"""Change classification.

Compares the local baseline timestamp with the server's ``lastUpdate`` and
turns the divergence into an ordered list of ``ChangeRecord`` objects:

============  ============  ==============  =====================================
local         remote        comparison      changes
============  ============  ==============  =====================================
absent        absent        --              ``FirstTimeConnect``
absent        present       --              ``NewAtomInstance``
present       present       remote > local  ``AddPackagesFromServer`` (if any),
                                            ``RemovePackagesFromServer`` (if any),
                                            ``PackageSettingsChangedFromServer``
present       present       local > remote  ``SettingsChangedFromClient``
present       present       equal           nothing
present       absent        --              ``FirstTimeConnect`` (re-seed)
============  ============  ==============  =====================================

Package identity is the name alone; versions never produce a diff.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

from ..core.async_utils import run_sync
from ..core.exceptions import AuthWindowClosedError, ClassificationError
from ..editor.settings_manager import (
    PACKAGES_FILE,
    SETTINGS_FILE,
    SettingsSnapshotProvider,
)
from .models import (
    ChangeKind,
    ChangeRecord,
    PackageDescriptor,
    PackageDiff,
    RemoteSettingsInfo,
    RemoteSnapshot,
)

logger = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    """The part of the settings gateway the classifier reads from."""

    def fetch_snapshot(self) -> RemoteSnapshot: ...


def diff_packages(
    old: Sequence[PackageDescriptor], new: Sequence[PackageDescriptor]
) -> PackageDiff:
    """Name-only difference between two package lists.

    ``added`` keeps the descriptors from *new*; ``removed`` holds names from
    *old*.  The removal scan is skipped when the sizes already reconcile
    under pure addition.
    """
    old_names = {p.name for p in old}
    added = [p for p in new if p.name not in old_names]

    removed: list[str] = []
    if len(old) + len(added) != len(new):
        new_names = {p.name for p in new}
        removed = [p.name for p in old if p.name not in new_names]

    return PackageDiff(added=added, removed=removed)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChangeClassifier:
    """Decide what a sync cycle has to do.

    Args:
        gateway: Source of the full remote snapshot.
        provider: Local snapshot provider, used for the local package list.
    """

    def __init__(
        self, gateway: SnapshotSource, provider: SettingsSnapshotProvider
    ) -> None:
        self.gateway = gateway
        self.provider = provider

    async def classify(
        self,
        local_timestamp: datetime | None,
        remote_info: RemoteSettingsInfo,
    ) -> list[ChangeRecord]:
        """Classify the divergence between this client and the server.

        Raises:
            ClassificationError: If the fetched snapshot is malformed.
            AuthWindowClosedError: If the user closed the sign-in window.
            GatewayError: For any other failure fetching the snapshot.
        """
        local = _as_utc(local_timestamp)
        remote = _as_utc(remote_info.last_update)

        if local is None and remote is None:
            return [ChangeRecord(kind=ChangeKind.FIRST_TIME_CONNECT)]

        if remote is None:
            logger.warning(
                "Server has no settings but this client last synced at %s; "
                "re-seeding the server from local state",
                local.isoformat(),
            )
            return [ChangeRecord(kind=ChangeKind.FIRST_TIME_CONNECT)]

        if local is None:
            snapshot = await self._fetch_snapshot()
            packages, settings = self._parse_snapshot(snapshot)
            return [
                ChangeRecord(
                    kind=ChangeKind.NEW_ATOM_INSTANCE,
                    packages=packages,
                    package_settings=settings,
                    settings_files=dict(snapshot.files),
                    remote_update_timestamp=remote,
                )
            ]

        if remote > local:
            return await self._server_changes(remote)

        if local > remote:
            # validated only; client-side package diffs are not classified
            snapshot = await self._fetch_snapshot()
            self._parse_snapshot(snapshot)
            return [ChangeRecord(kind=ChangeKind.SETTINGS_CHANGED_FROM_CLIENT)]

        return []

    async def _server_changes(self, remote: datetime) -> list[ChangeRecord]:
        snapshot = await self._fetch_snapshot()
        remote_packages, settings = self._parse_snapshot(snapshot)
        local_packages = await run_sync(self.provider.list_packages)

        diff = diff_packages(local_packages, remote_packages)
        logger.debug(
            "Package diff: +%s -%s",
            [p.name for p in diff.added],
            diff.removed,
        )

        changes: list[ChangeRecord] = []
        if diff.added:
            changes.append(
                ChangeRecord(
                    kind=ChangeKind.ADD_PACKAGES_FROM_SERVER,
                    packages=diff.added,
                    remote_update_timestamp=remote,
                )
            )
        if diff.removed:
            changes.append(
                ChangeRecord(
                    kind=ChangeKind.REMOVE_PACKAGES_FROM_SERVER,
                    packages=[PackageDescriptor(name=n) for n in diff.removed],
                    remote_update_timestamp=remote,
                )
            )
        changes.append(
            ChangeRecord(
                kind=ChangeKind.PACKAGE_SETTINGS_CHANGED_FROM_SERVER,
                package_settings=settings,
                settings_files=dict(snapshot.files),
                remote_update_timestamp=remote,
            )
        )
        return changes

    async def _fetch_snapshot(self) -> RemoteSnapshot:
        try:
            return await run_sync(self.gateway.fetch_snapshot)
        except AuthWindowClosedError:
            logger.debug("Sign-in window closed before a token was issued")
            raise

    @staticmethod
    def _parse_snapshot(
        snapshot: RemoteSnapshot,
    ) -> tuple[list[PackageDescriptor], dict[str, Any]]:
        """Extract the package list and settings blob from a snapshot."""
        packages_file = snapshot.files.get(PACKAGES_FILE)
        if packages_file is None:
            raise ClassificationError(
                f"Remote snapshot has no {PACKAGES_FILE}"
            )
        try:
            raw_packages = json.loads(packages_file.content)
            if not isinstance(raw_packages, list):
                raise ValueError("expected a JSON array")
            packages = [
                PackageDescriptor.model_validate(p) for p in raw_packages
            ]
        except ValueError as exc:
            raise ClassificationError(
                f"Malformed {PACKAGES_FILE} in remote snapshot: {exc}"
            ) from exc

        settings: dict[str, Any] = {}
        settings_file = snapshot.files.get(SETTINGS_FILE)
        if settings_file is not None:
            try:
                settings = json.loads(settings_file.content)
            except ValueError as exc:
                raise ClassificationError(
                    f"Malformed {SETTINGS_FILE} in remote snapshot: {exc}"
                ) from exc
            if not isinstance(settings, dict):
                raise ClassificationError(
                    f"{SETTINGS_FILE} in remote snapshot is not an object"
                )

        return packages, settings
