"""Settings snapshot provider.

Turns the editor's local state into the "files" mapping exchanged with the
settings server, and applies server files back onto the editor.

Snapshot files:

- ``settings.json`` -- editor settings minus blacklisted keys
- ``keymap.cson``, ``styles.less``, ``init.coffee``, ``snippets.cson``
- ``packages.json`` -- installed packages, sorted by name
- any configured extra file, relative to the editor config directory

A missing file is represented by a one-line placeholder comment in the
file's own comment syntax, never by an error.
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..config_schema import SyncPreferences
from ..core.async_utils import gather_limited, run_sync
from ..file_handler import read_text_or_none, write_file
from ..sync.models import PackageDescriptor, SettingsFile
from ..sync.state import SyncStateStore, snapshot_checksum

if TYPE_CHECKING:
    from .host import EditorHost

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
PACKAGES_FILE = "packages.json"

_COLOR_KEYS = ["alpha", "blue", "green", "red"]

_MISSING_PLACEHOLDERS = {
    "keymap.cson": "# keymap file (not found)",
    "styles.less": "// styles file (not found)",
    "init.coffee": "# initialization file (not found)",
    "snippets.cson": "# snippets file (not found)",
}


def placeholder_for(file_name: str) -> str:
    """Placeholder content for a missing extra file, commented by extension."""
    ext = Path(file_name).suffix.lower()
    start, end = "#", ""
    if ext in (".less", ".scss", ".js"):
        start = "//"
    elif ext == ".css":
        start, end = "/*", "*/"
    return f"{start} {file_name} (not found) {end}"


def _is_color(value: Any) -> bool:
    return isinstance(value, dict) and sorted(value) == _COLOR_KEYS


def _remove_key_path(settings: dict[str, Any], keys: list[str]) -> None:
    head, rest = keys[0], keys[1:]
    child = settings.get(head)
    if rest and isinstance(child, dict):
        _remove_key_path(child, rest)
    else:
        settings.pop(head, None)


def _as_descriptors(
    packages: Iterable[PackageDescriptor | str],
) -> list[PackageDescriptor]:
    return [
        PackageDescriptor(name=p) if isinstance(p, str) else p
        for p in packages
    ]


class SettingsSnapshotProvider:
    """Read and apply the editor's synced state.

    Args:
        host: The editor host.
        preferences: What to sync; fixed for the lifetime of the provider.
    """

    def __init__(
        self, host: EditorHost, preferences: SyncPreferences
    ) -> None:
        self.host = host
        self.preferences = preferences

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def list_files(self) -> dict[str, SettingsFile]:
        """Build the snapshot files mapping for the current local state."""
        files: dict[str, SettingsFile] = {}
        prefs = self.preferences

        if prefs.sync_settings:
            files[SETTINGS_FILE] = SettingsFile(
                content=json.dumps(self.filtered_settings(), indent="\t")
            )
            for name, path in self._file_locations().items():
                content = read_text_or_none(path)
                files[name] = SettingsFile(
                    content=content
                    if content is not None
                    else _MISSING_PLACEHOLDERS[name]
                )

        if prefs.sync_packages:
            files[PACKAGES_FILE] = SettingsFile(
                content=json.dumps(
                    [p.to_wire() for p in self.list_packages()],
                    indent="\t",
                )
            )

        for name in prefs.extra_files:
            content = read_text_or_none(self.host.config_dir / name)
            files[name] = SettingsFile(
                content=content if content is not None else placeholder_for(name)
            )

        return files

    def _file_locations(self) -> dict[str, Path]:
        return {
            "keymap.cson": self.host.keymap_path,
            "styles.less": self.host.styles_path,
            "init.coffee": self.host.config_dir / "init.coffee",
            "snippets.cson": self.host.config_dir / "snippets.cson",
        }

    def filtered_settings(self) -> dict[str, Any]:
        """Editor settings with every blacklisted dotted key removed."""
        settings = copy.deepcopy(self.host.get_settings())
        for key_path in self.preferences.blacklisted_keys:
            _remove_key_path(settings, key_path.split("."))
        return settings

    def list_packages(self) -> list[PackageDescriptor]:
        return sorted(self.host.list_packages(), key=lambda p: p.name)

    def checksum(self) -> str:
        """Checksum of the current local snapshot."""
        return snapshot_checksum(self.list_files())

    def settings_changed(self, stored_checksum: str | None) -> bool:
        """True if the local snapshot no longer matches *stored_checksum*.

        Always ``False`` when no checksum was stored yet.
        """
        if not stored_checksum:
            return False
        return self.checksum() != stored_checksum

    def refresh_last_client_update(
        self, state: SyncStateStore, now: datetime | None = None
    ) -> bool:
        """Record local edits by moving the baseline timestamp to *now*.

        Only applies once the client has synced at least once; a newer local
        timestamp is what makes the next classification push to the server.

        Returns:
            ``True`` if the baseline was bumped.
        """
        baseline = state.read_baseline()
        if baseline.last_update is None:
            return False

        checksum = self.checksum()
        if not baseline.checksum or checksum == baseline.checksum:
            return False

        stamp = now or datetime.now(timezone.utc)
        state.write_baseline(stamp, checksum)
        logger.info("Local settings changed, marked for backup")
        return True

    # ------------------------------------------------------------------
    # Applying server state
    # ------------------------------------------------------------------

    def apply_settings_blob(
        self, prefix: str, settings: Mapping[str, Any]
    ) -> None:
        """Write a nested settings mapping into the editor config.

        Nested mappings recurse; lists and colour objects (exactly
        ``alpha/blue/green/red``) are written as single values.
        """
        for key, value in settings.items():
            key_path = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict) and not _is_color(value):
                self.apply_settings_blob(key_path, value)
            else:
                self.host.set_setting(key_path, value)

    def apply_settings_files(
        self, files: Mapping[str, SettingsFile]
    ) -> list[str]:
        """Apply recognised server files locally; unknown names are ignored.

        Returns:
            Names of the files that were applied.
        """
        targets = self._file_locations()
        applied = []
        for name, settings_file in files.items():
            if name == SETTINGS_FILE:
                self.apply_settings_blob("", json.loads(settings_file.content))
            elif name in targets:
                write_file(targets[name], settings_file.content)
            else:
                continue
            applied.append(name)
        logger.debug("Applied settings files: %s", applied)
        return applied

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def install_missing_packages(
        self,
        packages: Iterable[PackageDescriptor | str],
        limit: int = 5,
    ) -> list[str]:
        """Install packages that are not installed yet.

        Up to *limit* installs run concurrently.  A failing install is
        logged and does not stop the others.

        Returns:
            Names of the packages whose install failed.
        """
        missing = [
            p
            for p in _as_descriptors(packages)
            if not await run_sync(self.host.is_package_installed, p.name)
        ]

        async def _install(package: PackageDescriptor) -> str | None:
            kind = "theme" if package.is_theme else "package"
            logger.info("Installing %s %s...", kind, package.name)
            try:
                await run_sync(self.host.install_package, package)
            except Exception as exc:
                logger.warning(
                    "Installing %s %s failed: %s", kind, package.name, exc
                )
                return package.name
            return None

        results = await gather_limited(missing, _install, limit)
        return [name for name in results if name]

    async def uninstall_packages(
        self, packages: Iterable[PackageDescriptor | str]
    ) -> list[str]:
        """Uninstall packages one at a time.

        A failing uninstall is logged and the loop continues.

        Returns:
            Names of the packages whose uninstall failed.
        """
        failed = []
        for package in _as_descriptors(packages):
            logger.info("Uninstalling %s...", package.name)
            try:
                await run_sync(self.host.uninstall_package, package)
            except Exception as exc:
                logger.error(
                    "Error uninstalling package %s: %s", package.name, exc
                )
                failed.append(package.name)
        return failed
