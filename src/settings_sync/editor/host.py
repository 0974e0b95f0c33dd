"""Editor host boundary: configuration store, file locations and the
package installer.

``EditorHost`` is what the sync engine needs from the editor.
``DirectoryEditorHost`` implements it on top of an Atom-style configuration
directory::

    <config_dir>/
        config.json        settings (nested mapping)
        keymap.cson
        styles.less
        init.coffee
        snippets.cson
        packages/<name>/package.json

and shells out to a package manager command for installs.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Protocol, Sequence

from ..file_handler import read_file_with_encoding, write_file
from ..sync.models import PackageDescriptor

logger = logging.getLogger(__name__)


class PackageCommandError(RuntimeError):
    """The package manager command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str):
        super().__init__(
            f"{' '.join(command)} exited with {returncode}: {output.strip()}"
        )
        self.command = list(command)
        self.returncode = returncode


class EditorHost(Protocol):
    """Capabilities the sync engine consumes from the editor."""

    @property
    def config_dir(self) -> Path: ...

    @property
    def keymap_path(self) -> Path: ...

    @property
    def styles_path(self) -> Path: ...

    def get_settings(self) -> dict[str, Any]: ...

    def set_setting(self, key_path: str, value: Any) -> None: ...

    def list_packages(self) -> list[PackageDescriptor]: ...

    def is_package_installed(self, name: str) -> bool: ...

    def install_package(self, package: PackageDescriptor) -> None: ...

    def uninstall_package(self, package: PackageDescriptor) -> None: ...


class DirectoryEditorHost:
    """``EditorHost`` backed by a configuration directory on disk.

    Args:
        config_dir: Editor configuration directory.
        install_command: Command prefix for installs; the package name is
            appended (``["apm", "install"]`` runs ``apm install <name>``).
        uninstall_command: Command prefix for uninstalls.
        timeout: Seconds before a package command is abandoned.
    """

    def __init__(
        self,
        config_dir: Path,
        install_command: Sequence[str] = ("apm", "install"),
        uninstall_command: Sequence[str] = ("apm", "uninstall"),
        timeout: float = 600,
    ) -> None:
        self._config_dir = config_dir
        self._install_command = list(install_command)
        self._uninstall_command = list(uninstall_command)
        self._timeout = timeout

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def keymap_path(self) -> Path:
        return self._config_dir / "keymap.cson"

    @property
    def styles_path(self) -> Path:
        return self._config_dir / "styles.less"

    @property
    def settings_path(self) -> Path:
        return self._config_dir / "config.json"

    @property
    def packages_dir(self) -> Path:
        return self._config_dir / "packages"

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> dict[str, Any]:
        if not self.settings_path.is_file():
            return {}
        content, _ = read_file_with_encoding(self.settings_path)
        if not content.strip():
            return {}
        data = json.loads(content)
        return data if isinstance(data, dict) else {}

    def set_setting(self, key_path: str, value: Any) -> None:
        """Set a dotted key path (``core.themes``), creating parents."""
        settings = self.get_settings()
        keys = key_path.split(".")
        node = settings
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value
        write_file(
            self.settings_path, json.dumps(settings, indent=2) + "\n"
        )

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    def list_packages(self) -> list[PackageDescriptor]:
        if not self.packages_dir.is_dir():
            return []
        packages = []
        for manifest in sorted(self.packages_dir.glob("*/package.json")):
            try:
                content, _ = read_file_with_encoding(manifest)
                meta = json.loads(content)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable %s: %s", manifest, exc)
                continue
            packages.append(
                PackageDescriptor(
                    name=meta.get("name") or manifest.parent.name,
                    version=meta.get("version"),
                    theme=meta.get("theme"),
                )
            )
        return packages

    def is_package_installed(self, name: str) -> bool:
        return (self.packages_dir / name).is_dir()

    def install_package(self, package: PackageDescriptor) -> None:
        self._run([*self._install_command, package.name])

    def uninstall_package(self, package: PackageDescriptor) -> None:
        self._run([*self._uninstall_command, package.name])

    def _run(self, command: list[str]) -> None:
        logger.debug("Running %s", " ".join(command))
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=self._timeout,
        )
        if result.returncode != 0:
            raise PackageCommandError(
                command, result.returncode, result.stderr or result.stdout
            )
