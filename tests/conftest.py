"""Shared pytest fixtures for settings-sync tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from settings_sync.config import Config
from settings_sync.config_schema import SyncPreferences
from settings_sync.editor.settings_manager import SettingsSnapshotProvider
from settings_sync.sync.classifier import ChangeClassifier
from settings_sync.sync.handlers import ApplyHandlers
from settings_sync.sync.models import (
    PackageDescriptor,
    RemoteSettingsInfo,
    RemoteSnapshot,
    SaveResult,
    SettingsFile,
)
from settings_sync.sync.orchestrator import SyncOrchestrator
from settings_sync.sync.state import SyncLock, SyncStateStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 2, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 3, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeHost:
    """In-memory ``EditorHost`` rooted at a real directory for files."""

    def __init__(self, config_dir: Path) -> None:
        self._config_dir = config_dir
        self.settings: dict[str, Any] = {}
        self.packages: dict[str, PackageDescriptor] = {}
        self.fail_install: set[str] = set()
        self.fail_uninstall: set[str] = set()
        self.installed: list[str] = []
        self.uninstalled: list[str] = []

    @property
    def config_dir(self) -> Path:
        return self._config_dir

    @property
    def keymap_path(self) -> Path:
        return self._config_dir / "keymap.cson"

    @property
    def styles_path(self) -> Path:
        return self._config_dir / "styles.less"

    def get_settings(self) -> dict[str, Any]:
        return self.settings

    def set_setting(self, key_path: str, value: Any) -> None:
        node = self.settings
        keys = key_path.split(".")
        for key in keys[:-1]:
            node = node.setdefault(key, {})
        node[keys[-1]] = value

    def list_packages(self) -> list[PackageDescriptor]:
        return list(self.packages.values())

    def is_package_installed(self, name: str) -> bool:
        return name in self.packages

    def install_package(self, package: PackageDescriptor) -> None:
        if package.name in self.fail_install:
            raise RuntimeError(f"cannot install {package.name}")
        self.installed.append(package.name)
        self.packages[package.name] = package

    def uninstall_package(self, package: PackageDescriptor) -> None:
        if package.name in self.fail_uninstall:
            raise RuntimeError(f"cannot uninstall {package.name}")
        self.uninstalled.append(package.name)
        self.packages.pop(package.name, None)

    def add_packages(self, *names: str) -> None:
        for name in names:
            self.packages[name] = PackageDescriptor(name=name)


class FakeGateway:
    """In-memory settings server.

    A save stores the files, bumps ``lastUpdate`` to ``next_update`` and
    answers like the real server.
    """

    def __init__(self) -> None:
        self.info = RemoteSettingsInfo()
        self.snapshot = RemoteSnapshot()
        self.next_update = T2
        self.accept_saves = True
        self.saved: list[dict[str, SettingsFile]] = []
        self.fetch_info_calls = 0
        self.fetch_snapshot_calls = 0
        self.snapshot_error: Exception | None = None

    def fetch_info(self) -> RemoteSettingsInfo:
        self.fetch_info_calls += 1
        return self.info

    def fetch_snapshot(self) -> RemoteSnapshot:
        self.fetch_snapshot_calls += 1
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return self.snapshot

    def save_snapshot(self, files) -> SaveResult:
        if not self.accept_saves:
            return SaveResult(success=False)
        self.saved.append(dict(files))
        self.snapshot = RemoteSnapshot(files=dict(files))
        self.info = RemoteSettingsInfo(
            checksum="server", last_update=self.next_update
        )
        return SaveResult(success=True, last_update=self.next_update)

    def publish(
        self,
        packages: list[str],
        settings: dict[str, Any] | None = None,
        last_update: datetime = T1,
        extra: dict[str, str] | None = None,
    ) -> None:
        """Make the server hold the given packages and settings."""
        self.snapshot = make_snapshot(packages, settings, extra)
        self.info = RemoteSettingsInfo(checksum="abc", last_update=last_update)


def make_snapshot(
    packages: list[str],
    settings: dict[str, Any] | None = None,
    extra: dict[str, str] | None = None,
) -> RemoteSnapshot:
    files = {
        "packages.json": SettingsFile(
            content=json.dumps(
                [{"name": n, "version": "1.0.0", "theme": False} for n in packages]
            )
        ),
        "settings.json": SettingsFile(content=json.dumps(settings or {})),
    }
    for name, content in (extra or {}).items():
        files[name] = SettingsFile(content=content)
    return RemoteSnapshot(files=files)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config(tmp_path):
    """Create a Config instance for testing."""
    return Config(
        api_url="https://sync.example.com",
        state_dir=tmp_path / "state",
        editor_config_dir=tmp_path / "editor",
        fetch_retries=2,
        retry_delay=0,
    )


@pytest.fixture
def state(tmp_path) -> SyncStateStore:
    return SyncStateStore(tmp_path / "state")


@pytest.fixture
def host(tmp_path) -> FakeHost:
    config_dir = tmp_path / "editor"
    config_dir.mkdir()
    return FakeHost(config_dir)


@pytest.fixture
def provider(host) -> SettingsSnapshotProvider:
    return SettingsSnapshotProvider(host, SyncPreferences())


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def handlers(gateway, provider, state) -> ApplyHandlers:
    return ApplyHandlers(gateway, provider, state, install_concurrency=2)


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
async def orchestrator(gateway, provider, state, handlers, notifier):
    orch = SyncOrchestrator(
        classifier=ChangeClassifier(gateway, provider),
        handlers=handlers,
        gateway=gateway,
        state=state,
        notifier=notifier,
        lock=SyncLock(),
        interval=3600,
        provider=provider,
    )
    yield orch
    orch.stop()
