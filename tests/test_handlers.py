"""Tests for the apply handlers.

Covers:
- backup stores the server timestamp and the local checksum
- backup rejection raises and leaves the baseline alone
- install skips installed packages and is best-effort
- uninstall is sequential and best-effort
- apply_settings_files refreshes the baseline from fresh remote info
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import T1, T2
from settings_sync.core.exceptions import BackupRejectedError
from settings_sync.sync.models import (
    Baseline,
    PackageDescriptor,
    RemoteSettingsInfo,
    SaveResult,
    SettingsFile,
)
from settings_sync.sync.state import snapshot_checksum


def _pkgs(*names):
    return [PackageDescriptor(name=n) for n in names]


class TestBackup:
    async def test_backup_stores_server_timestamp(
        self, handlers, gateway, state, provider
    ):
        baseline = await handlers.backup()

        assert baseline.last_update == T2
        assert baseline.checksum == provider.checksum()
        assert state.read_baseline() == baseline
        assert gateway.saved[0] == provider.list_files()

    async def test_backup_rejected(self, handlers, gateway, state):
        gateway.accept_saves = False

        with pytest.raises(BackupRejectedError):
            await handlers.backup()

        assert state.read_baseline() == Baseline()

    async def test_backup_without_timestamp_uses_fresh_info(
        self, handlers, gateway, state
    ):
        gateway.save_snapshot = MagicMock(
            return_value=SaveResult(success=True)
        )
        gateway.info = RemoteSettingsInfo(last_update=T1)

        baseline = await handlers.backup()

        assert baseline.last_update == T1
        assert gateway.fetch_info_calls == 1

    async def test_checksum_matches_uploaded_files(self, handlers, gateway):
        baseline = await handlers.backup()

        assert baseline.checksum == snapshot_checksum(gateway.saved[0])


class TestInstallPackages:
    async def test_installs_missing_only(self, handlers, host, gateway):
        host.add_packages("a")
        gateway.info = RemoteSettingsInfo(last_update=T1)

        await handlers.install_packages(_pkgs("a", "b", "c"))

        assert sorted(host.installed) == ["b", "c"]

    async def test_install_is_best_effort(self, handlers, host, gateway):
        host.fail_install = {"b"}
        gateway.info = RemoteSettingsInfo(last_update=T1)

        baseline = await handlers.install_packages(_pkgs("a", "b", "c"))

        assert sorted(host.installed) == ["a", "c"]
        assert baseline.last_update == T1

    async def test_install_refreshes_baseline(
        self, handlers, host, gateway, state, provider
    ):
        gateway.info = RemoteSettingsInfo(last_update=T1)

        baseline = await handlers.install_packages(_pkgs("x"))

        assert gateway.fetch_info_calls == 1
        assert baseline == state.read_baseline()
        assert baseline.checksum == provider.checksum()

    async def test_install_respects_concurrency(
        self, handlers, host, gateway, provider
    ):
        gateway.info = RemoteSettingsInfo(last_update=T1)
        provider.install_missing_packages = MagicMock(
            wraps=provider.install_missing_packages
        )

        await handlers.install_packages(_pkgs("a"))

        assert provider.install_missing_packages.call_args.kwargs == {
            "limit": 2
        }


class TestUninstallPackages:
    async def test_uninstall_sequential_best_effort(
        self, handlers, host, gateway
    ):
        host.add_packages("a", "b", "c")
        host.fail_uninstall = {"a"}
        gateway.info = RemoteSettingsInfo(last_update=T1)

        baseline = await handlers.uninstall_packages(_pkgs("a", "b", "c"))

        assert host.uninstalled == ["b", "c"]
        assert baseline.last_update == T1


class TestApplySettingsFiles:
    async def test_applies_and_refreshes(
        self, handlers, host, gateway, state, provider
    ):
        gateway.info = RemoteSettingsInfo(last_update=T1)
        files = {
            "settings.json": SettingsFile(content='{"core": {"a": 1}}'),
            "styles.less": SettingsFile(content="body { color: red; }"),
            "unknown.txt": SettingsFile(content="ignored"),
        }

        baseline = await handlers.apply_settings_files(files)

        assert host.settings == {"core": {"a": 1}}
        assert host.styles_path.read_text() == "body { color: red; }"
        assert not (host.config_dir / "unknown.txt").exists()
        assert baseline.last_update == T1
        assert baseline.checksum == provider.checksum()
        assert state.read_baseline() == baseline
