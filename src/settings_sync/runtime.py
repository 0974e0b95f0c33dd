"""Assemble a ready-to-run sync stack from a ``Config``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from dotenv import load_dotenv

from .config import Config, load_config
from .config_loader import discover_config_files, load_hierarchical_config
from .config_schema import build_config
from .core.auth import Authenticator, BrowserAuthenticator
from .core.client import SettingsApiClient
from .editor.host import DirectoryEditorHost
from .editor.settings_manager import SettingsSnapshotProvider
from .sync.classifier import ChangeClassifier
from .sync.handlers import ApplyHandlers
from .sync.notifier import ConsoleNotifier, Notifier
from .sync.orchestrator import SyncOrchestrator
from .sync.state import SyncStateStore

logger = logging.getLogger(__name__)


@dataclass
class SyncRuntime:
    config: Config
    state: SyncStateStore
    client: SettingsApiClient
    provider: SettingsSnapshotProvider
    orchestrator: SyncOrchestrator


def load_runtime_config(overrides: dict[str, Any] | None = None) -> Config:
    """Resolve configuration from CLI overrides, env, .env and YAML.

    Raises:
        ValueError: If the resulting configuration is invalid.
    """
    load_dotenv()

    unified = None
    config_files = discover_config_files()
    if config_files:
        unified = build_config(load_hierarchical_config())
        logger.info("Configuration file: %s", config_files[0])

    overrides = overrides or {}
    return load_config(
        api_url=overrides.get("api_url"),
        state_dir=overrides.get("state_dir"),
        editor_config_dir=overrides.get("editor_config_dir"),
        debug=overrides.get("debug", False),
        unified=unified,
    )


def build_runtime(
    config: Config,
    authenticator: Authenticator | None = None,
    notifier: Notifier | None = None,
) -> SyncRuntime:
    """Wire the gateway, editor host, handlers and orchestrator together."""
    state = SyncStateStore(config.state_dir)
    client = SettingsApiClient(
        config, state, authenticator or BrowserAuthenticator()
    )
    host = DirectoryEditorHost(
        config.editor_config_dir,
        install_command=config.install_command,
        uninstall_command=config.uninstall_command,
    )
    provider = SettingsSnapshotProvider(host, config.preferences)
    orchestrator = SyncOrchestrator(
        classifier=ChangeClassifier(client, provider),
        handlers=ApplyHandlers(
            client, provider, state, config.install_concurrency
        ),
        gateway=client,
        state=state,
        notifier=notifier or ConsoleNotifier(),
        interval=config.interval,
        provider=provider,
    )
    return SyncRuntime(
        config=config,
        state=state,
        client=client,
        provider=provider,
        orchestrator=orchestrator,
    )
