"""Unified configuration schema for settings_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the settings server, sync preferences, the background daemon
and logging.

Usage:
    from settings_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    prefs = unified.preferences
"""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_API_URL = "https://api.atom-package-sync.com"


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ApiConfig(BaseModel):
    """Remote settings server connection settings."""

    url: str | None = Field(
        default=None, description="Settings server base URL"
    )
    fetch_retries: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Retries per HTTP request before giving up",
    )
    retry_delay: float = Field(
        default=3.0,
        ge=0,
        description="Fixed delay in seconds between HTTP retries",
    )
    cache_ttl: float = Field(
        default=45.0,
        ge=0,
        description="Seconds a fetched info/snapshot response stays cached",
    )

    model_config = {"frozen": True}


class SyncPreferences(BaseModel):
    """What gets synced.

    Built once per classification/apply pass and never mutated.

    Attributes:
        sync_packages: Include ``packages.json`` in the snapshot.
        sync_settings: Include settings, keymap, styles, init script and
            snippets in the snapshot.
        blacklisted_keys: Dotted settings paths removed before upload
            (e.g. ``core.projectHome``).
        extra_files: Additional file names, relative to the editor config
            directory, to carry in the snapshot.
    """

    sync_packages: bool = True
    sync_settings: bool = True
    blacklisted_keys: list[str] = Field(default_factory=list)
    extra_files: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class DaemonConfig(BaseModel):
    """Background sync loop and editor host settings."""

    interval: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between automatic sync cycles",
    )
    install_concurrency: int = Field(
        default=5,
        ge=1,
        le=32,
        description="Maximum concurrent package installs",
    )
    state_dir: str = Field(
        default="~/.settings_sync",
        description="Directory holding state.json and the runner lock",
    )
    editor_config_dir: str = Field(
        default="~/.atom",
        description="Editor configuration directory",
    )
    install_command: list[str] = Field(
        default_factory=lambda: ["apm", "install"],
        description="Command used to install a package (name is appended)",
    )
    uninstall_command: list[str] = Field(
        default_factory=lambda: ["apm", "uninstall"],
        description="Command used to uninstall a package (name is appended)",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    preferences: SyncPreferences = Field(default_factory=SyncPreferences)
    daemon: DaemonConfig = Field(default_factory=DaemonConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
