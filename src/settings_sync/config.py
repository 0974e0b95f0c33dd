"""Runtime configuration for the sync daemon, CLI and MCP server.

Reads settings from CLI args, environment variables, .env files, and the
YAML config (through ``UnifiedConfig``).

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    SETTINGS_SYNC_API_URL: Settings server URL (optional)
    SETTINGS_SYNC_STATE_DIR: Directory for state.json (optional)
    SETTINGS_SYNC_EDITOR_DIR: Editor configuration directory (optional)
    SETTINGS_SYNC_INTERVAL: Seconds between automatic syncs (optional, default: 60)
    SETTINGS_SYNC_INSTALL_CONCURRENCY: Concurrent package installs (optional, default: 5)
    SETTINGS_SYNC_DEBUG: Enable debug logging (optional, default: false)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from .config_schema import (
    DEFAULT_API_URL,
    SyncPreferences,
    UnifiedConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class Config:
    api_url: str
    state_dir: Path
    editor_config_dir: Path
    interval: float = 60.0
    install_concurrency: int = 5
    fetch_retries: int = 10
    retry_delay: float = 3.0
    cache_ttl: float = 45.0
    install_command: list[str] = field(
        default_factory=lambda: ["apm", "install"]
    )
    uninstall_command: list[str] = field(
        default_factory=lambda: ["apm", "uninstall"]
    )
    preferences: SyncPreferences = field(default_factory=SyncPreferences)
    debug: bool = False
    log_level: str | None = None
    log_file: str | None = None


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If the URL is malformed or a numeric setting is out of range.
    """
    config.api_url = config.api_url.strip()

    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{config.api_url}': must start with http:// or https://"
        )

    parsed = urlparse(config.api_url)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid API URL '{config.api_url}': URL must include a hostname"
        )

    config.api_url = config.api_url.removesuffix("/")

    if config.interval <= 0:
        raise ValueError(
            f"Invalid sync interval {config.interval}: must be greater than 0"
        )

    if not config.install_command or not config.uninstall_command:
        raise ValueError(
            "install_command and uninstall_command cannot be empty"
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(key: str, kind: type, low: float, high: float):
    """Parse a bounded numeric env var; ``None`` when unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = kind(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    api_url: str | None = None,
    state_dir: str | None = None,
    editor_config_dir: str | None = None,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > unified (YAML) config > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        api_url: Override settings server URL.
        state_dir: Override state directory.
        editor_config_dir: Override editor configuration directory.
        debug: Enable debug logging (CLI flag).
        unified: Config built from YAML files, used as fallback.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is invalid after checking all sources.
    """
    fb = unified or UnifiedConfig()

    final_url = (
        api_url
        or os.getenv("SETTINGS_SYNC_API_URL")
        or fb.api.url
        or DEFAULT_API_URL
    )
    final_state_dir = (
        state_dir
        or os.getenv("SETTINGS_SYNC_STATE_DIR")
        or fb.daemon.state_dir
    )
    final_editor_dir = (
        editor_config_dir
        or os.getenv("SETTINGS_SYNC_EDITOR_DIR")
        or fb.daemon.editor_config_dir
    )

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("SETTINGS_SYNC_DEBUG")
        final_debug = env_debug if env_debug is not None else False

    interval = _get_number_env("SETTINGS_SYNC_INTERVAL", float, 1, 86400)
    concurrency = _get_number_env(
        "SETTINGS_SYNC_INSTALL_CONCURRENCY", int, 1, 32
    )

    config = Config(
        api_url=final_url,
        state_dir=Path(final_state_dir).expanduser(),
        editor_config_dir=Path(final_editor_dir).expanduser(),
        interval=interval if interval is not None else fb.daemon.interval,
        install_concurrency=(
            concurrency
            if concurrency is not None
            else fb.daemon.install_concurrency
        ),
        fetch_retries=fb.api.fetch_retries,
        retry_delay=fb.api.retry_delay,
        cache_ttl=fb.api.cache_ttl,
        install_command=list(fb.daemon.install_command),
        uninstall_command=list(fb.daemon.uninstall_command),
        preferences=fb.preferences,
        debug=final_debug,
        log_level=fb.logging.level,
        log_file=fb.logging.file,
    )

    validate_config(config)

    return config
