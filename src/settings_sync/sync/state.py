"""Sync state persistence layer.

Keeps the process-durable sync state in a small JSON key-value file
(``state.json``) inside the state directory.  Every key lives under the
fixed ``settings-sync:`` namespace:

* ``lastUpdate`` -- ISO 8601 time the client last considered itself in
  sync with the server (absent: never synced).
* ``checksum`` -- checksum of the local snapshot at that time.
* ``authToken`` -- cached settings server token (absent: unauthenticated).

Key design choices:

* **Atomic writes** -- ``_write()`` writes to a temp file then calls
  ``os.replace()`` so readers never see partial data.
* **Consistent baseline reads** -- ``read_baseline()`` loads the file once
  and returns the timestamp and checksum together.
* **Stable checksums** -- ``snapshot_checksum()`` serialises with sorted keys
  so the hash does not depend on mapping order.

The process-wide sync lock is NOT persisted; it lives in ``SyncLock``, an
in-memory container owned by the orchestrator.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from .models import Baseline

logger = logging.getLogger(__name__)

NAMESPACE = "settings-sync"
LAST_UPDATE_KEY = f"{NAMESPACE}:lastUpdate"
CHECKSUM_KEY = f"{NAMESPACE}:checksum"
AUTH_TOKEN_KEY = f"{NAMESPACE}:authToken"

STATE_FILE_NAME = "state.json"


def snapshot_checksum(files: Mapping[str, Any]) -> str:
    """SHA-256 hex digest of a snapshot files mapping.

    Values may be ``SettingsFile`` models or plain ``{"content": ...}``
    dicts; both serialise identically.
    """
    plain = {
        name: (
            value.model_dump() if hasattr(value, "model_dump") else value
        )
        for name, value in files.items()
    }
    serialized = json.dumps(
        plain, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


class SyncStateStore:
    """Load and persist sync state under a fixed key namespace.

    Args:
        state_dir: Directory holding ``state.json`` (created on first write).
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir

    @property
    def path(self) -> Path:
        """Path to the state file."""
        return self._state_dir / STATE_FILE_NAME

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def read_baseline(self) -> Baseline:
        """Return the stored timestamp and checksum from a single read."""
        data = self._read()
        raw_update = data.get(LAST_UPDATE_KEY)
        return Baseline(
            last_update=(
                datetime.fromisoformat(raw_update) if raw_update else None
            ),
            checksum=data.get(CHECKSUM_KEY),
        )

    def write_baseline(
        self, last_update: datetime | None, checksum: str | None
    ) -> Baseline:
        """Overwrite the baseline with a new timestamp/checksum pair.

        Naive timestamps are taken as UTC.

        Returns:
            The stored baseline.
        """
        if last_update is not None and last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=timezone.utc)

        data = self._read()
        data[LAST_UPDATE_KEY] = (
            last_update.isoformat() if last_update else None
        )
        data[CHECKSUM_KEY] = checksum
        self._write(data)
        logger.debug(
            "Baseline updated: lastUpdate=%s checksum=%s",
            data[LAST_UPDATE_KEY],
            checksum,
        )
        return Baseline(last_update=last_update, checksum=checksum)

    # ------------------------------------------------------------------
    # Auth token
    # ------------------------------------------------------------------

    def get_token(self) -> str | None:
        """Return the cached settings server token, if any."""
        return self._read().get(AUTH_TOKEN_KEY)

    def set_token(self, token: str) -> None:
        data = self._read()
        data[AUTH_TOKEN_KEY] = token
        self._write(data)

    def clear_token(self) -> None:
        """Forget the cached token.  No-op if none is stored."""
        data = self._read()
        if data.pop(AUTH_TOKEN_KEY, None) is not None:
            self._write(data)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring state file %s with non-dict root", self.path
            )
            return {}
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self._state_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


class SyncLock:
    """Single process-wide flag serialising sync cycles.

    Concurrent entrants are dropped, not queued.  ``try_acquire()`` has no
    await point between the check and the set, so it is atomic on the event
    loop thread.
    """

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        """Take the lock if free.  Returns ``False`` when already held."""
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False
