"""Pydantic models for the settings sync engine.

Defines the data contracts shared by the classifier, the apply handlers and
the orchestrator:

- ``ChangeKind``: Closed enumeration of reconciliation actions.
- ``PackageDescriptor``: One installed (or wanted) editor package.
- ``ChangeRecord``: One typed instruction produced by the classifier.
- ``RemoteSettingsInfo`` / ``RemoteSnapshot`` / ``SaveResult``: what the
  settings server returns.
- ``Baseline``: last timestamp/checksum pair believed to be in sync.
- ``PackageDiff``: name-only difference between two package lists.
- ``SyncReport``: outcome of one sync cycle.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChangeKind(str, Enum):
    """Kinds of divergence between this client and the server."""

    FIRST_TIME_CONNECT = "FirstTimeConnect"
    NEW_ATOM_INSTANCE = "NewAtomInstance"
    ADD_PACKAGES_FROM_SERVER = "AddPackagesFromServer"
    REMOVE_PACKAGES_FROM_SERVER = "RemovePackagesFromServer"
    PACKAGE_SETTINGS_CHANGED_FROM_SERVER = "PackageSettingsChangedFromServer"
    SETTINGS_CHANGED_FROM_CLIENT = "SettingsChangedFromClient"
    ADD_PACKAGES_FROM_CLIENT = "AddPackagesFromClient"
    REMOVE_PACKAGES_FROM_CLIENT = "RemovePackagesFromClient"


class PackageDescriptor(BaseModel):
    """An editor package.

    Identity is ``name`` alone; ``version`` is informational.  On the wire
    (``packages.json``) the theme flag is called ``theme``.
    """

    name: str
    version: str | None = None
    is_theme: bool = Field(default=False, alias="theme")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _coerce_theme(cls, data: Any) -> Any:
        # package metadata stores "theme": "ui" | "syntax" | null
        if isinstance(data, dict):
            for key in ("theme", "is_theme"):
                if key in data and not isinstance(data[key], bool):
                    data = {**data, key: bool(data[key])}
        return data

    def to_wire(self) -> dict[str, Any]:
        """Serialise the way ``packages.json`` stores packages."""
        return {
            "name": self.name,
            "version": self.version,
            "theme": self.is_theme,
        }


class SettingsFile(BaseModel):
    """Content of one logical settings file."""

    content: str

    model_config = {"frozen": True}


_PAYLOAD_FIELDS = ("packages", "package_settings", "settings_files")

# kind -> (required fields, optionally allowed fields)
_PAYLOAD_SHAPES: dict[ChangeKind, tuple[frozenset[str], frozenset[str]]] = {
    ChangeKind.FIRST_TIME_CONNECT: (frozenset(), frozenset()),
    ChangeKind.NEW_ATOM_INSTANCE: (
        frozenset(
            {"packages", "package_settings", "remote_update_timestamp"}
        ),
        frozenset({"settings_files"}),
    ),
    ChangeKind.ADD_PACKAGES_FROM_SERVER: (
        frozenset({"packages", "remote_update_timestamp"}),
        frozenset(),
    ),
    ChangeKind.REMOVE_PACKAGES_FROM_SERVER: (
        frozenset({"packages", "remote_update_timestamp"}),
        frozenset(),
    ),
    ChangeKind.PACKAGE_SETTINGS_CHANGED_FROM_SERVER: (
        frozenset({"package_settings", "remote_update_timestamp"}),
        frozenset({"settings_files"}),
    ),
    ChangeKind.SETTINGS_CHANGED_FROM_CLIENT: (frozenset(), frozenset()),
    ChangeKind.ADD_PACKAGES_FROM_CLIENT: (
        frozenset({"packages"}),
        frozenset(),
    ),
    ChangeKind.REMOVE_PACKAGES_FROM_CLIENT: (
        frozenset({"packages"}),
        frozenset(),
    ),
}

# a NewAtomInstance may legitimately carry an empty package list
_NON_EMPTY_PACKAGES = frozenset(
    {
        ChangeKind.ADD_PACKAGES_FROM_SERVER,
        ChangeKind.REMOVE_PACKAGES_FROM_SERVER,
        ChangeKind.ADD_PACKAGES_FROM_CLIENT,
        ChangeKind.REMOVE_PACKAGES_FROM_CLIENT,
    }
)


class ChangeRecord(BaseModel):
    """One reconciliation action to perform.

    The ``kind`` decides which payload fields are populated; the validator
    rejects records carrying a missing or foreign payload.

    Attributes:
        kind: What happened.
        packages: Packages to install or remove.
        package_settings: Parsed ``settings.json`` blob from the server.
        settings_files: Remote file name -> content mapping to apply.
        remote_update_timestamp: Server ``lastUpdate`` this change reflects.
    """

    kind: ChangeKind
    packages: list[PackageDescriptor] | None = None
    package_settings: dict[str, Any] | None = None
    settings_files: dict[str, SettingsFile] | None = None
    remote_update_timestamp: datetime | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_payload_shape(self) -> ChangeRecord:
        required, optional = _PAYLOAD_SHAPES[self.kind]
        present = {
            name
            for name in (*_PAYLOAD_FIELDS, "remote_update_timestamp")
            if getattr(self, name) is not None
        }
        missing = required - present
        if missing:
            raise ValueError(
                f"{self.kind.value} requires {', '.join(sorted(missing))}"
            )
        foreign = present - required - optional
        if foreign:
            raise ValueError(
                f"{self.kind.value} does not carry {', '.join(sorted(foreign))}"
            )
        if self.kind in _NON_EMPTY_PACKAGES and not self.packages:
            raise ValueError(f"{self.kind.value} requires at least one package")
        return self


class RemoteSettingsInfo(BaseModel):
    """Cheap summary of the server state.

    Both fields are ``None`` when the server has never received a backup.
    """

    checksum: str | None = None
    last_update: datetime | None = Field(default=None, alias="lastUpdate")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class RemoteSnapshot(BaseModel):
    """Full set of settings files stored on the server."""

    files: dict[str, SettingsFile] = Field(default_factory=dict)

    model_config = {"frozen": True}


class SaveResult(BaseModel):
    """Server answer to a backup."""

    success: bool = False
    last_update: datetime | None = Field(default=None, alias="lastUpdate")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Baseline(BaseModel):
    """Last timestamp/checksum pair the client believes is in sync."""

    last_update: datetime | None = None
    checksum: str | None = None

    model_config = {"frozen": True}


class PackageDiff(BaseModel):
    """Name-only difference between two package lists.

    Attributes:
        added: Packages present in the new list only.
        removed: Names of packages present in the old list only.
    """

    added: list[PackageDescriptor] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Outcome of one sync cycle.

    Attributes:
        started_at: ISO 8601 timestamp when the cycle started.
        completed_at: ISO 8601 timestamp when the cycle ended.
        skipped: True when another cycle held the lock.
        changes: Kinds classified for this cycle, in order.
        applied: Kinds whose handler completed, in order.
        error: Error message when the cycle failed.
    """

    started_at: str
    completed_at: str | None = None
    skipped: bool = False
    changes: list[ChangeKind] = Field(default_factory=list)
    applied: list[ChangeKind] = Field(default_factory=list)
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        """True when the cycle ran to completion without error."""
        return not self.skipped and self.error is None

    def summary(self) -> str:
        """One-line summary of the cycle."""
        if self.skipped:
            return "Sync skipped: another sync is in progress"
        if self.error:
            return (
                f"Sync failed after {len(self.applied)} of "
                f"{len(self.changes)} changes: {self.error}"
            )
        if not self.changes:
            return "Already in sync"
        return f"Applied {len(self.applied)} change(s)"
