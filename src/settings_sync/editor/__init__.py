"""Editor boundary: host capabilities and the settings snapshot provider."""

from .host import DirectoryEditorHost, EditorHost, PackageCommandError
from .settings_manager import SettingsSnapshotProvider, placeholder_for

__all__ = [
    "DirectoryEditorHost",
    "EditorHost",
    "PackageCommandError",
    "SettingsSnapshotProvider",
    "placeholder_for",
]
