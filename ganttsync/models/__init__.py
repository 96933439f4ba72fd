"""
Data models for ganttsync.

Import models explicitly from their modules where possible:
    from ganttsync.models.base import WorkingItem, Task
    from ganttsync.models.snapshot import Snapshot, HistoryEntry, PendingChanges
    from ganttsync.models.version import Version, VersionDiff, AutoVersionConfig
    from ganttsync.models.files import ConfigFile
"""

from .base import Task, WorkingItem
from .files import ConfigFile
from .snapshot import HistoryEntry, PendingChanges, Snapshot
from .version import (
    AutoVersionConfig,
    FieldChange,
    ModifiedItem,
    Version,
    VersionAuthor,
    VersionDiff,
    VersionSnapshot,
)

__all__ = [
    "WorkingItem",
    "Task",
    "Snapshot",
    "HistoryEntry",
    "PendingChanges",
    "Version",
    "VersionAuthor",
    "VersionSnapshot",
    "VersionDiff",
    "ModifiedItem",
    "FieldChange",
    "AutoVersionConfig",
    "ConfigFile",
]
