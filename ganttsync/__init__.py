"""
ganttsync: client-side consistency engine for Gantt project editing.

Dirty-state tracking, undo/redo history, debounced auto-save with retry,
optimistic updates with rollback, version diffs and automatic versioning.
"""

from ganttsync.exceptions import (
    ConfigurationError,
    DuplicateError,
    GanttSyncError,
    InvalidOperationError,
    NotFoundError,
    RemoteStoreError,
    TransientError,
    ValidationError,
)
from ganttsync.session import ProjectSession

__version__ = "0.1.0"

__all__ = [
    "ProjectSession",
    "GanttSyncError",
    "ValidationError",
    "NotFoundError",
    "InvalidOperationError",
    "ConfigurationError",
    "RemoteStoreError",
    "TransientError",
    "DuplicateError",
]
