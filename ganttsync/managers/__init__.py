"""
Managers for the ganttsync engine.

This package contains focused manager classes that each own one consistency concern:
- DirtyStateTracker: Unsaved-changes flag and navigation guards
- HistoryManager: Bounded undo/redo over snapshots
- AutoSaveQueue: Debounced, retried persistence (plus batch and merge variants)
- WorkingCollection: The in-memory items the editor renders
- OptimisticUpdater: Apply-now, confirm-later updates with rollback
- VersionManager: Version list, diffs and automatic versioning
"""

from ganttsync.managers.collection import WorkingCollection
from ganttsync.managers.dirty_state import (
    AutoSaveDirtyTracker,
    DirtyStateTracker,
    FormDirtyTracker,
)
from ganttsync.managers.history_manager import HistoryManager
from ganttsync.managers.optimistic import (
    BatchOptimisticUpdater,
    OptimisticUpdate,
    OptimisticUpdater,
)
from ganttsync.managers.save_queue import (
    AutoSaveQueue,
    BatchAutoSaveQueue,
    MergeAutoSaveQueue,
    SaveState,
    retry_all,
    retry_transient_only,
)
from ganttsync.managers.versioning import (
    VersionManager,
    auto_version_description,
    change_count,
    diff,
    diff_summary,
    diff_versions,
    format_change,
    get_task_changes,
    should_version,
)

__all__ = [
    "WorkingCollection",
    "DirtyStateTracker",
    "FormDirtyTracker",
    "AutoSaveDirtyTracker",
    "HistoryManager",
    "OptimisticUpdater",
    "BatchOptimisticUpdater",
    "OptimisticUpdate",
    "AutoSaveQueue",
    "BatchAutoSaveQueue",
    "MergeAutoSaveQueue",
    "SaveState",
    "retry_all",
    "retry_transient_only",
    "VersionManager",
    "diff",
    "diff_versions",
    "get_task_changes",
    "diff_summary",
    "auto_version_description",
    "format_change",
    "change_count",
    "should_version",
]
