"""
Project session for ganttsync.

ProjectSession is the composition root for one open project. It wires the
working collection, dirty tracker, history, auto-save queue, optimistic
updaters and version manager together and owns their cancellation scope.

Usage:
    session = ProjectSession(HttpRemoteStore(base_url), settings)
    await session.load_project("p1")
    session.update_task("t1", {"progress": 40})
    await session.save_changes()
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from ganttsync.constants import HISTORY_DISCARDED, HISTORY_INITIAL_STATE
from ganttsync.exceptions import InvalidOperationError, NotFoundError
from ganttsync.managers.collection import WorkingCollection
from ganttsync.managers.dirty_state import DirtyStateTracker
from ganttsync.managers.history_manager import HistoryManager
from ganttsync.managers.optimistic import BatchOptimisticUpdater, OptimisticUpdate, OptimisticUpdater
from ganttsync.managers.save_queue import AutoSaveQueue, retry_all, retry_transient_only
from ganttsync.managers.versioning import VersionManager, diff
from ganttsync.models.base import WorkingItem
from ganttsync.models.files import ConfigFile
from ganttsync.models.snapshot import PendingChanges, Snapshot
from ganttsync.models.version import Version
from ganttsync.scope import CancelScope
from ganttsync.store.base import RemoteStore
from ganttsync.utils import clone_items, utcnow

ERROR_POLICIES = {
    "retry_all": retry_all,
    "retry_transient_only": retry_transient_only,
}


def _label(item: WorkingItem) -> str:
    return item.field_value("name") or item.id


class ProjectSession:
    """
    Editing session for one project.

    Edits mutate the working collection synchronously, accumulate pending
    changes, mark the session dirty, record history and queue an auto-save.
    ``save_changes`` flushes the pending changes and runs the auto-version
    check against the last committed state.
    """

    def __init__(
        self,
        store: RemoteStore,
        settings: Optional[ConfigFile] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize ProjectSession.

        Args:
            store: Remote store for tasks and versions.
            settings: Engine settings (defaults when omitted).
            confirm: Navigation prompt used by the dirty tracker.
            clock: Source of timestamps.
        """
        self.store = store
        self.settings = settings or ConfigFile()
        self._clock = clock
        self._scope = CancelScope("session")

        self.project_id: Optional[str] = None
        self.collection = WorkingCollection()
        self.pending = PendingChanges()
        self._committed = Snapshot(items=())
        self.history = HistoryManager(self.settings.max_history_size)
        self.dirty = DirtyStateTracker(
            warn_on_page_leave=self.settings.warn_on_page_leave,
            warn_on_navigate=self.settings.warn_on_navigate,
            warning_message=self.settings.warning_message,
            confirm=confirm,
            clock=clock,
        )
        self.save_queue: AutoSaveQueue[List[Dict[str, Any]]] = AutoSaveQueue(
            self._persist,
            delay=self.settings.auto_save_interval,
            max_retries=self.settings.max_retries,
            retry_delay=self.settings.retry_delay,
            enabled=self.settings.auto_save,
            error_policy=ERROR_POLICIES[self.settings.error_policy],
            scope=self._scope.child("auto-save"),
            clock=clock,
        )
        self.optimistic = OptimisticUpdater(
            self.collection,
            self._apply_update,
            on_success=self._adopt_confirmed,
            auto_rollback=self.settings.auto_rollback,
            scope=self._scope.child("optimistic"),
        )
        self.batch_optimistic = BatchOptimisticUpdater(
            self.collection,
            self._apply_batch_update,
            on_success=self._adopt_confirmed_many,
            auto_rollback=self.settings.auto_rollback,
            scope=self._scope.child("batch-optimistic"),
        )
        self.versions: Optional[VersionManager] = None

        self._is_saving = False
        self._last_saved: Optional[datetime] = None
        self.error: Optional[Exception] = None

    # =========================================================================
    # Observable State
    # =========================================================================

    @property
    def tasks(self) -> Tuple[WorkingItem, ...]:
        return self.collection.items

    @property
    def committed(self) -> Snapshot:
        """Last state known to be saved."""
        return self._committed

    @property
    def is_dirty(self) -> bool:
        return self.dirty.is_dirty

    @property
    def is_saving(self) -> bool:
        return self._is_saving or self.save_queue.is_saving

    @property
    def is_pending(self) -> bool:
        """True while an auto-save is waiting to be sent."""
        return self.save_queue.is_pending

    @property
    def last_saved(self) -> Optional[datetime]:
        return self._last_saved

    @property
    def retry_count(self) -> int:
        return self.save_queue.retry_count

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def is_item_pending(self, item_id: str) -> bool:
        """True while an optimistic update of ``item_id`` awaits confirmation."""
        return self.optimistic.is_pending(item_id) or self.batch_optimistic.is_pending(item_id)

    def _require_project(self) -> str:
        if self.project_id is None:
            raise InvalidOperationError("No project loaded")
        return self.project_id

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_project(self, project_id: str) -> None:
        """Load a project's tasks and versions and start a fresh session."""
        tasks = await self.store.load_tasks(project_id)
        if self._scope.cancelled:
            return
        self.project_id = project_id
        self.versions = VersionManager(
            self.store,
            project_id,
            config=self.settings.auto_version_config(),
            scope=self._scope.child("versions"),
        )
        self.set_tasks(tasks)
        await self.versions.load_versions()
        logger.info(f"Loaded project {project_id} with {len(tasks)} task(s)")

    def set_tasks(self, tasks: Sequence[WorkingItem]) -> None:
        """Replace the working tasks and reset dirty state, history and pending changes."""
        self.save_queue.clear_queue()
        self.collection.set_items(clone_items(tasks))
        self._committed = Snapshot.capture(tasks, HISTORY_INITIAL_STATE)
        self.pending.clear()
        self.dirty.reset()
        self.history.reset()
        self.history.add_to_history(self.collection.items, HISTORY_INITIAL_STATE)

    # =========================================================================
    # Edits
    # =========================================================================

    def _after_edit(self, description: Optional[str]) -> None:
        self.dirty.mark_dirty()
        if description is not None:
            self.history.add_to_history(self.collection.items, description)
        self.save_queue.queue_save(self.pending.as_updates())

    def update_task(self, task_id: str, changes: Mapping[str, Any]) -> WorkingItem:
        """Apply partial changes to a task.

        Raises:
            NotFoundError: If the task is not in the session.
            ValidationError: If the changes make the task invalid.
        """
        updated = self.collection.require(task_id).apply(changes)
        self.collection.replace(task_id, updated)
        self.pending.record(task_id, changes)
        self._after_edit(f"Update task: {task_id}")
        return updated

    def add_task(self, task: WorkingItem) -> None:
        """Append a task.

        Raises:
            DuplicateError: If a task with the same id exists.
        """
        self.collection.append(task.clone())
        self._after_edit(f"Add task: {_label(task)}")

    def delete_task(self, task_id: str) -> WorkingItem:
        """Remove a task and drop its pending changes."""
        task = self.collection.remove(task_id)
        self.pending.discard(task_id)
        self._after_edit(f"Delete task: {_label(task)}")
        return task

    def batch_update_tasks(self, updates: Sequence[Mapping[str, Any]]) -> None:
        """Apply ``[{"id": ..., "changes": {...}}]`` as one edit.

        Every update is validated before any is applied.
        """
        replacements: Dict[str, WorkingItem] = {}
        for update in updates:
            current = replacements.get(update["id"]) or self.collection.require(update["id"])
            replacements[update["id"]] = current.apply(update["changes"])
        self.collection.replace_many(replacements)
        for update in updates:
            self.pending.record(update["id"], update["changes"])
        self._after_edit(f"Batch update {len(updates)} tasks")

    # =========================================================================
    # Saving
    # =========================================================================

    async def _persist(self, updates: List[Dict[str, Any]]) -> None:
        """Save function of the auto-save queue."""
        project_id = self._require_project()
        previous = self._committed
        if updates:
            await self.store.batch_save(project_id, updates)
        if self._scope.cancelled:
            return
        self._settle(updates, previous)
        try:
            await self._check_auto_version(previous)
        except Exception as e:
            # The save itself succeeded; the version manager keeps the error.
            logger.warning(f"Automatic version after auto-save failed: {e}")

    def _settle(self, updates: List[Dict[str, Any]], previous: Snapshot) -> None:
        """Record a successful save of ``updates`` made on top of ``previous``.

        Pending entries edited again while the save was in flight stay pending,
        and the committed state of those items is ``previous`` plus the sent
        changes only.
        """
        sent = {update["id"]: update["changes"] for update in updates}
        for item_id, changes in sent.items():
            if self.pending.get(item_id) == changes:
                self.pending.discard(item_id)

        base = {item.id: item for item in previous.items}
        committed: List[WorkingItem] = []
        for item in self.collection.items:
            if item.id in self.pending and item.id in base:
                item = base[item.id].apply(sent.get(item.id, {}))
            committed.append(item)
        self._committed = Snapshot.capture(committed, "Saved")
        self._last_saved = self._clock()
        if not self.pending:
            self.dirty.mark_clean()

    async def _check_auto_version(self, previous: Snapshot) -> Optional[Version]:
        if self.versions is None:
            return None
        return await self.versions.check_auto_version(self._committed.items, previous.items)

    async def save_changes(self) -> Optional[Version]:
        """Flush pending changes, then create an automatic version if warranted.

        Returns:
            The automatic version created, if any.

        Raises:
            InvalidOperationError: If no project is loaded.
            Exception: Whatever the remote store raised.
        """
        project_id = self._require_project()
        if not self.dirty.is_dirty:
            return None

        self.save_queue.clear_queue()
        updates = self.pending.as_updates()
        previous = self._committed
        self._is_saving = True
        self.error = None
        try:
            if updates:
                await self.store.batch_save(project_id, updates)
        except Exception as e:
            self.error = e
            logger.error(f"Failed to save changes: {e}")
            raise
        finally:
            self._is_saving = False

        if self._scope.cancelled:
            return None
        self._settle(updates, previous)
        logger.info(f"Saved {len(updates)} task update(s) for project {project_id}")
        return await self._check_auto_version(previous)

    def discard_changes(self) -> None:
        """Restore the last committed state and drop all pending changes."""
        self.save_queue.clear_queue()
        self.collection.set_items(self._committed.items_copy())
        self.pending.clear()
        self.history.set_base(self._committed.items, HISTORY_DISCARDED)
        self.dirty.mark_clean()

    def clear_error(self) -> None:
        self.error = None
        self.save_queue.clear_error()

    # =========================================================================
    # Undo / Redo
    # =========================================================================

    def _restore(self, snapshot: Snapshot) -> None:
        self.collection.set_items(snapshot.items_copy())
        self._rebuild_pending()
        self._after_edit(None)

    def _rebuild_pending(self) -> None:
        """Derive pending changes from the committed state and the working items."""
        self.pending.clear()
        changes = diff(self._committed.items, self.collection.items)
        for modified in changes.modified:
            self.pending.record(
                modified.id,
                {change.field: change.new_value for change in modified.changes},
            )

    def undo(self) -> bool:
        """Restore the previous history entry; returns False if there is none."""
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    def redo(self) -> bool:
        """Restore the next history entry; returns False if there is none."""
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._restore(snapshot)
        return True

    # =========================================================================
    # Optimistic Updates
    # =========================================================================

    async def _apply_update(self, item_id: str, data: Dict[str, Any]) -> WorkingItem:
        return await self.store.apply_update(self._require_project(), item_id, data)

    async def _apply_batch_update(self, updates: List[Dict[str, Any]]) -> List[WorkingItem]:
        return list(await self.store.apply_batch_update(self._require_project(), updates))

    def _adopt_confirmed(self, item: WorkingItem) -> None:
        self._adopt_confirmed_many([item])

    def _adopt_confirmed_many(self, items: List[WorkingItem]) -> None:
        """Fold server-confirmed items into the committed snapshot."""
        confirmed = {item.id: item for item in items}
        self._committed = Snapshot(
            items=tuple(confirmed.get(i.id, i).clone() for i in self._committed.items),
            description=self._committed.description,
        )

    async def commit_update(
        self,
        task_id: str,
        optimistic_data: Mapping[str, Any],
        server_data: Optional[Mapping[str, Any]] = None,
    ) -> WorkingItem:
        """Optimistically update one task and confirm it with the store.

        Raises:
            InvalidOperationError: If no project is loaded.
            NotFoundError: If the task is not in the session.
            Exception: Whatever the remote store raised, after rollback.
        """
        self._require_project()
        if task_id not in self.collection:
            raise NotFoundError(f"Item with id {task_id} not found")
        confirmed = await self.optimistic.update(task_id, optimistic_data, server_data)
        self.history.add_to_history(self.collection.items, f"Update task: {task_id}")
        return confirmed

    async def commit_batch_update(self, updates: Sequence[Any]) -> List[WorkingItem]:
        """Optimistically update several tasks in one remote call."""
        self._require_project()
        entries = [OptimisticUpdate.coerce(u) for u in updates]
        confirmed = await self.batch_optimistic.batch_update(entries)
        self.history.add_to_history(self.collection.items, f"Batch update {len(entries)} tasks")
        return confirmed

    # =========================================================================
    # Teardown
    # =========================================================================

    def close(self) -> None:
        """Cancel timers and ignore results of calls still in flight."""
        self._scope.cancel()
        logger.debug(f"Closed session for project {self.project_id}")
