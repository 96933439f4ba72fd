"""
In-memory remote store for ganttsync.

A dict-backed reference implementation used by the CLI and the tests.
Failures can be injected with ``fail_next``.
"""
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from ganttsync.exceptions import NotFoundError
from ganttsync.models.base import Task
from ganttsync.models.version import Version, VersionSnapshot
from ganttsync.store.base import RemoteStore, update_changes
from ganttsync.utils import clone_items, utcnow


class InMemoryRemoteStore(RemoteStore):
    """
    Remote store keeping projects, tasks and versions in memory.

    Every call is recorded in ``calls`` as ``(operation, args)``. Version
    numbers increase strictly per project and are never reused.
    """

    def __init__(self) -> None:
        self._tasks: Dict[str, List[Task]] = {}
        self._names: Dict[str, str] = {}
        self._versions: Dict[str, List[Version]] = {}
        self._next_version: Dict[str, int] = {}
        self._failures: List[Exception] = []
        self.calls: List[Tuple[str, tuple]] = []

    # =========================================================================
    # Test Helpers
    # =========================================================================

    def add_project(self, project_id: str, tasks: Sequence[Task] = (), name: str = "") -> None:
        """Create or replace a project with the given tasks."""
        self._tasks[project_id] = clone_items(tasks)
        self._names[project_id] = name
        self._versions.setdefault(project_id, [])
        self._next_version.setdefault(project_id, 1)

    def tasks(self, project_id: str) -> List[Task]:
        """Saved tasks of a project (cloned)."""
        return clone_items(self._project_tasks(project_id))

    def fail_next(self, count: int = 1, error: Optional[Exception] = None) -> None:
        """Make the next ``count`` calls raise ``error``."""
        exc = error or ConnectionError("Simulated network failure")
        self._failures.extend([exc] * count)

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    # =========================================================================
    # Internals
    # =========================================================================

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if self._failures:
            error = self._failures.pop(0)
            logger.debug(f"Injected failure for {operation}: {error}")
            raise error

    def _project_tasks(self, project_id: str) -> List[Task]:
        if project_id not in self._tasks:
            raise NotFoundError(f"Project {project_id} not found")
        return self._tasks[project_id]

    def _apply(self, project_id: str, item_id: str, changes: Mapping[str, Any]) -> Task:
        tasks = self._project_tasks(project_id)
        for index, task in enumerate(tasks):
            if task.id == item_id:
                updated = task.apply(changes)
                tasks[index] = updated
                return updated.clone()
        raise NotFoundError(f"Task {item_id} not found")

    def _find_version(self, project_id: str, version_id: str) -> Version:
        for version in self._versions.get(project_id, []):
            if version.id == version_id:
                return version
        raise NotFoundError(f"Version {version_id} not found")

    # =========================================================================
    # Tasks
    # =========================================================================

    async def load_tasks(self, project_id: str) -> List[Task]:
        self._record("load_tasks", project_id)
        return self.tasks(project_id)

    async def save(self, project_id: str, payload: Mapping[str, Any]) -> Task:
        self._record("save", project_id, dict(payload))
        return self._apply(project_id, payload["id"], update_changes(payload))

    async def batch_save(self, project_id: str, payloads: Sequence[Mapping[str, Any]]) -> List[Task]:
        self._record("batch_save", project_id, [dict(p) for p in payloads])
        return [self._apply(project_id, p["id"], update_changes(p)) for p in payloads]

    async def apply_update(self, project_id: str, item_id: str, data: Mapping[str, Any]) -> Task:
        self._record("apply_update", project_id, item_id, dict(data))
        return self._apply(project_id, item_id, data)

    async def apply_batch_update(
        self, project_id: str, updates: Sequence[Mapping[str, Any]]
    ) -> List[Task]:
        self._record("apply_batch_update", project_id, [dict(u) for u in updates])
        return [self._apply(project_id, u["id"], update_changes(u)) for u in updates]

    # =========================================================================
    # Versions
    # =========================================================================

    async def list_versions(self, project_id: str) -> List[Version]:
        self._record("list_versions", project_id)
        self._project_tasks(project_id)
        return list(self._versions[project_id])

    async def create_version(
        self,
        project_id: str,
        description: Optional[str] = None,
        is_automatic: bool = False,
    ) -> Version:
        self._record("create_version", project_id, description, is_automatic)
        tasks = self._project_tasks(project_id)
        number = self._next_version[project_id]
        self._next_version[project_id] = number + 1
        version = Version(
            id=str(uuid.uuid4()),
            version_number=number,
            project_id=project_id,
            created_at=utcnow(),
            snapshot=VersionSnapshot.from_tasks(tasks, self._names.get(project_id, "")),
            change_description=description,
            is_automatic=is_automatic,
        )
        self._versions[project_id].insert(0, version)
        return version

    async def restore_version(self, project_id: str, version_id: str) -> None:
        self._record("restore_version", project_id, version_id)
        version = self._find_version(project_id, version_id)
        self._tasks[project_id] = clone_items(version.snapshot.tasks)

    async def delete_version(self, project_id: str, version_id: str) -> None:
        self._record("delete_version", project_id, version_id)
        version = self._find_version(project_id, version_id)
        self._versions[project_id].remove(version)
