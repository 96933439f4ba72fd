"""
Remote store interface for ganttsync.

The engines only talk to the persistence layer through these operations.
Implementations own transport, authentication and wire formats.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ganttsync.models.base import Task
from ganttsync.models.version import Version


class RemoteStore(ABC):
    """
    Asynchronous persistence for tasks and versions of projects.

    Update payloads use the shapes ``{"id": ..., "changes": {...}}`` (saves)
    and ``{"id": ..., "data": {...}}`` (optimistic updates). Change keys may be
    snake_case or camelCase.
    """

    # =========================================================================
    # Tasks
    # =========================================================================

    @abstractmethod
    async def load_tasks(self, project_id: str) -> List[Task]:
        """Load the saved tasks of a project."""

    @abstractmethod
    async def save(self, project_id: str, payload: Mapping[str, Any]) -> Task:
        """Persist one ``{id, changes}`` payload and return the saved task."""

    @abstractmethod
    async def batch_save(self, project_id: str, payloads: Sequence[Mapping[str, Any]]) -> List[Task]:
        """Persist several ``{id, changes}`` payloads in one call."""

    @abstractmethod
    async def apply_update(self, project_id: str, item_id: str, data: Mapping[str, Any]) -> Task:
        """Apply changes to one task and return the authoritative task."""

    @abstractmethod
    async def apply_batch_update(
        self, project_id: str, updates: Sequence[Mapping[str, Any]]
    ) -> List[Task]:
        """Apply several ``{id, data}`` updates and return the authoritative tasks."""

    # =========================================================================
    # Versions
    # =========================================================================

    @abstractmethod
    async def list_versions(self, project_id: str) -> List[Version]:
        """List a project's versions, newest first."""

    @abstractmethod
    async def create_version(
        self,
        project_id: str,
        description: Optional[str] = None,
        is_automatic: bool = False,
    ) -> Version:
        """Snapshot the project's saved tasks as a new version."""

    @abstractmethod
    async def restore_version(self, project_id: str, version_id: str) -> None:
        """Replace the project's saved tasks with a version's snapshot."""

    @abstractmethod
    async def delete_version(self, project_id: str, version_id: str) -> None:
        """Delete a version."""

    async def aclose(self) -> None:
        """Release transport resources."""


def update_changes(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Extract the change mapping from a save or update payload."""
    changes = payload.get("changes")
    if changes is None:
        changes = payload.get("data", {})
    return dict(changes)
