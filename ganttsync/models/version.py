"""
Version models for ganttsync.

Versions are persisted, numbered snapshots of a project's tasks. Diff models
are pure values derived from two snapshots.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ganttsync.constants import (
    DEFAULT_AUTO_VERSION_ENABLED,
    DEFAULT_AUTO_VERSION_ON_ADD,
    DEFAULT_AUTO_VERSION_ON_DELETE,
    DEFAULT_AUTO_VERSION_ON_MODIFY,
    DEFAULT_MAX_VERSIONS_TO_KEEP,
    DEFAULT_MIN_CHANGE_THRESHOLD,
)
from ganttsync.models.base import Task, WorkingItem
from ganttsync.utils import to_instant, utcnow


class _WireModel(BaseModel):
    """Immutable model exchanged with the remote store."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class VersionAuthor(_WireModel):
    id: str = ""
    name: str = ""
    email: str = ""


class DateRange(_WireModel):
    start: datetime
    end: datetime


class VersionMetadata(_WireModel):
    total_tasks: int = 0
    date_range: Optional[DateRange] = None


class VersionSnapshot(_WireModel):
    """Tasks captured by a version, with summary metadata."""

    project_name: str = ""
    tasks: List[Task] = Field(default_factory=list)
    metadata: VersionMetadata = Field(default_factory=VersionMetadata)

    @classmethod
    def from_tasks(cls, tasks: Sequence[Task], project_name: str = "") -> "VersionSnapshot":
        """Build a snapshot from tasks, cloning them and computing metadata."""
        copies = [task.clone() for task in tasks]
        date_range = None
        if copies:
            date_range = DateRange(
                start=min((t.start_date for t in copies), key=to_instant),
                end=max((t.end_date for t in copies), key=to_instant),
            )
        return cls(
            project_name=project_name,
            tasks=copies,
            metadata=VersionMetadata(total_tasks=len(copies), date_range=date_range),
        )


class Version(_WireModel):
    """A persisted, numbered, immutable project snapshot."""

    id: str
    version_number: int
    project_id: str
    created_at: datetime = Field(default_factory=utcnow)
    created_by: VersionAuthor = Field(default_factory=VersionAuthor)
    snapshot: VersionSnapshot = Field(default_factory=VersionSnapshot)
    change_description: Optional[str] = None
    is_automatic: bool = False


class AutoVersionConfig(BaseModel):
    """Policy settings for automatic versions."""

    enabled: bool = DEFAULT_AUTO_VERSION_ENABLED
    on_add: bool = DEFAULT_AUTO_VERSION_ON_ADD
    on_delete: bool = DEFAULT_AUTO_VERSION_ON_DELETE
    on_modify: bool = DEFAULT_AUTO_VERSION_ON_MODIFY
    min_change_threshold: int = Field(default=DEFAULT_MIN_CHANGE_THRESHOLD, ge=0)
    max_versions_to_keep: int = Field(default=DEFAULT_MAX_VERSIONS_TO_KEEP, ge=1)


@dataclass(frozen=True)
class FieldChange:
    """One differing field between two versions of an item."""

    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class ModifiedItem:
    """An item present in both snapshots with at least one changed field."""

    id: str
    before: WorkingItem
    after: WorkingItem
    changes: Tuple[FieldChange, ...]

    @property
    def changed_fields(self) -> List[str]:
        return [change.field for change in self.changes]


@dataclass(frozen=True)
class VersionDiff:
    """Structural difference between two snapshots."""

    added: Tuple[WorkingItem, ...] = field(default_factory=tuple)
    removed: Tuple[WorkingItem, ...] = field(default_factory=tuple)
    modified: Tuple[ModifiedItem, ...] = field(default_factory=tuple)

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.removed) + len(self.modified)

    @property
    def is_empty(self) -> bool:
        return self.change_count == 0
