"""
Version diffing and automatic versioning for ganttsync.

Handles:
- Field-level diffs between two snapshots of working items
- One-line summaries and display strings for diffs
- The auto-versioning decision and its caller, VersionManager
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ganttsync.constants import DATE_FIELDS, DIFF_FIELDS
from ganttsync.exceptions import NotFoundError
from ganttsync.models.base import WorkingItem
from ganttsync.models.version import (
    AutoVersionConfig,
    FieldChange,
    ModifiedItem,
    Version,
    VersionDiff,
)
from ganttsync.scope import CancelScope
from ganttsync.signals import signal
from ganttsync.utils import to_instant

# =============================================================================
# Diff
# =============================================================================


def _same_value(field: str, old_value: Any, new_value: Any) -> bool:
    if field in DATE_FIELDS and isinstance(old_value, datetime) and isinstance(new_value, datetime):
        return to_instant(old_value) == to_instant(new_value)
    return old_value == new_value


def get_task_changes(old: WorkingItem, new: WorkingItem) -> List[FieldChange]:
    """
    Compare the diffed fields of two versions of one item.

    Dates are compared by instant, so the same moment in different time
    zones is not a change. Other fields are compared by value.

    Args:
        old: The item before.
        new: The item after.

    Returns:
        One FieldChange per differing field, in field order.
    """
    changes = []
    for field in DIFF_FIELDS:
        old_value = old.field_value(field)
        new_value = new.field_value(field)
        if not _same_value(field, old_value, new_value):
            changes.append(FieldChange(field=field, old_value=old_value, new_value=new_value))
    return changes


def diff(old_items: Sequence[WorkingItem], new_items: Sequence[WorkingItem]) -> VersionDiff:
    """
    Compute the structural difference between two snapshots.

    ``added`` follows the order of ``new_items``, ``removed`` the order of
    ``old_items`` and ``modified`` the order of ``new_items``.

    Examples:
        >>> diff([], []).is_empty
        True
    """
    old_by_id: Dict[str, WorkingItem] = {item.id: item for item in old_items}
    new_ids = {item.id for item in new_items}

    added = []
    modified = []
    for item in new_items:
        before = old_by_id.get(item.id)
        if before is None:
            added.append(item)
            continue
        changes = get_task_changes(before, item)
        if changes:
            modified.append(ModifiedItem(id=item.id, before=before, after=item, changes=tuple(changes)))

    removed = [item for item in old_items if item.id not in new_ids]
    return VersionDiff(added=tuple(added), removed=tuple(removed), modified=tuple(modified))


def diff_versions(old_version: Version, new_version: Version) -> VersionDiff:
    """Diff the task snapshots of two versions."""
    return diff(old_version.snapshot.tasks, new_version.snapshot.tasks)


def change_count(version_diff: VersionDiff) -> int:
    """Total number of added, removed and modified items."""
    return version_diff.change_count


# =============================================================================
# Formatting
# =============================================================================


def _count_label(count: int, action: str) -> str:
    return f"{count} task{'s' if count != 1 else ''} {action}"


def diff_summary(version_diff: VersionDiff) -> str:
    """One-line summary such as "2 tasks added, 1 task modified"."""
    parts = []
    if version_diff.added:
        parts.append(_count_label(len(version_diff.added), "added"))
    if version_diff.removed:
        parts.append(_count_label(len(version_diff.removed), "removed"))
    if version_diff.modified:
        parts.append(_count_label(len(version_diff.modified), "modified"))
    if not parts:
        return "No changes"
    return ", ".join(parts)


def auto_version_description(version_diff: VersionDiff) -> str:
    """Default description recorded on automatic versions."""
    return f"Auto-save: {diff_summary(version_diff)}"


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return to_instant(value).date().isoformat()
    return str(value)


def format_change(change: FieldChange) -> str:
    """Render a field change for display."""
    field = change.field
    if field == "name":
        return f'Name: "{change.old_value}" → "{change.new_value}"'
    if field in DATE_FIELDS:
        label = "Start" if field == "start_date" else "End"
        return f"{label}: {_format_date(change.old_value)} → {_format_date(change.new_value)}"
    if field == "color":
        return "Color changed"
    if field == "position":
        return f"Position: {change.old_value} → {change.new_value}"
    if field == "progress":
        return f"Progress: {change.old_value or 0}% → {change.new_value or 0}%"
    if field == "is_milestone":
        return "Converted to milestone" if change.new_value else "Converted from milestone"
    return f"{field} changed"


# =============================================================================
# Policy
# =============================================================================


def should_version(version_diff: VersionDiff, config: AutoVersionConfig) -> bool:
    """
    Decide whether a diff warrants an automatic version.

    Args:
        version_diff: Changes since the last committed state.
        config: Auto-version settings.

    Returns:
        True if an automatic version should be created.
    """
    if not config.enabled:
        return False
    if change_count(version_diff) < config.min_change_threshold:
        return False

    has_adds = bool(version_diff.added)
    has_removes = bool(version_diff.removed)

    if has_adds and not config.on_add:
        return False
    if has_removes and not config.on_delete:
        return False
    if version_diff.modified and not has_adds and not has_removes and not config.on_modify:
        return False
    return True


class VersionManager:
    """
    Version list for one project, and the caller of the auto-version policy.

    Versions are kept newest first. Store failures are recorded in ``error``,
    logged and re-raised.
    """

    def __init__(
        self,
        store: Any,
        project_id: str,
        config: Optional[AutoVersionConfig] = None,
        scope: Optional[CancelScope] = None,
    ) -> None:
        """
        Initialize VersionManager.

        Args:
            store: RemoteStore used for version operations.
            project_id: Project whose versions are managed.
            config: Auto-version settings (defaults apply when omitted).
            scope: Cancellation scope; results arriving after cancellation
                are not applied.
        """
        self.store = store
        self.project_id = project_id
        self.config = config or AutoVersionConfig()
        self._scope = scope or CancelScope("versions")
        self._versions: List[Version] = []
        self.current_version_id: Optional[str] = None
        self.compare_version_id: Optional[str] = None
        self.is_loading = False
        self.error: Optional[Exception] = None

    @signal
    def versions_changed(self) -> None:
        """Emitted when the version list or selection changes."""

    @property
    def versions(self) -> List[Version]:
        return list(self._versions)

    @property
    def current_version(self) -> Optional[Version]:
        return self.get_version(self.current_version_id) if self.current_version_id else None

    @property
    def compare_version(self) -> Optional[Version]:
        return self.get_version(self.compare_version_id) if self.compare_version_id else None

    def get_version(self, version_id: str) -> Optional[Version]:
        for version in self._versions:
            if version.id == version_id:
                return version
        return None

    def _require(self, version_id: str) -> Version:
        version = self.get_version(version_id)
        if version is None:
            raise NotFoundError(f"Version {version_id} not found")
        return version

    def set_compare_version(self, version_id: Optional[str]) -> None:
        """Select a version to compare against, or None to clear."""
        if version_id is not None:
            self._require(version_id)
        self.compare_version_id = version_id
        self.versions_changed()

    def get_diff(self, version_id_1: str, version_id_2: str) -> Optional[VersionDiff]:
        """Diff two loaded versions; None if either is unknown."""
        v1 = self.get_version(version_id_1)
        v2 = self.get_version(version_id_2)
        if v1 is None or v2 is None:
            return None
        return diff_versions(v1, v2)

    def _fail(self, action: str, error: Exception) -> None:
        self.error = error
        logger.error(f"Failed to {action}: {error}")

    # =========================================================================
    # Store Operations
    # =========================================================================

    async def load_versions(self) -> List[Version]:
        """Load the project's versions; the newest becomes current."""
        self.is_loading = True
        self.error = None
        try:
            versions = await self.store.list_versions(self.project_id)
        except Exception as e:
            self._fail("load versions", e)
            raise
        finally:
            self.is_loading = False

        if self._scope.cancelled:
            return list(versions)
        self._versions = sorted(versions, key=lambda v: v.version_number, reverse=True)
        if self._versions:
            self.current_version_id = self._versions[0].id
        logger.debug(f"Loaded {len(self._versions)} version(s) for project {self.project_id}")
        self.versions_changed()
        return self.versions

    async def create_version(self, description: Optional[str] = None, is_automatic: bool = False) -> Version:
        """
        Create a version of the project's current saved state.

        The new version becomes current. If retention is exceeded, the
        oldest automatic versions are deleted afterwards.

        Args:
            description: Change description.
            is_automatic: Whether the version was created by policy.

        Returns:
            The created version.
        """
        self.is_loading = True
        self.error = None
        try:
            version = await self.store.create_version(self.project_id, description, is_automatic)
        except Exception as e:
            self._fail("create version", e)
            raise
        finally:
            self.is_loading = False

        if self._scope.cancelled:
            return version
        self._versions.insert(0, version)
        self.current_version_id = version.id
        kind = "automatic" if is_automatic else "manual"
        logger.info(f"Created {kind} version {version.version_number}: {description or ''}")
        self.versions_changed()

        await self._apply_retention()
        return version

    async def _apply_retention(self) -> None:
        if not self.config.enabled:
            return
        automatic = [v for v in self._versions if v.is_automatic]
        # Newest first, so the tail holds the oldest automatic versions.
        for version in reversed(automatic[self.config.max_versions_to_keep:]):
            await self.delete_version(version.id)

    async def restore_version(self, version_id: str) -> None:
        """Restore a version on the store, then reload the version list."""
        version = self._require(version_id)
        self.is_loading = True
        self.error = None
        try:
            await self.store.restore_version(version.project_id, version_id)
        except Exception as e:
            self._fail("restore version", e)
            raise
        finally:
            self.is_loading = False
        logger.info(f"Restored version {version.version_number}")
        await self.load_versions()

    async def delete_version(self, version_id: str) -> None:
        """Delete a version and fix up the current and compare selections."""
        version = self._require(version_id)
        self.error = None
        try:
            await self.store.delete_version(version.project_id, version_id)
        except Exception as e:
            self._fail("delete version", e)
            raise

        if self._scope.cancelled:
            return
        self._versions = [v for v in self._versions if v.id != version_id]
        if self.current_version_id == version_id:
            self.current_version_id = self._versions[0].id if self._versions else None
        if self.compare_version_id == version_id:
            self.compare_version_id = None
        logger.debug(f"Deleted version {version.version_number}")
        self.versions_changed()

    async def check_auto_version(
        self,
        current_items: Sequence[WorkingItem],
        previous_items: Sequence[WorkingItem],
    ) -> Optional[Version]:
        """
        Create an automatic version if the changes warrant one.

        Args:
            current_items: State after the save.
            previous_items: Last committed state before the save.

        Returns:
            The created version, or None.
        """
        if not self.config.enabled:
            return None
        version_diff = diff(previous_items, current_items)
        if not should_version(version_diff, self.config):
            logger.debug(f"No auto-version for {diff_summary(version_diff)}")
            return None
        return await self.create_version(auto_version_description(version_diff), is_automatic=True)
