"""
HistoryManager for undo/redo in ganttsync.

Handles:
- Recording snapshots of the working collection after each edit
- Linear undo/redo over a bounded stack
- Discarding the redo future when a new edit follows an undo
"""
from typing import Iterable, List, Optional

from loguru import logger

from ganttsync.constants import DEFAULT_MAX_HISTORY_SIZE
from ganttsync.exceptions import ConfigurationError
from ganttsync.models.base import WorkingItem
from ganttsync.models.snapshot import HistoryEntry, Snapshot
from ganttsync.signals import signal


class HistoryManager:
    """
    Bounded stack of snapshots with a cursor.

    Invariant: ``-1 <= index < len(entries) <= max_history_size``; ``-1``
    means no history has been recorded yet.
    """

    def __init__(self, max_history_size: int = DEFAULT_MAX_HISTORY_SIZE) -> None:
        """
        Initialize HistoryManager.

        Args:
            max_history_size: Maximum number of snapshots kept.

        Raises:
            ConfigurationError: If max_history_size is less than 1.
        """
        if max_history_size < 1:
            raise ConfigurationError("max_history_size must be at least 1")
        self.max_history_size = max_history_size
        self._snapshots: List[Snapshot] = []
        self._index = -1

    @signal
    def history_changed(self, can_undo: bool, can_redo: bool) -> None:
        """Emitted whenever the stack or cursor changes."""

    # =========================================================================
    # State
    # =========================================================================

    @property
    def index(self) -> int:
        return self._index

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._snapshots) - 1

    @property
    def entries(self) -> List[HistoryEntry]:
        """History entries, oldest first."""
        return [HistoryEntry(snapshot=s, index=i) for i, s in enumerate(self._snapshots)]

    @property
    def current(self) -> Optional[Snapshot]:
        """Snapshot at the cursor, or None when empty."""
        if self._index < 0:
            return None
        return self._snapshots[self._index]

    def __len__(self) -> int:
        return len(self._snapshots)

    def _notify(self) -> None:
        self.history_changed(self.can_undo, self.can_redo)

    # =========================================================================
    # Operations
    # =========================================================================

    def add_to_history(self, items: Iterable[WorkingItem], description: str) -> Snapshot:
        """Record a snapshot of ``items`` after the cursor.

        Entries after the cursor are dropped first, so an edit made after an
        undo discards the redo future. The oldest entry is evicted when the
        stack is over capacity.

        Args:
            items: Working items to capture (cloned).
            description: Human-readable description of the edit.

        Returns:
            The recorded snapshot.
        """
        snapshot = Snapshot.capture(items, description)
        del self._snapshots[self._index + 1:]
        self._snapshots.append(snapshot)
        self._index += 1

        if len(self._snapshots) > self.max_history_size:
            evicted = self._snapshots.pop(0)
            self._index = min(self._index, self.max_history_size - 1)
            logger.debug(f"History full, evicted '{evicted.description}'")

        self._notify()
        return snapshot

    def undo(self) -> Optional[Snapshot]:
        """Move the cursor back one entry.

        Returns:
            The snapshot now at the cursor, or None if nothing to undo.
        """
        if not self.can_undo:
            return None
        self._index -= 1
        self._notify()
        return self._snapshots[self._index]

    def redo(self) -> Optional[Snapshot]:
        """Move the cursor forward one entry.

        Returns:
            The snapshot now at the cursor, or None if nothing to redo.
        """
        if not self.can_redo:
            return None
        self._index += 1
        self._notify()
        return self._snapshots[self._index]

    def reset(self) -> None:
        """Clear the stack (e.g. when a different project is loaded)."""
        self._snapshots.clear()
        self._index = -1
        self._notify()

    def set_base(self, items: Iterable[WorkingItem], description: str) -> Snapshot:
        """Reset the stack to a single base snapshot."""
        self._snapshots = [Snapshot.capture(items, description)]
        self._index = 0
        self._notify()
        return self._snapshots[0]
