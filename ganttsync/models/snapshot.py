"""
Snapshot models for ganttsync.

Snapshots are captured copies of a working collection; PendingChanges
accumulates the partial edits that have not been saved yet.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple

from ganttsync.models.base import WorkingItem
from ganttsync.utils import clone_items, utcnow


@dataclass(frozen=True)
class Snapshot:
    """An ordered, independent copy of working items at a point in time."""

    items: Tuple[WorkingItem, ...]
    timestamp: datetime = field(default_factory=utcnow)
    description: str = ""

    @classmethod
    def capture(cls, items: Iterable[WorkingItem], description: str = "") -> "Snapshot":
        """Clone ``items`` into a new snapshot.

        Later mutation of the source items never reaches the snapshot.
        """
        return cls(items=tuple(clone_items(items)), description=description)

    def items_copy(self) -> List[WorkingItem]:
        """Return a fresh clone of the snapshot contents."""
        return clone_items(self.items)

    @property
    def ids(self) -> List[str]:
        """Item ids in snapshot order."""
        return [item.id for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class HistoryEntry:
    """A snapshot and its position in the history stack."""

    snapshot: Snapshot
    index: int

    @property
    def description(self) -> str:
        return self.snapshot.description

    @property
    def timestamp(self) -> datetime:
        return self.snapshot.timestamp


class PendingChanges:
    """
    Accumulated unsaved partial changes, one entry per item id.

    Later changes for an id are merged over earlier ones; insertion order of
    ids is preserved so saves are sent in edit order.
    """

    def __init__(self) -> None:
        self._changes: Dict[str, Dict[str, Any]] = {}

    def record(self, item_id: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into the entry for ``item_id``."""
        entry = self._changes.setdefault(item_id, {})
        entry.update(changes)

    def discard(self, item_id: str) -> None:
        """Drop the entry for ``item_id`` if present."""
        self._changes.pop(item_id, None)

    def clear(self) -> None:
        self._changes.clear()

    def get(self, item_id: str) -> Dict[str, Any]:
        """Return a copy of the accumulated changes for ``item_id``."""
        return dict(self._changes.get(item_id, {}))

    def as_updates(self) -> List[Dict[str, Any]]:
        """Return ``[{"id": ..., "changes": {...}}]`` in edit order."""
        return [
            {"id": item_id, "changes": dict(changes)}
            for item_id, changes in self._changes.items()
        ]

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._changes

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._changes))

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)
