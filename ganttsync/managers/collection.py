"""
Working collection for ganttsync.

The ordered, in-memory list of working items that the editor renders. It is
written only by the optimistic update engine, history restore, and project
load/discard in ProjectSession.
"""
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ganttsync.exceptions import DuplicateError, NotFoundError
from ganttsync.models.base import WorkingItem
from ganttsync.signals import signal


class WorkingCollection:
    """Ordered working items with id lookup."""

    def __init__(self, items: Optional[Iterable[WorkingItem]] = None) -> None:
        self._items: List[WorkingItem] = []
        self._positions: Dict[str, int] = {}
        if items is not None:
            self._load(items)

    @signal
    def items_changed(self) -> None:
        """Emitted after every write to the collection."""

    def _load(self, items: Iterable[WorkingItem]) -> None:
        loaded = list(items)
        positions: Dict[str, int] = {}
        for index, item in enumerate(loaded):
            if item.id in positions:
                raise DuplicateError(f"Duplicate item id: {item.id}")
            positions[item.id] = index
        self._items = loaded
        self._positions = positions

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def items(self) -> Tuple[WorkingItem, ...]:
        return tuple(self._items)

    @property
    def ids(self) -> List[str]:
        return [item.id for item in self._items]

    def get(self, item_id: str) -> Optional[WorkingItem]:
        position = self._positions.get(item_id)
        if position is None:
            return None
        return self._items[position]

    def require(self, item_id: str) -> WorkingItem:
        """Get an item by id.

        Raises:
            NotFoundError: If no item has this id.
        """
        item = self.get(item_id)
        if item is None:
            raise NotFoundError(f"Item with id {item_id} not found")
        return item

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._positions

    def __iter__(self) -> Iterator[WorkingItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    # =========================================================================
    # Writes
    # =========================================================================

    def set_items(self, items: Iterable[WorkingItem]) -> None:
        """Replace the whole collection."""
        self._load(items)
        self.items_changed()

    def replace(self, item_id: str, item: WorkingItem) -> None:
        """Replace the item with ``item_id`` in place.

        Raises:
            NotFoundError: If no item has this id.
        """
        self.require(item_id)
        self.replace_many({item_id: item})

    def replace_many(self, replacements: Mapping[str, WorkingItem]) -> None:
        """Replace several items in one transition; unknown ids are ignored."""
        changed = False
        for item_id, item in replacements.items():
            position = self._positions.get(item_id)
            if position is None:
                continue
            self._items[position] = item
            changed = True
        if changed:
            self.items_changed()

    def append(self, item: WorkingItem) -> None:
        """Add an item at the end.

        Raises:
            DuplicateError: If an item with the same id exists.
        """
        if item.id in self._positions:
            raise DuplicateError(f"Duplicate item id: {item.id}")
        self._positions[item.id] = len(self._items)
        self._items.append(item)
        self.items_changed()

    def remove(self, item_id: str) -> WorkingItem:
        """Remove and return the item with ``item_id``.

        Raises:
            NotFoundError: If no item has this id.
        """
        item = self.require(item_id)
        self._load(i for i in self._items if i.id != item_id)
        self.items_changed()
        return item
