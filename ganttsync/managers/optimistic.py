"""
Optimistic updates for ganttsync.

Handles:
- Applying a change to the working collection before the remote store confirms it
- Replacing the item with the server's version on success
- Restoring the last server-confirmed state (pre-image) on failure
- Batch updates applied and rolled back as one transition
"""
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Union,
)

from loguru import logger

from ganttsync.exceptions import NotFoundError
from ganttsync.managers.collection import WorkingCollection
from ganttsync.models.base import WorkingItem
from ganttsync.scope import CancelScope
from ganttsync.signals import signal


@dataclass
class OptimisticUpdate:
    """One entry of a batch update."""

    id: str
    optimistic_data: Dict[str, Any]
    server_data: Optional[Dict[str, Any]] = None

    @property
    def data(self) -> Dict[str, Any]:
        """What is sent to the remote store."""
        return self.server_data if self.server_data is not None else self.optimistic_data

    @classmethod
    def coerce(cls, value: Union["OptimisticUpdate", Mapping[str, Any]]) -> "OptimisticUpdate":
        if isinstance(value, cls):
            return value
        return cls(
            id=value["id"],
            optimistic_data=dict(value["optimistic_data"]),
            server_data=dict(value["server_data"]) if value.get("server_data") is not None else None,
        )


class _OptimisticEngine:
    """
    Pre-image and pending bookkeeping shared by the single and batch engines.

    At most one pre-image exists per id. It is captured before the first of
    any overlapping optimistic writes and only moves forward when the server
    confirms a state, so rollback always returns to the last confirmed state.
    """

    def __init__(
        self,
        collection: WorkingCollection,
        auto_rollback: bool = True,
        scope: Optional[CancelScope] = None,
    ) -> None:
        self.collection = collection
        self.auto_rollback = auto_rollback
        self._scope = scope or CancelScope("optimistic")
        self._pre_images: Dict[str, WorkingItem] = {}
        self._in_flight: Dict[str, int] = {}
        self._pending: Set[str] = set()
        self.error: Optional[Exception] = None

    @signal
    def state_changed(self) -> None:
        """Emitted when pending ids or the error change."""

    @property
    def pending_ids(self) -> Set[str]:
        return set(self._pending)

    @property
    def is_updating(self) -> bool:
        return bool(self._pending)

    def is_pending(self, item_id: str) -> bool:
        """Whether an update for ``item_id`` awaits confirmation."""
        return item_id in self._pending

    def has_pre_image(self, item_id: str) -> bool:
        return item_id in self._pre_images

    def clear_error(self) -> None:
        self.error = None
        self.state_changed()

    def _begin(self, originals: Mapping[str, WorkingItem], updated: Mapping[str, WorkingItem]) -> None:
        """Capture missing pre-images and apply optimistic items in one write."""
        for item_id, original in originals.items():
            if item_id not in self._pre_images:
                self._pre_images[item_id] = original.clone()
        self.collection.replace_many(updated)
        for item_id in updated:
            self._in_flight[item_id] = self._in_flight.get(item_id, 0) + 1
            self._pending.add(item_id)
        self.state_changed()

    def _end(self, item_id: str) -> bool:
        """Finish one in-flight update; returns True if none remain for the id."""
        remaining = self._in_flight.get(item_id, 0) - 1
        if remaining > 0:
            self._in_flight[item_id] = remaining
            return False
        self._in_flight.pop(item_id, None)
        self._pending.discard(item_id)
        return True

    def _confirm(self, confirmed: Mapping[str, WorkingItem]) -> None:
        """Adopt server-confirmed items.

        When a newer overlapping update is still in flight, the visible item
        keeps its optimistic data and the confirmed item becomes the pre-image.
        """
        visible: Dict[str, WorkingItem] = {}
        for item_id, item in confirmed.items():
            if self._end(item_id):
                self._pre_images.pop(item_id, None)
                visible[item_id] = item
            else:
                self._pre_images[item_id] = item.clone()
        self.collection.replace_many(visible)

    def _restore(self, item_ids: Sequence[str]) -> List[WorkingItem]:
        """Put stored pre-images back into the collection.

        Pre-images are kept while another update for the same id is in flight.
        Without auto-rollback they stay stored so ``rollback`` can use them.
        """
        restored: Dict[str, WorkingItem] = {}
        for item_id in item_ids:
            previous = self._pre_images.get(item_id)
            if previous is None:
                continue
            restored[item_id] = previous.clone()
            if not self._in_flight.get(item_id):
                del self._pre_images[item_id]
        self.collection.replace_many(restored)
        return list(restored.values())

    def _manual_rollback(self, item_ids: Sequence[str]) -> List[WorkingItem]:
        restored: Dict[str, WorkingItem] = {}
        for item_id in item_ids:
            previous = self._pre_images.pop(item_id, None)
            if previous is None:
                continue
            restored[item_id] = previous
            self._in_flight.pop(item_id, None)
            self._pending.discard(item_id)
        self.collection.replace_many(restored)
        return list(restored.values())


class OptimisticUpdater(_OptimisticEngine):
    """
    Single-item optimistic updates against a remote update function.

    ``update`` applies the change synchronously before awaiting the remote
    call, so the UI sees it immediately.
    """

    def __init__(
        self,
        collection: WorkingCollection,
        update_fn: Callable[[str, Dict[str, Any]], Awaitable[WorkingItem]],
        on_success: Optional[Callable[[WorkingItem], None]] = None,
        on_error: Optional[Callable[[Exception, str, Dict[str, Any]], None]] = None,
        on_rollback: Optional[Callable[[str, WorkingItem], None]] = None,
        auto_rollback: bool = True,
        scope: Optional[CancelScope] = None,
    ) -> None:
        """
        Initialize OptimisticUpdater.

        Args:
            collection: Working collection to mutate.
            update_fn: Coroutine function sending ``(id, data)`` to the remote
                store and returning the authoritative item.
            on_success: Called with the server item after confirmation.
            on_error: Called with ``(error, id, data)`` after a failure.
            on_rollback: Called with ``(id, previous)`` after a rollback.
            auto_rollback: Restore the pre-image when the remote call fails.
            scope: Cancellation scope; results arriving after cancellation
                are not applied.
        """
        super().__init__(collection, auto_rollback=auto_rollback, scope=scope)
        self._update_fn = update_fn
        self.on_success = on_success
        self.on_error = on_error
        self.on_rollback = on_rollback

    @signal
    def rolled_back(self, item_id: str) -> None:
        """Emitted after an item was restored to its pre-image."""

    async def update(
        self,
        item_id: str,
        optimistic_data: Mapping[str, Any],
        server_data: Optional[Mapping[str, Any]] = None,
    ) -> WorkingItem:
        """Apply ``optimistic_data`` now and confirm it with the remote store.

        Args:
            item_id: Id of the item to update.
            optimistic_data: Changes shown immediately.
            server_data: Changes sent to the store, if different.

        Returns:
            The authoritative item returned by the store.

        Raises:
            NotFoundError: If the id is not in the collection.
            ValidationError: If the optimistic data is invalid for the item.
            Exception: Whatever the remote call raised, after rollback.
        """
        current = self.collection.get(item_id)
        if current is None:
            raise NotFoundError(f"Item with id {item_id} not found")

        updated = current.apply(optimistic_data)
        self._begin({item_id: current}, {item_id: updated})

        data = dict(server_data if server_data is not None else optimistic_data)
        try:
            confirmed = await self._update_fn(item_id, data)
        except Exception as e:
            if self._scope.cancelled:
                raise
            logger.error(f"Optimistic update of {item_id} failed: {e}")
            self._end(item_id)
            if self.auto_rollback:
                restored = self._restore([item_id])
                if restored:
                    logger.info(f"Rolled back {item_id} to last confirmed state")
                    self.rolled_back(item_id)
                    if self.on_rollback:
                        self.on_rollback(item_id, restored[0])
            self.error = e
            self.state_changed()
            if self.on_error:
                self.on_error(e, item_id, data)
            raise

        if self._scope.cancelled:
            return confirmed
        self._confirm({item_id: confirmed})
        self.error = None
        self.state_changed()
        if self.on_success:
            self.on_success(confirmed)
        return confirmed

    def rollback(self, item_id: str) -> None:
        """Restore ``item_id`` to its pre-image; no-op if none is stored."""
        restored = self._manual_rollback([item_id])
        if not restored:
            return
        self.state_changed()
        self.rolled_back(item_id)
        if self.on_rollback:
            self.on_rollback(item_id, restored[0])

    def rollback_all(self) -> None:
        """Restore every stored pre-image and clear pending state."""
        item_ids = list(self._pre_images)
        restored = self._manual_rollback(item_ids)
        self._pending.clear()
        self._in_flight.clear()
        self.error = None
        self.state_changed()
        for previous in restored:
            self.rolled_back(previous.id)
            if self.on_rollback:
                self.on_rollback(previous.id, previous)


class BatchOptimisticUpdater(_OptimisticEngine):
    """
    Optimistic updates of several items sent as one remote call.

    All optimistic changes land in one collection write; on failure every
    pre-image captured for the batch is restored together.
    """

    def __init__(
        self,
        collection: WorkingCollection,
        update_fn: Callable[[List[Dict[str, Any]]], Awaitable[List[WorkingItem]]],
        on_success: Optional[Callable[[List[WorkingItem]], None]] = None,
        on_error: Optional[Callable[[Exception, List[Dict[str, Any]]], None]] = None,
        on_rollback: Optional[Callable[[List[str], List[WorkingItem]], None]] = None,
        auto_rollback: bool = True,
        scope: Optional[CancelScope] = None,
    ) -> None:
        super().__init__(collection, auto_rollback=auto_rollback, scope=scope)
        self._update_fn = update_fn
        self.on_success = on_success
        self.on_error = on_error
        self.on_rollback = on_rollback

    async def batch_update(
        self,
        updates: Sequence[Union[OptimisticUpdate, Mapping[str, Any]]],
    ) -> List[WorkingItem]:
        """Apply every optimistic change now and confirm them in one call.

        Args:
            updates: Entries of ``{id, optimistic_data, server_data?}``.

        Returns:
            The authoritative items returned by the store.

        Raises:
            NotFoundError: If any id is unknown (nothing is applied).
            ValidationError: If any optimistic data is invalid (nothing is applied).
            Exception: Whatever the remote call raised, after rollback.
        """
        entries = [OptimisticUpdate.coerce(u) for u in updates]
        if not entries:
            return []

        originals: Dict[str, WorkingItem] = {}
        updated: Dict[str, WorkingItem] = {}
        for entry in entries:
            current = updated.get(entry.id) or self.collection.get(entry.id)
            if current is None:
                raise NotFoundError(f"Item with id {entry.id} not found")
            originals.setdefault(entry.id, current)
            updated[entry.id] = current.apply(entry.optimistic_data)

        self._begin(originals, updated)
        item_ids = list(updated)
        server_updates = [{"id": entry.id, "data": dict(entry.data)} for entry in entries]

        try:
            confirmed = await self._update_fn(server_updates)
        except Exception as e:
            if self._scope.cancelled:
                raise
            logger.error(f"Batch optimistic update of {len(item_ids)} item(s) failed: {e}")
            for item_id in item_ids:
                self._end(item_id)
            if self.auto_rollback:
                restored = self._restore(item_ids)
                if restored:
                    logger.info(f"Rolled back {len(restored)} item(s) to last confirmed state")
                    if self.on_rollback:
                        self.on_rollback(item_ids, restored)
            self.error = e
            self.state_changed()
            if self.on_error:
                self.on_error(e, server_updates)
            raise

        if self._scope.cancelled:
            return list(confirmed)
        confirmed_by_id = {item.id: item for item in confirmed}
        self._confirm({i: confirmed_by_id[i] for i in item_ids if i in confirmed_by_id})
        for item_id in item_ids:
            if item_id not in confirmed_by_id:
                # Not echoed back by the store: keep the optimistic item.
                if self._end(item_id):
                    self._pre_images.pop(item_id, None)
        self.error = None
        self.state_changed()
        if self.on_success:
            self.on_success(list(confirmed))
        return list(confirmed)
