"""
Tests for the optimistic update engines.
"""
import asyncio

import pytest

from ganttsync.exceptions import NotFoundError, ValidationError
from ganttsync.managers.collection import WorkingCollection
from ganttsync.managers.optimistic import (
    BatchOptimisticUpdater,
    OptimisticUpdate,
    OptimisticUpdater,
)
from ganttsync.scope import CancelScope


class ControlledRemote:
    """Remote update function whose calls are resolved by the test."""

    def __init__(self):
        self.calls = []

    async def __call__(self, *args):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((args, future))
        return await future

    def resolve(self, index, value):
        self.calls[index][1].set_result(value)

    def fail(self, index, error):
        self.calls[index][1].set_exception(error)


@pytest.fixture
def progress_collection(mock_data):
    """Collection with task "1" at progress 50."""
    return WorkingCollection([mock_data.create_task(id="1", progress=50), mock_data.create_task(id="2")])


async def failing_update(item_id, data):
    raise ConnectionError("network down")


class TestOptimisticUpdate:
    """Test single-item updates."""

    async def test_applies_before_remote_call(self, progress_collection):
        """Test the optimistic data is visible while the remote call runs."""
        seen = {}
        updater = None

        async def update(item_id, data):
            seen["progress"] = progress_collection.get(item_id).progress
            seen["pending"] = updater.is_pending(item_id)
            return progress_collection.get(item_id)

        updater = OptimisticUpdater(progress_collection, update)
        await updater.update("1", {"progress": 75})

        assert seen == {"progress": 75, "pending": True}
        assert not updater.is_pending("1")

    async def test_success_adopts_server_item(self, progress_collection):
        """Test the server's response replaces the optimistic item."""
        async def update(item_id, data):
            return progress_collection.get(item_id).apply({"progress": 80})

        updater = OptimisticUpdater(progress_collection, update)
        confirmed = await updater.update("1", {"progress": 75})

        assert confirmed.progress == 80
        assert progress_collection.get("1").progress == 80
        assert not updater.has_pre_image("1")
        assert updater.error is None

    async def test_failure_rolls_back(self, progress_collection):
        """Test a failed update restores the item and records the error."""
        rollbacks = []
        updater = OptimisticUpdater(
            progress_collection,
            failing_update,
            on_rollback=lambda item_id, previous: rollbacks.append((item_id, previous.progress)),
        )

        with pytest.raises(ConnectionError):
            await updater.update("1", {"progress": 75})

        assert progress_collection.get("1").progress == 50
        assert updater.error is not None
        assert not updater.is_pending("1")
        assert rollbacks == [("1", 50)]

    async def test_failure_calls_on_error(self, progress_collection):
        errors = []
        updater = OptimisticUpdater(
            progress_collection,
            failing_update,
            on_error=lambda error, item_id, data: errors.append((item_id, data)),
        )

        with pytest.raises(ConnectionError):
            await updater.update("1", {"progress": 75})

        assert errors == [("1", {"progress": 75})]

    async def test_server_data_is_sent_when_given(self, progress_collection):
        """Test server_data replaces optimistic_data in the remote call."""
        sent = []

        async def update(item_id, data):
            sent.append(data)
            return progress_collection.get(item_id)

        updater = OptimisticUpdater(progress_collection, update)
        await updater.update("1", {"progress": 75}, server_data={"progress": 75, "color": "#000000"})

        assert sent == [{"progress": 75, "color": "#000000"}]

    async def test_unknown_id_raises_not_found(self, progress_collection):
        """Test updating a missing id fails before any remote call."""
        remote = ControlledRemote()
        updater = OptimisticUpdater(progress_collection, remote)

        with pytest.raises(NotFoundError):
            await updater.update("missing", {"progress": 10})

        assert remote.calls == []

    async def test_invalid_data_leaves_no_trace(self, progress_collection):
        """Test invalid optimistic data raises without pending state."""
        updater = OptimisticUpdater(progress_collection, failing_update)

        with pytest.raises(ValidationError):
            await updater.update("1", {"progress": 150})

        assert not updater.is_pending("1")
        assert not updater.has_pre_image("1")
        assert progress_collection.get("1").progress == 50

    async def test_scope_cancelled_ignores_result(self, progress_collection):
        """Test a result arriving after teardown is not applied."""
        scope = CancelScope("test")
        remote = ControlledRemote()
        updater = OptimisticUpdater(progress_collection, remote, scope=scope)

        task = asyncio.create_task(updater.update("1", {"progress": 75}))
        await asyncio.sleep(0)
        scope.cancel()
        remote.resolve(0, progress_collection.get("1").apply({"progress": 99}))
        await task

        assert progress_collection.get("1").progress == 75


class TestOverlappingUpdates:
    """Test concurrent updates of the same item."""

    async def test_rollback_returns_to_last_confirmed_state(self, progress_collection):
        """Test two failed overlapping updates end at the original state."""
        remote = ControlledRemote()
        updater = OptimisticUpdater(progress_collection, remote)

        first = asyncio.create_task(updater.update("1", {"progress": 60}))
        await asyncio.sleep(0)
        second = asyncio.create_task(updater.update("1", {"progress": 70}))
        await asyncio.sleep(0)

        assert progress_collection.get("1").progress == 70

        remote.fail(0, ConnectionError("first"))
        with pytest.raises(ConnectionError):
            await first
        assert updater.is_pending("1")

        remote.fail(1, ConnectionError("second"))
        with pytest.raises(ConnectionError):
            await second

        assert progress_collection.get("1").progress == 50
        assert not updater.is_pending("1")
        assert not updater.has_pre_image("1")

    async def test_confirmed_state_becomes_pre_image(self, progress_collection):
        """Test a confirmation during a newer update moves the rollback target."""
        remote = ControlledRemote()
        updater = OptimisticUpdater(progress_collection, remote)
        original = progress_collection.get("1")

        first = asyncio.create_task(updater.update("1", {"progress": 60}))
        await asyncio.sleep(0)
        second = asyncio.create_task(updater.update("1", {"progress": 70}))
        await asyncio.sleep(0)

        remote.resolve(0, original.apply({"progress": 60}))
        await first

        assert progress_collection.get("1").progress == 70
        assert updater.is_pending("1")

        remote.fail(1, ConnectionError("second"))
        with pytest.raises(ConnectionError):
            await second

        assert progress_collection.get("1").progress == 60


class TestManualRollback:
    """Test rollback and rollback_all."""

    async def test_rollback_without_auto_rollback(self, progress_collection):
        """Test a failure keeps the optimistic item until rollback is called."""
        rolled_back = []
        updater = OptimisticUpdater(progress_collection, failing_update, auto_rollback=False)
        updater.rolled_back.connect(rolled_back.append)

        with pytest.raises(ConnectionError):
            await updater.update("1", {"progress": 75})
        assert progress_collection.get("1").progress == 75

        updater.rollback("1")

        assert progress_collection.get("1").progress == 50
        assert rolled_back == ["1"]

    def test_rollback_unknown_id_is_noop(self, progress_collection):
        """Test rolling back an id without a pre-image does nothing."""
        updater = OptimisticUpdater(progress_collection, failing_update)
        updater.rollback("1")
        assert progress_collection.get("1").progress == 50

    async def test_rollback_all_restores_everything(self, progress_collection):
        """Test rollback_all restores every pending item."""
        remote = ControlledRemote()
        updater = OptimisticUpdater(progress_collection, remote)

        tasks = [
            asyncio.create_task(updater.update("1", {"progress": 90})),
            asyncio.create_task(updater.update("2", {"name": "Renamed"})),
        ]
        await asyncio.sleep(0)
        assert updater.pending_ids == {"1", "2"}

        updater.rollback_all()

        assert progress_collection.get("1").progress == 50
        assert progress_collection.get("2").name == "Task 2"
        assert not updater.is_updating

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class TestBatchOptimisticUpdate:
    """Test batch updates."""

    async def test_batch_applies_in_one_transition(self, progress_collection):
        """Test all optimistic changes land in one collection write."""
        writes = []
        progress_collection.items_changed.connect(lambda: writes.append(1))
        remote = ControlledRemote()
        updater = BatchOptimisticUpdater(progress_collection, remote)

        task = asyncio.create_task(updater.batch_update([
            {"id": "1", "optimistic_data": {"progress": 90}},
            OptimisticUpdate(id="2", optimistic_data={"name": "Renamed"}),
        ]))
        await asyncio.sleep(0)

        assert len(writes) == 1
        assert progress_collection.get("1").progress == 90
        assert progress_collection.get("2").name == "Renamed"
        assert updater.pending_ids == {"1", "2"}

        sent = remote.calls[0][0][0]
        assert sent == [
            {"id": "1", "data": {"progress": 90}},
            {"id": "2", "data": {"name": "Renamed"}},
        ]
        remote.resolve(0, [progress_collection.get("1"), progress_collection.get("2")])
        await task
        assert not updater.is_updating

    async def test_batch_failure_restores_all(self, progress_collection):
        """Test a failed batch restores every item it touched."""
        async def failing_batch(updates):
            raise ConnectionError("network down")

        updater = BatchOptimisticUpdater(progress_collection, failing_batch)

        with pytest.raises(ConnectionError):
            await updater.batch_update([
                {"id": "1", "optimistic_data": {"progress": 90}},
                {"id": "2", "optimistic_data": {"name": "Renamed"}},
            ])

        assert progress_collection.get("1").progress == 50
        assert progress_collection.get("2").name == "Task 2"
        assert updater.error is not None
        assert not updater.is_updating

    async def test_batch_unknown_id_applies_nothing(self, progress_collection):
        """Test one unknown id rejects the whole batch before applying."""
        remote = ControlledRemote()
        updater = BatchOptimisticUpdater(progress_collection, remote)

        with pytest.raises(NotFoundError):
            await updater.batch_update([
                {"id": "1", "optimistic_data": {"progress": 90}},
                {"id": "missing", "optimistic_data": {"progress": 10}},
            ])

        assert progress_collection.get("1").progress == 50
        assert remote.calls == []

    async def test_batch_success_adopts_server_items(self, progress_collection):
        originals = {item.id: item for item in progress_collection}

        async def server(updates):
            return [originals[u["id"]].apply({"progress": 33}) for u in updates]

        updater = BatchOptimisticUpdater(progress_collection, server)
        result = await updater.batch_update([{"id": "1", "optimistic_data": {"progress": 90}}])

        assert [item.progress for item in result] == [33]
        assert progress_collection.get("1").progress == 33

    async def test_empty_batch_is_noop(self, progress_collection):
        remote = ControlledRemote()
        updater = BatchOptimisticUpdater(progress_collection, remote)
        assert await updater.batch_update([]) == []
        assert remote.calls == []
