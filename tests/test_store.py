"""
Tests for the remote store implementations.
"""
import json

import httpx
import pytest

from ganttsync.exceptions import NotFoundError, RemoteStoreError, TransientError, ValidationError
from ganttsync.store.http import HttpRemoteStore
from ganttsync.store.memory import InMemoryRemoteStore

TASK_PAYLOAD = {
    "id": "1",
    "name": "Design",
    "startDate": "2024-01-01T00:00:00Z",
    "endDate": "2024-01-05T00:00:00Z",
    "color": "#3b82f6",
    "position": 0,
    "projectId": "p1",
    "isMilestone": False,
    "progress": 20,
}

VERSION_PAYLOAD = {
    "id": "v1",
    "versionNumber": 1,
    "projectId": "p1",
    "createdAt": "2024-01-02T00:00:00Z",
    "createdBy": {"id": "u1", "name": "Sam", "email": "sam@example.com"},
    "snapshot": {
        "projectName": "Sample Project",
        "tasks": [TASK_PAYLOAD],
        "metadata": {"totalTasks": 1},
    },
    "changeDescription": "First",
    "isAutomatic": False,
}


def envelope(data):
    return {"success": True, "data": data}


class RecordingHandler:
    """MockTransport handler returning canned responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def body(self, index=0):
        return json.loads(self.requests[index].content)


def make_store(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test/api")
    return HttpRemoteStore(client=client)


# =============================================================================
# In-Memory Store
# =============================================================================


class TestInMemoryRemoteStore:
    """Test the dict-backed store."""

    async def test_load_returns_copies(self, store):
        tasks = await store.load_tasks("p1")
        tasks[0].name = "Changed"
        assert store.tasks("p1")[0].name == "Task 1"

    async def test_batch_save_applies_changes(self, store):
        saved = await store.batch_save("p1", [
            {"id": "1", "changes": {"name": "One"}},
            {"id": "2", "changes": {"progress": 30}},
        ])

        assert [t.name for t in saved] == ["One", "Task 2"]
        assert store.tasks("p1")[1].progress == 30
        assert store.call_count("batch_save") == 1

    async def test_apply_batch_update_uses_data_key(self, store):
        saved = await store.apply_batch_update("p1", [{"id": "3", "data": {"color": "#000000"}}])
        assert saved[0].color == "#000000"

    async def test_unknown_project_and_task(self, store):
        with pytest.raises(NotFoundError):
            await store.load_tasks("missing")
        with pytest.raises(NotFoundError):
            await store.apply_update("p1", "missing", {"name": "x"})

    async def test_fail_next(self, store):
        store.fail_next(2, error=TransientError("down"))

        for _ in range(2):
            with pytest.raises(TransientError):
                await store.load_tasks("p1")

        assert len(await store.load_tasks("p1")) == 3
        assert store.call_count("load_tasks") == 3

    async def test_version_restore_and_delete(self, store):
        version = await store.create_version("p1", "Before", is_automatic=False)
        await store.apply_update("p1", "1", {"name": "Edited"})

        await store.restore_version("p1", version.id)
        assert store.tasks("p1")[0].name == "Task 1"
        assert version.snapshot.project_name == "Sample Project"

        await store.delete_version("p1", version.id)
        assert await store.list_versions("p1") == []
        with pytest.raises(NotFoundError):
            await store.delete_version("p1", version.id)


# =============================================================================
# HTTP Store
# =============================================================================


class TestHttpRemoteStore:
    """Test endpoints, payloads and error mapping of the HTTP store."""

    async def test_load_tasks(self):
        handler = RecordingHandler(httpx.Response(200, json=envelope({"tasks": [TASK_PAYLOAD], "total": 1})))
        store = make_store(handler)

        tasks = await store.load_tasks("p1")

        assert handler.requests[0].method == "GET"
        assert handler.requests[0].url.path == "/api/projects/p1/tasks"
        assert tasks[0].name == "Design"
        assert tasks[0].progress == 20

    async def test_batch_save_sends_camel_case(self, mock_data):
        handler = RecordingHandler(httpx.Response(200, json=envelope([TASK_PAYLOAD])))
        store = make_store(handler)
        start = mock_data.create_task().start_date

        await store.batch_save("p1", [{"id": "1", "changes": {"start_date": start, "is_milestone": True}}])

        request = handler.requests[0]
        assert request.method == "PATCH"
        assert request.url.path == "/api/projects/p1/tasks/batch"
        assert handler.body() == {
            "updates": [
                {"id": "1", "changes": {"startDate": "2024-01-01T00:00:00+00:00", "isMilestone": True}},
            ],
        }

    async def test_apply_update(self):
        handler = RecordingHandler(httpx.Response(200, json=envelope(TASK_PAYLOAD)))
        store = make_store(handler)

        task = await store.apply_update("p1", "1", {"progress": 20})

        assert handler.requests[0].url.path == "/api/projects/p1/tasks/1"
        assert handler.body() == {"progress": 20}
        assert task.id == "1"

    async def test_versions(self):
        handler = RecordingHandler(
            httpx.Response(200, json=envelope({"versions": [VERSION_PAYLOAD], "total": 1})),
            httpx.Response(201, json=envelope(VERSION_PAYLOAD)),
            httpx.Response(200, json=envelope(None)),
            httpx.Response(204),
        )
        store = make_store(handler)

        versions = await store.list_versions("p1")
        created = await store.create_version("p1", "First", is_automatic=True)
        await store.restore_version("p1", "v1")
        await store.delete_version("p1", "v1")

        assert versions[0].snapshot.tasks[0].name == "Design"
        assert created.created_by.name == "Sam"
        assert handler.body(1) == {"projectId": "p1", "changeDescription": "First", "isAutomatic": True}
        assert [(r.method, r.url.path) for r in handler.requests[2:]] == [
            ("POST", "/api/projects/p1/versions/v1/restore"),
            ("DELETE", "/api/projects/p1/versions/v1"),
        ]

    async def test_network_error_is_transient(self):
        handler = RecordingHandler(httpx.ConnectError("refused"))
        store = make_store(handler)

        with pytest.raises(TransientError):
            await store.load_tasks("p1")

    async def test_server_error_is_transient(self):
        handler = RecordingHandler(httpx.Response(503, json={"success": False, "error": {"message": "busy"}}))
        store = make_store(handler)

        with pytest.raises(TransientError) as exc_info:
            await store.load_tasks("p1")

        assert exc_info.value.status_code == 503
        assert "busy" in str(exc_info.value)

    async def test_not_found(self):
        handler = RecordingHandler(httpx.Response(404, json={"message": "Project not found"}))
        store = make_store(handler)

        with pytest.raises(NotFoundError, match="Project not found"):
            await store.load_tasks("p1")

    async def test_client_error_is_validation(self):
        handler = RecordingHandler(httpx.Response(400, json={"success": False, "error": {"message": "Bad dates"}}))
        store = make_store(handler)

        with pytest.raises(ValidationError, match="Bad dates"):
            await store.apply_update("p1", "1", {"progress": 20})

    async def test_unsuccessful_envelope(self):
        handler = RecordingHandler(httpx.Response(200, json={"success": False, "error": {"message": "Nope"}}))
        store = make_store(handler)

        with pytest.raises(ValidationError, match="Nope"):
            await store.load_tasks("p1")

    async def test_invalid_json(self):
        handler = RecordingHandler(httpx.Response(200, content=b"<html>"))
        store = make_store(handler)

        with pytest.raises(RemoteStoreError):
            await store.load_tasks("p1")

    async def test_unexpected_payload(self):
        handler = RecordingHandler(httpx.Response(200, json=envelope({"tasks": [{"id": "1"}]})))
        store = make_store(handler)

        with pytest.raises(RemoteStoreError):
            await store.load_tasks("p1")

    async def test_aclose_keeps_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(RecordingHandler()), base_url="http://test")
        store = HttpRemoteStore(client=client)

        await store.aclose()

        assert not client.is_closed
        await client.aclose()
