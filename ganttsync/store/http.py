"""
HTTP remote store for ganttsync.

Talks to the project REST API with httpx. Responses use the envelope
``{"success": bool, "data": ..., "error": {"message": ...}}``.
"""
from typing import Any, List, Mapping, Optional, Sequence

import httpx
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from ganttsync.constants import DEFAULT_API_BASE_URL, DEFAULT_HTTP_TIMEOUT
from ganttsync.exceptions import NotFoundError, RemoteStoreError, TransientError, ValidationError
from ganttsync.models.base import Task
from ganttsync.models.version import Version
from ganttsync.store.base import RemoteStore, update_changes


def _error_message(response: httpx.Response) -> str:
    """Best-effort error message from an error response body."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


class HttpRemoteStore(RemoteStore):
    """
    Remote store backed by the project REST API.

    Network failures and 5xx responses raise TransientError, 404 raises
    NotFoundError and other 4xx responses raise ValidationError.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        token: Optional[str] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize HttpRemoteStore.

        Args:
            base_url: API root, e.g. ``http://localhost:3000/api``.
            token: Bearer token sent with every request.
            timeout: Request timeout in seconds.
            client: Preconfigured client (its base URL and headers are used as is).
        """
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout
        )

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """Send a request and unwrap the response envelope.

        Returns:
            The envelope's ``data`` (None for empty bodies).

        Raises:
            TransientError: Network failure or 5xx response.
            NotFoundError: 404 response.
            ValidationError: Other 4xx response or ``success: false``.
        """
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransientError(f"Network error on {method} {path}: {e}")

        status = response.status_code
        if status >= 500:
            raise TransientError(_error_message(response), status_code=status)
        if status == 404:
            raise NotFoundError(_error_message(response))
        if status >= 400:
            raise ValidationError(_error_message(response))

        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            raise RemoteStoreError(f"Invalid JSON from {method} {path}", status_code=status)
        if isinstance(body, dict) and "success" in body:
            if not body["success"]:
                raise ValidationError(_error_message(response))
            return body.get("data")
        return body

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise RemoteStoreError(f"Unexpected {model.__name__} payload: {e}")

    def _tasks(self, data: Any) -> List[Task]:
        if isinstance(data, dict):
            data = data.get("tasks", [])
        return [self._parse(Task, item) for item in data or []]

    # =========================================================================
    # Tasks
    # =========================================================================

    async def load_tasks(self, project_id: str) -> List[Task]:
        return self._tasks(await self._request("GET", f"/projects/{project_id}/tasks"))

    async def save(self, project_id: str, payload: Mapping[str, Any]) -> Task:
        return await self.apply_update(project_id, payload["id"], update_changes(payload))

    async def batch_save(self, project_id: str, payloads: Sequence[Mapping[str, Any]]) -> List[Task]:
        updates = [{"id": p["id"], "changes": Task.wire_changes(update_changes(p))} for p in payloads]
        data = await self._request("PATCH", f"/projects/{project_id}/tasks/batch", {"updates": updates})
        return self._tasks(data)

    async def apply_update(self, project_id: str, item_id: str, data: Mapping[str, Any]) -> Task:
        result = await self._request("PATCH", f"/projects/{project_id}/tasks/{item_id}", Task.wire_changes(data))
        return self._parse(Task, result)

    async def apply_batch_update(
        self, project_id: str, updates: Sequence[Mapping[str, Any]]
    ) -> List[Task]:
        return await self.batch_save(project_id, updates)

    # =========================================================================
    # Versions
    # =========================================================================

    async def list_versions(self, project_id: str) -> List[Version]:
        data = await self._request("GET", f"/projects/{project_id}/versions")
        if isinstance(data, dict):
            data = data.get("versions", [])
        return [self._parse(Version, item) for item in data or []]

    async def create_version(
        self,
        project_id: str,
        description: Optional[str] = None,
        is_automatic: bool = False,
    ) -> Version:
        body = {"projectId": project_id, "changeDescription": description, "isAutomatic": is_automatic}
        data = await self._request("POST", f"/projects/{project_id}/versions", body)
        if isinstance(data, dict) and "version" in data:
            data = data["version"]
        return self._parse(Version, data)

    async def restore_version(self, project_id: str, version_id: str) -> None:
        await self._request("POST", f"/projects/{project_id}/versions/{version_id}/restore")

    async def delete_version(self, project_id: str, version_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}/versions/{version_id}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

