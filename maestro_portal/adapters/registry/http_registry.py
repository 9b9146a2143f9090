"""
HTTP adapter for the workflow registry (Maestro process instance service).

Translates RegistryAdapter calls into requests against
  <base_url>/<org>/<tenant>/pims_/api/v1/...
authenticated with a bearer token. Instance-scoped calls carry the folder in
the X-UIPATH-FolderKey header. List endpoints may answer with a bare array
or with {"items": [...]}.

404 becomes NotFoundError; network failures and other error statuses become
TransportError.
"""

from typing import Any, Optional

import httpx

from maestro_portal.adapters.registry.base import RegistryAdapter
from maestro_portal.orchestrator.errors import CommandError, NotFoundError, TransportError
from maestro_portal.orchestrator.records import Instance, OperationResult, Process, VariableSet

API_PREFIX = "pims_/api/v1"
FOLDER_HEADER = "X-UIPATH-FolderKey"


def _items(data) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get("items") or []
    return []


class HttpRegistry(RegistryAdapter):
    def __init__(
        self,
        status_store,
        base_url: str,
        org_name: str,
        tenant_name: str,
        access_token: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.status = status_store
        self.base_url = f"{base_url.rstrip('/')}/{org_name}/{tenant_name}/{API_PREFIX}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        folder_key: Optional[str] = None,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> httpx.Response:
        headers = {FOLDER_HEADER: folder_key} if folder_key else None
        try:
            resp = await self.client.request(method, path, headers=headers, params=params, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path}: {type(e).__name__}: {e}") from e
        if resp.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found")
        if resp.status_code >= 400:
            raise TransportError(f"{method} {path}: HTTP {resp.status_code}")
        return resp

    async def _get_json(self, path: str, folder_key: Optional[str] = None, params: Optional[dict] = None):
        resp = await self._request("GET", path, folder_key=folder_key, params=params)
        return resp.json()

    async def list_processes(self) -> list[Process]:
        data = await self._get_json("/processes/summary")
        return [Process.model_validate(item) for item in _items(data)]

    async def list_instances(self) -> list[Instance]:
        data = await self._get_json("/instances")
        return [Instance.model_validate(item) for item in _items(data)]

    async def get_instance(self, instance_id: str, folder_key: str) -> Instance:
        data = await self._get_json(f"/instances/{instance_id}", folder_key=folder_key)
        return Instance.model_validate(data)

    async def get_bpmn(self, instance_id: str, folder_key: str) -> str:
        resp = await self._request("GET", f"/instances/{instance_id}/bpmn", folder_key=folder_key)
        return resp.text

    async def get_execution_history(self, instance_id: str) -> list[dict[str, Any]]:
        data = await self._get_json(f"/spans/{instance_id}")
        return _items(data)

    async def get_variables(self, instance_id: str, folder_key: str, parent_element_id: Optional[str] = None) -> VariableSet:
        params = {"parentElementId": parent_element_id} if parent_element_id else None
        data = await self._get_json(f"/instances/{instance_id}/variables", folder_key=folder_key, params=params)
        return VariableSet.model_validate(data)

    async def _command(self, action: str, instance_id: str, folder_key: str, comment: Optional[str]) -> OperationResult:
        path = f"/instances/{instance_id}/{action}"
        self.status.log(f"http_registry: POST {path}")
        resp = await self._request("POST", path, folder_key=folder_key, payload={"comment": comment} if comment else {})
        data = resp.json() if resp.content else {}
        if isinstance(data, dict) and not data.get("ok", True):
            raise CommandError(f"registry rejected {action} on {instance_id}: {data.get('error', 'unknown')}")
        self.status.log(f"http_registry: {path} done")
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return OperationResult.model_validate({"instanceId": instance_id, **(data if isinstance(data, dict) else {})})

    async def pause_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("pause", instance_id, folder_key, comment)

    async def resume_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("resume", instance_id, folder_key, comment)

    async def cancel_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("cancel", instance_id, folder_key, comment)

    async def close(self):
        await self.client.aclose()
