"""
Fake workflow registry for testing HttpRegistry without a tenant.

Serves the mock registry's demo data under the same URL layout the HTTP
adapter calls (/<org>/<tenant>/pims_/api/v1/...) on port 9100. Commands
change the instance status in memory, so polling picks them up.

Usage:
    python -m maestro_portal.scripts.fake_registry_server
    MAESTRO_REGISTRY_ADAPTER=http UIPATH_BASE_URL=http://127.0.0.1:9100 \
        UIPATH_ORG_NAME=demo UIPATH_TENANT_NAME=default \
        uvicorn maestro_portal.services.api:app --port 8000
"""

from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from maestro_portal.adapters.registry.mock_registry import MockRegistry
from maestro_portal.orchestrator.errors import CommandError, NotFoundError
from maestro_portal.services.status_store import StatusStore

PREFIX = "/{org}/{tenant}/pims_/api/v1"

store = StatusStore()
registry = MockRegistry(store, latency=0.2)

app = FastAPI(title="fake-registry-server")


def _dump(record) -> dict:
    return record.model_dump(by_alias=True, mode="json")


def _not_found(e: NotFoundError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": str(e)}, status_code=404)


@app.get(PREFIX + "/processes/summary")
async def processes(org: str, tenant: str):
    return {"items": [_dump(p) for p in await registry.list_processes()]}


@app.get(PREFIX + "/instances")
async def instances(org: str, tenant: str):
    return {"items": [_dump(i) for i in await registry.list_instances()]}


@app.get(PREFIX + "/instances/{instance_id}")
async def instance(org: str, tenant: str, instance_id: str, x_uipath_folderkey: Optional[str] = Header(None)):
    try:
        return _dump(await registry.get_instance(instance_id, x_uipath_folderkey))
    except NotFoundError as e:
        return _not_found(e)


@app.get(PREFIX + "/instances/{instance_id}/bpmn")
async def bpmn(org: str, tenant: str, instance_id: str, x_uipath_folderkey: Optional[str] = Header(None)):
    try:
        return PlainTextResponse(await registry.get_bpmn(instance_id, x_uipath_folderkey), media_type="application/xml")
    except NotFoundError as e:
        return _not_found(e)


@app.get(PREFIX + "/spans/{instance_id}")
async def spans(org: str, tenant: str, instance_id: str):
    try:
        return await registry.get_execution_history(instance_id)
    except NotFoundError as e:
        return _not_found(e)


@app.get(PREFIX + "/instances/{instance_id}/variables")
async def variables(org: str, tenant: str, instance_id: str, parentElementId: Optional[str] = None,
                    x_uipath_folderkey: Optional[str] = Header(None)):
    try:
        return _dump(await registry.get_variables(instance_id, x_uipath_folderkey, parentElementId))
    except NotFoundError as e:
        return _not_found(e)


async def _command(action: str, instance_id: str, folder_key: Optional[str], request: Request):
    body = await request.json() if await request.body() else {}
    send = getattr(registry, f"{action}_instance")
    print(f"[registry] {action} {instance_id} comment={body.get('comment')!r}")
    try:
        result = await send(instance_id, folder_key, body.get("comment"))
    except NotFoundError as e:
        return _not_found(e)
    except CommandError as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, "data": _dump(result)}


@app.post(PREFIX + "/instances/{instance_id}/pause")
async def pause(org: str, tenant: str, instance_id: str, request: Request,
                x_uipath_folderkey: Optional[str] = Header(None)):
    return await _command("pause", instance_id, x_uipath_folderkey, request)


@app.post(PREFIX + "/instances/{instance_id}/resume")
async def resume(org: str, tenant: str, instance_id: str, request: Request,
                 x_uipath_folderkey: Optional[str] = Header(None)):
    return await _command("resume", instance_id, x_uipath_folderkey, request)


@app.post(PREFIX + "/instances/{instance_id}/cancel")
async def cancel(org: str, tenant: str, instance_id: str, request: Request,
                 x_uipath_folderkey: Optional[str] = Header(None)):
    return await _command("cancel", instance_id, x_uipath_folderkey, request)


if __name__ == "__main__":
    print("Fake registry server starting on http://localhost:9100")
    uvicorn.run(app, host="0.0.0.0", port=9100)
