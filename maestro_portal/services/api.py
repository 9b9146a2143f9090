import asyncio
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from maestro_portal.adapters.registry.http_registry import HttpRegistry
from maestro_portal.adapters.registry.mock_registry import MockRegistry
from maestro_portal.orchestrator.contracts import CollectionView, DetailView, ViewState
from maestro_portal.orchestrator.errors import ERR_NOT_FOUND, ERR_VALIDATION, PortalError, error_code
from maestro_portal.orchestrator.navigation import filter_instances
from maestro_portal.orchestrator.portal import Portal
from maestro_portal.orchestrator.resources import INSTANCES_KEY, PROCESSES_KEY, detail_keys
from maestro_portal.orchestrator.status import classify
from maestro_portal.services.config import PortalConfig, load_config
from maestro_portal.services.formatting import (
    format_timestamp,
    format_variable_value,
    run_rows,
    search_variables,
    value_kind,
)
from maestro_portal.services.models import (
    CancelRequest, CancelTokenResponse, CommandRequest, CommandResponse,
    DetailResponse, EntryOut, InstanceListResponse, InstanceRow, NavigateResponse,
    ProcessListResponse, RunOut, StatusOut, StatusResponse, VariableRow, ViewOut,
)
from maestro_portal.services.status_store import StatusStore


def build_registry(config: PortalConfig, status: StatusStore):
    if config.registry_adapter == "http":
        registry = HttpRegistry(
            status,
            base_url=config.base_url,
            org_name=config.org_name,
            tenant_name=config.tenant_name,
            access_token=config.access_token,
            timeout=config.http_timeout,
        )
        status.log(f"registry adapter: http -> {registry.base_url}")
    else:
        registry = MockRegistry(status)
        status.log("registry adapter: mock")
    return registry


def _view_out(state: ViewState) -> ViewOut:
    if isinstance(state, DetailView):
        return ViewOut(level=state.level, process_key=state.process_key,
                       instance_id=state.instance_id, folder_key=state.folder_key)
    if isinstance(state, CollectionView):
        return ViewOut(level=state.level)
    return ViewOut(level=state.level, process_key=state.process_key)


def _status_out(raw_status) -> StatusOut:
    info = classify(raw_status)
    return StatusOut(category=info.category.value, can_pause=info.can_pause,
                     can_resume=info.can_resume, can_cancel=info.can_cancel)


def _error_text(exc: Optional[BaseException]) -> Optional[str]:
    return str(exc) if exc is not None else None


def create_app(
    config: Optional[PortalConfig] = None,
    registry=None,
    status_store: Optional[StatusStore] = None,
    clock: Callable[[], float] = time.monotonic,
) -> FastAPI:
    status = status_store or StatusStore()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or load_config()
        portal = Portal(
            registry or build_registry(cfg, status),
            status,
            cfg.poll_intervals,
            cfg.stale_windows,
            default_folder_key=cfg.default_folder_key,
            cancel_token_ttl=cfg.cancel_token_ttl,
            clock=clock,
        )
        app.state.portal = portal
        await portal.start()
        try:
            yield
        finally:
            await portal.close()

    app = FastAPI(title="maestro-portal", lifespan=lifespan)
    app.state.status = status

    def _portal() -> Portal:
        return app.state.portal

    @app.get("/health")
    async def health():
        portal = _portal()
        checks = {"api": True, "registry_adapter": type(portal.registry).__name__, "started": status.started}
        processes = await portal.read(PROCESSES_KEY)
        checks["registry_reachable"] = processes.fetch_sequence > 0 and processes.error is None
        if processes.error is not None:
            checks["registry_error"] = str(processes.error)
        checks["all_ok"] = checks["started"] and checks["registry_reachable"]
        return checks

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        portal = _portal()
        entries = []
        for key in sorted(portal.cache.keys(), key=str):
            entry = portal.cache.get(key)
            entries.append(EntryOut(
                key=str(key),
                has_payload=entry.has_payload,
                fetch_sequence=entry.fetch_sequence,
                last_fetched_at=entry.last_fetched_at,
                in_flight=entry.in_flight,
                subscribers=portal.cache.subscriber_count(key),
                error_code=error_code(entry.error),
                error=_error_text(entry.error),
            ))
        return StatusResponse(
            started=status.started,
            view=_view_out(portal.navigation.state),
            entries=entries,
            last_error=status.last_error,
            last_command=status.last_command,
            logs=status.logs,
        )

    @app.get("/processes", response_model=ProcessListResponse)
    async def list_processes():
        entry = await _portal().read(PROCESSES_KEY)
        return ProcessListResponse(
            ok=entry.error is None,
            loading=entry.is_loading,
            items=entry.payload or [],
            error_code=error_code(entry.error),
            error=_error_text(entry.error),
        )

    @app.get("/instances", response_model=InstanceListResponse)
    async def list_instances(process_key: Optional[str] = None):
        """Instances of ``process_key``, or of the selected process when omitted."""
        portal = _portal()
        entry = await portal.read(INSTANCES_KEY)
        nav = portal.navigation
        if process_key:
            instances = filter_instances(entry.payload, process_key)
        elif isinstance(nav.state, CollectionView):
            instances = tuple(entry.payload or ())
        else:
            process_key = nav.state.process_key
            instances = nav.visible_instances()
        rows = [
            InstanceRow(
                instance=inst,
                status=_status_out(inst.latest_run_status),
                started=format_timestamp(inst.started_time),
                completed=format_timestamp(inst.completed_time) if inst.completed_time else None,
            )
            for inst in instances
        ]
        return InstanceListResponse(
            ok=entry.error is None,
            process_key=process_key,
            loading=entry.is_loading,
            items=rows,
            error_code=error_code(entry.error),
            error=_error_text(entry.error),
        )

    @app.get("/detail", response_model=DetailResponse)
    async def get_detail(search: Optional[str] = None):
        portal = _portal()
        state = portal.navigation.state
        if not isinstance(state, DetailView):
            return DetailResponse(ok=False, error_code=ERR_VALIDATION, error="no instance selected")

        inst_e, bpmn_e, hist_e, vars_e = await asyncio.gather(
            *(portal.read(k) for k in detail_keys(state.instance_id, state.folder_key))
        )
        instance = portal.navigation.selected_instance()
        if instance is None:
            return DetailResponse(
                ok=False,
                error_code=error_code(inst_e.error) or ERR_NOT_FOUND,
                error=_error_text(inst_e.error) or f"instance {state.instance_id} not found",
            )

        variable_set = vars_e.payload
        variables = variable_set.global_variables if variable_set else []
        rows = [
            VariableRow(
                id=v.id,
                name=v.name or "N/A",
                type=v.type or "Unknown",
                kind=value_kind(v.value).value,
                value=format_variable_value(v.value),
                element_id=v.element_id or "N/A",
                source=v.source or "Unknown",
            )
            for v in search_variables(variables, search)
        ]
        return DetailResponse(
            ok=True,
            error_code=error_code(inst_e.error),
            error=_error_text(inst_e.error),
            instance=instance,
            status=_status_out(instance.latest_run_status),
            started=format_timestamp(instance.started_time, fallback="Start time unknown"),
            completed=format_timestamp(instance.completed_time) if instance.completed_time else None,
            runs=[RunOut(number=r.number, run_id=r.run_id, status=r.status, category=r.category.value,
                         started=r.started, completed=r.completed) for r in run_rows(instance)],
            bpmn=bpmn_e.payload,
            bpmn_error=_error_text(bpmn_e.error),
            history=hist_e.payload,
            history_error=_error_text(hist_e.error),
            variables=rows,
            variables_total=len(variables),
            variables_error=_error_text(vars_e.error),
            element_count=len(variable_set.elements) if variable_set else 0,
        )

    # ---- navigation ----

    @app.post("/navigate/process/{process_key}", response_model=NavigateResponse)
    async def navigate_process(process_key: str):
        portal = _portal()
        nav = portal.navigation
        entry = await portal.read(PROCESSES_KEY)
        process = next((p for p in entry.payload or () if p.process_key == process_key), None)
        if process is None:
            return NavigateResponse(ok=False, view=_view_out(nav.state), error_code=ERR_NOT_FOUND,
                                    error=f"process {process_key} not found")
        changed = nav.select_process(process)
        return NavigateResponse(ok=True, changed=changed, view=_view_out(nav.state))

    @app.post("/navigate/instance/{instance_id}", response_model=NavigateResponse)
    async def navigate_instance(instance_id: str):
        portal = _portal()
        nav = portal.navigation
        await portal.read(INSTANCES_KEY)
        instance = next((i for i in nav.visible_instances() if i.instance_id == instance_id), None)
        if instance is None:
            return NavigateResponse(ok=False, view=_view_out(nav.state), error_code=ERR_NOT_FOUND,
                                    error=f"instance {instance_id} not found for the selected process")
        try:
            changed = nav.select_instance(instance)
        except PortalError as e:
            return NavigateResponse(ok=False, view=_view_out(nav.state), error_code=e.code, error=str(e))
        return NavigateResponse(ok=True, changed=changed, view=_view_out(nav.state))

    @app.post("/navigate/back", response_model=NavigateResponse)
    async def navigate_back():
        nav = _portal().navigation
        changed = nav.back()
        return NavigateResponse(ok=True, changed=changed, view=_view_out(nav.state))

    @app.post("/refresh")
    async def refresh():
        keys = await _portal().refresh_view()
        return {"ok": True, "refreshed": [str(k) for k in keys]}

    # ---- commands ----

    def _folder_for(instance_id: str, requested: Optional[str]) -> Optional[str]:
        # commands from the open detail view go to the folder that view polls
        state = _portal().navigation.state
        if requested is None and isinstance(state, DetailView) and state.instance_id == instance_id:
            return state.folder_key
        return requested

    async def _run_command(command, instance_id: str, call) -> CommandResponse:
        try:
            result = await call()
        except PortalError as e:
            return CommandResponse(ok=False, command=command, instance_id=instance_id,
                                   error_code=e.code, error=str(e))
        return CommandResponse(ok=True, command=command, instance_id=instance_id, status=result.status)

    @app.post("/instances/{instance_id}/pause", response_model=CommandResponse)
    async def pause(instance_id: str, req: Optional[CommandRequest] = None):
        req = req or CommandRequest()
        dispatcher = _portal().dispatcher
        return await _run_command("pause", instance_id,
                                  lambda: dispatcher.pause(instance_id, _folder_for(instance_id, req.folder_key), req.comment))

    @app.post("/instances/{instance_id}/resume", response_model=CommandResponse)
    async def resume(instance_id: str, req: Optional[CommandRequest] = None):
        req = req or CommandRequest()
        dispatcher = _portal().dispatcher
        return await _run_command("resume", instance_id,
                                  lambda: dispatcher.resume(instance_id, _folder_for(instance_id, req.folder_key), req.comment))

    @app.post("/instances/{instance_id}/cancel/request", response_model=CancelTokenResponse)
    async def request_cancel(instance_id: str, req: Optional[CommandRequest] = None):
        """Phase one of cancel. The client confirms with the operator, then posts the token."""
        req = req or CommandRequest()
        dispatcher = _portal().dispatcher
        try:
            confirmation = dispatcher.request_cancel(instance_id, _folder_for(instance_id, req.folder_key))
        except PortalError as e:
            return CancelTokenResponse(ok=False, instance_id=instance_id, error_code=e.code, error=str(e))
        return CancelTokenResponse(ok=True, instance_id=instance_id, token=confirmation.token,
                                   expires_in=dispatcher.confirmation_ttl)

    @app.post("/instances/{instance_id}/cancel", response_model=CommandResponse)
    async def cancel(instance_id: str, req: CancelRequest):
        dispatcher = _portal().dispatcher
        return await _run_command(
            "cancel", instance_id,
            lambda: dispatcher.cancel(instance_id, _folder_for(instance_id, req.folder_key), req.comment,
                                      confirmation=req.token),
        )

    return app


app = create_app()
