from typing import Any, Literal, Optional

from pydantic import BaseModel

from maestro_portal.orchestrator.records import Instance, Process


class StatusOut(BaseModel):
    category: str
    can_pause: bool
    can_resume: bool
    can_cancel: bool


class ViewOut(BaseModel):
    level: Literal["collection", "sub_collection", "detail"]
    process_key: Optional[str] = None
    instance_id: Optional[str] = None
    folder_key: Optional[str] = None


class EntryOut(BaseModel):
    key: str
    has_payload: bool
    fetch_sequence: int
    last_fetched_at: Optional[float] = None
    in_flight: bool
    subscribers: int
    error_code: Optional[str] = None
    error: Optional[str] = None


class StatusResponse(BaseModel):
    started: bool
    view: ViewOut
    entries: list[EntryOut]
    last_error: Optional[str] = None
    last_command: Optional[str] = None
    logs: list[str]


class ProcessListResponse(BaseModel):
    ok: bool
    loading: bool = False
    items: list[Process] = []
    error_code: Optional[str] = None
    error: Optional[str] = None


class InstanceRow(BaseModel):
    instance: Instance
    status: StatusOut
    started: str
    completed: Optional[str] = None


class InstanceListResponse(BaseModel):
    ok: bool
    process_key: Optional[str] = None
    loading: bool = False
    items: list[InstanceRow] = []
    error_code: Optional[str] = None
    error: Optional[str] = None


class RunOut(BaseModel):
    number: int
    run_id: str
    status: str
    category: str
    started: str
    completed: str


class VariableRow(BaseModel):
    id: Optional[str] = None
    name: str
    type: str
    kind: str
    value: str      # display text, bounded length
    element_id: str
    source: str


class DetailResponse(BaseModel):
    ok: bool
    error_code: Optional[str] = None
    error: Optional[str] = None
    instance: Optional[Instance] = None
    status: Optional[StatusOut] = None
    started: Optional[str] = None
    completed: Optional[str] = None
    runs: list[RunOut] = []
    bpmn: Optional[str] = None
    bpmn_error: Optional[str] = None
    history: Optional[list[dict[str, Any]]] = None
    history_error: Optional[str] = None
    variables: list[VariableRow] = []
    variables_total: int = 0
    variables_error: Optional[str] = None
    element_count: int = 0


class NavigateResponse(BaseModel):
    ok: bool
    changed: bool = False
    view: ViewOut
    error_code: Optional[str] = None
    error: Optional[str] = None


class CommandRequest(BaseModel):
    folder_key: Optional[str] = None
    comment: Optional[str] = None


class CancelRequest(CommandRequest):
    token: str


class CancelTokenResponse(BaseModel):
    ok: bool
    instance_id: str
    token: Optional[str] = None
    expires_in: Optional[float] = None
    error_code: Optional[str] = None
    error: Optional[str] = None


class CommandResponse(BaseModel):
    ok: bool
    command: Literal["pause", "resume", "cancel"]
    instance_id: str
    status: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
