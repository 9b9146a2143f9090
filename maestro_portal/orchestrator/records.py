"""
Records returned by the workflow registry.

Field names follow the registry's camelCase JSON; Python code uses the
snake_case attribute names. Unknown fields are ignored so registry additions
do not break parsing.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class Process(_Record):
    process_key: str
    name: str = ""
    package_id: Optional[str] = None
    folder_key: Optional[str] = None
    folder_name: Optional[str] = None
    package_versions: list[str] = Field(default_factory=list)
    version_count: int = 0
    pending_count: int = 0
    running_count: int = 0
    completed_count: int = 0
    paused_count: int = 0
    faulted_count: int = 0
    cancelled_count: int = 0


class Run(_Record):
    run_id: str
    status: str = ""
    started_time: Optional[str] = None
    completed_time: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return not self.completed_time


class Instance(_Record):
    instance_id: str
    process_key: str
    folder_key: Optional[str] = None
    instance_display_name: str = ""
    latest_run_status: str = ""
    started_time: Optional[str] = None
    completed_time: Optional[str] = None
    package_key: Optional[str] = None
    package_version: Optional[str] = None
    started_by_user: Optional[str] = None
    instance_runs: list[Run] = Field(default_factory=list)   # execution order, most recent last


class Variable(_Record):
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    value: Any = None
    element_id: Optional[str] = None
    source: Optional[str] = None


class VariableSet(_Record):
    instance_id: Optional[str] = None
    parent_element_id: Optional[str] = None
    global_variables: list[Variable] = Field(default_factory=list)
    elements: list[dict[str, Any]] = Field(default_factory=list)


class OperationResult(_Record):
    instance_id: Optional[str] = None
    status: Optional[str] = None
