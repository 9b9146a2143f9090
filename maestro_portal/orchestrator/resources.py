"""
Resource keys for everything the portal polls from the registry.

A ResourceKey is both the cache key and the scheduler key. Its kind selects
the poll interval, the staleness window and the registry call that fills it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional


class ResourceKind(str, Enum):
    PROCESSES = "processes"
    INSTANCES = "instances"
    INSTANCE = "instance"
    BPMN = "bpmn"
    EXECUTION_HISTORY = "execution-history"
    VARIABLES = "variables"


# Kinds that belong to a single instance and need its id.
INSTANCE_KINDS = (
    ResourceKind.INSTANCE,
    ResourceKind.BPMN,
    ResourceKind.EXECUTION_HISTORY,
    ResourceKind.VARIABLES,
)

Fetcher = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ResourceKey:
    kind: ResourceKind
    instance_id: Optional[str] = None
    folder_key: Optional[str] = None

    def __str__(self) -> str:
        parts = ["maestro", self.kind.value]
        if self.instance_id:
            parts.append(self.instance_id)
        if self.folder_key:
            parts.append(self.folder_key)
        return "/".join(parts)


PROCESSES_KEY = ResourceKey(ResourceKind.PROCESSES)
INSTANCES_KEY = ResourceKey(ResourceKind.INSTANCES)


def instance_key(instance_id: str, folder_key: str) -> ResourceKey:
    return ResourceKey(ResourceKind.INSTANCE, instance_id, folder_key)


def bpmn_key(instance_id: str, folder_key: str) -> ResourceKey:
    return ResourceKey(ResourceKind.BPMN, instance_id, folder_key)


def history_key(instance_id: str) -> ResourceKey:
    # execution history is addressed by instance id only
    return ResourceKey(ResourceKind.EXECUTION_HISTORY, instance_id)


def variables_key(instance_id: str, folder_key: str) -> ResourceKey:
    return ResourceKey(ResourceKind.VARIABLES, instance_id, folder_key)


def detail_keys(instance_id: str, folder_key: str) -> tuple[ResourceKey, ...]:
    return (
        instance_key(instance_id, folder_key),
        bpmn_key(instance_id, folder_key),
        history_key(instance_id),
        variables_key(instance_id, folder_key),
    )


def fetcher_for(registry, key: ResourceKey) -> Fetcher:
    """Bind the registry call that produces the payload for ``key``."""
    kind = key.kind
    if kind is ResourceKind.PROCESSES:
        return registry.list_processes
    if kind is ResourceKind.INSTANCES:
        return registry.list_instances
    if kind is ResourceKind.INSTANCE:
        return lambda: registry.get_instance(key.instance_id, key.folder_key)
    if kind is ResourceKind.BPMN:
        return lambda: registry.get_bpmn(key.instance_id, key.folder_key)
    if kind is ResourceKind.EXECUTION_HISTORY:
        return lambda: registry.get_execution_history(key.instance_id)
    if kind is ResourceKind.VARIABLES:
        return lambda: registry.get_variables(key.instance_id, key.folder_key)
    raise ValueError(f"unknown resource kind: {kind!r}")
