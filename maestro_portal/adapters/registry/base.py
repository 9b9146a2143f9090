from typing import Any, Optional

from maestro_portal.orchestrator.records import Instance, OperationResult, Process, VariableSet


class RegistryAdapter:
    """Calls the portal needs from the workflow registry. All of them are coroutines."""

    async def list_processes(self) -> list[Process]:
        raise NotImplementedError

    async def list_instances(self) -> list[Instance]:
        raise NotImplementedError

    async def get_instance(self, instance_id: str, folder_key: str) -> Instance:
        raise NotImplementedError

    async def get_bpmn(self, instance_id: str, folder_key: str) -> str:
        raise NotImplementedError

    async def get_execution_history(self, instance_id: str) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def get_variables(self, instance_id: str, folder_key: str, parent_element_id: Optional[str] = None) -> VariableSet:
        raise NotImplementedError

    async def pause_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        raise NotImplementedError

    async def resume_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        raise NotImplementedError

    async def cancel_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        raise NotImplementedError

    async def close(self):
        pass
