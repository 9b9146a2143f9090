"""In-memory registry for tests and for running the portal without a tenant."""

import asyncio
import copy
from typing import Any, Optional

from maestro_portal.adapters.registry.base import RegistryAdapter
from maestro_portal.orchestrator.errors import CommandError, NotFoundError
from maestro_portal.orchestrator.records import Instance, OperationResult, Process, VariableSet
from maestro_portal.orchestrator.status import classify

DEMO_FOLDER_KEY = "8645d674-92d8-4281-9aef-43f3e3608ded"

DEMO_PROCESSES = [
    {
        "processKey": "invoice-approval",
        "name": "Invoice Approval",
        "packageId": "Finance.InvoiceApproval",
        "folderKey": DEMO_FOLDER_KEY,
        "folderName": "Finance",
        "packageVersions": ["1.0.0", "1.1.0"],
        "versionCount": 2,
        "runningCount": 1,
        "pausedCount": 1,
        "completedCount": 1,
    },
    {
        "processKey": "employee-onboarding",
        "name": "Employee Onboarding",
        "packageId": "HR.Onboarding",
        "folderName": "HR",
        "packageVersions": ["2.0.0"],
        "versionCount": 1,
        "faultedCount": 1,
    },
]

DEMO_INSTANCES = [
    {
        "instanceId": "inst-001",
        "processKey": "invoice-approval",
        "folderKey": DEMO_FOLDER_KEY,
        "instanceDisplayName": "Invoice 2024-0113",
        "latestRunStatus": "Running",
        "startedTime": "2024-04-03T14:05:00Z",
        "packageKey": "Finance.InvoiceApproval",
        "packageVersion": "1.1.0",
        "startedByUser": "ops@example.com",
        "instanceRuns": [
            {"runId": "run-001-a", "status": "Faulted", "startedTime": "2024-04-03T14:05:00Z",
             "completedTime": "2024-04-03T14:09:12Z"},
            {"runId": "run-001-b", "status": "Running", "startedTime": "2024-04-03T14:20:41Z"},
        ],
    },
    {
        "instanceId": "inst-002",
        "processKey": "invoice-approval",
        "folderKey": DEMO_FOLDER_KEY,
        "instanceDisplayName": "Invoice 2024-0114",
        "latestRunStatus": "Paused",
        "startedTime": "2024-04-04T09:00:00Z",
        "packageKey": "Finance.InvoiceApproval",
        "packageVersion": "1.1.0",
        "instanceRuns": [
            {"runId": "run-002-a", "status": "Paused", "startedTime": "2024-04-04T09:00:00Z"},
        ],
    },
    {
        "instanceId": "inst-003",
        "processKey": "invoice-approval",
        "folderKey": DEMO_FOLDER_KEY,
        "instanceDisplayName": "Invoice 2024-0099",
        "latestRunStatus": "Completed",
        "startedTime": "2024-03-28T08:30:00Z",
        "completedTime": "2024-03-28T08:47:00Z",
        "packageKey": "Finance.InvoiceApproval",
        "packageVersion": "1.0.0",
        "instanceRuns": [
            {"runId": "run-003-a", "status": "Completed", "startedTime": "2024-03-28T08:30:00Z",
             "completedTime": "2024-03-28T08:47:00Z"},
        ],
    },
    {
        "instanceId": "inst-101",
        "processKey": "employee-onboarding",
        "folderKey": DEMO_FOLDER_KEY,
        "instanceDisplayName": "Onboarding J. Doe",
        "latestRunStatus": "Faulted",
        "startedTime": "2024-04-01T10:00:00Z",
        "packageKey": "HR.Onboarding",
        "packageVersion": "2.0.0",
        "instanceRuns": [
            {"runId": "run-101-a", "status": "Faulted", "startedTime": "2024-04-01T10:00:00Z",
             "completedTime": "2024-04-01T10:02:30Z"},
        ],
    },
]

DEMO_VARIABLES = {
    "inst-001": {
        "instanceId": "inst-001",
        "globalVariables": [
            {"id": "v1", "name": "invoiceNumber", "type": "string", "value": "2024-0113",
             "elementId": "StartEvent_1", "source": "Start"},
            {"id": "v2", "name": "amount", "type": "number", "value": 1250.0,
             "elementId": "Task_Review", "source": "Review"},
            {"id": "v3", "name": "approved", "type": "boolean", "value": False,
             "elementId": "Task_Review", "source": "Review"},
            {"id": "v4", "name": "vendor", "type": "object",
             "value": {"name": "Acme Corp", "country": "DE", "contacts": ["ap@acme.example"]},
             "elementId": "StartEvent_1", "source": "Start"},
        ],
        "elements": [
            {"elementId": "StartEvent_1", "elementName": "Invoice received"},
            {"elementId": "Task_Review", "elementName": "Review invoice"},
        ],
    },
}

_BPMN_TEMPLATE = (
    '<?xml version="1.0" encoding="UTF-8"?>\n'
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL">\n'
    '  <bpmn:process id="{process_key}" isExecutable="true">\n'
    '    <bpmn:startEvent id="StartEvent_1" />\n'
    '    <bpmn:task id="Task_Review" />\n'
    '    <bpmn:endEvent id="EndEvent_1" />\n'
    '  </bpmn:process>\n'
    '</bpmn:definitions>\n'
)

# status the registry reports once each command has been applied
_COMMAND_STATUS = {"pause": "Paused", "resume": "Running", "cancel": "Cancelled"}


class MockRegistry(RegistryAdapter):
    def __init__(
        self,
        status_store,
        processes: Optional[list[dict]] = None,
        instances: Optional[list[dict]] = None,
        variables: Optional[dict[str, dict]] = None,
        latency: float = 0.0,
    ):
        self.status = status_store
        self.latency = latency
        self.processes = [Process.model_validate(p) for p in (DEMO_PROCESSES if processes is None else processes)]
        self.instances = {
            inst.instance_id: inst
            for inst in (Instance.model_validate(i) for i in (DEMO_INSTANCES if instances is None else instances))
        }
        self.variables = copy.deepcopy(DEMO_VARIABLES if variables is None else variables)
        self.calls: list[tuple] = []
        self._failures: dict[str, Exception] = {}

    def fail_next(self, method: str, exc: Exception):
        """Make the next call to ``method`` raise ``exc``."""
        self._failures[method] = exc

    def set_status(self, instance_id: str, status: str):
        inst = self._instance(instance_id)
        self.instances[instance_id] = inst.model_copy(update={"latest_run_status": status})

    async def _call(self, method: str, *args):
        self.calls.append((method, *args))
        if self.latency:
            await asyncio.sleep(self.latency)
        failure = self._failures.pop(method, None)
        if failure is not None:
            self.status.log(f"mock_registry: {method} failing with {type(failure).__name__}")
            raise failure

    def _instance(self, instance_id: str) -> Instance:
        inst = self.instances.get(instance_id)
        if inst is None:
            raise NotFoundError(f"instance {instance_id} not found")
        return inst

    async def list_processes(self) -> list[Process]:
        await self._call("list_processes")
        return list(self.processes)

    async def list_instances(self) -> list[Instance]:
        await self._call("list_instances")
        return list(self.instances.values())

    async def get_instance(self, instance_id: str, folder_key: str) -> Instance:
        await self._call("get_instance", instance_id, folder_key)
        return self._instance(instance_id)

    async def get_bpmn(self, instance_id: str, folder_key: str) -> str:
        await self._call("get_bpmn", instance_id, folder_key)
        return _BPMN_TEMPLATE.format(process_key=self._instance(instance_id).process_key)

    async def get_execution_history(self, instance_id: str) -> list[dict[str, Any]]:
        await self._call("get_execution_history", instance_id)
        inst = self._instance(instance_id)
        return [
            {"id": run.run_id, "name": inst.instance_display_name, "status": run.status,
             "startedTime": run.started_time, "endTime": run.completed_time}
            for run in inst.instance_runs
        ]

    async def get_variables(self, instance_id: str, folder_key: str, parent_element_id: Optional[str] = None) -> VariableSet:
        await self._call("get_variables", instance_id, folder_key)
        self._instance(instance_id)
        data = copy.deepcopy(self.variables.get(instance_id) or {"instanceId": instance_id})
        if parent_element_id:
            data["parentElementId"] = parent_element_id
            data["globalVariables"] = [
                v for v in data.get("globalVariables", []) if v.get("elementId") == parent_element_id
            ]
        return VariableSet.model_validate(data)

    async def _command(self, action: str, instance_id: str, folder_key: str, comment: Optional[str]) -> OperationResult:
        await self._call(f"{action}_instance", instance_id, folder_key, comment)
        inst = self._instance(instance_id)
        info = classify(inst.latest_run_status)
        allowed = {"pause": info.can_pause, "resume": info.can_resume, "cancel": info.can_cancel}[action]
        if not allowed:
            raise CommandError(f"cannot {action} instance {instance_id} in status {inst.latest_run_status}")
        new_status = _COMMAND_STATUS[action]
        self.set_status(instance_id, new_status)
        self.status.log(f"mock_registry: {action} {instance_id} -> {new_status} ({comment})")
        return OperationResult(instance_id=instance_id, status=new_status)

    async def pause_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("pause", instance_id, folder_key, comment)

    async def resume_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("resume", instance_id, folder_key, comment)

    async def cancel_instance(self, instance_id: str, folder_key: str, comment: Optional[str] = None) -> OperationResult:
        return await self._command("cancel", instance_id, folder_key, comment)
