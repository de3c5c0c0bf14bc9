"""Trigger types shipped with the pipeline."""

from typing import Any

from pydantic import BaseModel

from workflow_events.triggers.registry import TriggerDefinition, TriggerRegistry
from workflow_events.triggers.schema import EventSchema

EXTERNAL_EVENT_TRIGGER_ID = "external.event"
WORKFLOW_EXECUTION_FAILED_TRIGGER_ID = "workflow.execution_failed"


class ExternalEventPayload(BaseModel):
    """Generic event from an external system (Slack, GitHub, Jira, ...)."""

    source: str  # external system that produced the event, e.g. "github"
    type: str  # semantic type within that system, e.g. "issue.created"
    payload: dict[str, Any]  # normalized data; structure depends on source/type


class FailedWorkflowInfo(BaseModel):
    id: str
    name: str
    spaceId: str
    isErrorHandler: bool


class FailedExecutionInfo(BaseModel):
    id: str
    startedAt: str  # ISO timestamp
    failedAt: str  # ISO timestamp


class ExecutionErrorInfo(BaseModel):
    message: str
    stepId: str
    stepName: str
    stackTrace: str | None = None


class WorkflowExecutionFailedPayload(BaseModel):
    workflow: FailedWorkflowInfo
    execution: FailedExecutionInfo
    error: ExecutionErrorInfo


external_event_trigger = TriggerDefinition(
    id=EXTERNAL_EVENT_TRIGGER_ID,
    description="Generic external event from external systems (e.g., Slack, GitHub, Jira)",
    event_schema=EventSchema(ExternalEventPayload),
    envelope_field="payload",
)

workflow_execution_failed_trigger = TriggerDefinition(
    id=WORKFLOW_EXECUTION_FAILED_TRIGGER_ID,
    description="Emitted when a workflow execution fails",
    event_schema=EventSchema(WorkflowExecutionFailedPayload),
)

BUILTIN_TRIGGERS = (external_event_trigger, workflow_execution_failed_trigger)


def register_builtin_triggers(registry: TriggerRegistry) -> None:
    for definition in BUILTIN_TRIGGERS:
        registry.register_trigger(definition)
