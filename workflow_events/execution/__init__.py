from workflow_events.execution.engine import (
    ExecutionContext,
    ExecutionEngine,
    ExecutionOutcome,
    WorkflowExecutionModel,
    WorkflowInput,
)
from workflow_events.execution.engine_fake import ExecutionEngineFake
from workflow_events.execution.http_engine import HttpExecutionEngine

__all__ = [
    "ExecutionContext",
    "ExecutionEngine",
    "ExecutionEngineFake",
    "ExecutionOutcome",
    "HttpExecutionEngine",
    "WorkflowExecutionModel",
    "WorkflowInput",
]
