"""ExecutionEngine Protocol: the boundary between event routing and workflow execution.

The router hands a loaded workflow plus an ExecutionContext to an engine and
gets back an ExecutionOutcome. What happens after that (step scheduling,
execution records, retries) belongs to the engine and is opaque here.

Implementations:
- HttpExecutionEngine: posts to the workflow execution service
- ExecutionEngineFake: scenario-based in-process double for tests and local runs
"""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from workflow_events.credentials.issuer import IssuedCredential
from workflow_events.events.schemas import CamelModel

class WorkflowInput(BaseModel):
    """A declared workflow input, as found in ``definition["inputs"]``."""

    model_config = ConfigDict(extra="ignore")

    name: str
    # string, number, boolean, choice, array or object; other types are passed through unchecked
    type: str = "string"
    required: bool = False
    default: Any = None
    options: list[Any] | None = None  # choice inputs only


class WorkflowExecutionModel(BaseModel):
    """Everything the engine needs to run a workflow."""

    id: str
    name: str
    enabled: bool
    definition: dict[str, Any]
    yaml: str | None = None

    @property
    def inputs(self) -> list[WorkflowInput]:
        return [WorkflowInput.model_validate(raw) for raw in self.definition.get("inputs") or []]


class ExecutionContext(CamelModel):
    """Context passed along with a dispatched workflow.

    When input projection failed, the workflow is still dispatched with
    input_validation_failed set so the execution fails visibly instead of
    the event being dropped.
    """

    space_id: str
    triggered_by: str  # trigger type that caused the dispatch
    source: str = "event-router"
    event_id: str
    event: dict[str, Any]
    inputs: dict[str, Any]
    input_validation_failed: bool = False
    input_validation_error: str | None = None
    # Sent as a header, never in the body
    credential: IssuedCredential | None = Field(default=None, exclude=True)


class ExecutionOutcome(BaseModel):
    execution_id: str
    status: str = "pending"


@runtime_checkable
class ExecutionEngine(Protocol):
    """Protocol for dispatching workflows to an execution engine."""

    async def execute(self, workflow: WorkflowExecutionModel, context: ExecutionContext) -> ExecutionOutcome:
        """Start a workflow execution.

        Args:
            workflow: The loaded, enabled, valid workflow
            context: Trigger context, projected inputs and optional credential

        Returns:
            Outcome with the engine-assigned execution id

        Raises:
            DispatchError: If the engine rejects the execution
        """
        ...
