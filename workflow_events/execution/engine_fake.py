"""ExecutionEngineFake: Scenario-based test double for the ExecutionEngine protocol.

Scenarios:
- happy_path: every execution is accepted
- dispatch_failure: the engine rejects every execution (DispatchError)
- engine_down: the engine is unreachable (ConnectionError)
- hanging: execute() never returns on its own (exercises dispatch timeouts)

Every call is recorded in ``calls`` regardless of scenario.
"""

import asyncio
import uuid

from workflow_events.core.exceptions import DispatchError
from workflow_events.execution.engine import ExecutionContext, ExecutionOutcome, WorkflowExecutionModel


class ExecutionEngineFake:
    """Scenario-based test double for ExecutionEngine."""

    VALID_SCENARIOS = {"happy_path", "dispatch_failure", "engine_down", "hanging"}

    def __init__(self, scenario: str = "happy_path", failing_workflow_ids: set[str] | None = None):
        """Initialize ExecutionEngineFake with a named scenario.

        Args:
            scenario: One of 'happy_path', 'dispatch_failure', 'engine_down', 'hanging'
            failing_workflow_ids: With happy_path, reject only these workflows

        Raises:
            ValueError: If scenario is not recognized
        """
        if scenario not in self.VALID_SCENARIOS:
            raise ValueError(f"Unknown scenario: {scenario}. Valid scenarios: {self.VALID_SCENARIOS}")
        self.scenario = scenario
        self.failing_workflow_ids = failing_workflow_ids or set()
        self.calls: list[tuple[WorkflowExecutionModel, ExecutionContext]] = []

    async def execute(self, workflow: WorkflowExecutionModel, context: ExecutionContext) -> ExecutionOutcome:
        self.calls.append((workflow, context))

        if self.scenario == "engine_down":
            raise ConnectionError("Execution engine unreachable")

        if self.scenario == "dispatch_failure" or workflow.id in self.failing_workflow_ids:
            raise DispatchError(workflow.id, "execution rejected", status_code=500)

        if self.scenario == "hanging":
            await asyncio.Event().wait()

        status = "failed" if context.input_validation_failed else "pending"
        return ExecutionOutcome(execution_id=str(uuid.uuid4()), status=status)

    @property
    def dispatched_workflow_ids(self) -> list[str]:
        return [workflow.id for workflow, _context in self.calls]
