from workflow_events.router.inputs import InputProjection, project_and_validate_inputs
from workflow_events.router.scheduler import RouterScheduler
from workflow_events.router.task import EventRouter, RouterCycleResult

__all__ = [
    "EventRouter",
    "InputProjection",
    "RouterCycleResult",
    "RouterScheduler",
    "project_and_validate_inputs",
]
