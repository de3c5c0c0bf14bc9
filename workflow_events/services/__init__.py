from workflow_events.services.emission_service import EmitEventResult, EventEmissionService, RequestContext
from workflow_events.services.workflow_loader import WorkflowLoader

__all__ = ["EmitEventResult", "EventEmissionService", "RequestContext", "WorkflowLoader"]
