from workflow_events.events.schemas import CredentialRef, CredentialType, EventStatus, WorkflowEvent
from workflow_events.events.store import EventStore

__all__ = ["CredentialRef", "CredentialType", "EventStatus", "EventStore", "WorkflowEvent"]
