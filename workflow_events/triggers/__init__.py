from workflow_events.triggers.builtin import register_builtin_triggers
from workflow_events.triggers.registry import TriggerDefinition, TriggerRegistry
from workflow_events.triggers.schema import EventSchema, SchemaValidationResult

__all__ = [
    "EventSchema",
    "SchemaValidationResult",
    "TriggerDefinition",
    "TriggerRegistry",
    "register_builtin_triggers",
]
