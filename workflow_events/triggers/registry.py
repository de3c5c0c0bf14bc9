"""Trigger registry — catalog of trigger types and their payload schemas.

Populated once during startup; read-only afterwards.
"""

from dataclasses import dataclass

from workflow_events.core.exceptions import DuplicateTriggerError
from workflow_events.triggers.schema import EventSchema


@dataclass(frozen=True)
class TriggerDefinition:
    """A named category of event.

    Attributes:
        id: Namespaced identifier, e.g. "workflow.execution_failed"
        description: When this trigger is emitted
        event_schema: Payload schema. A trigger that accepts any object uses a
            ``RootModel[dict[str, Any]]`` schema
        envelope_field: Payload field holding the inner data for envelope
            triggers (workflow inputs are projected from it)
    """

    id: str
    description: str
    event_schema: EventSchema
    envelope_field: str | None = None


class TriggerRegistry:
    """Registry of trigger definitions, keyed by id."""

    def __init__(self) -> None:
        self._registry: dict[str, TriggerDefinition] = {}

    def register_trigger(self, definition: TriggerDefinition) -> None:
        """Register a trigger definition.

        Raises:
            ValueError: If the definition has no event schema
            DuplicateTriggerError: If a trigger with the same id is already registered
        """
        trigger_id = str(definition.id)
        if not isinstance(definition.event_schema, EventSchema):
            raise ValueError(f'Trigger "{trigger_id}" must declare an event schema')
        if trigger_id in self._registry:
            raise DuplicateTriggerError(trigger_id)
        self._registry[trigger_id] = definition

    def get_trigger(self, trigger_id: str) -> TriggerDefinition | None:
        return self._registry.get(trigger_id)

    def has_trigger(self, trigger_id: str) -> bool:
        return trigger_id in self._registry

    def list_triggers(self) -> list[TriggerDefinition]:
        """All registered definitions in registration order."""
        return list(self._registry.values())
