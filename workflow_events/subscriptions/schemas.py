"""Subscription schemas."""

from workflow_events.events.schemas import CamelModel


class Subscription(CamelModel):
    """Binding from (trigger type, space) to a workflow, with an optional KQL filter."""

    id: str
    workflow_id: str
    trigger_type: str
    space_id: str
    where: str | None = None
    enabled: bool = True
    created_at: str  # ISO 8601
    updated_at: str  # ISO 8601
    created_by: str | None = None


class CreateSubscriptionParams(CamelModel):
    workflow_id: str
    trigger_type: str
    space_id: str
    where: str | None = None
    created_by: str | None = None


class SubscriptionUpdate(CamelModel):
    """Partial update; only explicitly set fields are applied (where=None clears the filter)."""

    enabled: bool | None = None
    trigger_type: str | None = None
    where: str | None = None
