"""Event emission and inspection routes."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from workflow_events.api.deps import get_pipeline, get_request_context, get_space_id
from workflow_events.core.exceptions import PayloadValidationError, UnknownTriggerError
from workflow_events.events.schemas import CamelModel, EventStatus, WorkflowEvent
from workflow_events.pipeline import Pipeline
from workflow_events.services.emission_service import RequestContext

router = APIRouter()


class EmitEventRequest(CamelModel):
    trigger_type: str
    payload: dict[str, Any]


class EmitEventResponse(CamelModel):
    event_id: str


@router.post("", status_code=202, response_model=EmitEventResponse)
async def emit_event(
    request: EmitEventRequest,
    context: RequestContext = Depends(get_request_context),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Emit an event for a registered trigger.

    Acknowledged once persisted; routing to workflows happens asynchronously.

    Raises:
        HTTPException(400): Unknown trigger or payload does not match the trigger schema
    """
    try:
        result = await pipeline.emission_service.emit(request.trigger_type, request.payload, context)
    except (UnknownTriggerError, PayloadValidationError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return EmitEventResponse(event_id=result.event_id)


@router.get("", response_model=list[WorkflowEvent])
async def list_events(
    status: EventStatus | None = None,
    trigger_type: str | None = Query(default=None, alias="triggerType"),
    size: int = Query(default=100, ge=1, le=1000),
    from_: int = Query(default=0, ge=0, alias="from"),
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Events in the caller's space, newest first."""
    query: dict[str, Any] = {"space_id": space_id}
    if status is not None:
        query["status"] = status
    if trigger_type:
        query["trigger_type"] = trigger_type
    return await pipeline.event_store.search(query, size=size, from_=from_)


@router.get("/{event_id}", response_model=WorkflowEvent)
async def get_event(
    event_id: str,
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    event = await pipeline.event_store.get_by_id(event_id)
    if event is None or event.space_id != space_id:
        raise HTTPException(status_code=404, detail="Event not found")
    return event
