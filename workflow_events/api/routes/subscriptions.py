"""Subscription administration routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from workflow_events.api.deps import get_pipeline, get_request_context, get_space_id
from workflow_events.core.exceptions import FilterValidationError, SubscriptionNotFoundError, UnknownTriggerError
from workflow_events.events.schemas import CamelModel
from workflow_events.pipeline import Pipeline
from workflow_events.services.emission_service import RequestContext
from workflow_events.subscriptions.schemas import CreateSubscriptionParams, Subscription, SubscriptionUpdate

router = APIRouter()
workflow_router = APIRouter()


class CreateSubscriptionRequest(CamelModel):
    workflow_id: str
    trigger_type: str
    where: str | None = None


class DeleteSubscriptionsResponse(CamelModel):
    deleted: int


def _validation_error(exc: UnknownTriggerError | FilterValidationError) -> HTTPException:
    detail: dict = {"message": str(exc)}
    if isinstance(exc, FilterValidationError) and exc.invalid_paths:
        detail["invalidPaths"] = exc.invalid_paths
    return HTTPException(status_code=400, detail=detail)


async def _get_in_space(pipeline: Pipeline, subscription_id: str, space_id: str) -> Subscription:
    subscription = await pipeline.subscription_store.get_by_id(subscription_id)
    if subscription is None or subscription.space_id != space_id:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return subscription


@router.post("", status_code=201, response_model=Subscription)
async def create_subscription(
    request: CreateSubscriptionRequest,
    context: RequestContext = Depends(get_request_context),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Subscribe a workflow to a trigger in the caller's space.

    Raises:
        HTTPException(400): Unknown trigger or invalid where clause
        HTTPException(409): The workflow is already subscribed to this trigger
    """
    existing = await pipeline.subscription_store.find_existing(request.workflow_id, request.trigger_type, context.space_id)
    if existing is not None:
        raise HTTPException(status_code=409, detail=f"Workflow already subscribed to {request.trigger_type}: {existing.id}")

    try:
        return await pipeline.subscription_store.create(
            CreateSubscriptionParams(
                workflow_id=request.workflow_id,
                trigger_type=request.trigger_type,
                space_id=context.space_id,
                where=request.where,
                created_by=context.principal_id,
            )
        )
    except (UnknownTriggerError, FilterValidationError) as exc:
        raise _validation_error(exc)


@router.get("", response_model=list[Subscription])
async def list_subscriptions(
    workflow_id: str | None = Query(default=None, alias="workflowId"),
    trigger_type: str | None = Query(default=None, alias="triggerType"),
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Subscriptions of a workflow, or the active subscriptions of a trigger."""
    if workflow_id:
        subscriptions = await pipeline.subscription_store.find_by_workflow(workflow_id, space_id)
        if trigger_type:
            subscriptions = [s for s in subscriptions if s.trigger_type == trigger_type]
        return subscriptions
    if trigger_type:
        return await pipeline.subscription_store.find_active_for_trigger(trigger_type, space_id)
    raise HTTPException(status_code=400, detail="workflowId or triggerType is required")


@router.get("/{subscription_id}", response_model=Subscription)
async def get_subscription(
    subscription_id: str,
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    return await _get_in_space(pipeline, subscription_id, space_id)


@router.patch("/{subscription_id}", response_model=Subscription)
async def update_subscription(
    subscription_id: str,
    changes: SubscriptionUpdate,
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Partial update. Send ``"where": null`` to remove the filter."""
    await _get_in_space(pipeline, subscription_id, space_id)
    try:
        return await pipeline.subscription_store.update(subscription_id, changes)
    except SubscriptionNotFoundError:
        raise HTTPException(status_code=404, detail="Subscription not found")
    except (UnknownTriggerError, FilterValidationError) as exc:
        raise _validation_error(exc)


@router.delete("/{subscription_id}", status_code=204)
async def delete_subscription(
    subscription_id: str,
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    await _get_in_space(pipeline, subscription_id, space_id)
    try:
        await pipeline.subscription_store.delete(subscription_id)
    except SubscriptionNotFoundError:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return Response(status_code=204)


@workflow_router.delete("/{workflow_id}/subscriptions", response_model=DeleteSubscriptionsResponse)
async def delete_workflow_subscriptions(
    workflow_id: str,
    space_id: str = Depends(get_space_id),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Remove every subscription of a workflow (e.g. when the workflow is deleted)."""
    deleted = await pipeline.subscription_store.delete_all_for_workflow(workflow_id, space_id)
    return DeleteSubscriptionsResponse(deleted=deleted)
