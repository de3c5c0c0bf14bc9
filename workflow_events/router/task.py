"""EventRouter — one routing cycle from pending events to workflow executions.

Cycle:
  1. reclaim stale PROCESSING events (crashed routers) back to PENDING
  2. claim a batch of PENDING events
  3. for each event, for each active subscription: evaluate the where
     clause, load the workflow, project inputs, resolve the credential and
     dispatch
  4. mark the event COMPLETED

Errors are contained at the narrowest scope: a failing subscription does not
affect its siblings, and a failing event does not affect the rest of the
batch. Only reclaim and claim failures abort the cycle; both are safe to
retry on the next one.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from workflow_events.core.exceptions import FilterEvaluationError
from workflow_events.credentials.issuer import IssuedCredential
from workflow_events.credentials.vault import CredentialVault
from workflow_events.events.schemas import WorkflowEvent
from workflow_events.events.store import EventStore
from workflow_events.execution.engine import ExecutionContext, ExecutionEngine
from workflow_events.filters.kql import evaluate
from workflow_events.filters.templating import render
from workflow_events.router.inputs import project_and_validate_inputs
from workflow_events.services.workflow_loader import WorkflowLoader
from workflow_events.subscriptions.schemas import Subscription
from workflow_events.subscriptions.store import SubscriptionStore
from workflow_events.triggers.registry import TriggerRegistry

logger = structlog.get_logger(__name__)


@dataclass
class RouterCycleResult:
    reclaimed: int = 0
    claimed: int = 0
    dispatched: int = 0
    completed: int = 0
    failed: int = 0


def matches_filter(where: str | None, payload: dict[str, Any]) -> bool:
    """Evaluate a subscription's where clause against an event payload.

    The clause is rendered first. A bool result is used as-is, a string is
    evaluated as KQL, None means no match.

    Raises:
        FilterEvaluationError: If the rendered value is any other type
        KqlSyntaxError: If the rendered string is not valid KQL
    """
    if not where:
        return True

    context = {"event": payload}
    rendered = render(where, context)

    if rendered is None:
        return False
    if isinstance(rendered, bool):
        return rendered
    if isinstance(rendered, str):
        return evaluate(rendered, context)
    raise FilterEvaluationError(f"Filter rendered to unsupported type {type(rendered).__name__}")


class EventRouter:
    """Routes claimed events to subscribed workflows."""

    def __init__(
        self,
        event_store: EventStore,
        subscription_store: SubscriptionStore,
        trigger_registry: TriggerRegistry,
        workflow_loader: WorkflowLoader,
        execution_engine: ExecutionEngine,
        credential_vault: CredentialVault,
        *,
        batch_size: int = 10,
        reclaim_batch_size: int = 10,
        stale_threshold_minutes: int = 5,
        dispatch_timeout_seconds: float | None = None,
    ):
        self.event_store = event_store
        self.subscription_store = subscription_store
        self.trigger_registry = trigger_registry
        self.workflow_loader = workflow_loader
        self.execution_engine = execution_engine
        self.credential_vault = credential_vault
        self.batch_size = batch_size
        self.reclaim_batch_size = reclaim_batch_size
        self.stale_threshold_minutes = stale_threshold_minutes
        self.dispatch_timeout_seconds = dispatch_timeout_seconds

    async def run(self, now: datetime | None = None) -> RouterCycleResult:
        """Run one routing cycle.

        Args:
            now: Current time (for deterministic testing)

        Raises:
            Whatever reclaim_stale or claim_pending raise (e.g. store unreachable)
        """
        result = RouterCycleResult()

        reclaimed = await self.event_store.reclaim_stale(
            stale_threshold_minutes=self.stale_threshold_minutes,
            batch_size=self.reclaim_batch_size,
            now=now,
        )
        result.reclaimed = len(reclaimed)
        if reclaimed:
            logger.info("events_reclaimed", count=len(reclaimed), event_ids=[event.id for event in reclaimed])

        claimed = await self.event_store.claim_pending(batch_size=self.batch_size, now=now)
        result.claimed = len(claimed)

        for event in claimed:
            try:
                await self._process_event(event, result)
            except Exception as exc:
                result.failed += 1
                logger.error(
                    "event_processing_failed",
                    event_id=event.id,
                    trigger_type=event.trigger_type,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )

        if result.reclaimed or result.claimed:
            logger.info(
                "router_cycle_complete",
                reclaimed=result.reclaimed,
                claimed=result.claimed,
                dispatched=result.dispatched,
                completed=result.completed,
                failed=result.failed,
            )
        return result

    async def _process_event(self, event: WorkflowEvent, result: RouterCycleResult) -> None:
        log = logger.bind(event_id=event.id, trigger_type=event.trigger_type, space_id=event.space_id)

        subscriptions = await self.subscription_store.find_active_for_trigger(event.trigger_type, event.space_id)
        if not subscriptions:
            log.debug("event_has_no_subscriptions")
            await self.event_store.mark_completed(event.id)
            result.completed += 1
            return

        for subscription in subscriptions:
            try:
                if await self._dispatch(event, subscription):
                    result.dispatched += 1
            except Exception as exc:
                result.failed += 1
                log.error(
                    "subscription_dispatch_failed",
                    subscription_id=subscription.id,
                    workflow_id=subscription.workflow_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        # Completed even when a dispatch failed; there is no redelivery
        await self.event_store.mark_completed(event.id)
        result.completed += 1

    async def _dispatch(self, event: WorkflowEvent, subscription: Subscription) -> bool:
        """Dispatch one event to one subscription. Returns False when skipped."""
        log = logger.bind(event_id=event.id, subscription_id=subscription.id, workflow_id=subscription.workflow_id)

        if subscription.where and not matches_filter(subscription.where, event.payload):
            log.debug("subscription_filter_not_matched")
            return False

        workflow = await self.workflow_loader.load(subscription.workflow_id, subscription.space_id)
        if workflow is None:
            log.info("subscription_workflow_unavailable")
            return False

        projection = project_and_validate_inputs(
            event.payload,
            workflow.inputs,
            self.trigger_registry.get_trigger(event.trigger_type),
        )
        if projection.validation_failed:
            log.warning("workflow_input_validation_failed", error=projection.error)

        context = ExecutionContext(
            space_id=subscription.space_id,
            triggered_by=event.trigger_type,
            event_id=event.id,
            event=event.payload,
            inputs=projection.inputs,
            input_validation_failed=projection.validation_failed,
            input_validation_error=projection.error,
            credential=await self._resolve_credential(event, subscription.space_id),
        )

        execution = self.execution_engine.execute(workflow, context)
        if self.dispatch_timeout_seconds is not None:
            outcome = await asyncio.wait_for(execution, timeout=self.dispatch_timeout_seconds)
        else:
            outcome = await execution

        log.info("workflow_dispatched", execution_id=outcome.execution_id, status=outcome.status)
        return True

    async def _resolve_credential(self, event: WorkflowEvent, space_id: str) -> IssuedCredential | None:
        """Best effort; a missing credential is logged and dispatch proceeds without one."""
        log = logger.bind(event_id=event.id, principal_id=event.credential_ref.principal_id)

        if not event.credential_ref.api_key_id:
            log.warning("event_credential_missing", reason="no_api_key_id")
            return None
        if not self.credential_vault.available:
            log.warning("event_credential_missing", reason="vault_unavailable")
            return None

        try:
            credential = await self.credential_vault.resolve(event.id, space_id)
        except Exception as exc:
            log.warning("event_credential_resolution_failed", error=str(exc), error_type=type(exc).__name__)
            return None

        if credential is None:
            log.warning("event_credential_missing", reason="not_stored")
        return credential
