"""SubscriptionStore — trigger-to-workflow bindings with where-clause validation."""

import asyncio
import uuid
from datetime import datetime

import structlog
from redis.asyncio import Redis

from workflow_events.core.exceptions import (
    DocumentNotFoundError,
    FilterValidationError,
    SubscriptionNotFoundError,
    UnknownTriggerError,
)
from workflow_events.db.documents import DocumentIndex
from workflow_events.events.schemas import utc_now_iso
from workflow_events.filters.where_clause import validate_where_clause
from workflow_events.subscriptions.schemas import CreateSubscriptionParams, Subscription, SubscriptionUpdate
from workflow_events.triggers.registry import TriggerRegistry

logger = structlog.get_logger(__name__)


class SubscriptionStore:
    """Manages event subscriptions.

    Writes are validated against the trigger registry: the trigger must be
    registered, and a where clause may only reference properties declared by
    the trigger's event schema.
    """

    INDEX_NAME = "subscriptions"
    KEYWORD_FIELDS = ("workflow_id", "trigger_type", "space_id", "enabled")

    def __init__(
        self,
        redis: Redis,
        trigger_registry: TriggerRegistry,
        key_prefix: str = "workflows",
        page_size: int = 1000,
    ):
        self.redis = redis
        self.trigger_registry = trigger_registry
        self.page_size = page_size
        self.index = DocumentIndex(
            redis,
            self.INDEX_NAME,
            keyword_fields=self.KEYWORD_FIELDS,
            sort_field="created_at",
            key_prefix=key_prefix,
        )

    def validate(self, trigger_type: str, where: str | None) -> None:
        """Validate a trigger type / where clause pair.

        Raises:
            UnknownTriggerError: If the trigger is not registered
            FilterValidationError: If the where clause is malformed, or references
                properties missing from the trigger schema
        """
        trigger = self.trigger_registry.get_trigger(trigger_type)
        if trigger is None:
            raise UnknownTriggerError(trigger_type)

        if not where or not where.strip():
            return

        result = validate_where_clause(where, trigger.event_schema)
        if not result.is_valid:
            raise FilterValidationError(result.error or "Invalid where clause", result.invalid_paths)

    async def create(self, params: CreateSubscriptionParams, now: datetime | None = None) -> Subscription:
        """Create an enabled subscription.

        Raises:
            UnknownTriggerError: If the trigger is not registered
            FilterValidationError: If the where clause is invalid
        """
        self.validate(params.trigger_type, params.where)

        timestamp = utc_now_iso(now)
        subscription = Subscription(
            id=str(uuid.uuid4()),
            workflow_id=params.workflow_id,
            trigger_type=params.trigger_type,
            space_id=params.space_id,
            where=params.where,
            enabled=True,
            created_at=timestamp,
            updated_at=timestamp,
            created_by=params.created_by,
        )
        await self.index.index(subscription.id, subscription.model_dump(mode="json"))

        logger.info(
            "subscription_created",
            subscription_id=subscription.id,
            workflow_id=subscription.workflow_id,
            trigger_type=subscription.trigger_type,
            space_id=subscription.space_id,
        )
        return subscription

    async def find_active_for_trigger(self, trigger_type: str, space_id: str) -> list[Subscription]:
        """Enabled subscriptions for a trigger type in a space.

        Bounded by page_size; there is no pagination beyond the first page.
        """
        hits = await self.index.search(
            {"trigger_type": trigger_type, "space_id": space_id, "enabled": True},
            size=self.page_size,
            order="asc",
        )
        return [Subscription.model_validate(hit.source) for hit in hits]

    async def get_by_id(self, subscription_id: str) -> Subscription | None:
        hit = await self.index.get(subscription_id)
        return Subscription.model_validate(hit.source) if hit else None

    async def find_by_workflow(self, workflow_id: str, space_id: str) -> list[Subscription]:
        hits = await self.index.search(
            {"workflow_id": workflow_id, "space_id": space_id},
            size=self.page_size,
            order="asc",
        )
        return [Subscription.model_validate(hit.source) for hit in hits]

    async def find_existing(self, workflow_id: str, trigger_type: str, space_id: str) -> Subscription | None:
        """Existing subscription for the same workflow/trigger/space, if any."""
        hits = await self.index.search(
            {"workflow_id": workflow_id, "trigger_type": trigger_type, "space_id": space_id},
            size=1,
            order="asc",
        )
        return Subscription.model_validate(hits[0].source) if hits else None

    async def update(
        self,
        subscription_id: str,
        changes: SubscriptionUpdate,
        now: datetime | None = None,
    ) -> Subscription:
        """Apply a partial update.

        The where clause is re-validated when either it or the trigger type changes.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
            UnknownTriggerError / FilterValidationError: If the new combination is invalid
        """
        existing = await self.get_by_id(subscription_id)
        if existing is None:
            raise SubscriptionNotFoundError(subscription_id)

        updates = changes.model_dump(exclude_unset=True)
        if "trigger_type" in updates and updates["trigger_type"] is None:
            del updates["trigger_type"]
        if "enabled" in updates and updates["enabled"] is None:
            del updates["enabled"]

        if "where" in updates or "trigger_type" in updates:
            self.validate(
                updates.get("trigger_type", existing.trigger_type),
                updates.get("where", existing.where),
            )

        remove_fields = ()
        if "where" in updates and updates["where"] is None:
            del updates["where"]
            remove_fields = ("where",)

        updates["updated_at"] = utc_now_iso(now)
        try:
            hit = await self.index.update(subscription_id, updates, remove_fields=remove_fields)
        except DocumentNotFoundError:
            raise SubscriptionNotFoundError(subscription_id) from None

        logger.info("subscription_updated", subscription_id=subscription_id, fields=sorted(updates))
        return Subscription.model_validate(hit.source)

    async def delete(self, subscription_id: str) -> None:
        """Delete a subscription.

        Raises:
            SubscriptionNotFoundError: If the subscription does not exist
        """
        try:
            await self.index.delete(subscription_id)
        except DocumentNotFoundError:
            raise SubscriptionNotFoundError(subscription_id) from None
        logger.info("subscription_deleted", subscription_id=subscription_id)

    async def delete_all_for_workflow(self, workflow_id: str, space_id: str) -> int:
        """Delete every subscription of a workflow.

        Deletes run concurrently and independently; if one fails the others
        still go through and the first error is raised. Not transactional.

        Returns:
            Number of subscriptions found for deletion
        """
        subscriptions = await self.find_by_workflow(workflow_id, space_id)
        if subscriptions:
            await asyncio.gather(*(self.delete(subscription.id) for subscription in subscriptions))
        return len(subscriptions)
