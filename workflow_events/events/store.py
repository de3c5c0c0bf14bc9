"""EventStore — durable event log with optimistic claiming and stale reclamation."""

from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from redis.asyncio import Redis

from workflow_events.core.exceptions import VersionConflictError
from workflow_events.db.documents import DocumentHit, DocumentIndex
from workflow_events.events.schemas import EventStatus, WorkflowEvent

logger = structlog.get_logger(__name__)


class EventStore:
    """Persists events and moves them through PENDING -> PROCESSING -> COMPLETED.

    Claiming and reclaiming are both read-with-revision followed by a
    revision-checked write. A revision conflict means another router already
    moved the event, so the event is skipped. There is no lock: several
    router processes may call claim_pending() concurrently and each event is
    won by at most one of them.
    """

    INDEX_NAME = "events"
    KEYWORD_FIELDS = ("status", "trigger_type", "space_id")

    def __init__(self, redis: Redis, key_prefix: str = "workflows"):
        self.redis = redis
        self.index = DocumentIndex(
            redis,
            self.INDEX_NAME,
            keyword_fields=self.KEYWORD_FIELDS,
            sort_field="timestamp",
            key_prefix=key_prefix,
        )

    async def persist(self, event: WorkflowEvent) -> None:
        """Write a new event. The caller guarantees the id is unique."""
        await self.index.index(event.id, event.to_document())

    async def claim_pending(self, batch_size: int = 10, now: datetime | None = None) -> list[WorkflowEvent]:
        """Claim up to batch_size PENDING events, oldest first.

        Args:
            batch_size: Maximum number of events to claim
            now: Current time (for deterministic testing)

        Returns:
            Only the events this caller won. Events claimed concurrently by
            another caller are skipped, not retried.
        """
        hits = await self.index.search({"status": EventStatus.PENDING}, size=batch_size, order="asc")
        if not hits:
            return []

        claimed: list[WorkflowEvent] = []
        for hit in hits:
            started_at = (now or datetime.now(UTC)).isoformat()
            updated = await self._transition(
                hit,
                {"status": EventStatus.PROCESSING.value, "processing_started_at": started_at},
            )
            if updated is not None:
                claimed.append(WorkflowEvent.model_validate(updated.source))

        return claimed

    async def mark_completed(self, event_id: str) -> None:
        """Mark an event COMPLETED. Unconditional and idempotent."""
        await self.index.update(event_id, {"status": EventStatus.COMPLETED.value})

    async def get_by_id(self, event_id: str) -> WorkflowEvent | None:
        """Get an event, or None if it does not exist."""
        hit = await self.index.get(event_id)
        return WorkflowEvent.model_validate(hit.source) if hit else None

    async def search(
        self,
        query: dict[str, Any] | None = None,
        size: int = 100,
        from_: int = 0,
        sort: str = "desc",
    ) -> list[WorkflowEvent]:
        """Search events by keyword terms (status, trigger_type, space_id).

        Args:
            query: Term filters; None matches all events
            size: Maximum number of results
            from_: Offset for pagination
            sort: Timestamp order, "desc" (newest first) or "asc"
        """
        hits = await self.index.search(query, size=size, from_=from_, order=sort)
        return [WorkflowEvent.model_validate(hit.source) for hit in hits]

    async def get_all(self, size: int = 1000) -> list[WorkflowEvent]:
        """Convenience match-all search, newest first."""
        return await self.search(None, size=size)

    async def reclaim_stale(
        self,
        stale_threshold_minutes: int = 5,
        batch_size: int = 10,
        now: datetime | None = None,
    ) -> list[WorkflowEvent]:
        """Reset abandoned PROCESSING events back to PENDING.

        An event is stale when processing_started_at is missing or older than
        now - stale_threshold_minutes. This is how events claimed by a router
        that crashed mid-dispatch get offered again.

        Args:
            stale_threshold_minutes: Age after which a claim is abandoned
            batch_size: Maximum number of events to reclaim
            now: Current time (for deterministic testing)

        Returns:
            The events this caller reset to PENDING
        """
        now = now or datetime.now(UTC)
        threshold = now - timedelta(minutes=stale_threshold_minutes)

        processing = await self.index.search({"status": EventStatus.PROCESSING}, size=None, order="asc")
        stale = [hit for hit in processing if _is_stale(hit, threshold)][:batch_size]
        if not stale:
            return []

        reclaimed: list[WorkflowEvent] = []
        for hit in stale:
            updated = await self._transition(
                hit,
                {"status": EventStatus.PENDING.value},
                remove_fields=("processing_started_at",),
            )
            if updated is not None:
                reclaimed.append(WorkflowEvent.model_validate(updated.source))

        return reclaimed

    async def _transition(
        self,
        hit: DocumentHit,
        doc: dict[str, Any],
        remove_fields: tuple[str, ...] = (),
    ) -> DocumentHit | None:
        """Revision-checked write. Returns None when another process got there first."""
        try:
            return await self.index.update(hit.id, doc, remove_fields=remove_fields, if_seq_no=hit.seq_no)
        except VersionConflictError:
            logger.debug("event_transition_conflict", event_id=hit.id, target_status=doc.get("status"))
            return None


def _is_stale(hit: DocumentHit, threshold: datetime) -> bool:
    started_at = hit.source.get("processing_started_at")
    if not started_at:
        return True
    started = datetime.fromisoformat(started_at)
    if started.tzinfo is None:
        started = started.replace(tzinfo=UTC)
    return started < threshold
