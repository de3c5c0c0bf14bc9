"""DocumentIndex — JSON documents in Redis with term indexes and revision checks.

Each document lives at ``{prefix}:{index}:doc:{id}`` as
``{"seq_no": int, "source": {...}}``. ``seq_no`` is bumped on every write and
is the token for optimistic concurrency: a write made with ``if_seq_no``
only lands if the stored revision still matches, otherwise
VersionConflictError is raised. The compare-and-swap itself runs inside a
WATCH/MULTI transaction so concurrent writers from other processes lose
cleanly instead of overwriting each other.

Keyword fields get a Redis set per value (``{prefix}:{index}:term:{field}:{value}``)
so term queries are set intersections. A sorted set scored by the sort field
keeps match-all queries pageable.
"""

import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import WatchError

from workflow_events.core.exceptions import DocumentNotFoundError, VersionConflictError


@dataclass
class DocumentHit:
    """A stored document together with its current revision."""

    id: str
    seq_no: int
    source: dict[str, Any] = field(default_factory=dict)


def _term_value(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _sort_score(value: Any) -> float:
    """Map an ISO timestamp (or number) to a sortable float; missing sorts first."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class DocumentIndex:
    """A named collection of JSON documents stored in Redis."""

    def __init__(
        self,
        redis: Redis,
        name: str,
        *,
        keyword_fields: Iterable[str] = (),
        sort_field: str,
        key_prefix: str = "workflows",
    ):
        self.redis = redis
        self.name = name
        self.keyword_fields = tuple(keyword_fields)
        self.sort_field = sort_field
        self._base = f"{key_prefix}:{name}"

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _doc_key(self, doc_id: str) -> str:
        return f"{self._base}:doc:{doc_id}"

    def _ids_key(self) -> str:
        return f"{self._base}:ids"

    def _term_key(self, field_name: str, value: Any) -> str:
        return f"{self._base}:term:{field_name}:{_term_value(value)}"

    def _decode(self, doc_id: str, raw: str | bytes | None) -> DocumentHit | None:
        if raw is None:
            return None
        data = json.loads(raw)
        return DocumentHit(id=doc_id, seq_no=int(data["seq_no"]), source=data["source"])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _queue_write(self, pipe, doc_id: str, current: DocumentHit | None, source: dict) -> DocumentHit:
        seq_no = (current.seq_no if current else 0) + 1
        pipe.set(self._doc_key(doc_id), json.dumps({"seq_no": seq_no, "source": source}))
        pipe.zadd(self._ids_key(), {doc_id: _sort_score(source.get(self.sort_field))})

        old_source = current.source if current else {}
        for field_name in self.keyword_fields:
            old = old_source.get(field_name)
            new = source.get(field_name)
            if old is not None and (new is None or _term_value(old) != _term_value(new)):
                pipe.srem(self._term_key(field_name, old), doc_id)
            if new is not None:
                pipe.sadd(self._term_key(field_name, new), doc_id)

        return DocumentHit(id=doc_id, seq_no=seq_no, source=source)

    async def _transact(
        self,
        doc_id: str,
        build: Callable[[DocumentHit | None], dict | None],
        if_seq_no: int | None = None,
    ) -> DocumentHit | None:
        """Read-modify-write one document under WATCH.

        ``build`` receives the current hit (or None) and returns the new
        source, or None to delete the document. Unconditional writes retry on
        concurrent modification; conditional writes raise VersionConflictError.
        """
        key = self._doc_key(doc_id)
        while True:
            async with self.redis.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    current = self._decode(doc_id, await pipe.get(key))

                    if if_seq_no is not None:
                        actual = current.seq_no if current else None
                        if actual != if_seq_no:
                            raise VersionConflictError(doc_id, if_seq_no, actual)

                    source = build(current)

                    pipe.multi()
                    if source is None:
                        pipe.delete(key)
                        pipe.zrem(self._ids_key(), doc_id)
                        for field_name in self.keyword_fields:
                            old = current.source.get(field_name) if current else None
                            if old is not None:
                                pipe.srem(self._term_key(field_name, old), doc_id)
                        result = None
                    else:
                        result = self._queue_write(pipe, doc_id, current, source)

                    await pipe.execute()
                    return result
                except WatchError:
                    if if_seq_no is not None:
                        raise VersionConflictError(doc_id, if_seq_no, None) from None
                    continue

    async def index(self, doc_id: str, source: dict[str, Any]) -> DocumentHit:
        """Create or overwrite a document."""
        return await self._transact(doc_id, lambda _current: dict(source))

    async def update(
        self,
        doc_id: str,
        doc: dict[str, Any],
        *,
        remove_fields: Iterable[str] = (),
        if_seq_no: int | None = None,
    ) -> DocumentHit:
        """Merge ``doc`` into an existing document, optionally dropping fields.

        Raises:
            DocumentNotFoundError: If the document does not exist
            VersionConflictError: If ``if_seq_no`` no longer matches
        """
        to_remove = tuple(remove_fields)

        def build(current: DocumentHit | None) -> dict:
            if current is None:
                raise DocumentNotFoundError(self.name, doc_id)
            merged = {**current.source, **doc}
            for field_name in to_remove:
                merged.pop(field_name, None)
            return merged

        return await self._transact(doc_id, build, if_seq_no=if_seq_no)

    async def delete(self, doc_id: str) -> None:
        """Delete a document.

        Raises:
            DocumentNotFoundError: If the document does not exist
        """

        def build(current: DocumentHit | None) -> None:
            if current is None:
                raise DocumentNotFoundError(self.name, doc_id)
            return None

        await self._transact(doc_id, build)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, doc_id: str) -> DocumentHit | None:
        """Point lookup. Returns None when the document does not exist."""
        return self._decode(doc_id, await self.redis.get(self._doc_key(doc_id)))

    async def _mget(self, doc_ids: list[str]) -> list[DocumentHit]:
        if not doc_ids:
            return []
        raws = await self.redis.mget([self._doc_key(doc_id) for doc_id in doc_ids])
        hits = []
        for doc_id, raw in zip(doc_ids, raws):
            hit = self._decode(doc_id, raw)
            if hit is not None:
                hits.append(hit)
        return hits

    async def search(
        self,
        terms: dict[str, Any] | None = None,
        *,
        size: int | None = 100,
        from_: int = 0,
        order: str = "desc",
    ) -> list[DocumentHit]:
        """Term query sorted by the index's sort field.

        Args:
            terms: keyword field -> value, all must match (None = match all)
            size: maximum hits to return (None = unbounded)
            from_: offset for pagination
            order: "asc" or "desc" on the sort field
        """
        descending = order == "desc"

        if not terms:
            stop = -1 if size is None else from_ + size - 1
            doc_ids = await self.redis.zrange(self._ids_key(), from_, stop, desc=descending)
            return await self._mget(list(doc_ids))

        unknown = set(terms) - set(self.keyword_fields)
        if unknown:
            raise ValueError(f"Fields not indexed in {self.name}: {sorted(unknown)}")

        keys = [self._term_key(field_name, value) for field_name, value in terms.items()]
        doc_ids = await self.redis.sinter(keys)
        hits = await self._mget(sorted(doc_ids))
        hits.sort(key=lambda hit: (_sort_score(hit.source.get(self.sort_field)), hit.id), reverse=descending)

        end = None if size is None else from_ + size
        return hits[from_:end]
