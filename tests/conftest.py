"""Shared test fixtures for all test groups."""

from datetime import UTC, datetime
from typing import Any

import pytest
from cryptography.fernet import Fernet
from fakeredis import FakeAsyncRedis
from pydantic import BaseModel, RootModel

from workflow_events.credentials.vault import RedisCredentialVault
from workflow_events.db.base import build_engine, build_session_factory, create_tables
from workflow_events.db.models.workflow import Workflow
from workflow_events.events.schemas import CredentialRef, CredentialType, WorkflowEvent
from workflow_events.events.store import EventStore
from workflow_events.execution.engine_fake import ExecutionEngineFake
from workflow_events.subscriptions.store import SubscriptionStore
from workflow_events.triggers.builtin import register_builtin_triggers
from workflow_events.triggers.registry import TriggerDefinition, TriggerRegistry
from workflow_events.triggers.schema import EventSchema

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)


class DemoPayload(BaseModel):
    a: str


@pytest.fixture
async def redis():
    """Create a fake Redis instance for testing."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def trigger_registry() -> TriggerRegistry:
    """Registry with the built-in triggers, demo.event ({a: string}) and open.event (any object)."""
    registry = TriggerRegistry()
    register_builtin_triggers(registry)
    registry.register_trigger(
        TriggerDefinition(
            id="demo.event",
            description="Demo trigger used in tests",
            event_schema=EventSchema(DemoPayload),
        )
    )
    registry.register_trigger(
        TriggerDefinition(
            id="open.event",
            description="Trigger accepting any object payload",
            event_schema=EventSchema(RootModel[dict[str, Any]]),
        )
    )
    return registry


@pytest.fixture
def event_store(redis) -> EventStore:
    return EventStore(redis, key_prefix="test")


@pytest.fixture
def subscription_store(redis, trigger_registry) -> SubscriptionStore:
    return SubscriptionStore(redis, trigger_registry, key_prefix="test")


@pytest.fixture
def credential_vault(redis) -> RedisCredentialVault:
    return RedisCredentialVault(redis, Fernet.generate_key(), key_prefix="test")


@pytest.fixture
def engine_fake() -> ExecutionEngineFake:
    """Fresh ExecutionEngineFake with happy_path scenario (default)."""
    return ExecutionEngineFake(scenario="happy_path")


@pytest.fixture
async def session_factory(tmp_path):
    """SQLite-backed session factory with the workflow table created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'workflows.db'}")
    await create_tables(engine)

    yield build_session_factory(engine)

    await engine.dispose()


@pytest.fixture
def add_workflow(session_factory):
    """Insert a workflow row; returns the row's id."""

    async def _add(
        workflow_id: str = "wf-1",
        space_id: str = "s1",
        *,
        inputs: list[dict] | None = None,
        enabled: bool = True,
        valid: bool = True,
        with_definition: bool = True,
        deleted: bool = False,
    ) -> str:
        async with session_factory() as session:
            session.add(
                Workflow(
                    id=workflow_id,
                    space_id=space_id,
                    name=f"Workflow {workflow_id}",
                    enabled=enabled,
                    valid=valid,
                    definition={"inputs": inputs or [], "steps": [{"name": "noop"}]} if with_definition else None,
                    yaml="name: test",
                    deleted_at=NOW if deleted else None,
                )
            )
            await session.commit()
        return workflow_id

    return _add


def _make_event(
    event_id: str = "evt-1",
    *,
    trigger_type: str = "demo.event",
    payload: dict | None = None,
    space_id: str = "s1",
    timestamp: datetime = NOW,
    api_key_id: str | None = None,
) -> WorkflowEvent:
    return WorkflowEvent(
        id=event_id,
        trigger_type=trigger_type,
        payload=payload if payload is not None else {"a": "x"},
        space_id=space_id,
        timestamp=timestamp.isoformat(),
        credential_ref=CredentialRef(type=CredentialType.USER, principal_id="user-1", api_key_id=api_key_id),
    )


@pytest.fixture
def make_event():
    """Factory for WorkflowEvent instances (demo.event in space s1 by default)."""
    return _make_event


@pytest.fixture
def now() -> datetime:
    return NOW
