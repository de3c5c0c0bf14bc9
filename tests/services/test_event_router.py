"""Tests for EventRouter cycles: filtering, dispatch, isolation and completion."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from workflow_events.core.exceptions import FilterEvaluationError
from workflow_events.credentials.issuer import IssuedCredential, LocalCredentialIssuer
from workflow_events.credentials.vault import UnavailableCredentialVault
from workflow_events.events.schemas import CredentialType, EventStatus
from workflow_events.execution.engine_fake import ExecutionEngineFake
from workflow_events.router.task import EventRouter, matches_filter
from workflow_events.services.emission_service import EventEmissionService, RequestContext
from workflow_events.services.workflow_loader import WorkflowLoader
from workflow_events.subscriptions.schemas import CreateSubscriptionParams

pytestmark = pytest.mark.unit


@pytest.fixture
def make_router(event_store, subscription_store, trigger_registry, session_factory, credential_vault):
    def _make(engine=None, **kwargs) -> EventRouter:
        return EventRouter(
            event_store,
            subscription_store,
            trigger_registry,
            WorkflowLoader(session_factory),
            engine or ExecutionEngineFake(),
            kwargs.pop("credential_vault", credential_vault),
            **kwargs,
        )

    return _make


@pytest.fixture
def subscribe(subscription_store):
    async def _subscribe(workflow_id="wf-1", trigger_type="demo.event", space_id="s1", where=None):
        return await subscription_store.create(
            CreateSubscriptionParams(workflow_id=workflow_id, trigger_type=trigger_type, space_id=space_id, where=where)
        )

    return _subscribe


# ============================================================================
# matches_filter
# ============================================================================


def test_matches_filter_without_clause():
    assert matches_filter(None, {"a": "x"}) is True
    assert matches_filter("", {"a": "x"}) is True


def test_matches_filter_kql():
    assert matches_filter('event.a:"x"', {"a": "x"}) is True
    assert matches_filter('event.a:"y"', {"a": "x"}) is False


def test_matches_filter_template_bool():
    assert matches_filter('{{ event.a == "x" }}', {"a": "x"}) is True
    assert matches_filter('{{ event.a == "y" }}', {"a": "x"}) is False


def test_matches_filter_template_rendering_kql():
    assert matches_filter('event.a:"{{ "x" }}"', {"a": "x"}) is True


def test_matches_filter_unsupported_render_type():
    with pytest.raises(FilterEvaluationError):
        matches_filter("{{ 42 }}", {"a": "x"})


# ============================================================================
# End to end
# ============================================================================


async def test_emit_subscribe_route(
    trigger_registry, event_store, credential_vault, subscribe, add_workflow, make_router, engine_fake
):
    """An emitted event reaches its subscribed workflow exactly once."""
    service = EventEmissionService(trigger_registry, event_store, LocalCredentialIssuer(), credential_vault)
    await add_workflow("wf-1", inputs=[{"name": "a", "type": "string", "required": True}])
    await subscribe(where='event.a:"x"')
    context = RequestContext(space_id="s1", principal_id="user-1", credential_type=CredentialType.USER)
    emitted = await service.emit("demo.event", {"a": "x"}, context)

    result = await make_router(engine_fake).run()

    assert result.claimed == 1
    assert result.dispatched == 1
    assert result.completed == 1
    assert result.failed == 0
    assert engine_fake.dispatched_workflow_ids == ["wf-1"]

    workflow, exec_context = engine_fake.calls[0]
    assert workflow.name == "Workflow wf-1"
    assert exec_context.inputs == {"a": "x"}
    assert exec_context.event_id == emitted.event_id
    assert exec_context.triggered_by == "demo.event"
    assert exec_context.source == "event-router"
    assert exec_context.input_validation_failed is False
    assert exec_context.credential == await credential_vault.resolve(emitted.event_id, "s1")

    assert (await event_store.get_by_id(emitted.event_id)).status == EventStatus.COMPLETED


async def test_second_cycle_does_not_redispatch(event_store, make_event, subscribe, add_workflow, make_router, engine_fake):
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1"))
    router = make_router(engine_fake)

    await router.run()
    second = await router.run()

    assert second.claimed == 0
    assert len(engine_fake.calls) == 1


async def test_envelope_trigger_projects_inner_payload(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    await add_workflow("wf-1", inputs=[{"name": "repo"}, {"name": "branch", "default": "main"}])
    await subscribe(trigger_type="external.event", where='event.source:"github"')
    payload = {"source": "github", "type": "push", "payload": {"repo": "core", "sha": "abc"}}
    await event_store.persist(make_event("e1", trigger_type="external.event", payload=payload))

    await make_router(engine_fake).run()

    _, exec_context = engine_fake.calls[0]
    assert exec_context.inputs == {"repo": "core", "branch": "main"}
    assert exec_context.event == payload


# ============================================================================
# Skips
# ============================================================================


async def test_filter_mismatch_skips_but_completes(event_store, make_event, subscribe, add_workflow, make_router, engine_fake):
    await add_workflow("wf-1")
    await subscribe(where='event.a:"y"')
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert engine_fake.calls == []
    assert result.dispatched == 0
    assert result.failed == 0
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_no_subscriptions_completes_immediately(event_store, make_event, make_router, engine_fake):
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert result.completed == 1
    assert engine_fake.calls == []
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_subscription_in_other_space_is_ignored(event_store, make_event, subscribe, add_workflow, make_router, engine_fake):
    await add_workflow("wf-1", space_id="s2")
    await subscribe(space_id="s2")
    await event_store.persist(make_event("e1", space_id="s1"))

    await make_router(engine_fake).run()
    assert engine_fake.calls == []


@pytest.mark.parametrize(
    "workflow_kwargs",
    [{"enabled": False}, {"valid": False}, {"with_definition": False}, {"deleted": True}],
)
async def test_unavailable_workflow_is_skipped(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake, workflow_kwargs
):
    await add_workflow("wf-1", **workflow_kwargs)
    await subscribe()
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert engine_fake.calls == []
    assert result.failed == 0
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_missing_workflow_is_skipped(event_store, make_event, subscribe, make_router, engine_fake):
    await subscribe(workflow_id="wf-gone")
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()
    assert engine_fake.calls == []
    assert result.completed == 1


# ============================================================================
# Input validation
# ============================================================================


async def test_missing_required_input_still_dispatches_flagged(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    await add_workflow("wf-1", inputs=[{"name": "b", "required": True}])
    await subscribe()
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert result.dispatched == 1
    _, exec_context = engine_fake.calls[0]
    assert exec_context.input_validation_failed is True
    assert exec_context.input_validation_error == "Missing required inputs: b"
    assert exec_context.inputs == {"a": "x", "b": None}


async def test_wrongly_typed_input_dispatches_flagged(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    await add_workflow("wf-1", inputs=[{"name": "a", "type": "boolean"}])
    await subscribe()
    await event_store.persist(make_event("e1", payload={"a": "yes"}))

    await make_router(engine_fake).run()

    _, exec_context = engine_fake.calls[0]
    assert exec_context.input_validation_failed is True
    assert exec_context.input_validation_error.startswith("Invalid inputs: a:")


async def test_workflow_with_unrecognized_input_type_is_dispatched(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    await add_workflow("wf-1", inputs=[{"name": "a", "type": "date"}])
    await subscribe()
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert result.dispatched == 1
    assert result.failed == 0
    assert engine_fake.calls[0][1].input_validation_failed is False


# ============================================================================
# Isolation
# ============================================================================


async def test_failing_subscription_does_not_block_siblings(
    event_store, make_event, subscribe, add_workflow, make_router
):
    engine = ExecutionEngineFake(failing_workflow_ids={"wf-bad"})
    await add_workflow("wf-bad")
    await add_workflow("wf-good")
    await subscribe(workflow_id="wf-bad")
    await subscribe(workflow_id="wf-good")
    await event_store.persist(make_event("e1"))

    result = await make_router(engine).run()

    assert sorted(engine.dispatched_workflow_ids) == ["wf-bad", "wf-good"]
    assert result.dispatched == 1
    assert result.failed == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_filter_evaluation_error_is_contained(event_store, make_event, subscription_store, add_workflow, make_router, engine_fake):
    await add_workflow("wf-1")
    await add_workflow("wf-2")
    bad = await subscription_store.create(
        CreateSubscriptionParams(workflow_id="wf-1", trigger_type="demo.event", space_id="s1")
    )
    # Bypass create-time validation to store a clause that renders to a number
    await subscription_store.index.update(bad.id, {"where": "{{ 42 }}"})
    await subscription_store.create(CreateSubscriptionParams(workflow_id="wf-2", trigger_type="demo.event", space_id="s1"))
    await event_store.persist(make_event("e1"))

    result = await make_router(engine_fake).run()

    assert engine_fake.dispatched_workflow_ids == ["wf-2"]
    assert result.failed == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_engine_down_marks_event_completed(event_store, make_event, subscribe, add_workflow, make_router):
    engine = ExecutionEngineFake(scenario="engine_down")
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1"))

    result = await make_router(engine).run()

    assert result.failed == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_failing_event_does_not_block_batch(event_store, make_event, subscription_store, make_router, engine_fake, now):
    await event_store.persist(make_event("e1", timestamp=now))
    await event_store.persist(make_event("e2", timestamp=now + timedelta(seconds=1)))
    router = make_router(engine_fake)
    original = subscription_store.find_active_for_trigger
    calls = 0

    async def flaky(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionError("search failed")
        return await original(*args, **kwargs)

    router.subscription_store = AsyncMock(find_active_for_trigger=flaky)

    result = await router.run()

    assert result.claimed == 2
    assert result.failed == 1
    assert result.completed == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.PROCESSING
    assert (await event_store.get_by_id("e2")).status == EventStatus.COMPLETED


async def test_dispatch_timeout_counts_as_failure(event_store, make_event, subscribe, add_workflow, make_router):
    engine = ExecutionEngineFake(scenario="hanging")
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1"))

    result = await asyncio.wait_for(make_router(engine, dispatch_timeout_seconds=0.05).run(), timeout=5)

    assert result.failed == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


async def test_claim_failure_propagates(make_router, event_store, monkeypatch):
    async def broken_claim(*args, **kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(event_store, "claim_pending", broken_claim)

    with pytest.raises(ConnectionError):
        await make_router().run()


async def test_reclaim_failure_propagates(make_router, event_store, monkeypatch):
    async def broken_reclaim(*args, **kwargs):
        raise ConnectionError("redis down")

    monkeypatch.setattr(event_store, "reclaim_stale", broken_reclaim)

    with pytest.raises(ConnectionError):
        await make_router().run()


async def test_stale_event_is_reclaimed_and_routed(event_store, make_event, subscribe, add_workflow, make_router, engine_fake, now):
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1"))
    await event_store.claim_pending(now=now)

    result = await make_router(engine_fake).run(now=now + timedelta(minutes=10))

    assert result.reclaimed == 1
    assert result.dispatched == 1
    assert (await event_store.get_by_id("e1")).status == EventStatus.COMPLETED


# ============================================================================
# Credentials
# ============================================================================


async def test_stored_credential_is_forwarded(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake, credential_vault
):
    credential = IssuedCredential(id="key-1", secret="s3cret")
    await credential_vault.store("e1", credential, "s1")
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1", api_key_id="key-1"))

    await make_router(engine_fake).run()

    _, exec_context = engine_fake.calls[0]
    assert exec_context.credential == credential
    assert "credential" not in exec_context.model_dump()


@pytest.mark.parametrize("api_key_id", [None, "key-1"])
async def test_dispatch_proceeds_without_credential(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake, api_key_id
):
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1", api_key_id=api_key_id))

    await make_router(engine_fake).run()

    _, exec_context = engine_fake.calls[0]
    assert exec_context.credential is None


async def test_unavailable_vault_dispatches_without_credential(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1", api_key_id="key-1"))

    await make_router(engine_fake, credential_vault=UnavailableCredentialVault()).run()

    assert engine_fake.calls[0][1].credential is None


async def test_vault_error_dispatches_without_credential(
    event_store, make_event, subscribe, add_workflow, make_router, engine_fake
):
    vault = AsyncMock()
    vault.available = True
    vault.resolve.side_effect = RuntimeError("decrypt failed")
    await add_workflow("wf-1")
    await subscribe()
    await event_store.persist(make_event("e1", api_key_id="key-1"))

    result = await make_router(engine_fake, credential_vault=vault).run()

    assert result.dispatched == 1
    assert engine_fake.calls[0][1].credential is None
