"""Composition root: builds the pipeline's collaborators once per process.

Nothing here is a module-level singleton; the FastAPI lifespan builds a
Pipeline and stores it on ``app.state.pipeline``, and tests build their own.
"""

from dataclasses import dataclass

import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workflow_events.core.config import Settings
from workflow_events.credentials.issuer import CredentialIssuer, LocalCredentialIssuer, UnavailableCredentialIssuer
from workflow_events.credentials.vault import CredentialVault, RedisCredentialVault, UnavailableCredentialVault
from workflow_events.events.store import EventStore
from workflow_events.execution.engine import ExecutionEngine
from workflow_events.execution.engine_fake import ExecutionEngineFake
from workflow_events.execution.http_engine import HttpExecutionEngine
from workflow_events.router.scheduler import RouterScheduler
from workflow_events.router.task import EventRouter
from workflow_events.services.emission_service import EventEmissionService
from workflow_events.services.workflow_loader import WorkflowLoader
from workflow_events.subscriptions.store import SubscriptionStore
from workflow_events.triggers.builtin import register_builtin_triggers
from workflow_events.triggers.registry import TriggerRegistry

logger = structlog.get_logger(__name__)


@dataclass
class Pipeline:
    trigger_registry: TriggerRegistry
    event_store: EventStore
    subscription_store: SubscriptionStore
    credential_issuer: CredentialIssuer
    credential_vault: CredentialVault
    emission_service: EventEmissionService
    workflow_loader: WorkflowLoader
    execution_engine: ExecutionEngine
    router: EventRouter
    scheduler: RouterScheduler


def _default_execution_engine(settings: Settings) -> ExecutionEngine:
    if settings.execution_engine_url:
        return HttpExecutionEngine(settings.execution_engine_url, timeout_seconds=settings.execution_engine_timeout_seconds)
    logger.warning("execution_engine_not_configured", fallback="ExecutionEngineFake")
    return ExecutionEngineFake()


def build_pipeline(
    settings: Settings,
    redis: Redis,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    trigger_registry: TriggerRegistry | None = None,
    execution_engine: ExecutionEngine | None = None,
    credential_issuer: CredentialIssuer | None = None,
    credential_vault: CredentialVault | None = None,
) -> Pipeline:
    """Wire every collaborator from settings.

    Any collaborator can be passed in explicitly (tests, embedding). A new
    trigger registry gets the built-in triggers; additional triggers must be
    registered before the pipeline starts serving.
    """
    if trigger_registry is None:
        trigger_registry = TriggerRegistry()
        register_builtin_triggers(trigger_registry)

    if credential_vault is None:
        if settings.credential_encryption_key:
            credential_vault = RedisCredentialVault(
                redis,
                settings.credential_encryption_key,
                key_prefix=settings.key_prefix,
                default_space_id=settings.default_space_id,
            )
        else:
            credential_vault = UnavailableCredentialVault()

    if credential_issuer is None:
        credential_issuer = LocalCredentialIssuer() if credential_vault.available else UnavailableCredentialIssuer()

    if execution_engine is None:
        execution_engine = _default_execution_engine(settings)

    event_store = EventStore(redis, key_prefix=settings.key_prefix)
    subscription_store = SubscriptionStore(
        redis,
        trigger_registry,
        key_prefix=settings.key_prefix,
        page_size=settings.subscription_page_size,
    )
    workflow_loader = WorkflowLoader(session_factory)

    router = EventRouter(
        event_store,
        subscription_store,
        trigger_registry,
        workflow_loader,
        execution_engine,
        credential_vault,
        batch_size=settings.router_batch_size,
        reclaim_batch_size=settings.router_reclaim_batch_size,
        stale_threshold_minutes=settings.router_stale_threshold_minutes,
        dispatch_timeout_seconds=settings.dispatch_timeout_seconds,
    )

    return Pipeline(
        trigger_registry=trigger_registry,
        event_store=event_store,
        subscription_store=subscription_store,
        credential_issuer=credential_issuer,
        credential_vault=credential_vault,
        emission_service=EventEmissionService(trigger_registry, event_store, credential_issuer, credential_vault),
        workflow_loader=workflow_loader,
        execution_engine=execution_engine,
        router=router,
        scheduler=RouterScheduler(router, interval_seconds=settings.router_poll_interval_seconds),
    )
