"""EventEmissionService — validates, stamps and persists inbound events."""

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog

from workflow_events.core.exceptions import PayloadValidationError, UnknownTriggerError
from workflow_events.credentials.issuer import CredentialIssuer, IssuedCredential
from workflow_events.credentials.vault import CredentialVault
from workflow_events.events.schemas import CredentialRef, CredentialType, WorkflowEvent, utc_now_iso
from workflow_events.events.store import EventStore
from workflow_events.triggers.registry import TriggerRegistry

logger = structlog.get_logger(__name__)

SYSTEM_PRINCIPAL = "system"


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller emitting an event.

    Attributes:
        space_id: Tenant the event belongs to
        principal_id: Authenticated user/service id, None when unauthenticated
        credential_type: How the principal authenticated
        api_key: The API key the request authenticated with, if any
    """

    space_id: str
    principal_id: str | None = None
    credential_type: CredentialType = CredentialType.USER
    api_key: IssuedCredential | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.principal_id is not None


@dataclass(frozen=True)
class EmitEventResult:
    event_id: str


class EventEmissionService:
    """Accepts events for registered triggers and queues them for routing.

    Emission is acknowledged as soon as the event is persisted as PENDING;
    matching and dispatch happen later in the router. Credential issuance is
    best effort and never blocks emission.
    """

    def __init__(
        self,
        trigger_registry: TriggerRegistry,
        event_store: EventStore,
        credential_issuer: CredentialIssuer,
        credential_vault: CredentialVault,
    ):
        self.trigger_registry = trigger_registry
        self.event_store = event_store
        self.credential_issuer = credential_issuer
        self.credential_vault = credential_vault

    async def emit(
        self,
        trigger_type: str,
        payload: dict,
        request_context: RequestContext,
        now: datetime | None = None,
    ) -> EmitEventResult:
        """Emit an event.

        Args:
            trigger_type: Registered trigger id
            payload: Event payload; must match the trigger's schema
            request_context: Caller identity and space
            now: Current time (for deterministic testing)

        Returns:
            EmitEventResult with the new event id

        Raises:
            UnknownTriggerError: If the trigger is not registered
            PayloadValidationError: If the payload does not match the schema
        """
        trigger = self.trigger_registry.get_trigger(trigger_type)
        if trigger is None:
            raise UnknownTriggerError(trigger_type)

        result = trigger.event_schema.validate(payload)
        if not result.valid:
            raise PayloadValidationError(trigger_type, result.error or "invalid payload")

        event_id = str(uuid.uuid4())
        principal_id = request_context.principal_id or SYSTEM_PRINCIPAL
        credential_type = request_context.credential_type if request_context.is_authenticated else CredentialType.USER

        credential = await self._obtain_credential(event_id, request_context)

        event = WorkflowEvent(
            id=event_id,
            trigger_type=trigger_type,
            payload=payload,
            space_id=request_context.space_id,
            timestamp=utc_now_iso(now),
            credential_ref=CredentialRef(
                type=credential_type,
                principal_id=principal_id,
                api_key_id=credential.id if credential else None,
            ),
        )

        try:
            await self.event_store.persist(event)
        except Exception as exc:
            logger.error(
                "event_persist_failed",
                event_id=event_id,
                trigger_type=trigger_type,
                space_id=request_context.space_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        logger.info(
            "event_emitted",
            event_id=event_id,
            trigger_type=trigger_type,
            space_id=request_context.space_id,
            principal_id=principal_id,
            has_credential=credential is not None,
        )
        return EmitEventResult(event_id=event_id)

    async def _obtain_credential(self, event_id: str, request_context: RequestContext) -> IssuedCredential | None:
        """Reuse or mint an execution credential and store it for the router.

        Returns the credential only once it is stored; any failure is logged
        and yields None.
        """
        if not request_context.is_authenticated or not self.credential_vault.available:
            return None

        try:
            if request_context.api_key is not None and request_context.credential_type == CredentialType.API_KEY:
                credential = request_context.api_key
            elif self.credential_issuer.available:
                credential = await self.credential_issuer.mint_for(
                    request_context.principal_id,
                    name=f"workflow-event-{event_id}",
                )
            else:
                return None

            await self.credential_vault.store(event_id, credential, request_context.space_id)
        except Exception as exc:
            logger.warning(
                "event_credential_unavailable",
                event_id=event_id,
                principal_id=request_context.principal_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        return credential
