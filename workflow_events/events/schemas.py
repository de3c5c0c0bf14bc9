"""Event document schemas."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EventStatus(str, Enum):
    """Event lifecycle states.

    PENDING -> PROCESSING -> COMPLETED, plus PROCESSING -> PENDING when a
    stale claim is reclaimed.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"


class CredentialType(str, Enum):
    USER = "user"
    API_KEY = "api_key"
    SERVICE = "service"


class CamelModel(BaseModel):
    """Stored with snake_case names, serialized over HTTP as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CredentialRef(CamelModel):
    """Who emitted the event, and which stored execution credential belongs to it."""

    type: CredentialType
    principal_id: str
    api_key_id: str | None = None  # id only; the secret lives in the credential vault


class WorkflowEvent(CamelModel):
    """An inbound event awaiting routing to subscribed workflows."""

    id: str
    trigger_type: str
    payload: dict[str, Any]
    space_id: str
    timestamp: str  # ISO 8601
    credential_ref: CredentialRef
    status: EventStatus = EventStatus.PENDING
    processing_started_at: str | None = None  # ISO 8601, set when claimed

    def to_document(self) -> dict[str, Any]:
        """Storage form; absent optionals are omitted rather than stored as null."""
        document = self.model_dump(mode="json")
        if document["processing_started_at"] is None:
            del document["processing_started_at"]
        if document["credential_ref"]["api_key_id"] is None:
            del document["credential_ref"]["api_key_id"]
        return document


def utc_now_iso(now: datetime | None = None) -> str:
    return (now or datetime.now(UTC)).isoformat()
