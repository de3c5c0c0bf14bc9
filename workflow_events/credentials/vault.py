"""Encrypted storage for per-event execution credentials.

The event document only carries the API key id. The secret is stored here,
encrypted, keyed by event id and namespaced by space, and is decrypted by
the router right before dispatch.
"""

import json
from typing import Protocol, runtime_checkable

import structlog
from cryptography.fernet import Fernet, InvalidToken
from redis.asyncio import Redis

from workflow_events.core.exceptions import CredentialResolutionError
from workflow_events.credentials.issuer import IssuedCredential

logger = structlog.get_logger(__name__)

# Stored credentials expire after a week; events older than that dispatch unauthenticated
_CREDENTIAL_TTL = 7 * 86_400  # seconds


@runtime_checkable
class CredentialVault(Protocol):
    """Stores and resolves execution credentials by event id."""

    @property
    def available(self) -> bool: ...

    async def store(self, event_id: str, credential: IssuedCredential, space_id: str) -> None: ...

    async def resolve(self, event_id: str, space_id: str) -> IssuedCredential | None:
        """Return the decrypted credential, or None if nothing is stored.

        Raises:
            CredentialResolutionError: If a stored credential cannot be decrypted
        """
        ...


class UnavailableCredentialVault:
    """Encrypted storage not configured."""

    @property
    def available(self) -> bool:
        return False

    async def store(self, event_id: str, credential: IssuedCredential, space_id: str) -> None:
        raise RuntimeError("Credential vault is not available")

    async def resolve(self, event_id: str, space_id: str) -> IssuedCredential | None:
        return None


class RedisCredentialVault:
    """Fernet-encrypted credentials in Redis.

    Key: ``{prefix}:event_api_keys:{namespace}:{event_id}``, where namespace is
    the space id (the default space has no namespace of its own).
    """

    def __init__(
        self,
        redis: Redis,
        encryption_key: str | bytes,
        key_prefix: str = "workflows",
        default_space_id: str = "default",
        ttl_seconds: int = _CREDENTIAL_TTL,
    ):
        self.redis = redis
        self._fernet = Fernet(encryption_key)
        self._key_prefix = key_prefix
        self._default_space_id = default_space_id
        self._ttl_seconds = ttl_seconds

    @property
    def available(self) -> bool:
        return True

    def _key(self, event_id: str, space_id: str) -> str:
        namespace = "_" if space_id == self._default_space_id else space_id
        return f"{self._key_prefix}:event_api_keys:{namespace}:{event_id}"

    async def store(self, event_id: str, credential: IssuedCredential, space_id: str) -> None:
        encrypted = self._fernet.encrypt(credential.secret.encode("utf-8")).decode("ascii")
        record = {"api_key_id": credential.id, "encrypted_secret": encrypted}
        await self.redis.set(self._key(event_id, space_id), json.dumps(record), ex=self._ttl_seconds)
        logger.debug("credential_stored", event_id=event_id, api_key_id=credential.id, space_id=space_id)

    async def resolve(self, event_id: str, space_id: str) -> IssuedCredential | None:
        raw = await self.redis.get(self._key(event_id, space_id))
        if raw is None:
            return None

        record = json.loads(raw)
        try:
            secret = self._fernet.decrypt(record["encrypted_secret"].encode("ascii")).decode("utf-8")
        except (InvalidToken, KeyError) as exc:
            raise CredentialResolutionError(f"Stored credential for event {event_id} cannot be decrypted") from exc

        return IssuedCredential(id=record["api_key_id"], secret=secret)
