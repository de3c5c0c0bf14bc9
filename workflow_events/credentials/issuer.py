"""Execution credential issuance.

An execution credential is an API key (id + secret) minted for the principal
that emitted an event, so the router can later dispatch workflows on that
principal's behalf. Issuance is an optional capability: when it is not
configured, UnavailableCredentialIssuer stands in and callers check
``available`` instead of threading None through every call site.
"""

import base64
import binascii
import secrets
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IssuedCredential:
    """An API key. ``secret`` must never be logged or persisted in plaintext."""

    id: str
    secret: str

    def __repr__(self) -> str:
        return f"IssuedCredential(id={self.id!r}, secret='***')"


def api_key_authorization(credential: IssuedCredential) -> str:
    """Authorization header value: ``ApiKey base64(id:secret)``."""
    token = base64.b64encode(f"{credential.id}:{credential.secret}".encode("utf-8")).decode("ascii")
    return f"ApiKey {token}"


def parse_api_key_authorization(header: str | None) -> IssuedCredential | None:
    """Inverse of api_key_authorization. Returns None for anything else."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "apikey" or not token.strip():
        return None
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    key_id, sep, secret = decoded.partition(":")
    if not sep or not key_id or not secret:
        return None
    return IssuedCredential(id=key_id, secret=secret)


@runtime_checkable
class CredentialIssuer(Protocol):
    """Mints API keys for principals."""

    @property
    def available(self) -> bool: ...

    async def mint_for(self, principal_id: str, *, name: str | None = None) -> IssuedCredential:
        """Mint a new API key for a principal.

        Args:
            principal_id: The user or service the key acts as
            name: Human-readable key name, e.g. "workflow-event-<event id>"
        """
        ...


class UnavailableCredentialIssuer:
    """Issuance capability not configured."""

    @property
    def available(self) -> bool:
        return False

    async def mint_for(self, principal_id: str, *, name: str | None = None) -> IssuedCredential:
        raise RuntimeError("Credential issuance is not available")


class LocalCredentialIssuer:
    """Mints random API keys in-process.

    Keys are not registered with any external identity provider; whatever
    executes the dispatched workflows must accept keys minted here.
    """

    SECRET_BYTES = 32

    @property
    def available(self) -> bool:
        return True

    async def mint_for(self, principal_id: str, *, name: str | None = None) -> IssuedCredential:
        credential = IssuedCredential(id=str(uuid.uuid4()), secret=secrets.token_urlsafe(self.SECRET_BYTES))
        logger.info("credential_minted", principal_id=principal_id, api_key_id=credential.id, name=name)
        return credential
