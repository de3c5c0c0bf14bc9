"""Caller identity for FastAPI routes.

Two Authorization schemes are understood:
- ``Bearer <jwt>``: HS256 token signed with ``auth_jwt_secret``; ``sub`` is
  the principal, an optional ``principal_type`` claim selects user/service
- ``ApiKey base64(id:secret)``: the key id is the principal; the key is
  verified by the gateway in front of this service

A request without an Authorization header is anonymous. A malformed or
invalid header is rejected with 401.
"""

from dataclasses import dataclass, field

import jwt as pyjwt
from fastapi import HTTPException, Request

from workflow_events.core.config import get_settings
from workflow_events.credentials.issuer import IssuedCredential, parse_api_key_authorization
from workflow_events.events.schemas import CredentialType


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""

    principal_id: str
    credential_type: CredentialType
    api_key: IssuedCredential | None = None
    claims: dict = field(default_factory=dict)


def decode_jwt(token: str) -> Principal:
    """Verify and decode a bearer JWT.

    Raises ``HTTPException(401)`` on any validation failure.
    """
    settings = get_settings()
    if not settings.auth_jwt_secret:
        raise HTTPException(status_code=401, detail="Bearer authentication is not configured")

    try:
        payload = pyjwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=settings.auth_jwt_algorithms,
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except pyjwt.MissingRequiredClaimError as exc:
        raise HTTPException(status_code=401, detail=f"Missing required claim: {exc}")
    except pyjwt.InvalidTokenError as exc:
        raise HTTPException(status_code=401, detail=f"Invalid token: {exc}")

    credential_type = CredentialType.SERVICE if payload.get("principal_type") == "service" else CredentialType.USER
    return Principal(principal_id=payload["sub"], credential_type=credential_type, claims=payload)


def resolve_principal(authorization: str | None) -> Principal | None:
    """Principal from an Authorization header value, None when absent."""
    if not authorization or not authorization.strip():
        return None

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return decode_jwt(token.strip())

    if scheme.lower() == "apikey":
        api_key = parse_api_key_authorization(authorization.strip())
        if api_key is None:
            raise HTTPException(status_code=401, detail="Malformed API key")
        return Principal(principal_id=api_key.id, credential_type=CredentialType.API_KEY, api_key=api_key)

    raise HTTPException(status_code=401, detail="Unsupported authorization scheme")


async def optional_principal(request: Request) -> Principal | None:
    """FastAPI dependency: the caller's principal, or None when anonymous.

    Sets ``request.state.user_id`` for error handlers.
    """
    principal = resolve_principal(request.headers.get("Authorization"))
    if principal is not None:
        request.state.user_id = principal.principal_id
    return principal
