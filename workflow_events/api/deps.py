"""Shared FastAPI dependencies."""

from fastapi import Depends, Header, Request

from workflow_events.core.auth import Principal, optional_principal
from workflow_events.core.config import get_settings
from workflow_events.pipeline import Pipeline
from workflow_events.services.emission_service import RequestContext


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def get_space_id(x_space_id: str | None = Header(default=None)) -> str:
    """Space from the X-Space-Id header, falling back to the default space."""
    if x_space_id and x_space_id.strip():
        return x_space_id.strip()
    return get_settings().default_space_id


def get_request_context(
    space_id: str = Depends(get_space_id),
    principal: Principal | None = Depends(optional_principal),
) -> RequestContext:
    if principal is None:
        return RequestContext(space_id=space_id)
    return RequestContext(
        space_id=space_id,
        principal_id=principal.principal_id,
        credential_type=principal.credential_type,
        api_key=principal.api_key,
    )
