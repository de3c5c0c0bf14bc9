"""API-specific test fixtures."""

import httpx
import pytest

from workflow_events.core.config import Settings
from workflow_events.pipeline import build_pipeline


@pytest.fixture
def pipeline(redis, session_factory, trigger_registry, engine_fake, credential_vault):
    """Pipeline sharing the test fixtures' Redis, database and key prefix."""
    return build_pipeline(
        Settings(key_prefix="test"),
        redis,
        session_factory,
        trigger_registry=trigger_registry,
        execution_engine=engine_fake,
        credential_vault=credential_vault,
    )


@pytest.fixture
def app(pipeline):
    """Application with the test pipeline installed.

    The lifespan does not run under ASGITransport, so the pipeline is set
    here directly.
    """
    from workflow_events.main import create_app

    application = create_app()
    application.state.pipeline = pipeline
    return application


@pytest.fixture
async def client(app):
    """In-process async client; requests run on the test's event loop."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Space-Id": "s1"},
    ) as async_client:
        yield async_client
