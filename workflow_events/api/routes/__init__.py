from fastapi import APIRouter

from workflow_events.api.routes import events, health, subscriptions, triggers

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(triggers.router, prefix="/triggers", tags=["triggers"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])
api_router.include_router(subscriptions.workflow_router, prefix="/workflows", tags=["subscriptions"])
