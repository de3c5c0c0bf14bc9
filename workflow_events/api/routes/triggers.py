"""Trigger catalog routes."""

from fastapi import APIRouter, Depends, HTTPException

from workflow_events.api.deps import get_pipeline
from workflow_events.events.schemas import CamelModel
from workflow_events.pipeline import Pipeline
from workflow_events.triggers.registry import TriggerDefinition

router = APIRouter()


class TriggerSummary(CamelModel):
    id: str
    description: str
    schema_hash: str


class TriggerDetail(TriggerSummary):
    envelope_field: str | None = None
    paths: list[str] = []


def _summary_fields(definition: TriggerDefinition) -> dict:
    return {
        "id": definition.id,
        "description": definition.description,
        "schema_hash": definition.event_schema.fingerprint(),
    }


@router.get("", response_model=list[TriggerSummary])
async def list_triggers(pipeline: Pipeline = Depends(get_pipeline)):
    """Registered triggers sorted by id. schemaHash changes whenever a payload schema changes."""
    definitions = sorted(pipeline.trigger_registry.list_triggers(), key=lambda definition: definition.id)
    return [TriggerSummary(**_summary_fields(definition)) for definition in definitions]


@router.get("/{trigger_id}", response_model=TriggerDetail)
async def get_trigger(trigger_id: str, pipeline: Pipeline = Depends(get_pipeline)):
    """A trigger with the dotted payload paths usable in where clauses (as ``event.<path>``)."""
    definition = pipeline.trigger_registry.get_trigger(trigger_id)
    if definition is None:
        raise HTTPException(status_code=404, detail="Trigger not found")

    return TriggerDetail(
        **_summary_fields(definition),
        envelope_field=definition.envelope_field,
        paths=definition.event_schema.paths(),
    )
