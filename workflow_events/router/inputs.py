"""Projection of an event payload onto a workflow's declared inputs."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import ConfigDict, Field, ValidationError, create_model

from workflow_events.execution.engine import WorkflowInput
from workflow_events.triggers.registry import TriggerDefinition
from workflow_events.triggers.schema import format_validation_error

_PYTHON_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


@dataclass(frozen=True)
class InputProjection:
    """Inputs for one dispatch.

    ``validation_failed`` does not block dispatch; it is forwarded so the
    execution fails visibly.
    """

    inputs: dict[str, Any] = field(default_factory=dict)
    validation_failed: bool = False
    error: str | None = None


def _annotation(declared: WorkflowInput) -> Any:
    if declared.type == "choice":
        return Literal[tuple(declared.options)] if declared.options else Any
    return _PYTHON_TYPES.get(declared.type, Any)


def _type_errors(values: dict[str, Any], declared_inputs: list[WorkflowInput]) -> str | None:
    fields = {
        f"input_{index}": (_annotation(declared), Field(alias=declared.name))
        for index, declared in enumerate(declared_inputs)
        if values.get(declared.name) is not None
    }
    if not fields:
        return None
    # Strict: "10" is not a number and 0 is not a boolean
    model = create_model("WorkflowInputs", __config__=ConfigDict(strict=True), **fields)
    try:
        model.model_validate(values)
    except ValidationError as exc:
        return format_validation_error(exc)
    return None


def project_and_validate_inputs(
    payload: dict[str, Any],
    declared_inputs: list[WorkflowInput],
    trigger: TriggerDefinition | None,
) -> InputProjection:
    """Build workflow inputs from an event payload.

    Envelope triggers (e.g. external.event) carry the useful data in an inner
    field; only the declared inputs are taken from it. Other triggers pass the
    whole payload through. In both cases declared defaults fill gaps, and a
    required input that is still missing is set to None and reported.
    Non-required missing inputs are omitted.
    """
    envelope_field = trigger.envelope_field if trigger else None
    if envelope_field:
        inner = payload.get(envelope_field)
        source = inner if isinstance(inner, dict) else {}
        inputs: dict[str, Any] = {}
    else:
        source = payload
        inputs = dict(payload)

    missing: list[str] = []
    for declared in declared_inputs:
        if declared.name in source and source[declared.name] is not None:
            inputs[declared.name] = source[declared.name]
        elif declared.default is not None:
            inputs[declared.name] = declared.default
        elif declared.required:
            inputs[declared.name] = None
            missing.append(declared.name)

    errors = []
    if missing:
        errors.append(f"Missing required inputs: {', '.join(missing)}")
    type_error = _type_errors(inputs, declared_inputs)
    if type_error:
        errors.append(f"Invalid inputs: {type_error}")

    if errors:
        return InputProjection(inputs=inputs, validation_failed=True, error="; ".join(errors))
    return InputProjection(inputs=inputs)
