"""Validation of subscription where clauses against a trigger's event schema."""

from dataclasses import dataclass, field

from workflow_events.core.exceptions import KqlSyntaxError
from workflow_events.filters.kql import extract_property_paths
from workflow_events.triggers.schema import EventSchema

EVENT_PREFIX = "event."


@dataclass(frozen=True)
class WhereClauseValidation:
    is_valid: bool
    error: str | None = None
    invalid_paths: list[str] = field(default_factory=list)


def validate_where_clause(where_clause: str | None, event_schema: EventSchema) -> WhereClauseValidation:
    """Check that a KQL where clause parses and only references schema properties.

    Clauses address the payload as ``event.<path>`` while the schema describes
    the bare payload, so the prefix is stripped before lookup. Paths that
    contain template placeholders are resolved at evaluation time and are not
    checked here. Invalid paths are reported as written.
    """
    if not where_clause or not where_clause.strip():
        return WhereClauseValidation(is_valid=True)

    try:
        property_paths = extract_property_paths(where_clause)
    except KqlSyntaxError as exc:
        return WhereClauseValidation(is_valid=False, error=f"Invalid KQL syntax: {exc}")

    invalid_paths = []
    for path in property_paths:
        schema_path = path[len(EVENT_PREFIX):] if path.startswith(EVENT_PREFIX) else path
        if "{{" in schema_path or "}}" in schema_path:
            continue
        if event_schema.resolve_path(schema_path) is None:
            invalid_paths.append(path)

    if invalid_paths:
        return WhereClauseValidation(
            is_valid=False,
            error=f"Where clause references properties that are not in the event schema: {', '.join(invalid_paths)}",
            invalid_paths=invalid_paths,
        )

    return WhereClauseValidation(is_valid=True)
