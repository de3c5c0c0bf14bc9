"""Tests for where-clause validation against trigger event schemas."""

import pytest

from workflow_events.filters.where_clause import validate_where_clause
from workflow_events.triggers.builtin import ExternalEventPayload, WorkflowExecutionFailedPayload
from workflow_events.triggers.schema import EventSchema

pytestmark = pytest.mark.unit


@pytest.fixture
def external_schema():
    return EventSchema(ExternalEventPayload)


@pytest.fixture
def failed_schema():
    return EventSchema(WorkflowExecutionFailedPayload)


@pytest.mark.parametrize("where", [None, "", "   "])
def test_empty_where_is_valid(external_schema, where):
    result = validate_where_clause(where, external_schema)
    assert result.is_valid
    assert result.invalid_paths == []


def test_known_paths_are_valid(failed_schema):
    result = validate_where_clause(
        'event.workflow.name:"nightly" and event.error.stepId:* and not event.workflow.isErrorHandler:true',
        failed_schema,
    )
    assert result.is_valid, result.error


def test_paths_without_event_prefix_are_checked_as_is(external_schema):
    assert validate_where_clause("source:github", external_schema).is_valid


def test_free_form_record_accepts_any_sub_path(external_schema):
    """payload is dict[str, Any]; anything below it is allowed."""
    result = validate_where_clause("event.payload.issue.labels.name:bug", external_schema)
    assert result.is_valid


def test_unknown_paths_are_listed_as_written(failed_schema):
    result = validate_where_clause("event.workflow.owner:me or event.nope:* or event.workflow.id:w1", failed_schema)
    assert not result.is_valid
    assert result.invalid_paths == ["event.workflow.owner", "event.nope"]
    assert "event.workflow.owner, event.nope" in result.error


def test_syntax_error_is_reported(external_schema):
    result = validate_where_clause("event.source:(github", external_schema)
    assert not result.is_valid
    assert result.error.startswith("Invalid KQL syntax:")
    assert result.invalid_paths == []


def test_template_paths_are_not_checked(external_schema):
    result = validate_where_clause("event.{{ field }}:x and event.source:github", external_schema)
    assert result.is_valid


def test_pure_template_where_is_valid(external_schema):
    assert validate_where_clause("{{ event.source == 'github' }}", external_schema).is_valid
