"""Tests for the KQL parser and evaluator."""

import pytest

from workflow_events.core.exceptions import KqlSyntaxError
from workflow_events.filters.kql import (
    And,
    Exists,
    FreeText,
    Match,
    Not,
    Or,
    Range,
    evaluate,
    extract_property_paths,
    parse,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def context():
    return {
        "event": {
            "source": "github",
            "type": "issue.created",
            "severity": "high",
            "count": 12,
            "enabled": True,
            "message": "disk full on web-03",
            "host": "web-03",
            "created": "2025-03-01T12:00:00+00:00",
            "labels": ["bug", "urgent"],
            "items": [{"sku": "A-1", "qty": 2}, {"sku": "B-2", "qty": 10}],
            "kubernetes.pod": "api-7f9",
        }
    }


# ============================================================================
# Parsing
# ============================================================================


def test_parse_field_value():
    assert parse("event.source:github") == Match("event.source", parse("x:github").value)


def test_parse_quoted_value_keeps_spaces():
    node = parse('event.message:"disk full"')
    assert isinstance(node, Match)
    assert node.value.text == "disk full"
    assert node.value.quoted is True


def test_parse_exists():
    assert parse("event.error:*") == Exists("event.error")


def test_parse_range_operators():
    for operator in ("<", "<=", ">", ">="):
        node = parse(f"event.count {operator} 10")
        assert isinstance(node, Range)
        assert node.operator == operator
        assert node.value.text == "10"


def test_parse_boolean_precedence():
    """and binds tighter than or."""
    node = parse("a:1 or b:2 and c:3")
    assert isinstance(node, Or)
    assert isinstance(node.children[1], And)


def test_parse_keywords_case_insensitive():
    node = parse("NOT a:1 AND b:2")
    assert isinstance(node, And)
    assert isinstance(node.children[0], Not)


def test_parse_value_group_distributes_field():
    node = parse("event.level:(warn or error)")
    assert isinstance(node, Or)
    assert all(isinstance(child, Match) and child.field == "event.level" for child in node.children)


def test_parse_bare_word_is_free_text():
    assert isinstance(parse("github"), FreeText)


def test_parse_template_placeholder_is_single_token():
    node = parse('event.a:{{ event.b | default("x") }}')
    assert isinstance(node, Match)
    assert node.value.text == '{{ event.b | default("x") }}'


@pytest.mark.parametrize(
    "query",
    ["", "   ", "a:", "(a:1", "a:1)", 'a:"open', "a:1 and", "a >", "{{ event.a"],
)
def test_parse_rejects_malformed_queries(query):
    with pytest.raises(KqlSyntaxError):
        parse(query)


def test_syntax_error_reports_position():
    with pytest.raises(KqlSyntaxError) as exc_info:
        parse("a:1 )")
    assert exc_info.value.position == 4


# ============================================================================
# Path extraction
# ============================================================================


def test_extract_property_paths_in_order_without_duplicates():
    paths = extract_property_paths('event.a:x and (event.b:* or not event.a:y) and event.c >= 3')
    assert paths == ["event.a", "event.b", "event.c"]


def test_extract_property_paths_ignores_free_text():
    assert extract_property_paths("github and event.a:x") == ["event.a"]


# ============================================================================
# Evaluation
# ============================================================================


@pytest.mark.parametrize(
    "query,expected",
    [
        ("event.source:github", True),
        ("event.source:gitlab", False),
        ('event.type:"issue.created"', True),
        ("event.host:web-*", True),
        ("event.host:db-*", False),
        ('event.message:"disk*"', False),  # quoted wildcards are literal
        ("event.severity:*", True),
        ("event.missing:*", False),
        ("event.severity:(low or high)", True),
        ("event.severity:(low or medium)", False),
        ("event.count > 10", True),
        ("event.count >= 12", True),
        ("event.count < 12", False),
        ("event.count:12", True),
        ("event.enabled:true", True),
        ("event.enabled:false", False),
        ("event.created >= 2025-01-01", True),
        ("event.created < 2025-01-01", False),
        ("event.labels:urgent", True),
        ("event.items.sku:B-2", True),
        ("event.items.qty > 5", True),
        ("event.items.qty > 50", False),
        ("event.kubernetes.pod:api-*", True),
        ("not event.source:gitlab", True),
        ("event.source:github and event.severity:high", True),
        ("event.source:gitlab or event.severity:high", True),
        ("event.source:gitlab or (event.count > 100 and event.enabled:true)", False),
        ("github", True),
        ("nonexistent-word", False),
    ],
)
def test_evaluate(context, query, expected):
    assert evaluate(query, context) is expected


def test_evaluate_accepts_parsed_ast(context):
    node = parse("event.source:github")
    assert evaluate(node, context) is True


def test_evaluate_missing_parent_does_not_match(context):
    assert evaluate("event.nope.deeper:x", context) is False
    assert evaluate("not event.nope.deeper:x", context) is True


def test_evaluate_null_value_does_not_exist():
    assert evaluate("event.a:*", {"event": {"a": None}}) is False
