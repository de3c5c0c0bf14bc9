"""Tests for filter template rendering."""

import pytest

from workflow_events.filters.templating import has_template, render

pytestmark = pytest.mark.unit


@pytest.fixture
def context():
    return {"event": {"severity": "high", "count": 3, "flag": True, "tags": ["a", "b"]}}


def test_plain_string_returned_unchanged(context):
    assert render('event.severity:"high"', context) == 'event.severity:"high"'


def test_non_string_returned_unchanged(context):
    assert render(True, context) is True
    assert render(None, context) is None


def test_single_expression_renders_native_bool(context):
    assert render('{{ event.severity == "high" }}', context) is True
    assert render("{{ event.count > 5 }}", context) is False


def test_single_expression_renders_native_values(context):
    assert render("{{ event.flag }}", context) is True
    assert render("{{ event.count }}", context) == 3
    assert render("{{ event.tags }}", context) == ["a", "b"]


def test_undefined_expression_renders_none(context):
    assert render("{{ event.missing }}", context) is None
    assert render("{{ event.missing.deeper }}", context) is None


def test_mixed_template_renders_text(context):
    rendered = render('event.severity:"{{ event.severity }}"', context)
    assert rendered == 'event.severity:"high"'


def test_undefined_inside_text_renders_empty(context):
    assert render("event.a:{{ event.missing }}x", context) == "event.a:x"


def test_has_template():
    assert has_template("{{ x }}")
    assert has_template("{% if x %}y{% endif %}")
    assert not has_template("event.a:b")
