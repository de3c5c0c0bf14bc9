"""Template rendering for subscription filters.

A filter that is a single ``{{ expression }}`` renders to the expression's
native value, so ``{{ event.severity == "high" }}`` yields a real bool. Any
other template is rendered as text. Undefined values render as None (or an
empty string inside text).
"""

import re
from typing import Any

from jinja2 import ChainableUndefined
from jinja2.sandbox import SandboxedEnvironment

_env = SandboxedEnvironment(undefined=ChainableUndefined, autoescape=False)

_SINGLE_EXPRESSION = re.compile(r"^\s*\{\{(?P<expr>.*)\}\}\s*$", re.DOTALL)


def has_template(value: str) -> bool:
    return "{{" in value or "{%" in value


def render(template: Any, context: dict[str, Any]) -> Any:
    """Render a template string against a context.

    Non-string templates and strings without template syntax are returned
    unchanged.
    """
    if not isinstance(template, str) or not has_template(template):
        return template

    match = _SINGLE_EXPRESSION.match(template)
    if match and "{{" not in match.group("expr") and "}}" not in match.group("expr"):
        expression = _env.compile_expression(match.group("expr").strip(), undefined_to_none=True)
        return expression(**context)

    return _env.from_string(template).render(**context)
