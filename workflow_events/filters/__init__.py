from workflow_events.filters.kql import evaluate, extract_property_paths, parse
from workflow_events.filters.templating import render
from workflow_events.filters.where_clause import WhereClauseValidation, validate_where_clause

__all__ = [
    "WhereClauseValidation",
    "evaluate",
    "extract_property_paths",
    "parse",
    "render",
    "validate_where_clause",
]
