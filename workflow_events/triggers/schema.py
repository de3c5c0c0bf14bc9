"""EventSchema — payload validation and dotted-path resolution for a trigger.

Wraps a pydantic model so callers only see two questions: "is this payload
valid?" and "does this dotted path exist?". The second one drives where-clause
validation and the path listing used for autocomplete.
"""

import hashlib
import json
import types
from dataclasses import dataclass
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import BaseModel, RootModel, ValidationError

_MISSING = object()

# Nesting limit for paths(); recursive models would otherwise never terminate
_MAX_PATH_DEPTH = 8


@dataclass(frozen=True)
class SchemaValidationResult:
    valid: bool
    error: str | None = None


def format_validation_error(exc: ValidationError) -> str:
    """Flatten pydantic errors into 'field.path: message; ...'."""
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _unwrap(annotation: Any) -> list[Any]:
    """Strip Annotated/Optional/Union down to the concrete candidate types."""
    origin = get_origin(annotation)
    if origin is Annotated:
        return _unwrap(get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        candidates = []
        for arg in get_args(annotation):
            if arg is not type(None):
                candidates.extend(_unwrap(arg))
        return candidates
    return [annotation]


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _root_annotation(model: type[BaseModel]) -> Any:
    """The wrapped type of a RootModel, or _MISSING for ordinary models."""
    if issubclass(model, RootModel):
        return model.model_fields["root"].annotation
    return _MISSING


def _model_field(model: type[BaseModel], name: str):
    field = model.model_fields.get(name)
    if field is not None:
        return field
    for candidate in model.model_fields.values():
        if candidate.alias == name:
            return candidate
    return None


def _child(annotation: Any, segment: str) -> Any:
    for candidate in _unwrap(annotation):
        if candidate is Any:
            return Any
        if _is_model(candidate):
            root = _root_annotation(candidate)
            if root is not _MISSING:
                return _child(root, segment)
            field = _model_field(candidate, segment)
            if field is not None:
                return field.annotation
            continue

        origin = get_origin(candidate)
        args = get_args(candidate)
        if candidate is dict or origin is dict:
            return args[1] if len(args) == 2 else Any
        if candidate in (list, tuple, set) or origin in (list, tuple, set):
            element = args[0] if args else Any
            if segment.isdigit():
                return element
            # KQL addresses array members without an index
            found = _child(element, segment)
            if found is not _MISSING:
                return found
    return _MISSING


class EventSchema:
    """Structural schema for a trigger's event payload."""

    def __init__(self, model: type[BaseModel]):
        self.model = model

    def validate(self, value: Any) -> SchemaValidationResult:
        try:
            self.model.model_validate(value)
        except ValidationError as exc:
            return SchemaValidationResult(valid=False, error=format_validation_error(exc))
        return SchemaValidationResult(valid=True)

    def resolve_path(self, path: str) -> Any | None:
        """Return the declared type at a dotted path, or None if it does not exist.

        Free-form fields (``dict[str, Any]``, ``Any``) accept any sub-path.
        """
        if not path:
            return None
        current: Any = self.model
        for segment in path.split("."):
            if not segment:
                return None
            current = _child(current, segment)
            if current is _MISSING:
                return None
        return current

    def paths(self) -> list[str]:
        """All dotted paths declared by the schema, parents before children."""
        found: list[str] = []

        def walk(annotation: Any, prefix: str, depth: int) -> None:
            if depth > _MAX_PATH_DEPTH:
                return
            for candidate in _unwrap(annotation):
                if _is_model(candidate):
                    root = _root_annotation(candidate)
                    if root is not _MISSING:
                        walk(root, prefix, depth + 1)
                        continue
                    for name, field in candidate.model_fields.items():
                        path = f"{prefix}.{name}" if prefix else name
                        found.append(path)
                        walk(field.annotation, path, depth + 1)
                elif get_origin(candidate) in (list, tuple, set):
                    args = get_args(candidate)
                    if args:
                        walk(args[0], prefix, depth + 1)

        walk(self.model, "", 0)
        return found

    def json_schema(self) -> dict[str, Any]:
        return self.model.model_json_schema()

    def fingerprint(self) -> str:
        """SHA-256 of the JSON schema; changes whenever the payload shape changes."""
        encoded = json.dumps(self.json_schema(), sort_keys=True).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()
