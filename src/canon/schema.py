"""Schema validation for finished events.

Checks are deliberately shallow:

- Built-in required fields are always enforced, schema or not.
- Schema-required dot-paths must exist (a ``None`` value counts as present).
- Declared field types are checked when the path is present; mismatches are
  warnings unless ``strict`` is on. ``None`` always passes.
- The unknown-key policy looks at top-level keys only.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from .models import (
    DEFAULT_UNKNOWN_FIELD_MODE,
    CanonSchema,
    FieldDefinition,
    FieldType,
    RedactionStrategy,
    UnknownFieldMode,
    ValidationResult,
)
from .paths import get_path, has_path

BUILT_IN_REQUIRED: tuple[str, ...] = (
    "timestamp",
    "request_id",
    "service",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "outcome",
)


def define_canon_schema(
    *,
    required: Iterable[str] | None = None,
    fields: Mapping[str, FieldDefinition | Mapping[str, Any]] | None = None,
    unknown_mode: UnknownFieldMode = DEFAULT_UNKNOWN_FIELD_MODE,
) -> CanonSchema:
    """Build a schema whose field definitions sit on top of the built-in base fields."""
    return CanonSchema(required=list(required or []), fields=dict(fields or {}), unknown_mode=unknown_mode)


def matches_type(value: Any, expected: FieldType | None) -> bool:
    if value is None or expected is None:
        return True
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        # bool is an int subclass but not a number here.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return not (isinstance(value, float) and math.isnan(value))
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "array":
        return isinstance(value, (list, tuple))
    return True


def describe_type(value: Any) -> str:
    """Name a runtime value in the schema's type vocabulary."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def known_top_level_keys(schema: CanonSchema) -> set[str]:
    known = {path.split(".")[0] for path in schema.required}
    known.update(path.split(".")[0] for path in schema.fields)
    known.update(BUILT_IN_REQUIRED)
    return known


def validate_schema(event: Mapping[str, Any], schema: CanonSchema | None = None, strict: bool = False) -> ValidationResult:
    """Validate ``event``; ``valid`` is true iff there are no errors."""
    errors: list[str] = []
    warnings: list[str] = []

    for field in BUILT_IN_REQUIRED:
        if not has_path(event, field):
            errors.append(f"Missing required built-in field: {field}")

    if schema is None:
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    for path in schema.required:
        if not has_path(event, path):
            errors.append(f"Missing required field: {path}")

    for path, definition in schema.fields.items():
        if not has_path(event, path):
            continue
        value = get_path(event, path)
        if not matches_type(value, definition.type):
            msg = f'Field "{path}" has invalid type: expected {definition.type}, got {describe_type(value)}'
            (errors if strict else warnings).append(msg)

    if schema.unknown_mode != "allow":
        known = known_top_level_keys(schema)
        for key in event:
            if key in known:
                continue
            msg = f"Unknown top-level field: {key}"
            if schema.unknown_mode == "deny" and strict:
                errors.append(msg)
            else:
                warnings.append(msg)

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def log_validation_warnings(warnings: Iterable[str], request_id: str | None) -> None:
    for warning in warnings:
        logger.warning("[canon] validation warning ({}): {}", request_id, warning)


def log_validation_errors(errors: Iterable[str], request_id: str | None) -> None:
    for error in errors:
        logger.error("[canon] validation error ({}): {}", request_id, error)


def get_pii_fields(schema: CanonSchema) -> list[str]:
    return [path for path, definition in schema.fields.items() if definition.pii]


def get_field_redaction_strategy(schema: CanonSchema, path: str) -> RedactionStrategy | None:
    definition = schema.fields.get(path)
    return definition.redaction if definition is not None else None
