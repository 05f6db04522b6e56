"""Canon data models.

The wide event itself is a plain ``dict`` so business code can enrich it with
arbitrary nested context. Everything around it (schema, redaction, sampling and
the top-level configuration) is a frozen Pydantic model.

Configuration is pure data and validated lazily: values that are out of range or
malformed degrade to the documented defaults with a logged warning instead of
failing the request being observed.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from typing import Any, Literal, TypeAlias

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

WideEvent: TypeAlias = dict[str, Any]

RequestOutcome = Literal["success", "error", "aborted"]
FieldType = Literal["string", "number", "boolean", "object", "array"]
RedactionStrategy = Literal["mask", "hash", "drop"]
UnknownFieldMode = Literal["allow", "warn", "deny"]
Cardinality = Literal["low", "high"]

EmitFunction: TypeAlias = Callable[[WideEvent], None]
SampleFunction: TypeAlias = Callable[[WideEvent], bool]
PathPredicate: TypeAlias = Callable[[str], bool]

REQUEST_OUTCOMES: frozenset[str] = frozenset({"success", "error", "aborted"})
FIELD_TYPES: frozenset[str] = frozenset({"string", "number", "boolean", "object", "array"})
REDACTION_STRATEGIES: frozenset[str] = frozenset({"mask", "hash", "drop"})
UNKNOWN_FIELD_MODES: frozenset[str] = frozenset({"allow", "warn", "deny"})

# nginx's non-standard "client closed request".
CLIENT_CLOSED_REQUEST = 499

DEFAULT_REQUEST_ID_HEADER = "x-request-id"
DEFAULT_TRACE_ID_HEADER = "x-trace-id"
DEFAULT_TRUST_INCOMING_IDS = True
DEFAULT_STRICT = False
DEFAULT_SAMPLE_RATE_SUCCESS = 0.05
DEFAULT_SLOW_THRESHOLD_MS = 2000.0
DEFAULT_REDACTION_STRATEGY: RedactionStrategy = "mask"
DEFAULT_UNKNOWN_FIELD_MODE: UnknownFieldMode = "allow"


def _degrade(field: str, value: Any, default: Any) -> Any:
    logger.warning("[canon] invalid {} {!r}, using default {!r}", field, value, default)
    return default


def _choice_or_default(field: str, value: Any, allowed: frozenset[str], default: Any) -> Any:
    if value is None:
        return default
    if value in allowed:
        return value
    return _degrade(field, value, default)


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class CanonError(_Model):
    """Normalized error attached to an event under the ``error`` key."""

    type: str = "Error"
    message: str
    code: str | None = None
    retriable: bool | None = None

    def to_event_value(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class FieldDefinition(_Model):
    """Declared shape of one dot-path in the event."""

    # An unrecognized type disables the type check for the field.
    type: FieldType | None = None
    pii: bool = False
    redaction: RedactionStrategy | None = None
    cardinality: Cardinality | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _degrade_type(cls, v: Any) -> Any:
        if v is None or v in FIELD_TYPES:
            return v
        return _degrade("field type", v, None)

    @field_validator("redaction", mode="before")
    @classmethod
    def _degrade_redaction(cls, v: Any) -> Any:
        if v is None or v in REDACTION_STRATEGIES:
            return v
        return _degrade("field redaction strategy", v, None)

    @field_validator("cardinality", mode="before")
    @classmethod
    def _degrade_cardinality(cls, v: Any) -> Any:
        if v is None or v in {"low", "high"}:
            return v
        return _degrade("field cardinality", v, None)


# Recognized without redeclaration; every schema layers its own definitions on top.
CANON_BASE_FIELDS: dict[str, FieldDefinition] = {
    "timestamp": FieldDefinition(type="string"),
    "request_id": FieldDefinition(type="string"),
    "trace_id": FieldDefinition(type="string"),
    "service": FieldDefinition(type="string"),
    "version": FieldDefinition(type="string"),
    "deployment_id": FieldDefinition(type="string"),
    "region": FieldDefinition(type="string"),
    "method": FieldDefinition(type="string"),
    "path": FieldDefinition(type="string"),
    "route": FieldDefinition(type="string"),
    "status_code": FieldDefinition(type="number"),
    "duration_ms": FieldDefinition(type="number"),
    "outcome": FieldDefinition(type="string"),
    "ip": FieldDefinition(type="string", pii=True),
    "user_agent": FieldDefinition(type="string"),
    "error": FieldDefinition(type="object"),
}


def _path_list(field: str, value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple, set, frozenset)) and all(isinstance(p, str) for p in value):
        return list(value)
    return _degrade(field, value, [])


class CanonSchema(_Model):
    """Required dot-paths, per-path field definitions and the unknown-key policy."""

    required: list[str] = Field(default_factory=list)
    fields: dict[str, FieldDefinition] = Field(default_factory=dict, validate_default=True)
    unknown_mode: UnknownFieldMode = DEFAULT_UNKNOWN_FIELD_MODE

    @field_validator("required", mode="before")
    @classmethod
    def _degrade_required(cls, v: Any) -> Any:
        return _path_list("schema required", v)

    @field_validator("fields", mode="before")
    @classmethod
    def _degrade_fields(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, Mapping):
            return _degrade("schema fields", v, {})
        valid: dict[str, Any] = {}
        for path, definition in v.items():
            if isinstance(path, str) and isinstance(definition, (FieldDefinition, Mapping)):
                valid[path] = definition
            else:
                _degrade(f"field definition for {path!r}", definition, None)
        return valid

    @field_validator("fields", mode="after")
    @classmethod
    def _layer_over_base_fields(cls, v: dict[str, FieldDefinition]) -> dict[str, FieldDefinition]:
        return {**CANON_BASE_FIELDS, **v}

    @field_validator("unknown_mode", mode="before")
    @classmethod
    def _degrade_unknown_mode(cls, v: Any) -> Any:
        return _choice_or_default("unknown_mode", v, UNKNOWN_FIELD_MODES, DEFAULT_UNKNOWN_FIELD_MODE)


class RedactionConfig(_Model):
    """Which dot-paths to redact and how.

    An empty ``fields`` list means the built-in sensitive field list applies.
    """

    enabled: bool = True
    strategy: RedactionStrategy = DEFAULT_REDACTION_STRATEGY
    fields: list[str] = Field(default_factory=list)

    @field_validator("strategy", mode="before")
    @classmethod
    def _degrade_strategy(cls, v: Any) -> Any:
        return _choice_or_default("redaction strategy", v, REDACTION_STRATEGIES, DEFAULT_REDACTION_STRATEGY)

    @field_validator("fields", mode="before")
    @classmethod
    def _degrade_fields(cls, v: Any) -> Any:
        return _path_list("redaction fields", v)


class SamplingConfig(_Model):
    """Tail sampling knobs. ``custom`` replaces the default rules entirely."""

    sample_rate_success: float = DEFAULT_SAMPLE_RATE_SUCCESS
    slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS
    custom: SampleFunction | None = None

    @field_validator("sample_rate_success", mode="before")
    @classmethod
    def _degrade_rate(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_SAMPLE_RATE_SUCCESS
        try:
            rate = float(v)
        except (TypeError, ValueError):
            return _degrade("sample_rate_success", v, DEFAULT_SAMPLE_RATE_SUCCESS)
        if math.isnan(rate) or not 0.0 <= rate <= 1.0:
            return _degrade("sample_rate_success", v, DEFAULT_SAMPLE_RATE_SUCCESS)
        return rate

    @field_validator("slow_threshold_ms", mode="before")
    @classmethod
    def _degrade_threshold(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_SLOW_THRESHOLD_MS
        try:
            threshold = float(v)
        except (TypeError, ValueError):
            return _degrade("slow_threshold_ms", v, DEFAULT_SLOW_THRESHOLD_MS)
        if math.isnan(threshold) or threshold < 0:
            return _degrade("slow_threshold_ms", v, DEFAULT_SLOW_THRESHOLD_MS)
        return threshold


class CanonConfig(_Model):
    """Top-level configuration consumed by the lifecycle orchestrator."""

    service: str

    version: str | None = None
    deployment_id: str | None = None
    region: str | None = None

    event_schema: CanonSchema | None = None

    request_id_header: str = DEFAULT_REQUEST_ID_HEADER
    trace_id_header: str = DEFAULT_TRACE_ID_HEADER
    trust_incoming_ids: bool = DEFAULT_TRUST_INCOMING_IDS

    # Sink for finished events; defaults to one JSON line on stdout.
    emit: EmitFunction | None = None

    strict: bool = DEFAULT_STRICT

    sample: SamplingConfig | SampleFunction | None = None

    redact: RedactionConfig | None = None

    # Bypasses sampling so every finished event is emitted.
    debug: bool = False

    ignore_paths: list[str | re.Pattern[str]] | PathPredicate | None = None


class ValidationResult(_Model):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
