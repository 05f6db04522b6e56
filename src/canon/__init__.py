"""Canon: one request, one canonical wide event.

This package accumulates context for a request, then finalizes it exactly once
and runs it through redaction, schema validation and tail sampling before
handing it to a sink:

- ``CanonLifecycle`` coordinates the finalize-once pipeline per request.
- ``EventBuilder`` owns the mutable event while the request is handled.
- ``apply_redaction``, ``validate_schema`` and ``should_sample`` are pure
  stages that only ever see copies of the finalized event.
- Sinks and ``BackgroundEventWriter`` are where kept events end up.
"""

from .event import EventBuilder, normalize_error
from .ids import generate_request_id, generate_trace_id, is_valid_request_id, is_valid_trace_id
from .lifecycle import (
    CanonLifecycle,
    create_canon_context,
    create_initial_event_data,
    extract_ids,
    should_ignore_path,
)
from .models import (
    CANON_BASE_FIELDS,
    CanonConfig,
    CanonError,
    CanonSchema,
    FieldDefinition,
    RedactionConfig,
    SamplingConfig,
    ValidationResult,
    WideEvent,
)
from .redact import apply_redaction, create_redaction_config
from .sampling import (
    always_sample,
    create_sampler,
    create_sampling_config,
    fixed_rate_sample,
    never_sample,
    should_sample,
)
from .schema import define_canon_schema, validate_schema
from .sinks import ConsoleEventSink, DuckDBEventSink, EventSink, InMemoryEventSink
from .writer import BackgroundEventWriter

__all__ = [
    "CANON_BASE_FIELDS",
    "BackgroundEventWriter",
    "CanonConfig",
    "CanonError",
    "CanonLifecycle",
    "CanonSchema",
    "ConsoleEventSink",
    "DuckDBEventSink",
    "EventBuilder",
    "EventSink",
    "FieldDefinition",
    "InMemoryEventSink",
    "RedactionConfig",
    "SamplingConfig",
    "ValidationResult",
    "WideEvent",
    "always_sample",
    "apply_redaction",
    "create_canon_context",
    "create_initial_event_data",
    "create_redaction_config",
    "create_sampler",
    "create_sampling_config",
    "define_canon_schema",
    "extract_ids",
    "fixed_rate_sample",
    "generate_request_id",
    "generate_trace_id",
    "is_valid_request_id",
    "is_valid_trace_id",
    "never_sample",
    "normalize_error",
    "should_ignore_path",
    "should_sample",
    "validate_schema",
]
