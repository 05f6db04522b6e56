"""Redaction engine.

Three strategies protect sensitive values before an event leaves the process:

- ``mask``: ``john@example.com`` -> ``j***@e******.com``; other strings keep
  their first and last character.
- ``hash``: SHA-256 hex digest, deterministic so equal values can be correlated.
- ``drop``: replaced with ``"[REDACTED]"``.

A field-level strategy declared in the schema overrides the global one. The
input event is never modified; every call returns a fresh copy.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import Any

from .models import DEFAULT_REDACTION_STRATEGY, CanonSchema, RedactionConfig, RedactionStrategy
from .paths import MISSING, get_path, set_path, snapshot
from .schema import get_field_redaction_strategy

REDACTED_MARKER = "[REDACTED]"

# "ip" is not included; list it explicitly, ideally with "hash" or "drop".
DEFAULT_SENSITIVE_FIELDS: tuple[str, ...] = (
    "user.email",
    "user.phone",
    "headers.authorization",
    "headers.cookie",
    "headers.x-api-key",
)


def _mask_label(label: str) -> str:
    return label[:1] + "*" * (len(label) - 1)


def mask_value(value: str) -> str:
    """Mask a string, keeping just enough shape to recognize it."""
    if len(value) <= 2:
        return "*" * len(value)

    if "@" in value:
        parts = value.split("@")
        local, domain = parts[0], parts[1]
        masked_local = local[:1] + "*" * max(1, len(local) - 1) if local else "*"
        labels = domain.split(".")
        masked_domain = ".".join(
            label if i == len(labels) - 1 else _mask_label(label) for i, label in enumerate(labels)
        )
        return f"{masked_local}@{masked_domain}"

    return value[0] + "*" * max(1, len(value) - 2) + value[-1]


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True, default=str)
    return str(value)


def redact_value(value: Any, strategy: RedactionStrategy) -> Any:
    """Apply ``strategy`` to one value. ``None`` passes through unchanged."""
    if value is None:
        return None
    if strategy == "drop":
        return REDACTED_MARKER
    text = _stringify(value)
    if strategy == "hash":
        return hash_value(text)
    return mask_value(text)


def apply_redaction(
    event: Mapping[str, Any],
    config: RedactionConfig | None,
    schema: CanonSchema | None = None,
) -> dict[str, Any]:
    """Return a redacted copy of ``event``.

    With no config, or a disabled one, the result is an unmodified copy.
    """
    result: dict[str, Any] = snapshot(dict(event))
    if config is None or not config.enabled:
        return result

    targets = config.fields or DEFAULT_SENSITIVE_FIELDS
    for path in targets:
        value = get_path(result, path)
        if value is MISSING or value is None:
            continue
        override = get_field_redaction_strategy(schema, path) if schema is not None else None
        strategy = override or config.strategy
        result = set_path(result, path, redact_value(value, strategy))
    return result


def create_redaction_config(
    *,
    enabled: bool = False,
    strategy: RedactionStrategy = DEFAULT_REDACTION_STRATEGY,
    fields: Iterable[str] | None = None,
) -> RedactionConfig:
    """Build a RedactionConfig; disabled unless asked, default field list otherwise."""
    return RedactionConfig(
        enabled=enabled,
        strategy=strategy,
        fields=list(fields) if fields is not None else list(DEFAULT_SENSITIVE_FIELDS),
    )


def should_redact_field(path: str, config: RedactionConfig) -> bool:
    return config.enabled and path in config.fields


def merge_redaction_fields(config: RedactionConfig, additional_fields: Iterable[str]) -> RedactionConfig:
    """Add paths (e.g. schema PII fields) to a config, keeping order and dropping duplicates."""
    merged = list(dict.fromkeys([*config.fields, *additional_fields]))
    return config.model_copy(update={"fields": merged})
