"""Optional span enrichment.

The lifecycle can hold a provider returning the currently active span (for
example ``opentelemetry.trace.get_current_span``). Without a provider span
enrichment is simply unavailable; that is a normal state, not an error.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

AttributeValue = str | int | float | bool | list[str]


class SpanLike(Protocol):
    """The subset of a tracing span the lifecycle writes to."""

    def set_attribute(self, key: str, value: Any) -> Any: ...

    def set_attributes(self, attributes: Mapping[str, Any]) -> Any: ...


SpanProvider = Callable[[], SpanLike | None]
SpanAttributeSetter = Callable[[Mapping[str, Any]], None]


def normalize_attribute(value: Any) -> AttributeValue:
    """Spans accept scalars and homogeneous lists; coerce everything else to strings."""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return str(value)


def flatten_attributes(attrs: Mapping[str, Any], prefix: str = "") -> dict[str, AttributeValue]:
    """Flatten nested mappings into dot-notation keys."""
    result: dict[str, AttributeValue] = {}
    for key, value in attrs.items():
        full_key = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            result.update(flatten_attributes(value, full_key))
        else:
            result[full_key] = normalize_attribute(value)
    return result


def create_span_attribute_setter(span_provider: SpanProvider | None) -> SpanAttributeSetter | None:
    """Bind a provider into a setter; ``None`` when span enrichment is unavailable."""
    if span_provider is None:
        return None

    def add_span_attributes(attrs: Mapping[str, Any]) -> None:
        span = span_provider()
        if span is None:
            return
        span.set_attributes(flatten_attributes(attrs))

    return add_span_attributes
