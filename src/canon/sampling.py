"""Tail sampling.

The keep/drop decision is made after the request finished, on the finalized
and redacted event. Default rules, first match wins:

1. ``status_code >= 500``
2. ``status_code`` is 408 or 429
3. ``outcome == "aborted"``
4. ``outcome == "error"``
5. ``duration_ms > slow_threshold_ms``
6. otherwise keep with probability ``sample_rate_success``

A custom decision function replaces these rules; use ``create_sampler`` to
combine them instead.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from typing import Any

from .models import DEFAULT_SAMPLE_RATE_SUCCESS, DEFAULT_SLOW_THRESHOLD_MS, SampleFunction, SamplingConfig

Rng = Callable[[], float]

ALWAYS_SAMPLE_STATUS_CODES: frozenset[int] = frozenset({408, 429})


def _numeric(value: Any) -> float:
    # Redacted or malformed values (masked strings, bools) count as 0.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


def should_sample_default(
    event: Mapping[str, Any],
    config: SamplingConfig | None = None,
    *,
    rng: Rng = random.random,
) -> bool:
    """Evaluate the default rules only, ignoring any ``custom`` function."""
    config = config or SamplingConfig()
    status_code = _numeric(event.get("status_code"))
    duration = _numeric(event.get("duration_ms"))
    outcome = event.get("outcome")

    if status_code >= 500:
        return True
    if status_code in ALWAYS_SAMPLE_STATUS_CODES:
        return True
    if outcome == "aborted":
        return True
    if outcome == "error":
        return True
    if duration > config.slow_threshold_ms:
        return True
    return rng() < config.sample_rate_success


def should_sample(
    event: Mapping[str, Any],
    config: SamplingConfig | SampleFunction | None = None,
    *,
    rng: Rng = random.random,
) -> bool:
    """Decide whether a finished event is kept."""
    if config is None:
        return should_sample_default(event, rng=rng)
    if callable(config):
        return bool(config(dict(event)))
    if config.custom is not None:
        return bool(config.custom(dict(event)))
    return should_sample_default(event, config, rng=rng)


def create_sampling_config(
    *,
    sample_rate_success: float = DEFAULT_SAMPLE_RATE_SUCCESS,
    slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
    custom: SampleFunction | None = None,
) -> SamplingConfig:
    return SamplingConfig(
        sample_rate_success=sample_rate_success,
        slow_threshold_ms=slow_threshold_ms,
        custom=custom,
    )


def create_sampler(extra_check: SampleFunction | None = None, *, rng: Rng = random.random) -> SampleFunction:
    """Default rules OR ``extra_check``: keeps everything the defaults keep, plus more."""

    def sampler(event: dict[str, Any]) -> bool:
        if should_sample_default(event, rng=rng):
            return True
        if extra_check is not None:
            return bool(extra_check(event))
        return False

    return sampler


def always_sample(event: Mapping[str, Any] | None = None) -> bool:
    return True


def never_sample(event: Mapping[str, Any] | None = None) -> bool:
    return False


def fixed_rate_sample(rate: float, *, rng: Rng = random.random) -> SampleFunction:
    """Keep events at a fixed probability, clamped to [0, 1]."""
    clamped = max(0.0, min(1.0, rate))

    def sampler(event: dict[str, Any] | None = None) -> bool:
        return rng() < clamped

    return sampler
