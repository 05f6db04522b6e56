"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into a strongly-typed Pydantic `Settings` model.
- Validating required fields and providing actionable error messages.

`Settings.to_canon_config()` turns the process settings into the `CanonConfig`
consumed by the lifecycle; programmatic callers can also build `CanonConfig`
directly.
"""

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator

from canon.models import (
    DEFAULT_REDACTION_STRATEGY,
    DEFAULT_SAMPLE_RATE_SUCCESS,
    DEFAULT_SLOW_THRESHOLD_MS,
    CanonConfig,
    EmitFunction,
    RedactionConfig,
    SamplingConfig,
)

_T = TypeVar("_T", int, float)


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_optional_env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


def _get_env_list(name: str) -> list[str]:
    """Read a comma-separated env var; blanks are skipped."""
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Process-level settings for the canon event pipeline."""

    service: str = Field(..., description="Service name stamped on every event")
    version: str | None = Field(default=None, description="Service version")
    deployment_id: str | None = Field(default=None, description="Deployment identifier")
    region: str | None = Field(default=None, description="Deployment region")

    strict: bool = Field(default=False, description="Block emission of events failing validation")
    debug: bool = Field(default=False, description="Emit every event, bypassing sampling")
    trust_incoming_ids: bool = Field(default=True, description="Reuse request/trace ids from headers")

    sample_rate_success: float = Field(default=DEFAULT_SAMPLE_RATE_SUCCESS, description="Keep rate for healthy requests")
    slow_threshold_ms: float = Field(default=DEFAULT_SLOW_THRESHOLD_MS, description="Always keep requests slower than this")

    redact_enabled: bool = Field(default=True, description="Enable redaction")
    redact_strategy: str = Field(default=DEFAULT_REDACTION_STRATEGY, description="mask | hash | drop")
    redact_fields: list[str] = Field(default_factory=list, description="Dot-paths to redact (empty: built-in list)")

    duckdb_path: str | None = Field(default=None, description="Optional DuckDB file for persisted events")

    @field_validator("service")
    def validate_service(cls, v: str) -> str:
        """Validate service is set (not empty/placeholder)."""
        if not v or v == "your_service_name_here":
            raise ValueError("CANON_SERVICE is required. Please set it in your .env file.")
        return v

    def to_canon_config(self, *, emit: EmitFunction | None = None) -> CanonConfig:
        """Build the lifecycle configuration from these settings."""
        return CanonConfig(
            service=self.service,
            version=self.version,
            deployment_id=self.deployment_id,
            region=self.region,
            strict=self.strict,
            debug=self.debug,
            trust_incoming_ids=self.trust_incoming_ids,
            emit=emit,
            sample=SamplingConfig(
                sample_rate_success=self.sample_rate_success,
                slow_threshold_ms=self.slow_threshold_ms,
            ),
            redact=RedactionConfig(
                enabled=self.redact_enabled,
                strategy=self.redact_strategy,
                fields=self.redact_fields,
            ),
        )


def load_config() -> Settings:
    """Load settings from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or malformed.
    """
    dotenv.load_dotenv()

    return Settings(
        service=_get_required_env("CANON_SERVICE"),
        version=_get_optional_env("CANON_VERSION"),
        deployment_id=_get_optional_env("CANON_DEPLOYMENT_ID"),
        region=_get_optional_env("CANON_REGION"),
        strict=_get_env_bool("CANON_STRICT", False),
        debug=_get_env_bool("CANON_DEBUG", False),
        trust_incoming_ids=_get_env_bool("CANON_TRUST_INCOMING_IDS", True),
        sample_rate_success=_get_env_number("CANON_SAMPLE_RATE_SUCCESS", DEFAULT_SAMPLE_RATE_SUCCESS, float),
        slow_threshold_ms=_get_env_number("CANON_SLOW_THRESHOLD_MS", DEFAULT_SLOW_THRESHOLD_MS, float),
        redact_enabled=_get_env_bool("CANON_REDACT_ENABLED", True),
        redact_strategy=os.getenv("CANON_REDACT_STRATEGY", "").strip() or DEFAULT_REDACTION_STRATEGY,
        redact_fields=_get_env_list("CANON_REDACT_FIELDS"),
        duckdb_path=_get_optional_env("CANON_DUCKDB_PATH"),
    )
