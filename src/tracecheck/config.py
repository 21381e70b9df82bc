"""Run configuration for the verification harness.

``RunConfig`` is the single explicit value a run is driven by: the parsed
command line layered over :class:`~tracecheck.settings.HarnessSettings`.
The harness receives it as an argument and never reads the environment or
global state itself, so it can be driven from tests or from other Python
code the same way the CLI drives it.

Override precedence: keyword overrides (CLI flags) > ``TRACECHECK_*``
environment variables > field defaults.

Example::

    config = RunConfig.from_settings(
        expected_file="tests/e2e/data/expected_context.yaml",
        max_retry_times=20,
        target_path="/ping",
    )
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from tracecheck.comparator import DEFAULT_MAX_MISMATCHES
from tracecheck.errors import ConfigError
from tracecheck.retry import BackoffStrategy, build_backoff
from tracecheck.settings import BackoffKind, HarnessSettings


class RunConfig(BaseModel):
    """Everything one harness run needs to know."""

    # What to check
    expected_file: Path = Field(description="Path to the expectation document")
    max_retry_times: int = Field(ge=1, description="Maximum number of probe attempts")
    target_path: str = Field(description="Route that triggers the traced request, e.g. /ping")

    # Where
    target_url: str = Field(default="http://0.0.0.0:8081", description="Base URL for the trigger request")
    collector_url: str | None = Field(
        default="http://0.0.0.0:12800/receiveData",
        description="URL returning captured trace data; None = use the trigger response",
    )

    # Timing
    request_timeout: float = Field(default=5.0, gt=0)
    interval: float = Field(default=2.0, ge=0)
    max_interval: float = Field(default=30.0, ge=0)
    backoff: BackoffKind = "constant"

    # Comparison
    expressions: bool = Field(default=True, description="Interpret 'gt 0' style strings as matchers")
    max_mismatches: int = Field(default=DEFAULT_MAX_MISMATCHES, ge=1)

    # Internal
    run_id: str = Field(default="", description="Unique run identifier (auto-generated)")

    @field_validator("target_path")
    @classmethod
    def _normalise_path(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("target_path must not be empty")
        return value if value.startswith("/") else f"/{value}"

    @field_validator("target_url", "collector_url")
    @classmethod
    def _check_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid URL {value!r}: {exc}") from exc
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError(f"URL must be absolute http(s), got {value!r}")
        return value.rstrip("/") if url.path in ("", "/") else value

    @model_validator(mode="after")
    def _set_defaults(self) -> RunConfig:
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:12]
        return self

    @property
    def trigger_url(self) -> str:
        return f"{self.target_url}{self.target_path}"

    def backoff_strategy(self) -> BackoffStrategy:
        return build_backoff(self.backoff, self.interval, self.max_interval)

    @classmethod
    def from_settings(
        cls, settings: HarnessSettings | None = None, **overrides: Any
    ) -> RunConfig:
        """Build a config from settings plus explicit overrides.

        ``None`` overrides are ignored so unset CLI options fall through to
        the settings. Validation failures are raised as ``ConfigError``.
        """
        try:
            settings = settings or HarnessSettings()
        except ValidationError as exc:
            raise ConfigError(f"Invalid TRACECHECK_* environment: {exc}", cause=exc) from exc

        values: dict[str, Any] = {
            "target_url": settings.target_url,
            "collector_url": settings.collector_url,
            "request_timeout": settings.request_timeout,
            "interval": settings.interval,
            "max_interval": settings.max_interval,
            "backoff": settings.backoff,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(_format_validation_error(exc), cause=exc) from exc


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "config"
        parts.append(f"{loc}: {err['msg']}")
    return "Invalid configuration: " + "; ".join(parts)


__all__ = ["RunConfig"]
