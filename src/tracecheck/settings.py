"""Environment-driven defaults for the harness.

CI jobs rarely pass every flag: the collector address, the producer's base
URL and the retry pacing usually come from the job environment.
``HarnessSettings`` reads them from ``TRACECHECK_*`` variables (and an
optional ``.env`` file); CLI flags override them when building a
:class:`tracecheck.config.RunConfig`.

Examples:
    >>> import os
    >>> os.environ["TRACECHECK_COLLECTOR_URL"] = "http://collector:12800/receiveData"
    >>> HarnessSettings().collector_url
    'http://collector:12800/receiveData'
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BackoffKind = Literal["constant", "linear", "exponential"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class HarnessSettings(BaseSettings):
    """Defaults shared by every harness invocation.

    Fields
    ──────
    target_url      : Base URL of the service that receives the trigger request
    collector_url   : URL returning the captured trace data ("" = use trigger response)
    request_timeout : Per-request timeout in seconds
    interval        : Base delay between attempts in seconds
    max_interval    : Cap for linear/exponential backoff
    backoff         : Backoff policy between attempts
    log_level       : structlog log level
    json_logs       : Force JSON (True) or console (False) logs; None = auto
    """

    model_config = SettingsConfigDict(
        env_prefix="TRACECHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Endpoints ────────────────────────────────────────────────
    target_url: str = "http://0.0.0.0:8081"
    collector_url: str = "http://0.0.0.0:12800/receiveData"

    # ── Timing ───────────────────────────────────────────────────
    request_timeout: float = Field(default=5.0, gt=0)
    interval: float = Field(default=2.0, ge=0)
    max_interval: float = Field(default=30.0, ge=0)
    backoff: BackoffKind = "constant"

    # ── Observability ────────────────────────────────────────────
    log_level: LogLevel = "INFO"
    json_logs: bool | None = None

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


__all__ = ["BackoffKind", "HarnessSettings", "LogLevel"]
