"""
Structured error types for the verification harness.

Every failure the harness can hit is one of four kinds, and each kind maps
to a distinct CI outcome:

- **ConfigError:** bad arguments or an unusable expectation file. Fatal,
  raised before any probe is sent.
- **TransientProbeError:** connection refused, timeout, 5xx. The system under
  test may simply not be ready yet, so the run loop absorbs it and retries.
- **ProbeError / MalformedResponseError:** the target answered with something
  that will not fix itself (4xx, unparseable body). Fatal.
- **MismatchError:** the retry budget ran out without a structural match.

Architecture:
    ::

        HarnessError  (category, retryable, context, cause)
        ├── ConfigError
        ├── ProbeError
        │   ├── TransientProbeError      (retryable=True)
        │   └── MalformedResponseError
        └── MismatchError                (carries the VerificationResult)

Examples:
    >>> err = TransientProbeError("HTTP 503", url="http://collector/receiveData", status_code=503)
    >>> err.retryable
    True
    >>> err.to_dict()["context"]["status_code"]
    503

Tags:
    error-handling, exception-hierarchy, retry-logic, tracecheck
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tracecheck.results import VerificationResult


class ErrorCategory(str, Enum):
    """Error categories used for logging and exit-code mapping."""

    CONFIG = "CONFIG"  # Arguments, expectation file
    NETWORK = "NETWORK"  # Connection, timeout, 5xx
    PROBE = "PROBE"  # Non-retryable response from the target
    PARSE = "PARSE"  # Response body is not structured data
    MISMATCH = "MISMATCH"  # Retry budget exhausted without a match


class HarnessError(Exception):
    """Base exception for all harness errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    attach structured metadata as keyword arguments, which end up in
    ``context`` and in ``to_dict()`` for log records.
    """

    default_category: ErrorCategory = ErrorCategory.CONFIG
    default_retryable: bool = False
    exit_code: int = 2

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        cause: Exception | None = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context: dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class ConfigError(HarnessError):
    """Invalid arguments or an expectation file that cannot be loaded."""

    default_category = ErrorCategory.CONFIG
    exit_code = 2


class ProbeError(HarnessError):
    """The target answered in a way retrying will not fix."""

    default_category = ErrorCategory.PROBE
    exit_code = 3

    @property
    def url(self) -> str | None:
        return self.context.get("url")

    @property
    def status_code(self) -> int | None:
        return self.context.get("status_code")


class TransientProbeError(ProbeError):
    """Connection refused, timeout or 5xx; consumed by the retry loop."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class MalformedResponseError(ProbeError):
    """Response body could not be parsed as structured data."""

    default_category = ErrorCategory.PARSE


class MismatchError(HarnessError):
    """Retry budget exhausted without the observed document matching."""

    default_category = ErrorCategory.MISMATCH
    exit_code = 1

    def __init__(self, message: str, *, result: VerificationResult, **context: Any):
        super().__init__(message, **context)
        self.result = result

    @property
    def first_mismatch_path(self) -> str | None:
        comparison = self.result.final_comparison
        if comparison is None or not comparison.mismatches:
            return None
        return comparison.mismatches[0].path


def is_retryable(error: Exception) -> bool:
    """Return True if the error should be absorbed by the retry loop."""
    return isinstance(error, HarnessError) and error.retryable


__all__ = [
    "ConfigError",
    "ErrorCategory",
    "HarnessError",
    "MalformedResponseError",
    "MismatchError",
    "ProbeError",
    "TransientProbeError",
    "is_retryable",
]
