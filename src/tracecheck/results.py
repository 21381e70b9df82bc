"""Result models for a verification run.

Pydantic v2 models capturing the outcome of each comparison and of the run
as a whole. ``VerificationResult.model_dump_json(indent=2)`` is the artifact
a CI job archives; ``overall_status`` and ``exit_code`` are what it gates on.

Key Concepts:
    Mismatch: One structural divergence, addressed by path
        (``segmentItems[0].segments[0].spans[1].operationName``).
    ComparisonResult: Outcome of one ``compare()`` call. ``matched`` plus the
        mismatches in walk order; the first one is the headline diagnostic.
    AttemptRecord: What happened on one probe attempt.
    VerificationResult: The run. Terminal status is MATCHED or EXHAUSTED.

Tags:
    results, models, pydantic, verification, status, reporting
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """State of the retry run loop."""

    INIT = "INIT"
    PROBING = "PROBING"
    MATCHED = "MATCHED"
    EXHAUSTED = "EXHAUSTED"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.MATCHED, RunStatus.EXHAUSTED)


class Mismatch(BaseModel):
    """A single place where the observed document diverged."""

    path: str
    reason: str
    expected: str | None = None
    observed: str | None = None

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.reason}"


class ComparisonResult(BaseModel):
    """Outcome of comparing one observed document against the expectation."""

    matched: bool
    mismatches: list[Mismatch] = Field(default_factory=list)
    truncated: bool = False

    @property
    def first_mismatch(self) -> Mismatch | None:
        return self.mismatches[0] if self.mismatches else None

    @property
    def reason(self) -> str:
        """Human-readable one-line diagnostic."""
        if self.matched:
            return "observed document matches expectation"
        first = self.first_mismatch
        if first is None:
            return "observed document does not match expectation"
        extra = len(self.mismatches) - 1
        suffix = f" (+{extra} more)" if extra > 0 else ""
        return f"{first}{suffix}"


class AttemptRecord(BaseModel):
    """What happened on one probe attempt."""

    attempt: int
    outcome: Literal["matched", "mismatch", "probe_error"]
    detail: str = ""
    status_code: int | None = None
    delay_seconds: float = 0.0
    at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())


class VerificationResult(BaseModel):
    """Result of one harness run."""

    run_id: str
    expected_file: str
    target_path: str
    max_retry_times: int
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    overall_status: RunStatus = RunStatus.INIT
    attempts: list[AttemptRecord] = Field(default_factory=list)
    final_comparison: ComparisonResult | None = None
    last_error: str | None = None
    last_observed: Any = Field(default=None, exclude=True)
    expectation: Any = Field(default=None, exclude=True)
    summary: str = ""

    @property
    def attempts_used(self) -> int:
        return len(self.attempts)

    @property
    def matched(self) -> bool:
        return self.overall_status == RunStatus.MATCHED

    @property
    def exit_code(self) -> int:
        return 0 if self.matched else 1

    def mark_complete(self, status: RunStatus) -> None:
        """Finalise timestamps, duration, status and summary."""
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()
        self.overall_status = status

        used = self.attempts_used
        if status == RunStatus.MATCHED:
            self.summary = f"matched after {used}/{self.max_retry_times} attempt(s)"
        elif self.final_comparison is not None and not self.final_comparison.matched:
            self.summary = (
                f"no match after {used} attempt(s): {self.final_comparison.reason}"
            )
        else:
            detail = self.last_error or "no observed document"
            self.summary = f"no match after {used} attempt(s): {detail}"


__all__ = [
    "AttemptRecord",
    "ComparisonResult",
    "Mismatch",
    "RunStatus",
    "VerificationResult",
]
