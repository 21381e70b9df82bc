"""
tracecheck - end-to-end verification harness for distributed-trace output.

Brings nothing up and tears nothing down: once the service topology is
running, the harness triggers a traced request, polls the collector for the
captured trace data and structurally compares it against an expectation
document. The process exit code is the CI gate.

Example::

    from tracecheck import RunConfig, run_verification

    config = RunConfig(
        expected_file="tests/e2e/data/expected_context.yaml",
        max_retry_times=20,
        target_path="/ping",
    )
    result = run_verification(config)   # raises MismatchError on EXHAUSTED
"""

from __future__ import annotations

__version__ = "0.3.0"

from tracecheck.comparator import compare  # noqa: E402
from tracecheck.config import RunConfig  # noqa: E402
from tracecheck.errors import (  # noqa: E402
    ConfigError,
    HarnessError,
    MalformedResponseError,
    MismatchError,
    ProbeError,
    TransientProbeError,
)
from tracecheck.harness import VerificationHarness, run_verification  # noqa: E402
from tracecheck.loader import load_expectation, parse_observed  # noqa: E402
from tracecheck.results import (  # noqa: E402
    ComparisonResult,
    Mismatch,
    RunStatus,
    VerificationResult,
)

__all__ = [
    "ComparisonResult",
    "ConfigError",
    "HarnessError",
    "MalformedResponseError",
    "Mismatch",
    "MismatchError",
    "ProbeError",
    "RunConfig",
    "RunStatus",
    "TransientProbeError",
    "VerificationHarness",
    "VerificationResult",
    "compare",
    "load_expectation",
    "parse_observed",
    "run_verification",
]
