"""Retry run loop: probe, parse, compare, wait, repeat.

State machine::

    INIT ──► PROBING ──► MATCHED      (first comparison that matches)
               │  ▲
               └──┘                   (no match, attempts remain)
               │
               └──────► EXHAUSTED    (attempt counter reached max_retry_times)

Per attempt:

1. ``prober.probe()``. A retryable :class:`ProbeError` (``TransientProbeError``,
   or any probe error raised with ``retryable=True``) counts as a non-match
   and the loop moves on; the system under test may not have published
   the trace yet. Any other :class:`ProbeError` propagates immediately.
2. Parse the body. A :class:`MalformedResponseError` propagates immediately:
   a broken response is not expected to heal.
3. ``compare()``. A match ends the run.
4. Otherwise sleep for the backoff delay if attempts remain.

The loop performs at most ``max_retry_times`` probes and never sleeps after
the last one.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from tracecheck.comparator import compare
from tracecheck.config import RunConfig
from tracecheck.errors import MismatchError, ProbeError, is_retryable
from tracecheck.loader import load_expectation, parse_observed
from tracecheck.logging import LogContext, get_logger
from tracecheck.prober import HttpProber, Prober, TraceProber
from tracecheck.results import AttemptRecord, ComparisonResult, RunStatus, VerificationResult
from tracecheck.retry import BackoffStrategy

logger = get_logger(__name__)


class VerificationHarness:
    """Drives one verification run.

    Args:
        config: Run configuration.
        expectation: Expectation document, loaded once by the caller.
        prober: Anything with ``probe() -> ProbeResponse``.
        backoff: Delay policy; defaults to ``config.backoff_strategy()``.
        sleep: Blocking sleep, injectable for tests.
    """

    def __init__(
        self,
        config: RunConfig,
        expectation: Any,
        prober: Prober,
        *,
        backoff: BackoffStrategy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.expectation = expectation
        self.prober = prober
        self.backoff = backoff or config.backoff_strategy()
        self._sleep = sleep
        self.status = RunStatus.INIT

    def run(self) -> VerificationResult:
        """Run until MATCHED or EXHAUSTED.

        Raises:
            ProbeError: non-transient probe failure (including malformed body).
        """
        config = self.config
        result = VerificationResult(
            run_id=config.run_id,
            expected_file=str(config.expected_file),
            target_path=config.target_path,
            max_retry_times=config.max_retry_times,
            expectation=self.expectation,
        )

        with LogContext(run_id=config.run_id):
            logger.info(
                "verification_started",
                expected_file=str(config.expected_file),
                target=config.trigger_url,
                collector=config.collector_url,
                max_retry_times=config.max_retry_times,
            )
            self.status = RunStatus.PROBING

            for attempt in range(1, config.max_retry_times + 1):
                record = self._attempt(attempt, result)
                result.attempts.append(record)

                if record.outcome == "matched":
                    self.status = RunStatus.MATCHED
                    break

                if attempt < config.max_retry_times:
                    delay = self.backoff.next_delay(attempt - 1)
                    record.delay_seconds = delay
                    logger.info(
                        "attempt_failed",
                        attempt=attempt,
                        max_retry_times=config.max_retry_times,
                        outcome=record.outcome,
                        detail=record.detail,
                        retry_in=round(delay, 3),
                    )
                    self._sleep(delay)
                else:
                    logger.warning(
                        "attempt_failed",
                        attempt=attempt,
                        max_retry_times=config.max_retry_times,
                        outcome=record.outcome,
                        detail=record.detail,
                    )
            else:
                self.status = RunStatus.EXHAUSTED

            result.mark_complete(self.status)
            log = logger.info if result.matched else logger.error
            log(
                "verification_finished",
                status=result.overall_status.value,
                attempts=result.attempts_used,
                duration_seconds=round(result.duration_seconds, 3),
                summary=result.summary,
            )
        return result

    def _attempt(self, attempt: int, result: VerificationResult) -> AttemptRecord:
        try:
            response = self.prober.probe()
        except ProbeError as exc:
            if not is_retryable(exc):
                raise
            result.last_error = exc.message
            return AttemptRecord(
                attempt=attempt,
                outcome="probe_error",
                detail=exc.message,
                status_code=exc.status_code,
            )

        observed = parse_observed(response.body, response.content_type)
        comparison: ComparisonResult = compare(
            self.expectation, observed, max_mismatches=self.config.max_mismatches
        )
        result.final_comparison = comparison
        result.last_observed = observed
        result.last_error = None

        if comparison.matched:
            logger.info("attempt_matched", attempt=attempt)
            return AttemptRecord(
                attempt=attempt,
                outcome="matched",
                detail=comparison.reason,
                status_code=response.status_code,
            )
        return AttemptRecord(
            attempt=attempt,
            outcome="mismatch",
            detail=comparison.reason,
            status_code=response.status_code,
        )


def run_verification(
    config: RunConfig,
    *,
    prober: Prober | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> VerificationResult:
    """Load the expectation, run the harness and raise on EXHAUSTED.

    When *prober* is omitted an HTTP :class:`TraceProber` is built from
    *config* and closed afterwards.

    Raises:
        ConfigError: expectation cannot be loaded (no probe is attempted).
        ProbeError: non-transient probe failure.
        MismatchError: retry budget exhausted without a match.
    """
    expectation = load_expectation(config.expected_file, expressions=config.expressions)

    if prober is not None:
        result = VerificationHarness(config, expectation, prober, sleep=sleep).run()
    else:
        with HttpProber(timeout=config.request_timeout) as http:
            trace_prober = TraceProber(config, http)
            result = VerificationHarness(config, expectation, trace_prober, sleep=sleep).run()

    if not result.matched:
        raise MismatchError(
            f"Observed output did not match {config.expected_file} "
            f"after {result.attempts_used} attempt(s): {result.summary}",
            result=result,
            run_id=config.run_id,
        )
    return result


__all__ = ["VerificationHarness", "run_verification"]
