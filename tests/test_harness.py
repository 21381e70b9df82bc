"""Tests for the retry run loop and run_verification()."""

from __future__ import annotations

import pytest

from _support import (
    MISMATCH_PATH,
    ScriptedProber,
    mismatched_trace,
    observed_trace,
    unavailable,
)
from tracecheck.errors import (
    ConfigError,
    MalformedResponseError,
    MismatchError,
    ProbeError,
    TransientProbeError,
)
from tracecheck.harness import VerificationHarness, run_verification
from tracecheck.loader import load_expectation
from tracecheck.prober import ProbeResponse
from tracecheck.results import RunStatus
from tracecheck.retry import LinearBackoff


class TestRunLoop:
    def test_match_on_first_attempt(self, make_config, sleep):
        prober = ScriptedProber(observed_trace())
        result = run_verification(make_config(), prober=prober, sleep=sleep)

        assert result.overall_status == RunStatus.MATCHED
        assert result.exit_code == 0
        assert prober.calls == 1
        assert sleep.delays == []
        assert result.summary == "matched after 1/3 attempt(s)"

    @pytest.mark.parametrize("max_retry_times", [1, 2, 5])
    def test_never_matching_probes_exactly_n_times(self, make_config, sleep, max_retry_times):
        prober = ScriptedProber(mismatched_trace())
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=max_retry_times), prober=prober, sleep=sleep)

        assert prober.calls == max_retry_times
        assert len(sleep.delays) == max_retry_times - 1
        result = exc_info.value.result
        assert result.overall_status == RunStatus.EXHAUSTED
        assert result.attempts_used == max_retry_times
        assert exc_info.value.exit_code == 1

    def test_transient_errors_then_match(self, make_config, sleep):
        prober = ScriptedProber(unavailable(), unavailable(), observed_trace())
        result = run_verification(make_config(max_retry_times=3), prober=prober, sleep=sleep)

        assert result.matched
        assert prober.calls == 3
        assert [a.outcome for a in result.attempts] == ["probe_error", "probe_error", "matched"]
        assert result.attempts[0].status_code == 503
        assert sleep.delays == [0.5, 0.5]

    def test_error_flagged_retryable_is_retried(self, make_config, sleep):
        flaky = ProbeError("HTTP 409 from GET http://producer:8081/ping", status_code=409, retryable=True)
        prober = ScriptedProber(flaky, observed_trace())
        result = run_verification(make_config(max_retry_times=3), prober=prober, sleep=sleep)

        assert result.matched
        assert prober.calls == 2
        assert result.attempts[0].outcome == "probe_error"
        assert result.attempts[0].status_code == 409

    def test_match_after_mismatches(self, make_config, sleep):
        prober = ScriptedProber(mismatched_trace(), observed_trace())
        result = run_verification(make_config(max_retry_times=5), prober=prober, sleep=sleep)
        assert prober.calls == 2
        assert result.summary == "matched after 2/5 attempt(s)"

    def test_first_mismatch_reported(self, make_config, sleep):
        prober = ScriptedProber(mismatched_trace())
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=20), prober=prober, sleep=sleep)

        assert prober.calls == 20
        assert exc_info.value.first_mismatch_path == MISMATCH_PATH
        assert MISMATCH_PATH in str(exc_info.value)
        assert "after 20 attempt(s)" in str(exc_info.value)

    def test_only_transient_errors(self, make_config, sleep):
        prober = ScriptedProber(unavailable())
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=2), prober=prober, sleep=sleep)

        result = exc_info.value.result
        assert result.final_comparison is None
        assert result.last_error == "HTTP 503 from GET http://collector/receiveData"
        assert result.summary.endswith("HTTP 503 from GET http://collector/receiveData")
        assert exc_info.value.first_mismatch_path is None

    def test_backoff_delays(self, make_config, sleep):
        config = make_config(max_retry_times=4)
        expectation = load_expectation(config.expected_file)
        harness = VerificationHarness(
            config,
            expectation,
            ScriptedProber(mismatched_trace()),
            backoff=LinearBackoff(base_delay=1.0, increment=1.0, max_delay=2.5),
            sleep=sleep,
        )
        result = harness.run()

        assert sleep.delays == [1.0, 2.0, 2.5]
        assert [a.delay_seconds for a in result.attempts] == [1.0, 2.0, 2.5, 0.0]
        assert harness.status == RunStatus.EXHAUSTED

    def test_status_transitions(self, make_config, sleep):
        config = make_config()
        harness = VerificationHarness(
            config, load_expectation(config.expected_file), ScriptedProber(observed_trace()), sleep=sleep
        )
        assert harness.status == RunStatus.INIT
        harness.run()
        assert harness.status == RunStatus.MATCHED
        assert harness.status.is_terminal


class TestFatalErrors:
    def test_malformed_response_not_retried(self, make_config, sleep):
        bad = ProbeResponse(body=b"<html>oops</html>", status_code=200, content_type="text/html")
        prober = ScriptedProber(bad)
        with pytest.raises(MalformedResponseError):
            run_verification(make_config(max_retry_times=5), prober=prober, sleep=sleep)
        assert prober.calls == 1
        assert sleep.delays == []

    def test_fatal_probe_error_not_retried(self, make_config, sleep):
        prober = ScriptedProber(ProbeError("HTTP 404 from GET http://producer:8081/ping", status_code=404))
        with pytest.raises(ProbeError) as exc_info:
            run_verification(make_config(max_retry_times=5), prober=prober, sleep=sleep)
        assert exc_info.value.exit_code == 3
        assert prober.calls == 1

    def test_fatal_after_transient(self, make_config, sleep):
        prober = ScriptedProber(unavailable(), ProbeError("HTTP 400"))
        with pytest.raises(ProbeError, match="HTTP 400"):
            run_verification(make_config(max_retry_times=5), prober=prober, sleep=sleep)
        assert prober.calls == 2

    def test_transient_error_flagged_fatal_not_retried(self, make_config, sleep):
        prober = ScriptedProber(TransientProbeError("HTTP 503", status_code=503, retryable=False))
        with pytest.raises(TransientProbeError):
            run_verification(make_config(max_retry_times=5), prober=prober, sleep=sleep)
        assert prober.calls == 1

    def test_missing_expectation_before_any_probe(self, make_config, sleep, tmp_path):
        prober = ScriptedProber(observed_trace())
        config = make_config(expected_file=tmp_path / "missing.yaml")
        with pytest.raises(ConfigError, match="Expectation file not found"):
            run_verification(config, prober=prober, sleep=sleep)
        assert prober.calls == 0


class TestResult:
    def test_result_serialises_without_documents(self, make_config, sleep):
        result = run_verification(make_config(), prober=ScriptedProber(observed_trace()), sleep=sleep)
        data = result.model_dump(mode="json")
        assert data["overall_status"] == "MATCHED"
        assert data["target_path"] == "/ping"
        assert "last_observed" not in data
        assert "expectation" not in data
        assert result.last_observed is not None
        assert result.completed_at is not None
        assert result.duration_seconds >= 0

    def test_literal_strings_mode(self, make_config, sleep):
        # "not null" compared literally never matches a real segment id
        prober = ScriptedProber(observed_trace())
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=1, expressions=False), prober=prober, sleep=sleep)
        assert exc_info.value.first_mismatch_path == "segmentItems[0].segments[0].segmentId"
