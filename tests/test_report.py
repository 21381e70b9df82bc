"""Tests for terminal and file reporting."""

from __future__ import annotations

import io
import json

import pytest
from rich.console import Console

from _support import MISMATCH_PATH, ScriptedProber, mismatched_trace, observed_trace, unavailable
from tracecheck.errors import ConfigError, MismatchError
from tracecheck.harness import run_verification
from tracecheck.matchers import NotNull
from tracecheck.report import check_output_path, print_result, render_diff, write_result


def capture() -> Console:
    return Console(file=io.StringIO(), record=True, width=200, color_system=None)


@pytest.fixture
def exhausted(make_config, sleep):
    with pytest.raises(MismatchError) as exc_info:
        run_verification(make_config(max_retry_times=2), prober=ScriptedProber(mismatched_trace()), sleep=sleep)
    return exc_info.value.result


class TestRenderDiff:
    def test_changed_value(self):
        diff = render_diff({"operationName": "/pong"}, {"operationName": "/pong2"})
        assert "--- observed" in diff
        assert "+++ expected" in diff
        assert "-operationName: /pong2" in diff
        assert "+operationName: /pong" in diff

    def test_identical(self):
        assert render_diff({"a": 1}, {"a": 1}) == ""

    def test_key_order_ignored(self):
        assert render_diff({"a": 1, "b": 2}, {"b": 2, "a": 1}) == ""

    def test_matchers_rendered(self):
        diff = render_diff({"segmentId": NotNull()}, {"segmentId": None})
        assert "!not_null" in diff


class TestPrintResult:
    def test_matched(self, make_config, sleep):
        result = run_verification(make_config(), prober=ScriptedProber(observed_trace()), sleep=sleep)
        out = capture()
        print_result(result, out=out)
        text = out.export_text()
        assert "MATCHED" in text
        assert "matched after 1/3 attempt(s)" in text

    def test_exhausted(self, exhausted):
        out = capture()
        print_result(exhausted, out=out)
        text = out.export_text()
        assert "EXHAUSTED" in text
        assert f"First mismatch: {MISMATCH_PATH}" in text
        assert "Attempts" in text
        assert "operationName: /pong2" in text

    def test_no_diff(self, exhausted):
        out = capture()
        print_result(exhausted, show_diff=False, out=out)
        assert "Diff" not in out.export_text()

    def test_no_document_fetched(self, make_config, sleep):
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=1), prober=ScriptedProber(unavailable()), sleep=sleep)
        out = capture()
        print_result(exc_info.value.result, out=out)
        text = out.export_text()
        assert "No observed document was fetched" in text
        assert "HTTP 503" in text

    def test_markup_in_data_escaped(self, make_config, sleep):
        # observed values with rich markup must not be interpreted
        observed = mismatched_trace()
        observed["segmentItems"][1]["segments"][0]["spans"][0]["operationName"] = "[bold]/x[/bold]"
        with pytest.raises(MismatchError) as exc_info:
            run_verification(make_config(max_retry_times=1), prober=ScriptedProber(observed), sleep=sleep)
        out = capture()
        print_result(exc_info.value.result, out=out)
        assert "[bold]/x[/bold]" in out.export_text()


class TestWriteResult:
    def test_writes_json(self, exhausted, tmp_path):
        path = write_result(exhausted, tmp_path / "results" / "e2e.json")
        data = json.loads(path.read_text())
        assert data["overall_status"] == "EXHAUSTED"
        assert data["final_comparison"]["mismatches"][0]["path"] == MISMATCH_PATH
        assert len(data["attempts"]) == 2

    def test_parent_is_a_file(self, exhausted, tmp_path):
        (tmp_path / "results").write_text("")
        with pytest.raises(ConfigError, match="Cannot write result") as exc_info:
            write_result(exhausted, tmp_path / "results" / "e2e.json")
        assert exc_info.value.exit_code == 2
        assert isinstance(exc_info.value.cause, OSError)


class TestCheckOutputPath:
    def test_new_file_in_missing_directories(self, tmp_path):
        target = tmp_path / "a" / "b" / "e2e.json"
        assert check_output_path(target) == target
        assert not (tmp_path / "a").exists()

    def test_directory_rejected(self, tmp_path):
        with pytest.raises(ConfigError, match="is a directory"):
            check_output_path(tmp_path)

    def test_file_ancestor_rejected(self, tmp_path):
        (tmp_path / "results").write_text("")
        with pytest.raises(ConfigError, match="not writable"):
            check_output_path(tmp_path / "results" / "nested" / "e2e.json")
