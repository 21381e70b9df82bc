"""Terminal and file reporting for a finished run.

On failure a CI log needs three things, in this order: the first path that
diverged, the remaining mismatches, and a diff of what was observed against
what was expected. The diff is rendered from block-style YAML of both
documents with sorted keys, so unrelated key ordering never shows up.
"""

from __future__ import annotations

import difflib
import os
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from tracecheck.errors import ConfigError
from tracecheck.loader import dump_document
from tracecheck.results import RunStatus, VerificationResult

console = Console()
err_console = Console(stderr=True)


def render_diff(expected: Any, observed: Any) -> str:
    """Unified diff from the observed document to the expectation."""
    observed_lines = dump_document(observed).splitlines(keepends=True)
    expected_lines = dump_document(expected).splitlines(keepends=True)
    return "".join(
        difflib.unified_diff(
            observed_lines,
            expected_lines,
            fromfile="observed",
            tofile="expected",
        )
    )


def print_result(
    result: VerificationResult,
    *,
    show_diff: bool = True,
    out: Console | None = None,
) -> None:
    """Print a run summary; on EXHAUSTED also mismatches and the diff."""
    out = out or console
    if result.overall_status == RunStatus.MATCHED:
        out.print(f"[bold green]✓ MATCHED[/] — {escape(result.summary)} [dim](run_id: {result.run_id})[/]")
        return

    out.print(f"[bold red]✗ {result.overall_status.value}[/] — {escape(result.summary)} [dim](run_id: {result.run_id})[/]")

    _print_attempts(result, out)

    comparison = result.final_comparison
    if comparison is None:
        out.print("[yellow]No observed document was fetched; last error:[/] " + escape(result.last_error or "unknown"))
        return

    first = comparison.first_mismatch
    if first is not None:
        out.print(f"\n[bold]First mismatch:[/] [cyan]{escape(first.path or '<root>')}[/] — {escape(first.reason)}")

    if len(comparison.mismatches) > 1:
        table = Table(title="Mismatches", show_lines=False, pad_edge=False)
        table.add_column("path", style="cyan", overflow="fold")
        table.add_column("reason", overflow="fold")
        table.add_column("expected", overflow="fold")
        table.add_column("observed", overflow="fold")
        for m in comparison.mismatches:
            table.add_row(*(escape(cell) for cell in (m.path or "<root>", m.reason, m.expected or "", m.observed or "")))
        out.print(table)
        if comparison.truncated:
            out.print("[dim]Mismatch list truncated.[/dim]")

    if show_diff and result.expectation is not None and result.last_observed is not None:
        diff = render_diff(result.expectation, result.last_observed)
        if diff:
            out.print("\n[bold]Diff (observed → expected):[/]")
            out.print(Syntax(diff, "diff", theme="ansi_dark", word_wrap=True))


def _print_attempts(result: VerificationResult, out: Console) -> None:
    table = Table(title="Attempts", show_lines=False, pad_edge=False)
    table.add_column("#", justify="right")
    table.add_column("outcome")
    table.add_column("status", justify="right")
    table.add_column("detail", overflow="fold")
    for rec in result.attempts:
        style = {"matched": "green", "mismatch": "yellow", "probe_error": "red"}[rec.outcome]
        table.add_row(
            str(rec.attempt),
            f"[{style}]{rec.outcome}[/{style}]",
            "" if rec.status_code is None else str(rec.status_code),
            escape(rec.detail),
        )
    out.print(table)


def check_output_path(path: str | Path) -> Path:
    """Reject a result path that could not be written, before any probe is sent.

    Raises:
        ConfigError: *path* is a directory, or its nearest existing ancestor
            is not a writable directory.
    """
    path = Path(path)
    if path.is_dir():
        raise ConfigError(f"Output path is a directory: {path}", path=str(path))
    ancestor = path.parent
    while not ancestor.exists():
        ancestor = ancestor.parent
    if not ancestor.is_dir() or not os.access(ancestor, os.W_OK | os.X_OK):
        raise ConfigError(
            f"Output path is not writable: {path} ({ancestor} is not a writable directory)",
            path=str(path),
        )
    return path


def write_result(result: VerificationResult, path: str | Path) -> Path:
    """Write the result as JSON, creating parent directories.

    Raises:
        ConfigError: the file or its directory cannot be written.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(result.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot write result to {path}: {exc}", path=str(path), cause=exc) from exc
    return path


__all__ = [
    "check_output_path",
    "console",
    "err_console",
    "print_result",
    "render_diff",
    "write_result",
]
