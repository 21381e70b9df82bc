"""
CLI: ``tracecheck`` — end-to-end trace verification gate.

Run after the docker-compose topology is up::

    tracecheck --expected_file=tests/e2e/data/expected_context.yaml \\
               --max_retry_times=20 --target_path=/ping

    python -m tracecheck --expected-file expected.yaml --max-retry-times 3 \\
               --target-path /ping --collector-url http://0.0.0.0:12800/receiveData \\
               --backoff exponential --output results/e2e.json

Exit codes: 0 matched, 1 retry budget exhausted, 2 configuration error,
3 unrecoverable probe error.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from pydantic import ValidationError
from rich.markup import escape

from tracecheck import __version__
from tracecheck.config import RunConfig
from tracecheck.errors import ConfigError, HarnessError, MismatchError
from tracecheck.harness import run_verification
from tracecheck.logging import configure_logging, get_logger
from tracecheck.report import check_output_path, console, err_console, print_result, write_result
from tracecheck.settings import HarnessSettings

app = typer.Typer(
    name="tracecheck",
    help="Verify that a running system emitted the expected trace data.",
    add_completion=False,
    rich_markup_mode="rich",
)

logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"tracecheck {__version__}")
        raise typer.Exit()


@app.command()
def main(
    expected_file: str = typer.Option(
        ..., "--expected_file", "--expected-file", "-e",
        help="Expectation document (YAML or JSON).",
    ),
    max_retry_times: int = typer.Option(
        ..., "--max_retry_times", "--max-retry-times", "-n",
        help="Maximum number of probe attempts (>= 1).",
    ),
    target_path: str = typer.Option(
        ..., "--target_path", "--target-path", "-p",
        help="Route that triggers the traced request, e.g. /ping.",
    ),
    target_url: str | None = typer.Option(
        None, "--target-url", help="Base URL of the triggered service. [env: TRACECHECK_TARGET_URL]",
    ),
    collector_url: str | None = typer.Option(
        None, "--collector-url",
        help="URL returning captured trace data; '' uses the trigger response. [env: TRACECHECK_COLLECTOR_URL]",
    ),
    interval: float | None = typer.Option(None, "--interval", "-i", help="Base delay between attempts (s)."),
    max_interval: float | None = typer.Option(None, "--max-interval", help="Delay cap for linear/exponential backoff (s)."),
    backoff: str | None = typer.Option(None, "--backoff", "-b", help="constant, linear or exponential."),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Per-request timeout (s)."),
    literal_strings: bool = typer.Option(
        False, "--literal-strings", help="Compare 'gt 0' / 'not null' strings literally.",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the result JSON to this file."),
    json_out: bool = typer.Option(False, "--json", help="Print the result as JSON on stdout."),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    json_logs: bool | None = typer.Option(
        None, "--json-logs/--console-logs", help="Log format (default: JSON unless stderr is a TTY).",
    ),
    version: bool | None = typer.Option(
        None, "--version", "-V", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """Probe the system under test until its trace output matches the expectation."""
    # --log-level is validated by the settings model, same as TRACECHECK_LOG_LEVEL
    overrides = {"log_level": log_level} if log_level else {}
    try:
        settings = HarnessSettings(**overrides)
    except ValidationError as exc:
        err_console.print(
            "[bold red]Error[/bold red] (CONFIG): invalid --log-level or TRACECHECK_* environment\n"
            + escape(str(exc))
        )
        raise typer.Exit(code=ConfigError.exit_code) from exc

    configure_logging(
        level=settings.log_level,
        json_format=json_logs if json_logs is not None else settings.json_logs,
    )

    try:
        if output is not None:
            check_output_path(output)
        config = RunConfig.from_settings(
            settings,
            expected_file=expected_file,
            max_retry_times=max_retry_times,
            target_path=target_path,
            target_url=target_url,
            collector_url=collector_url,
            interval=interval,
            max_interval=max_interval,
            backoff=backoff,
            request_timeout=timeout,
            expressions=not literal_strings,
        )
        result = run_verification(config)
    except MismatchError as exc:
        logger.error("verification_failed", **exc.to_dict(), first_mismatch=exc.first_mismatch_path)
        _emit(exc.result, json_out=json_out, output=output)
        raise typer.Exit(code=exc.exit_code) from exc
    except HarnessError as exc:
        _abort(exc)

    _emit(result, json_out=json_out, output=output)


def _abort(exc: HarnessError) -> NoReturn:
    logger.error("verification_aborted", **exc.to_dict())
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
    raise typer.Exit(code=exc.exit_code) from exc


def _emit(result, *, json_out: bool, output: Path | None) -> None:
    if json_out:
        typer.echo(result.model_dump_json(indent=2))
    else:
        print_result(result, out=console)
    if output is not None:
        try:
            path = write_result(result, output)
        except ConfigError as exc:
            _abort(exc)
        logger.info("result_written", path=str(path))


def run() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
