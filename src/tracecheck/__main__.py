"""Allow ``python -m tracecheck``."""

from tracecheck.cli import run

run()
