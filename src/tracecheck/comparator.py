"""Structural comparison of an observed document against the expectation.

``compare()`` is a pure function: no I/O, no logging, no retry policy. The
run loop calls it once per attempt; tests call it with literal documents.

Rules:
    - Both documents are walked in parallel by position (key or index).
    - A matcher decides its own position. The position must exist unless the
      expectation wraps it in ``OptionalNode``.
    - Mappings are a permissive superset match: every expected key must be
      present and match; extra observed keys are ignored.
    - Sequences match element by element. Lengths must agree unless the
      expectation is a ``PrefixSequence``; trailing ``OptionalNode`` items may
      be missing.
    - Scalars use ``scalars_equal`` (numbers by value, no str/number mixing).

Mismatches are accumulated in walk order up to ``max_mismatches``; the first
one is always the earliest divergence.
"""

from __future__ import annotations

from typing import Any

from tracecheck.matchers import (
    Matcher,
    OptionalNode,
    PrefixSequence,
    is_container,
    is_number,
    scalars_equal,
)
from tracecheck.results import ComparisonResult, Mismatch

DEFAULT_MAX_MISMATCHES = 50

_ABSENT = object()


class _Stop(Exception):
    """Internal signal: the mismatch budget is full."""


def format_path(parent: str, key: Any) -> str:
    """Join a structural path: ``spans`` + 2 -> ``spans[2]``."""
    if isinstance(key, int) and not isinstance(key, bool):
        return f"{parent}[{key}]"
    key = str(key)
    if not key.replace("_", "").replace("-", "").isalnum():
        return f"{parent}[{key!r}]"
    return f"{parent}.{key}" if parent else key


def _render(value: Any, limit: int = 120) -> str:
    if isinstance(value, Matcher):
        text = value.describe()
    elif isinstance(value, dict):
        text = f"mapping with {len(value)} key(s)"
    elif isinstance(value, list | PrefixSequence):
        items = value.items if isinstance(value, PrefixSequence) else value
        text = f"sequence of {len(items)} item(s)"
    else:
        text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "mapping"
    if isinstance(value, list):
        return "sequence"
    if value is None:
        return "null"
    return type(value).__name__


class _Walker:
    def __init__(self, max_mismatches: int):
        self.max_mismatches = max_mismatches
        self.mismatches: list[Mismatch] = []
        self.truncated = False

    def fail(self, path: str, reason: str, expected: Any = _ABSENT, observed: Any = _ABSENT) -> None:
        if len(self.mismatches) >= self.max_mismatches:
            self.truncated = True
            raise _Stop
        self.mismatches.append(
            Mismatch(
                path=path,
                reason=reason,
                expected=None if expected is _ABSENT else _render(expected),
                observed=None if observed is _ABSENT else _render(observed),
            )
        )

    def walk(self, expected: Any, observed: Any, path: str) -> None:
        if isinstance(expected, OptionalNode):
            self.walk(expected.node, observed, path)
        elif isinstance(expected, Matcher):
            reason = expected.check(observed)
            if reason is not None:
                self.fail(path, reason, expected, observed)
        elif isinstance(expected, dict):
            self._walk_mapping(expected, observed, path)
        elif isinstance(expected, PrefixSequence):
            self._walk_sequence(expected.items, observed, path, prefix=True)
        elif isinstance(expected, list):
            self._walk_sequence(expected, observed, path, prefix=False)
        elif is_container(observed):
            self.fail(path, f"expected {_kind(expected)}, got {_kind(observed)}", expected, observed)
        elif not scalars_equal(expected, observed):
            same_kind = type(expected) is type(observed) or (is_number(expected) and is_number(observed))
            if same_kind:
                reason = f"expected {expected!r}, got {observed!r}"
            else:
                reason = f"expected {_kind(expected)} {expected!r}, got {_kind(observed)} {observed!r}"
            self.fail(path, reason, expected, observed)

    def _walk_mapping(self, expected: dict, observed: Any, path: str) -> None:
        if not isinstance(observed, dict):
            self.fail(path, f"expected mapping, got {_kind(observed)}", expected, observed)
            return
        for key, value in expected.items():
            child = format_path(path, key)
            if key not in observed:
                if not isinstance(value, OptionalNode):
                    self.fail(child, "missing key", value)
                continue
            self.walk(value, observed[key], child)

    def _walk_sequence(self, expected: list, observed: Any, path: str, *, prefix: bool) -> None:
        if not isinstance(observed, list):
            self.fail(path, f"expected sequence, got {_kind(observed)}", expected, observed)
            return

        required = len(expected)
        while required and isinstance(expected[required - 1], OptionalNode):
            required -= 1

        if len(observed) < required:
            self.fail(
                path,
                f"expected {'at least ' if prefix or required != len(expected) else ''}"
                f"{required} item(s), got {len(observed)}",
                expected,
                observed,
            )
        elif not prefix and len(observed) > len(expected):
            self.fail(
                path,
                f"expected {'at most ' if required != len(expected) else ''}"
                f"{len(expected)} item(s), got {len(observed)}",
                expected,
                observed,
            )

        for index, item in enumerate(expected):
            if index >= len(observed):
                # already reported as a length mismatch (or an absent optional)
                break
            self.walk(item, observed[index], format_path(path, index))


def compare(
    expected: Any,
    observed: Any,
    *,
    max_mismatches: int = DEFAULT_MAX_MISMATCHES,
) -> ComparisonResult:
    """Compare *observed* against *expected*.

    Args:
        expected: Expectation document (may contain matchers).
        observed: Plain data fetched from the system under test.
        max_mismatches: Stop walking after this many mismatches; ``1``
            short-circuits on the first divergence.

    Returns:
        ComparisonResult with ``matched`` and the mismatches in walk order.
    """
    if max_mismatches < 1:
        raise ValueError("max_mismatches must be >= 1")
    walker = _Walker(max_mismatches)
    try:
        walker.walk(expected, observed, "")
    except _Stop:
        pass
    return ComparisonResult(
        matched=not walker.mismatches,
        mismatches=walker.mismatches,
        truncated=walker.truncated,
    )


__all__ = ["DEFAULT_MAX_MISMATCHES", "compare", "format_path"]
