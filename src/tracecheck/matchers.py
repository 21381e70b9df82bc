"""Wildcard and matcher markers for expectation documents.

Trace data is full of values a test cannot predict: segment and trace ids,
start/end timestamps, peer ports. An expectation document marks those
positions with a matcher instead of a literal.

Markers come in two flavours:

- **Value matchers** (``Matcher`` subclasses) replace a single position and
  decide whether the observed value at that position is acceptable.
- **Structural markers** (``OptionalNode``, ``PrefixSequence``) change how the
  comparator walks a mapping key or a sequence.

YAML syntax (see :mod:`tracecheck.loader`)::

    segmentId: !not_null          # any non-null value
    startTime: !gt 0              # number greater than 0
    peer: !regex 'consumer:\\d+'   # string full-match
    tags: !subtree                # anything, including a whole mapping
    logs: !optional []            # may be absent; if present must be []
    refs: !prefix                 # observed may have extra trailing items
      - refType: CrossProcess

Collector expression strings (``not null``, ``gt 0``, ``eq 1``...) are
converted into the same matchers by :func:`parse_expression`.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

_NUMBER_OPS = {
    "gt": (lambda a, b: a > b, ">"),
    "ge": (lambda a, b: a >= b, ">="),
    "lt": (lambda a, b: a < b, "<"),
    "le": (lambda a, b: a <= b, "<="),
    "eq": (lambda a, b: a == b, "=="),
    "ne": (lambda a, b: a != b, "!="),
}

# "nq" is the collector's spelling of "not equal"
_EXPRESSION_ALIASES = {"nq": "ne"}

_EXPRESSION_RE = re.compile(
    r"^(?P<op>gt|ge|lt|le|eq|nq|ne)\s+(?P<operand>[-+]?\d+(?:\.\d+)?)$"
)


def is_number(value: Any) -> bool:
    """True for int/float values; bools are not numbers here."""
    return isinstance(value, int | float) and not isinstance(value, bool)


def is_container(value: Any) -> bool:
    return isinstance(value, dict | list)


def scalars_equal(expected: Any, observed: Any) -> bool:
    """Equality after type normalisation.

    Numbers compare by numeric value (``1 == 1.0``), everything else must
    share a type. A number never equals a string and a bool never equals a
    number.
    """
    if is_number(expected) and is_number(observed):
        if isinstance(expected, float) and isinstance(observed, float):
            if math.isnan(expected) and math.isnan(observed):
                return True
        return expected == observed
    if is_number(expected) or is_number(observed):
        return False
    if type(expected) is not type(observed):
        return False
    return expected == observed


class Matcher(ABC):
    """A value matcher placed in an expectation document."""

    tag: str = ""

    @abstractmethod
    def check(self, observed: Any) -> str | None:
        """Return ``None`` if *observed* is acceptable, else a failure reason."""

    @property
    def argument(self) -> Any:
        """Scalar argument rendered after the tag (``None`` for bare tags)."""
        return None

    def describe(self) -> str:
        arg = self.argument
        return self.tag if arg is None else f"{self.tag} {arg}"

    def expression(self) -> str | None:
        """Collector expression text for this matcher, if it has one."""
        return None

    def __repr__(self) -> str:
        return f"<{self.describe()}>"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.argument == other.argument  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, repr(self.argument)))


class AnyScalar(Matcher):
    """Leaf wildcard: any scalar (including null), but not a mapping or sequence."""

    tag = "!any"

    def check(self, observed: Any) -> str | None:
        if is_container(observed):
            return f"expected a scalar, got {type(observed).__name__}"
        return None


class AnyValue(Matcher):
    """Subtree wildcard: accepts any value at this position."""

    tag = "!subtree"

    def check(self, observed: Any) -> str | None:
        return None


class NotNull(Matcher):
    tag = "!not_null"

    def expression(self) -> str | None:
        return "not null"

    def check(self, observed: Any) -> str | None:
        if observed is None:
            return "expected a non-null value"
        return None


class IsNull(Matcher):
    tag = "!null"

    def expression(self) -> str | None:
        return "null"

    def check(self, observed: Any) -> str | None:
        if observed is not None:
            return f"expected null, got {observed!r}"
        return None


class NumberCompare(Matcher):
    """Numeric comparison against a constant (``!gt 0``, ``!le 100``...)."""

    def __init__(self, op: str, operand: int | float):
        op = _EXPRESSION_ALIASES.get(op, op)
        if op not in _NUMBER_OPS:
            raise ValueError(f"unknown comparison operator: {op!r}")
        if not is_number(operand):
            raise ValueError(f"comparison operand must be a number, got {operand!r}")
        self.op = op
        self.operand = operand
        self.tag = f"!{op}"

    @property
    def argument(self) -> Any:
        return self.operand

    def check(self, observed: Any) -> str | None:
        if not is_number(observed):
            return f"expected a number {self._symbol} {self.operand}, got {observed!r}"
        compare, _ = _NUMBER_OPS[self.op]
        if not compare(observed, self.operand):
            return f"expected a number {self._symbol} {self.operand}, got {observed!r}"
        return None

    def expression(self) -> str | None:
        return f"{self.op} {self.operand}"

    @property
    def _symbol(self) -> str:
        return _NUMBER_OPS[self.op][1]

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, NumberCompare)
            and self.op == other.op
            and self.operand == other.operand
        )

    def __hash__(self) -> int:
        return hash((self.op, self.operand))


class Regex(Matcher):
    tag = "!regex"

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._compiled = re.compile(pattern)

    @property
    def argument(self) -> Any:
        return self.pattern

    def check(self, observed: Any) -> str | None:
        if not isinstance(observed, str):
            return f"expected a string matching /{self.pattern}/, got {observed!r}"
        if self._compiled.fullmatch(observed) is None:
            return f"{observed!r} does not match /{self.pattern}/"
        return None


# ── Structural markers ───────────────────────────────────────────────────


_ANY = AnyValue()


@dataclass(eq=True)
class OptionalNode:
    """Mapping value (or trailing sequence item) that may be absent.

    When the position exists the observed value must still match ``node``;
    a bare ``!optional`` accepts any value.
    """

    node: Any = field(default_factory=lambda: _ANY)


@dataclass(eq=True)
class PrefixSequence:
    """Sequence whose observed counterpart may carry extra trailing items."""

    items: list[Any] = field(default_factory=list)


def parse_expression(text: str) -> Matcher | None:
    """Convert a collector expression string into a matcher.

    Returns ``None`` when *text* is not an expression, in which case the
    string is compared literally.

    >>> parse_expression("gt 0")
    <!gt 0>
    >>> parse_expression("not null")
    <!not_null>
    >>> parse_expression("producer") is None
    True
    """
    stripped = text.strip()
    if stripped == "not null":
        return NotNull()
    if stripped == "null":
        return IsNull()
    m = _EXPRESSION_RE.match(stripped)
    if m is None:
        return None
    raw = m.group("operand")
    operand: int | float = float(raw) if "." in raw else int(raw)
    return NumberCompare(m.group("op"), operand)


def convert_expressions(node: Any) -> Any:
    """Return a copy of *node* with expression strings replaced by matchers."""
    if isinstance(node, str):
        matcher = parse_expression(node)
        return node if matcher is None else matcher
    if isinstance(node, dict):
        return {key: convert_expressions(value) for key, value in node.items()}
    if isinstance(node, list):
        return [convert_expressions(item) for item in node]
    if isinstance(node, OptionalNode):
        return OptionalNode(convert_expressions(node.node))
    if isinstance(node, PrefixSequence):
        return PrefixSequence([convert_expressions(item) for item in node.items])
    return node


__all__ = [
    "AnyScalar",
    "AnyValue",
    "IsNull",
    "Matcher",
    "NotNull",
    "NumberCompare",
    "OptionalNode",
    "PrefixSequence",
    "Regex",
    "convert_expressions",
    "is_container",
    "is_number",
    "parse_expression",
    "scalars_equal",
]
