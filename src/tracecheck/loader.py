"""Expectation loading and observed-document parsing.

``load_expectation()`` reads the reference document exactly once per run.
The file is YAML (JSON is accepted as the YAML subset it is) and may carry
matcher tags anywhere in the tree:

Example YAML::

    segmentItems:
      - serviceName: producer
        segmentSize: ge 1
        segments:
          - segmentId: !not_null
            spans:
              - operationName: /pong
                peer: consumer:8082
                startTime: !gt 0
                tags: !subtree
              - operationName: /ping
                refs: !optional

``parse_observed()`` turns a probe response body into an observed document.
It never interprets matcher tags; the system under test only sends plain data.

``dump_document()`` renders either kind of document back to YAML (matchers
as their tags) for the diff printed on failure. YAML allows one tag per node,
so ``!optional`` wrapping a matcher is written with the matcher's expression
text (``!optional gt 0``). That text loads back as the same matcher only when
collector expressions are enabled; with ``expressions=False`` it is a literal
string. Matchers without an expression form (``!any``, ``!regex``) are
written as their tag text and always load back as literal strings. The
rendering is meant for the diff, not as a second expectation file.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import yaml

from tracecheck.errors import ConfigError, MalformedResponseError
from tracecheck.logging import get_logger
from tracecheck.matchers import (
    AnyScalar,
    AnyValue,
    IsNull,
    Matcher,
    NotNull,
    NumberCompare,
    OptionalNode,
    PrefixSequence,
    Regex,
    convert_expressions,
)

logger = get_logger(__name__)


class ExpectationLoader(yaml.SafeLoader):
    """SafeLoader that understands the matcher tags."""


def _construct_untagged(loader: yaml.SafeLoader, node: yaml.Node) -> Any:
    """Construct *node* as if its tag had been omitted."""
    if isinstance(node, yaml.MappingNode):
        return loader.construct_mapping(node, deep=True)
    if isinstance(node, yaml.SequenceNode):
        return loader.construct_sequence(node, deep=True)
    tag = loader.resolve(yaml.ScalarNode, node.value, (True, False))
    return loader.construct_object(yaml.ScalarNode(tag, node.value), deep=True)


def _bare(matcher_cls: type[Matcher]):
    def construct(loader: yaml.SafeLoader, node: yaml.Node) -> Matcher:
        if not isinstance(node, yaml.ScalarNode) or node.value != "":
            raise yaml.constructor.ConstructorError(
                None, None, f"{node.tag} takes no value", node.start_mark
            )
        return matcher_cls()

    return construct


def _number_compare(op: str):
    def construct(loader: yaml.SafeLoader, node: yaml.Node) -> Matcher:
        value = _construct_untagged(loader, node) if isinstance(node, yaml.ScalarNode) else None
        try:
            return NumberCompare(op, value)
        except ValueError as exc:
            raise yaml.constructor.ConstructorError(
                None, None, f"!{op} needs a numeric operand ({exc})", node.start_mark
            ) from exc

    return construct


def _construct_regex(loader: yaml.SafeLoader, node: yaml.Node) -> Matcher:
    if not isinstance(node, yaml.ScalarNode):
        raise yaml.constructor.ConstructorError(
            None, None, "!regex takes a pattern string", node.start_mark
        )
    try:
        return Regex(loader.construct_scalar(node))
    except re.error as exc:
        raise yaml.constructor.ConstructorError(
            None, None, f"invalid regular expression: {exc}", node.start_mark
        ) from exc


def _construct_optional(loader: yaml.SafeLoader, node: yaml.Node) -> OptionalNode:
    if isinstance(node, yaml.ScalarNode) and node.value == "":
        return OptionalNode()
    return OptionalNode(_construct_untagged(loader, node))


def _construct_prefix(loader: yaml.SafeLoader, node: yaml.Node) -> PrefixSequence:
    if not isinstance(node, yaml.SequenceNode):
        raise yaml.constructor.ConstructorError(
            None, None, "!prefix must tag a sequence", node.start_mark
        )
    return PrefixSequence(loader.construct_sequence(node, deep=True))


ExpectationLoader.add_constructor("!any", _bare(AnyScalar))
ExpectationLoader.add_constructor("!subtree", _bare(AnyValue))
ExpectationLoader.add_constructor("!not_null", _bare(NotNull))
ExpectationLoader.add_constructor("!null", _bare(IsNull))
ExpectationLoader.add_constructor("!regex", _construct_regex)
ExpectationLoader.add_constructor("!optional", _construct_optional)
ExpectationLoader.add_constructor("!prefix", _construct_prefix)
for _op in ("gt", "ge", "lt", "le", "eq", "ne"):
    ExpectationLoader.add_constructor(f"!{_op}", _number_compare(_op))


def load_expectation(path: str | Path, *, expressions: bool = True) -> Any:
    """Load the expectation document from *path*.

    Args:
        path: YAML or JSON file.
        expressions: Interpret collector expression strings (``gt 0``,
            ``not null``...) as matchers. When False they compare literally.

    Raises:
        ConfigError: file missing, unreadable, empty or not parseable.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Expectation file not found: {path}", path=str(path))
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot read expectation file {path}: {exc}", path=str(path), cause=exc) from exc

    try:
        document = yaml.load(text, Loader=ExpectationLoader)  # noqa: S506 - SafeLoader subclass
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Expectation file {path} is not valid YAML/JSON: {exc}", path=str(path), cause=exc
        ) from exc

    if document is None:
        raise ConfigError(f"Expectation file {path} is empty", path=str(path))

    if expressions:
        document = convert_expressions(document)

    logger.debug("expectation_loaded", path=str(path), root_type=type(document).__name__)
    return document


def parse_observed(body: str | bytes, content_type: str | None = None) -> Any:
    """Parse a probe response body into an observed document.

    JSON bodies (by content type, or by a leading ``{``/``[``) go through
    :mod:`json`; everything else through ``yaml.safe_load``.

    Raises:
        MalformedResponseError: body empty or not structured data.
    """
    if isinstance(body, bytes):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedResponseError("Response body is not UTF-8 text", cause=exc) from exc

    if not body.strip():
        raise MalformedResponseError("Response body is empty")

    declared_json = bool(content_type) and "json" in content_type.lower()
    document: Any = None
    parsed = False
    if declared_json or body.lstrip()[:1] in ("{", "["):
        try:
            document = json.loads(body)
            parsed = True
        except json.JSONDecodeError as exc:
            if declared_json:
                raise MalformedResponseError(
                    f"Response body is not valid JSON: {exc}", content_type=content_type, cause=exc
                ) from exc
            # flow-style YAML also starts with { or [

    if not parsed:
        try:
            document = yaml.safe_load(body)
        except yaml.YAMLError as exc:
            raise MalformedResponseError(
                f"Response body is not valid YAML: {exc}", content_type=content_type, cause=exc
            ) from exc

    if not isinstance(document, dict | list):
        raise MalformedResponseError(
            f"Response body is a bare {type(document).__name__}, expected a mapping or sequence",
            content_type=content_type,
        )
    return document


# ── Rendering ────────────────────────────────────────────────────────────


class DocumentDumper(yaml.SafeDumper):
    """SafeDumper that writes matchers back as their tags."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _represent_matcher(dumper: yaml.SafeDumper, matcher: Matcher) -> yaml.Node:
    arg = matcher.argument
    return dumper.represent_scalar(matcher.tag, "" if arg is None else str(arg))


def _represent_optional(dumper: yaml.SafeDumper, node: OptionalNode) -> yaml.Node:
    inner = node.node
    if isinstance(inner, dict):
        return dumper.represent_mapping("!optional", inner)
    if isinstance(inner, list):
        return dumper.represent_sequence("!optional", inner)
    if isinstance(inner, AnyValue):
        return dumper.represent_scalar("!optional", "")
    if isinstance(inner, Matcher):
        # one tag per node: write the expression text, or the tag as plain text
        return dumper.represent_scalar("!optional", inner.expression() or inner.describe())
    return dumper.represent_scalar("!optional", "" if inner is None else str(inner))


def _represent_prefix(dumper: yaml.SafeDumper, node: PrefixSequence) -> yaml.Node:
    return dumper.represent_sequence("!prefix", node.items)


DocumentDumper.add_multi_representer(Matcher, _represent_matcher)
DocumentDumper.add_representer(OptionalNode, _represent_optional)
DocumentDumper.add_representer(PrefixSequence, _represent_prefix)


def dump_document(document: Any) -> str:
    """Render a document as block-style YAML with stable key order."""
    return yaml.dump(
        document,
        Dumper=DocumentDumper,
        default_flow_style=False,
        sort_keys=True,
        allow_unicode=True,
    )


__all__ = [
    "DocumentDumper",
    "ExpectationLoader",
    "dump_document",
    "load_expectation",
    "parse_observed",
]
