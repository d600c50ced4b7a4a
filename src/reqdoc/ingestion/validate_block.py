"""
reqdoc — ``Validate:`` block parser.

File: src/reqdoc/ingestion/validate_block.py

Purpose
- Decode the machine-checkable acceptance criteria into typed test cases and
  statements.

What this module does
- The indented body after ``Validate:`` is YAML. It is composed into a node
  graph (not loaded directly) so every issue can name the subsection and the
  source line of the offending entry.
- ``happy_path``/``boundaries`` list entries carry ``input`` and ``expect``
  mappings paired positionally: each ``input`` matches the next ``expect``.
- ``invariants``/``contracts`` list entries are plain strings.

Functional requirements
- Unknown subsections, unmatched ``input``/``expect`` entries and ``±`` without
  a numeric tolerance and unit are schema issues.
- An empty block yields a warning, never an error.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

import yaml

from reqdoc.constants import (
    BOUNDARIES,
    CONTRACTS,
    HAPPY_PATH,
    INVARIANTS,
    TOLERANCE_MARKER,
    VALIDATE_SUBSECTIONS,
)
from reqdoc.domain.errors import (
    DocumentWarning,
    EmptyValidateWarning,
    Issue,
    StatementConflictWarning,
)
from reqdoc.domain.models import (
    ContractStatement,
    InvariantStatement,
    TestCase,
    Tolerance,
    ValidateBlock,
)
from reqdoc.ingestion.lexer import Token

_FOREIGN_PREFIX_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<id>[A-Z][A-Z0-9]*(?:[-_.][A-Z0-9]+)*-[A-Z0-9]+):\s+(?P<body>\S.*)$"
)
_REFERENCE_PREFIX_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<id>[A-Za-z][A-Za-z0-9_.-]*):\s+(?P<body>\S.*)$"
)
_TOLERANCE_RE: Final[re.Pattern[str]] = re.compile(
    r"±\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>%|[^\W\d_][\w/%]*)"
)
_CASE_KEYS: Final[tuple[str, str]] = ("input", "expect")
_UNDECODABLE: Final[object] = object()


@dataclass(slots=True)
class ValidateResult:
    block: ValidateBlock | None = None
    issues: list[Issue] = field(default_factory=list)
    warnings: list[DocumentWarning] = field(default_factory=list)


@dataclass(slots=True)
class _Context:
    line_map: list[int]
    keyword_line: int
    issues: list[Issue]

    def line_of(self, node: yaml.Node) -> int:
        index = node.start_mark.line
        if 0 <= index < len(self.line_map):
            return self.line_map[index]
        return self.line_map[-1] if self.line_map else self.keyword_line

    def add(
        self,
        message: str,
        node: yaml.Node | None,
        subsection: str | None,
        hint: str | None = None,
    ) -> None:
        line = self.line_of(node) if node is not None else self.keyword_line
        scope = f"validate.{subsection}" if subsection else "validate"
        self.issues.append(Issue(message, line=line, field=scope, hint=hint))


def parse_validate(tokens: Sequence[Token], start: int) -> ValidateResult:
    """Parse ``tokens[start]`` (the ``Validate:`` line) through the end of the body."""

    keyword = tokens[start]
    body = list(tokens[start + 1 :])
    result = ValidateResult()

    text, line_map = _dedent(body)
    context = _Context(line_map=line_map, keyword_line=keyword.line, issues=result.issues)

    try:
        root = yaml.compose(text, Loader=yaml.SafeLoader) if text.strip() else None
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = keyword.line
        if mark is not None and 0 <= mark.line < len(line_map):
            line = line_map[mark.line]
        problem = getattr(exc, "problem", None) or str(exc)
        result.issues.append(
            Issue(f"malformed Validate block: {problem}", line=line, field="validate")
        )
        return result

    if root is None or _is_null(root):
        result.block = ValidateBlock()
        result.warnings.append(
            EmptyValidateWarning("Validate block defines no acceptance criteria", line=keyword.line)
        )
        return result

    if not isinstance(root, yaml.MappingNode):
        context.add("Validate block must be a mapping of subsections", root, None)
        return result

    collected: dict[str, tuple[object, ...]] = {}
    for key_node, value_node in root.value:
        name = _construct(key_node, None, context)
        if name is _UNDECODABLE:
            continue
        if not isinstance(name, str) or name not in VALIDATE_SUBSECTIONS:
            context.add(
                f"unknown subsection {name!r}",
                key_node,
                None,
                hint=f"expected one of: {', '.join(VALIDATE_SUBSECTIONS)}",
            )
            continue
        if name in collected:
            context.add(f"subsection {name!r} is declared more than once", key_node, name)
            continue
        entries = _entries(value_node, name, context)
        if name in (HAPPY_PATH, BOUNDARIES):
            collected[name] = tuple(_parse_cases(entries, name, context))
        elif name == INVARIANTS:
            collected[name] = tuple(_parse_invariants(entries, context))
        else:
            collected[name] = tuple(_parse_contracts(entries, context))

    if result.issues:
        return result

    block = ValidateBlock(
        happy_path=collected.get(HAPPY_PATH, ()),  # type: ignore[arg-type]
        boundaries=collected.get(BOUNDARIES, ()),  # type: ignore[arg-type]
        invariants=collected.get(INVARIANTS, ()),  # type: ignore[arg-type]
        contracts=collected.get(CONTRACTS, ()),  # type: ignore[arg-type]
        declared=tuple(collected),
    )
    result.block = block
    if block.is_empty:
        result.warnings.append(
            EmptyValidateWarning("Validate block defines no acceptance criteria", line=keyword.line)
        )
    result.warnings.extend(detect_statement_conflicts(block))
    return result


def parse_invariant(text: str, *, line: int | None = None) -> InvariantStatement:
    """Classify an invariant as own-document or foreign (``"<ID>: statement"``)."""

    match = _FOREIGN_PREFIX_RE.match(text.strip())
    if match is None:
        return InvariantStatement(text=text, line=line)
    return InvariantStatement(text=text, requirement_id=match.group("id"), line=line)


def reference_prefix(text: str) -> str | None:
    """Return the ``<ID>`` of a ``"<ID>: statement"`` prefix in any requirement-ID form.

    Scope is not decided here: lowercase or dash-free IDs such as ``session``
    only become foreign once the corpus knows a requirement by that name.
    """

    match = _REFERENCE_PREFIX_RE.match(text.strip())
    return match.group("id") if match is not None else None


def parse_tolerance(text: str) -> Tolerance | None:
    """Return the ``± N unit`` tolerance of a contract.

    Raises ``ValueError`` when ``±`` is present without a parseable bound.
    """

    if TOLERANCE_MARKER not in text:
        return None
    tolerances: list[Tolerance] = []
    for position, char in enumerate(text):
        if char != TOLERANCE_MARKER:
            continue
        match = _TOLERANCE_RE.match(text, position)
        if match is None:
            raise ValueError(f"'{TOLERANCE_MARKER}' must be followed by a number and a unit")
        tolerances.append(Tolerance(value=float(match.group("value")), unit=match.group("unit")))
    return tolerances[-1]


def detect_statement_conflicts(block: ValidateBlock) -> list[DocumentWarning]:
    """Flag output fields constrained by both an invariant and a contract.

    Precedence between the two is undefined, so this only reports; nothing is
    resolved here.
    """

    fields: set[str] = set()
    for case in (*block.happy_path, *block.boundaries):
        fields.update(case.expect)
    if not fields or not block.invariants or not block.contracts:
        return []

    warnings: list[DocumentWarning] = []
    for name in sorted(fields):
        pattern = re.compile(rf"(?<![\w-]){re.escape(name)}(?![\w-])")
        invariant = next((item for item in block.invariants if pattern.search(item.text)), None)
        contract = next((item for item in block.contracts if pattern.search(item.text)), None)
        if invariant is None or contract is None:
            continue
        warnings.append(
            StatementConflictWarning(
                f"output field {name!r} is constrained by invariant {invariant.text!r} "
                f"and contract {contract.text!r}; precedence is undefined",
                line=contract.line,
            )
        )
    return warnings


def _dedent(tokens: Sequence[Token]) -> tuple[str, list[int]]:
    depths = [token.depth for token in tokens if not token.is_blank]
    margin = min(depths) if depths else 0
    lines: list[str] = []
    line_map: list[int] = []
    for token in tokens:
        lines.append(token.raw[margin:] if not token.is_blank else "")
        line_map.append(token.line)
    return "\n".join(lines), line_map


def _construct(node: yaml.Node, subsection: str | None, context: _Context) -> object:
    """Build the Python value of ``node``; tags the safe loader rejects become issues."""
    loader = yaml.SafeLoader("")
    try:
        return loader.construct_document(node)
    except yaml.YAMLError as exc:
        problem = getattr(exc, "problem", None) or str(exc)
        context.add(f"malformed entry: {problem}", node, subsection)
        return _UNDECODABLE
    finally:
        loader.dispose()


def _is_null(node: yaml.Node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.tag == "tag:yaml.org,2002:null"


def _entries(node: yaml.Node, subsection: str, context: _Context) -> list[yaml.Node]:
    if _is_null(node):
        return []
    if not isinstance(node, yaml.SequenceNode):
        context.add(f"{subsection} must be a list of entries", node, subsection)
        return []
    return list(node.value)


def _parse_cases(
    entries: Sequence[yaml.Node], subsection: str, context: _Context
) -> list[TestCase]:
    events: list[tuple[str, yaml.Node, yaml.Node]] = []
    for entry in entries:
        if not isinstance(entry, yaml.MappingNode):
            context.add(
                "entry must be an 'input' or 'expect' mapping",
                entry,
                subsection,
                hint="write '- input: {...}' followed by 'expect: {...}'",
            )
            continue
        for key_node, value_node in entry.value:
            key = _construct(key_node, subsection, context)
            if key is _UNDECODABLE:
                continue
            if key not in _CASE_KEYS:
                context.add(
                    f"unexpected key {key!r}; entries use 'input' and 'expect'",
                    key_node,
                    subsection,
                )
                continue
            events.append((str(key), key_node, value_node))

    cases: list[TestCase] = []
    pending: tuple[yaml.Node, yaml.Node] | None = None
    for kind, key_node, value_node in events:
        if kind == "input":
            if pending is not None:
                context.add(
                    f"input at line {context.line_of(pending[0])} has no matching expect",
                    pending[0],
                    subsection,
                )
            pending = (key_node, value_node)
            continue
        if pending is None:
            context.add("expect has no preceding input", key_node, subsection)
            continue
        case = _build_case(pending, value_node, subsection, context)
        if case is not None:
            cases.append(case)
        pending = None

    if pending is not None:
        context.add("trailing input has no matching expect", pending[0], subsection)
    return cases


def _build_case(
    pending: tuple[yaml.Node, yaml.Node],
    expect_node: yaml.Node,
    subsection: str,
    context: _Context,
) -> TestCase | None:
    input_key, input_node = pending
    input_value = _construct(input_node, subsection, context)
    expect_value = _construct(expect_node, subsection, context)
    if input_value is _UNDECODABLE or expect_value is _UNDECODABLE:
        return None
    if not isinstance(input_value, dict):
        context.add("input must be a mapping", input_node, subsection)
        return None
    if not isinstance(expect_value, dict):
        context.add("expect must be a mapping", expect_node, subsection)
        return None
    try:
        return TestCase(input=input_value, expect=expect_value, line=context.line_of(input_key))
    except ValueError as exc:
        context.add(str(exc), input_key, subsection)
        return None


def _statement_text(node: yaml.Node, subsection: str, context: _Context) -> str | None:
    if not isinstance(node, yaml.ScalarNode):
        context.add("entry must be a quoted string", node, subsection)
        return None
    value = _construct(node, subsection, context)
    if value is _UNDECODABLE:
        return None
    if not isinstance(value, str) or not value.strip():
        context.add("entry must be a non-empty string", node, subsection)
        return None
    return value.strip()


def _parse_invariants(entries: Sequence[yaml.Node], context: _Context) -> list[InvariantStatement]:
    statements: list[InvariantStatement] = []
    for entry in entries:
        text = _statement_text(entry, INVARIANTS, context)
        if text is not None:
            statements.append(parse_invariant(text, line=context.line_of(entry)))
    return statements


def _parse_contracts(entries: Sequence[yaml.Node], context: _Context) -> list[ContractStatement]:
    statements: list[ContractStatement] = []
    for entry in entries:
        text = _statement_text(entry, CONTRACTS, context)
        if text is None:
            continue
        try:
            tolerance = parse_tolerance(text)
        except ValueError as exc:
            context.add(str(exc), entry, CONTRACTS, hint="write e.g. '± 50 ms'")
            continue
        statements.append(
            ContractStatement(text=text, tolerance=tolerance, line=context.line_of(entry))
        )
    return statements


__all__ = [
    "ValidateResult",
    "detect_statement_conflicts",
    "parse_invariant",
    "parse_tolerance",
    "parse_validate",
    "reference_prefix",
]
