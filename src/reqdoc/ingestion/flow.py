"""
reqdoc — flow parser.

File: src/reqdoc/ingestion/flow.py

Purpose
- Build the ordered numbered steps of the ``Flow:`` block, each owning the
  dash-prefixed alternative paths indented exactly three spaces beneath it.

Functional requirements
- Missing ``Flow:`` keyword is a ``StructuralError``.
- Numbering gaps are non-fatal ``SequenceWarning`` diagnostics.
- Dash lines at any depth other than step depth + 3 are schema issues and are
  never reinterpreted as steps or step text.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

from reqdoc.constants import (
    ALTERNATIVE_INDENT,
    CONDITION_CUE_WORDS,
    FLOW_KEYWORD,
    KNOWN_SECTION_NAMES,
)
from reqdoc.domain.errors import DocumentWarning, Issue, SequenceWarning, StructuralError
from reqdoc.domain.models import AlternativePath, FlowStep
from reqdoc.ingestion.lexer import Token
from reqdoc.ingestion.sections import is_validate_keyword, match_label

_STEP_RE: Final[re.Pattern[str]] = re.compile(r"^(?P<number>\d+)\.\s+(?P<text>\S.*)$")
_SECTION: Final[str] = "flow"


@dataclass(slots=True)
class _StepDraft:
    number: int
    text: list[str]
    line: int
    alternatives: list[_AlternativeDraft] = field(default_factory=list)


@dataclass(slots=True)
class _AlternativeDraft:
    condition: str
    outcome: list[str]
    line: int


@dataclass(slots=True)
class FlowResult:
    steps: tuple[FlowStep, ...] = ()
    issues: list[Issue] = field(default_factory=list)
    warnings: list[DocumentWarning] = field(default_factory=list)
    end: int = 0


def parse_flow(tokens: Sequence[Token]) -> FlowResult:
    """Parse the flow block that must open the document body."""

    start = _first_non_blank(tokens)
    if start is None or tokens[start].depth != 0 or tokens[start].text != FLOW_KEYWORD:
        line = tokens[start].line if start is not None else None
        raise StructuralError(
            f"document body must begin with '{FLOW_KEYWORD}'",
            line=line,
            field=_SECTION,
            hint="add a 'Flow:' line followed by numbered steps",
        )

    result = FlowResult(end=len(tokens))
    drafts: list[_StepDraft] = []
    index = start + 1

    while index < len(tokens):
        token = tokens[index]
        if token.is_blank:
            index += 1
            continue
        if is_validate_keyword(token) or _starts_section(token):
            result.end = index
            break
        _consume_line(token, drafts, result)
        index += 1

    if not drafts:
        result.issues.append(
            Issue(
                "flow must contain at least one numbered step",
                line=tokens[start].line,
                field=_SECTION,
                hint="add steps such as '1. User opens the login page'",
            )
        )
        return result

    _check_sequence(drafts, result)
    if not result.issues:
        result.steps = tuple(_build_step(draft) for draft in drafts)
    return result


def _starts_section(token: Token) -> bool:
    labeled = match_label(token)
    if labeled is None or _STEP_RE.match(token.text) is not None:
        return False
    label = labeled[0]
    if label in KNOWN_SECTION_NAMES:
        return True
    # A misplaced alternative ("If ...: ...") at column 1 is a flow error, not a new section.
    return label.split(maxsplit=1)[0] not in CONDITION_CUE_WORDS


def _consume_line(token: Token, drafts: list[_StepDraft], result: FlowResult) -> None:
    step_match = _STEP_RE.match(token.text)
    is_dash = token.text.startswith("-")

    if token.depth == 0:
        if step_match is not None and int(step_match.group("number")) < 1:
            result.issues.append(
                Issue("step numbers must be positive", line=token.line, field=_SECTION)
            )
            return
        if step_match is not None:
            drafts.append(
                _StepDraft(
                    number=int(step_match.group("number")),
                    text=[step_match.group("text").strip()],
                    line=token.line,
                )
            )
            return
        if is_dash:
            result.issues.append(
                Issue(
                    "alternative path must be indented "
                    f"{ALTERNATIVE_INDENT} spaces under its step, found 0",
                    line=token.line,
                    field=_SECTION,
                )
            )
            return
        result.issues.append(
            Issue(
                "expected a numbered step ('N. text')",
                line=token.line,
                field=_SECTION,
            )
        )
        return

    if step_match is not None and not is_dash:
        result.issues.append(
            Issue(
                "numbered steps must not be indented",
                line=token.line,
                field=_SECTION,
                hint="start numbered steps at column 1",
            )
        )
        return

    if not drafts:
        result.issues.append(
            Issue(
                "indented line appears before the first numbered step",
                line=token.line,
                field=_SECTION,
            )
        )
        return

    owner = drafts[-1]
    if is_dash:
        if token.depth != ALTERNATIVE_INDENT:
            result.issues.append(
                Issue(
                    f"alternative path must be indented {ALTERNATIVE_INDENT} spaces "
                    f"under step {owner.number}, found {token.depth}",
                    line=token.line,
                    field=_SECTION,
                )
            )
            return
        alternative = _parse_alternative(token, result)
        if alternative is not None:
            owner.alternatives.append(alternative)
        return

    # Continuation line: extends the last alternative outcome or the step text.
    if owner.alternatives:
        if token.depth > ALTERNATIVE_INDENT:
            owner.alternatives[-1].outcome.append(token.text)
            return
        result.issues.append(
            Issue(
                f"ambiguous continuation under step {owner.number}; "
                f"indent past {ALTERNATIVE_INDENT} spaces to continue the alternative",
                line=token.line,
                field=_SECTION,
            )
        )
        return
    owner.text.append(token.text)


def _parse_alternative(token: Token, result: FlowResult) -> _AlternativeDraft | None:
    body = token.text[1:].strip()
    if not token.text.startswith("- ") or not body:
        result.issues.append(
            Issue(
                "alternative path must be written as '- <condition>: <outcome>'",
                line=token.line,
                field=_SECTION,
            )
        )
        return None
    if ":" not in body:
        result.issues.append(
            Issue(
                "alternative path is missing ':' between condition and outcome",
                line=token.line,
                field=_SECTION,
            )
        )
        return None

    condition, outcome = (part.strip() for part in body.split(":", 1))
    cue = condition.split(maxsplit=1)[0] if condition else ""
    if cue not in CONDITION_CUE_WORDS:
        result.issues.append(
            Issue(
                f"alternative condition must begin with {'/'.join(CONDITION_CUE_WORDS)}",
                line=token.line,
                field=_SECTION,
            )
        )
        return None
    if not outcome:
        result.issues.append(
            Issue(
                "alternative path outcome must not be empty",
                line=token.line,
                field=_SECTION,
            )
        )
        return None
    return _AlternativeDraft(condition=condition, outcome=[outcome], line=token.line)


def _check_sequence(drafts: Sequence[_StepDraft], result: FlowResult) -> None:
    if drafts[0].number != 1:
        result.warnings.append(
            SequenceWarning(
                f"flow starts at step {drafts[0].number}, expected 1",
                line=drafts[0].line,
            )
        )
    for previous, current in zip(drafts, drafts[1:], strict=False):
        if current.number == previous.number + 1:
            continue
        result.warnings.append(
            SequenceWarning(
                f"step {current.number} follows step {previous.number}, "
                f"expected {previous.number + 1}",
                line=current.line,
            )
        )


def _build_step(draft: _StepDraft) -> FlowStep:
    return FlowStep(
        number=draft.number,
        text=" ".join(draft.text),
        alternatives=tuple(
            AlternativePath(
                condition=alternative.condition,
                outcome=" ".join(alternative.outcome),
                line=alternative.line,
            )
            for alternative in draft.alternatives
        ),
        line=draft.line,
    )


def _first_non_blank(tokens: Sequence[Token]) -> int | None:
    for index, token in enumerate(tokens):
        if not token.is_blank:
            return index
    return None


__all__ = ["FlowResult", "parse_flow"]
