"""
reqdoc — unit tests for the flow parser.

File: tests/unit/ingestion/test_flow.py

Purpose
- Pin down alternative-path ownership and indentation rules of ``Flow:``.

What this test file should cover
- Each alternative belongs to exactly the step directly above it.
- Dash lines at any depth other than three spaces are issues, never steps.
- Numbering gaps are warnings; continuation lines extend step text.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reqdoc.domain.errors import StructuralError, WarningKind
from reqdoc.ingestion.flow import parse_flow
from reqdoc.ingestion.lexer import Token, segment


def _tokens(body: str) -> tuple[Token, ...]:
    return segment(f"---\nid: X-1\n---\n{body}").body


@pytest.mark.unit
def test_alternatives_attach_to_the_step_above() -> None:
    result = parse_flow(
        _tokens(
            "Flow:\n"
            "1. Open page\n"
            "   - If offline: show banner\n"
            "2. Submit form\n"
            "   - When invalid: highlight fields\n"
            "   - On timeout: retry once\n"
        )
    )

    assert result.issues == []
    first, second = result.steps
    assert [alt.outcome for alt in first.alternatives] == ["show banner"]
    assert [alt.condition for alt in second.alternatives] == ["When invalid", "On timeout"]


@pytest.mark.unit
@pytest.mark.parametrize("depth", [1, 2, 4, 6])
def test_dash_at_wrong_depth_is_an_issue(depth: int) -> None:
    result = parse_flow(_tokens(f"Flow:\n1. Open page\n{' ' * depth}- If offline: banner\n"))

    assert result.steps == ()
    assert [issue.message for issue in result.issues] == [
        f"alternative path must be indented 3 spaces under step 1, found {depth}"
    ]
    assert result.issues[0].line == 6


@pytest.mark.unit
def test_dash_at_column_one_is_not_an_alternative() -> None:
    result = parse_flow(_tokens("Flow:\n1. Open page\n- If offline: banner\n"))

    assert result.issues[0].message == (
        "alternative path must be indented 3 spaces under its step, found 0"
    )


@pytest.mark.unit
def test_condition_must_start_with_cue_word() -> None:
    result = parse_flow(_tokens("Flow:\n1. Open page\n   - Unless offline: banner\n"))

    assert result.issues[0].message == "alternative condition must begin with If/When/On"


@pytest.mark.unit
def test_indented_numbered_step_is_rejected() -> None:
    result = parse_flow(_tokens("Flow:\n1. Open page\n  2. Submit\n"))

    assert result.issues[0].message == "numbered steps must not be indented"


@pytest.mark.unit
def test_numbering_gap_is_a_sequence_warning() -> None:
    result = parse_flow(_tokens("Flow:\n1. Open page\n3. Submit\n"))

    assert result.issues == []
    assert [step.number for step in result.steps] == [1, 3]
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning.kind is WarningKind.SEQUENCE
    assert warning.message == "step 3 follows step 1, expected 2"


@pytest.mark.unit
def test_continuation_lines_extend_step_and_outcome() -> None:
    result = parse_flow(
        _tokens(
            "Flow:\n"
            "1. User opens\n"
            "  the login page\n"
            "   - If offline: show\n"
            "       a retry banner\n"
        )
    )

    step = result.steps[0]
    assert step.text == "User opens the login page"
    assert step.alternatives[0].outcome == "show a retry banner"


@pytest.mark.unit
def test_empty_flow_is_an_issue() -> None:
    result = parse_flow(_tokens("Flow:\n\nAPI: GET /\n"))

    assert result.issues[0].message == "flow must contain at least one numbered step"


@pytest.mark.unit
def test_missing_flow_keyword_raises() -> None:
    with pytest.raises(StructuralError, match="Flow:"):
        parse_flow(_tokens("1. Open page\n"))


@pytest.mark.unit
def test_flow_stops_at_first_section() -> None:
    tokens = _tokens("Flow:\n1. Open page\n\nAPI: GET /health\n")

    result = parse_flow(tokens)

    assert tokens[result.end].text == "API: GET /health"


@settings(max_examples=50, deadline=None)
@given(
    alternatives=st.lists(st.integers(min_value=0, max_value=3), min_size=1, max_size=8),
)
def test_every_alternative_has_exactly_one_owner(alternatives: list[int]) -> None:
    lines = ["Flow:"]
    for number, count in enumerate(alternatives, start=1):
        lines.append(f"{number}. Step {number}")
        lines.extend(f"   - If case {number}.{index}: outcome" for index in range(count))

    result = parse_flow(_tokens("\n".join(lines) + "\n"))

    assert result.issues == []
    assert [len(step.alternatives) for step in result.steps] == alternatives
    for step in result.steps:
        for alternative in step.alternatives:
            assert alternative.condition.startswith(f"If case {step.number}.")
