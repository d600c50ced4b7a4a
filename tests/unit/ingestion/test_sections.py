"""
reqdoc — unit tests for technical sections.

File: tests/unit/ingestion/test_sections.py

Purpose
- Validate how labeled sections between ``Flow`` and ``Validate`` are collected.

What this test file should cover
- Unknown labels are kept alongside the known ones.
- Duplicate labels and stray text are issues with source lines.
- Multi-line bodies keep their indentation and inner blank lines.
- Unknown sections survive a serialize/parse round trip.
"""

from __future__ import annotations

import pytest

from reqdoc.domain.errors import SchemaViolation
from reqdoc.ingestion import parse_document, serialize_document
from reqdoc.ingestion.lexer import segment
from reqdoc.ingestion.sections import SectionsResult, parse_sections

DOCUMENT = """---
id: SIGNUP-1
user: new visitor
context: signup page
trigger: submits the signup form
user_outcome: has an account
---

Flow:
1. Visitor submits email

API:
  POST /signup
    returns 201 with an id

  409 when the email is taken
Rollout Plan: staged behind the signup_v2 flag
Security: passwords are hashed with argon2

Validate:
  happy_path:
    - input: {email: "a@b.co"}
      expect: {status: 201}
"""


def _sections(body: str) -> SectionsResult:
    # Body tokens start on source line 4.
    return parse_sections(segment(f"---\nid: X-1\n---\n{body}").body, 0)


@pytest.mark.unit
def test_unknown_labels_are_kept_next_to_known_ones() -> None:
    document = parse_document(DOCUMENT)

    assert list(document.sections) == ["API", "Rollout Plan", "Security"]
    assert document.extra_sections == {"Rollout Plan": "staged behind the signup_v2 flag"}
    assert set(document.known_sections) == {"API", "Security"}


@pytest.mark.unit
def test_multi_line_body_keeps_indentation_and_inner_blank_lines() -> None:
    document = parse_document(DOCUMENT)

    assert document.sections["API"] == (
        "  POST /signup\n    returns 201 with an id\n\n  409 when the email is taken"
    )


@pytest.mark.unit
def test_trailing_blank_lines_are_dropped_and_validate_ends_sections() -> None:
    result = _sections("Data: rows keyed by email\n  one row per account\n\n\nValidate:\n")

    assert result.issues == []
    assert result.sections == {"Data": "rows keyed by email\n  one row per account"}
    assert result.end == 4


@pytest.mark.unit
def test_duplicate_label_is_an_issue_and_its_block_is_skipped() -> None:
    result = _sections("Rule: first\nAPI: GET /a\nRule: second\n  more of the second\n")

    (issue,) = result.issues
    assert issue.message == "section 'Rule' is declared more than once (first at line 4)"
    assert (issue.line, issue.field) == (6, "sections")
    assert result.sections == {"Rule": "first", "API": "GET /a"}


@pytest.mark.unit
def test_text_outside_any_section_is_an_issue() -> None:
    result = _sections("\nloose remark\nData: rows\n")

    (issue,) = result.issues
    assert issue.message == "text outside of any section"
    assert issue.line == 5
    assert result.sections == {"Data": "rows"}


@pytest.mark.unit
def test_duplicate_section_fails_the_document() -> None:
    source = DOCUMENT.replace("Security:", "API:")

    with pytest.raises(SchemaViolation) as excinfo:
        parse_document(source)

    assert [issue.field for issue in excinfo.value.issues] == ["sections"]


@pytest.mark.unit
def test_unknown_section_survives_roundtrip() -> None:
    document = parse_document(DOCUMENT)

    rendered = serialize_document(document)

    assert "Rollout Plan: staged behind the signup_v2 flag" in rendered
    restored = parse_document(rendered)
    assert restored == document
    assert restored.sections["API"] == document.sections["API"]
