"""
reqdoc — unit tests for document assembly.

File: tests/unit/ingestion/test_assembler.py

Purpose
- Exercise ``parse_document`` end to end on realistic requirement documents.

What this test file should cover
- A well-formed login document parses into a complete ``Document``.
- Every stage's issues are reported together in one ``SchemaViolation``.
- Errors carry the document ID and the source path once they are known.
- Missing ``Validate:`` yields a warning, never an error.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from reqdoc.domain.errors import (
    EncodingError,
    SchemaViolation,
    StructuralError,
    WarningKind,
)
from reqdoc.domain.models import NON_EMPTY, Priority
from reqdoc.ingestion import parse_document, parse_file

LOGIN_DOC = """---
id: AUTH-001
user: registered customer
context: returning to the storefront
trigger: submits the login form
user_outcome: lands on the account dashboard
priority: high
estimate: 3d
tags: [auth, web]
---

Flow:
1. User opens the login page
2. User enters email and password
   - If password is wrong: show an inline error
   - When account is locked: show the unlock link
3. System issues a session token

API: POST /api/login
  returns 200 with a token

Performance: p95 under 200ms

Validate:
  happy_path:
    - input: {email: "a@b.co", password: "pw"}
      expect: {status: 200, token: non-empty}
  boundaries:
    - input: {email: "", password: "pw"}
      expect: {status: 400}
  invariants:
    - "password is never logged"
  contracts:
    - "response time < 200ms ± 50 ms"
"""


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.mark.unit
def test_login_document_parses_completely() -> None:
    document = parse_document(LOGIN_DOC)

    assert document.id == "AUTH-001"
    assert document.frontmatter.priority is Priority.HIGH
    assert document.frontmatter.tags == frozenset({"auth", "web"})
    assert [step.number for step in document.flow] == [1, 2, 3]
    assert [alt.condition for alt in document.flow[1].alternatives] == [
        "If password is wrong",
        "When account is locked",
    ]
    assert document.flow[0].alternatives == ()
    assert document.flow[2].alternatives == ()
    assert set(document.sections) == {"API", "Performance"}
    assert document.sections["Performance"] == "p95 under 200ms"

    block = document.validate
    assert block is not None
    assert block.happy_path[0].input == {"email": "a@b.co", "password": "pw"}
    assert block.happy_path[0].expect == {"status": 200, "token": NON_EMPTY}
    assert block.boundaries[0].expect == {"status": 400}
    assert block.invariants[0].is_foreign is False
    assert block.contracts[0].tolerance is not None
    assert block.contracts[0].tolerance.value == 50.0
    assert block.contracts[0].tolerance.unit == "ms"
    assert document.warnings == ()


@pytest.mark.unit
def test_bytes_and_text_inputs_are_equivalent() -> None:
    assert parse_document(LOGIN_DOC.encode("utf-8")) == parse_document(LOGIN_DOC)


@pytest.mark.unit
def test_missing_validate_block_is_a_warning_not_an_error() -> None:
    source = LOGIN_DOC.split("\nValidate:")[0] + "\n"

    document = parse_document(source)

    assert document.validate is None
    kinds = [warning.kind for warning in document.warnings]
    assert kinds == [WarningKind.EMPTY_VALIDATE]


@pytest.mark.unit
def test_misindented_alternative_is_rejected_with_document_identity() -> None:
    source = LOGIN_DOC.replace(
        "   - If password is wrong", "  - If password is wrong"
    )

    with pytest.raises(SchemaViolation) as excinfo:
        parse_document(source, source="docs/auth.req.md")

    error = excinfo.value
    assert error.document_id == "AUTH-001"
    assert error.path == "docs/auth.req.md"
    messages = [issue.message for issue in error.issues]
    assert "alternative path must be indented 3 spaces under step 2, found 2" in messages
    assert "<AUTH-001>" in str(error)


@pytest.mark.unit
def test_issues_from_every_stage_are_reported_together() -> None:
    source = (
        LOGIN_DOC.replace("trigger: submits the login form\n", "")
        .replace("   - If password is wrong", "   - Unless password is wrong")
        .replace("      expect: {status: 400}\n", "")
    )

    with pytest.raises(SchemaViolation) as excinfo:
        parse_document(source)

    fields = {issue.field for issue in excinfo.value.issues}
    assert {"trigger", "flow", "validate.boundaries"} <= fields
    lines = [issue.line or 0 for issue in excinfo.value.issues]
    assert lines == sorted(lines)


@pytest.mark.unit
def test_missing_flow_keyword_is_structural() -> None:
    source = LOGIN_DOC.replace("Flow:\n", "")

    with pytest.raises(StructuralError, match="must begin with 'Flow:'") as excinfo:
        parse_document(source)

    assert excinfo.value.document_id == "AUTH-001"


@pytest.mark.unit
def test_byte_order_mark_is_an_encoding_error() -> None:
    with pytest.raises(EncodingError, match="byte-order mark"):
        parse_document(b"\xef\xbb\xbf" + LOGIN_DOC.encode("utf-8"))


@pytest.mark.unit
def test_own_id_prefix_is_treated_as_own_scope() -> None:
    source = LOGIN_DOC.replace(
        '"password is never logged"', '"AUTH-001: password is never logged"'
    )

    document = parse_document(source)

    assert document.validate is not None
    invariant = document.validate.invariants[0]
    assert invariant.is_foreign is False
    assert invariant.text == "AUTH-001: password is never logged"


@pytest.mark.unit
def test_parse_file_tags_errors_with_path(tmp_path: Path) -> None:
    path = tmp_path / "docs" / "broken.req.md"
    _write_config(path, LOGIN_DOC.replace("id: AUTH-001\n", ""))

    with pytest.raises(SchemaViolation) as excinfo:
        parse_file(path)

    assert excinfo.value.path == str(path)
    assert any(issue.field == "id" for issue in excinfo.value.issues)


@pytest.mark.unit
def test_parse_file_reads_source(tmp_path: Path) -> None:
    path = tmp_path / "auth.req.md"
    _write_config(path, LOGIN_DOC)

    document = parse_file(path)

    assert document.source_path == str(path)
    assert document == parse_document(LOGIN_DOC)
