"""
reqdoc — unit tests for domain values and error rendering.

File: tests/unit/domain/test_errors_models.py
"""

from __future__ import annotations

import pytest

from reqdoc.domain.errors import (
    CycleError,
    DocumentWarning,
    Issue,
    ReqDocError,
    SequenceWarning,
    UndeclaredDependencyError,
    UnresolvedReferenceError,
    WarningKind,
)
from reqdoc.domain.models import (
    NON_EMPTY,
    Frontmatter,
    coerce_expected,
    coerce_value,
    expected_to_plain,
)


@pytest.mark.unit
def test_error_rendering_includes_location_identity_and_hint() -> None:
    error = ReqDocError("missing required field", line=4, field="user", hint="add a user line")
    error.locate(document_id="AUTH-001", path="login.req.md")
    error.locate(document_id="OTHER-9")

    assert str(error) == (
        "login.req.md:4 <AUTH-001> [user] missing required field (hint: add a user line)"
    )
    assert error.to_dict()["error"] == "ReqDocError"
    assert Issue("bad dash", line=6).render() == "line 6: bad dash"


@pytest.mark.unit
def test_undeclared_dependency_is_both_reference_and_cycle_failure() -> None:
    error = UndeclaredDependencyError("PAY-7", document_id="CART-2")

    assert isinstance(error, UnresolvedReferenceError)
    assert isinstance(error, CycleError)
    assert error.cycle == ("CART-2", "PAY-7")
    assert "depends_on" in str(error)


@pytest.mark.unit
def test_warning_round_trips_through_dict() -> None:
    warning = SequenceWarning("step 3 follows step 1, expected 2", line=9)

    restored = DocumentWarning.from_dict(warning.to_dict())

    assert restored == warning
    assert restored.kind is WarningKind.SEQUENCE
    with pytest.raises(ValueError, match="message must be a string"):
        DocumentWarning.from_dict({"kind": "sequence"})


@pytest.mark.unit
def test_frontmatter_normalizes_text_dependencies_and_tags() -> None:
    front = Frontmatter(
        id=" AUTH-001 ",
        user="customer",
        context="storefront",
        trigger="login",
        user_outcome="dashboard",
        depends_on=("CORE-1", " CORE-1", "BASE-0"),
        tags=frozenset({" web ", ""}),
    )

    assert front.id == "AUTH-001"
    assert front.depends_on == ("CORE-1", "BASE-0")
    assert front.tags == frozenset({"web"})
    with pytest.raises(ValueError, match="Frontmatter.user must not be empty"):
        Frontmatter(id="A", user=" ", context="c", trigger="t", user_outcome="o")


@pytest.mark.unit
def test_value_variant_is_closed() -> None:
    assert coerce_value({"qty": 2, "note": None}, "input") == {"qty": 2, "note": None}
    assert coerce_expected({"token": "non-empty"}, "expect") == {"token": NON_EMPTY}
    assert expected_to_plain({"token": NON_EMPTY}) == {"token": "non-empty"}

    with pytest.raises(ValueError, match="input.items must be a string"):
        coerce_value({"items": [1, 2]}, "input")
    with pytest.raises(ValueError, match="finite"):
        coerce_value(float("nan"), "input")
