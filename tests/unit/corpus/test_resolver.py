"""
reqdoc — unit tests for corpus loading and cross-document resolution.

File: tests/unit/corpus/test_resolver.py

Purpose
- Validate that foreign invariants resolve only through the ``depends_on``
  closure and that per-document failures never sink the whole corpus.

What this test file should cover
- Mutual dependencies fail both documents with the same canonical cycle.
- Unknown and undeclared references are distinct failures.
- Parallel directory loading is deterministic and reports duplicates.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from reqdoc.corpus import discover_sources, load_corpus, load_corpus_sync, resolve_corpus
from reqdoc.domain.errors import (
    CycleError,
    SchemaViolation,
    UndeclaredDependencyError,
    UnresolvedReferenceError,
)
from reqdoc.domain.models import Document
from reqdoc.ingestion import parse_document


def _source(
    doc_id: str, *, depends_on: Sequence[str] = (), invariants: Sequence[str] = ()
) -> str:
    lines = [
        "---",
        f"id: {doc_id}",
        "user: operator",
        "context: back office",
        f"trigger: opens {doc_id}",
        "user_outcome: task done",
    ]
    if depends_on:
        lines.append(f"depends_on: [{', '.join(depends_on)}]")
    lines += ["---", "", "Flow:", "1. Operator acts", ""]
    if invariants:
        lines.append("Validate:")
        lines.append("  invariants:")
        lines.extend(f'    - "{item}"' for item in invariants)
    return "\n".join(lines) + "\n"


def _doc(
    doc_id: str, *, depends_on: Sequence[str] = (), invariants: Sequence[str] = ()
) -> Document:
    return parse_document(_source(doc_id, depends_on=depends_on, invariants=invariants))


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.mark.unit
def test_foreign_invariants_resolve_through_transitive_closure() -> None:
    corpus = resolve_corpus(
        [
            _doc("PAY-7", depends_on=["CART-2"], invariants=["AUTH-001: session is valid"]),
            _doc("CART-2", depends_on=["AUTH-001"]),
            _doc("AUTH-001", invariants=["passwords are hashed"]),
        ]
    )

    assert corpus.ok
    assert corpus.order == ("AUTH-001", "CART-2", "PAY-7")
    assert corpus.closure("PAY-7") == ("AUTH-001", "CART-2")
    (resolved,) = corpus.invariants_for("PAY-7")
    assert (resolved.owner_id, resolved.target_id) == ("PAY-7", "AUTH-001")
    assert resolved.is_foreign
    assert corpus.invariants_for("AUTH-001")[0].is_foreign is False
    assert [document.id for document in corpus.iter_documents()] == list(corpus.order)


@pytest.mark.unit
def test_mutual_dependency_fails_both_documents_with_same_cycle() -> None:
    corpus = resolve_corpus(
        [_doc("A", depends_on=["B"]), _doc("B", depends_on=["A"]), _doc("C")]
    )

    assert corpus.order == ("C",)
    errors = {failure.document_id: failure.error for failure in corpus.failures}
    assert set(errors) == {"A", "B"}
    for error in errors.values():
        assert isinstance(error, CycleError)
        assert error.cycle == ("A", "B")


@pytest.mark.unit
def test_unknown_depends_on_is_unresolved_reference() -> None:
    corpus = resolve_corpus([_doc("CART-2", depends_on=["AUTH-404"])])

    (failure,) = corpus.failures
    assert isinstance(failure.error, UnresolvedReferenceError)
    assert failure.error.reference == "AUTH-404"
    assert failure.error.field == "depends_on"
    with pytest.raises(KeyError):
        corpus.get("CART-2")


@pytest.mark.unit
def test_foreign_invariant_outside_closure_is_undeclared_dependency() -> None:
    corpus = resolve_corpus(
        [
            _doc("AUTH-001"),
            _doc("CART-2", invariants=["AUTH-001: session is valid"]),
        ]
    )

    (failure,) = corpus.failures
    assert failure.document_id == "CART-2"
    assert isinstance(failure.error, UndeclaredDependencyError)
    # Callers matching either category see it.
    assert isinstance(failure.error, UnresolvedReferenceError)
    assert isinstance(failure.error, CycleError)
    assert failure.error.hint is not None
    assert corpus.order == ("AUTH-001",)


@pytest.mark.unit
def test_foreign_invariant_naming_unknown_document() -> None:
    corpus = resolve_corpus([_doc("CART-2", invariants=["SHIP-9: parcel is tracked"])])

    (failure,) = corpus.failures
    assert type(failure.error) is UnresolvedReferenceError
    assert failure.error.reference == "SHIP-9"


@pytest.mark.unit
def test_strict_mode_raises_first_failure() -> None:
    with pytest.raises(CycleError):
        resolve_corpus([_doc("A", depends_on=["B"]), _doc("B", depends_on=["A"])], strict=True)


@pytest.mark.unit
def test_to_dict_lists_order_and_failures() -> None:
    corpus = resolve_corpus([_doc("AUTH-001"), _doc("CART-2", depends_on=["NOPE-1"])])

    payload = corpus.to_dict()

    assert payload["order"] == ["AUTH-001"]
    assert payload["failures"][0]["document_id"] == "CART-2"  # type: ignore[index]


@pytest.mark.unit
async def test_load_corpus_collects_failures_and_duplicates(tmp_path: Path) -> None:
    _write_config(tmp_path / "auth.req.md", _source("AUTH-001"))
    _write_config(tmp_path / "nested" / "cart.req.md", _source("CART-2", depends_on=["AUTH-001"]))
    _write_config(tmp_path / "z_dup.req.md", _source("AUTH-001"))
    _write_config(tmp_path / "broken.req.md", "---\nid: BROKEN-1\n---\nFlow:\n1. x\n")
    _write_config(tmp_path / "notes.txt", "not a requirement")

    loaded = await load_corpus(tmp_path, patterns=("*.req.md",), max_workers=2)

    assert [document.id for document in loaded.documents] == ["AUTH-001", "CART-2"]
    failures = {Path(failure.path or "").name: failure for failure in loaded.failures}
    assert set(failures) == {"broken.req.md", "z_dup.req.md"}
    assert isinstance(failures["broken.req.md"].error, SchemaViolation)
    assert failures["broken.req.md"].document_id == "BROKEN-1"
    assert "duplicate requirement id" in failures["z_dup.req.md"].error.message

    corpus = loaded.resolve()
    assert corpus.order == ("AUTH-001", "CART-2")
    assert len(corpus.failures) == 2


@pytest.mark.unit
def test_load_corpus_sync_and_discovery(tmp_path: Path) -> None:
    _write_config(tmp_path / "a.req.md", _source("A-1"))
    _write_config(tmp_path / "README.md", "# readme\n")

    assert [path.name for path in discover_sources(tmp_path)] == ["README.md", "a.req.md"]
    loaded = load_corpus_sync(tmp_path, patterns=("*.req.md",))
    assert [document.id for document in loaded.documents] == ["A-1"]
    with pytest.raises(NotADirectoryError):
        discover_sources(tmp_path / "missing")


@pytest.mark.unit
def test_lowercase_prefix_naming_a_document_is_foreign() -> None:
    undeclared = resolve_corpus(
        [_doc("session"), _doc("login", invariants=["session: tokens expire after 1h"])]
    )
    (failure,) = undeclared.failures
    assert failure.document_id == "login"
    assert isinstance(failure.error, UndeclaredDependencyError)
    assert failure.error.reference == "session"

    declared = resolve_corpus(
        [
            _doc("session"),
            _doc(
                "login",
                depends_on=["session"],
                invariants=["session: tokens expire after 1h", "note: totals are rounded"],
            ),
        ]
    )
    assert declared.ok
    foreign, own = declared.invariants_for("login")
    assert (foreign.target_id, foreign.statement.requirement_id) == ("session", "session")
    assert foreign.statement.statement == "tokens expire after 1h"
    assert not own.is_foreign


@pytest.mark.unit
def test_tagged_yaml_fails_only_its_own_file(tmp_path: Path) -> None:
    _write_config(tmp_path / "good.req.md", _source("GOOD-1"))
    tagged = _source("TAG-1", invariants=["placeholder"]).replace(
        '"placeholder"', '!note "latency < 200ms"'
    )
    _write_config(tmp_path / "tagged.req.md", tagged)

    loaded = load_corpus_sync(tmp_path, patterns=("*.req.md",))

    assert [document.id for document in loaded.documents] == ["GOOD-1"]
    (failure,) = loaded.failures
    assert Path(failure.path or "").name == "tagged.req.md"
    assert isinstance(failure.error, SchemaViolation)
    assert any(issue.field == "validate.invariants" for issue in failure.error.issues)
