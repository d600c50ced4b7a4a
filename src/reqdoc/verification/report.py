"""Structured validation results consumable by CLI or CI collaborators."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from reqdoc.domain.errors import DocumentWarning
from reqdoc.domain.models import Value


class LoopState(StrEnum):
    """Validation-loop states in transition order."""

    GENERATED = "GENERATED"
    HAPPY_PATH_CHECKED = "HAPPY_PATH_CHECKED"
    BOUNDARIES_CHECKED = "BOUNDARIES_CHECKED"
    INVARIANTS_CHECKED = "INVARIANTS_CHECKED"
    CONTRACTS_CHECKED = "CONTRACTS_CHECKED"
    PASSED = "PASSED"
    FAILED = "FAILED"


class CaseOutcome(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    TIMEOUT = "timeout"
    ERROR = "error"


class DocumentOutcome(StrEnum):
    PASSED = "PASSED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class CaseResult:
    """Outcome of one test case or statement check."""

    document_id: str
    subsection: str
    case_index: int
    outcome: CaseOutcome
    detail: str = ""
    output: Mapping[str, object] | None = field(default=None, compare=False, repr=False)

    @property
    def case_id(self) -> str:
        return f"{self.subsection}[{self.case_index}]"

    @property
    def passed(self) -> bool:
        return self.outcome is CaseOutcome.PASS

    def to_dict(self) -> dict[str, object]:
        return {
            "document_id": self.document_id,
            "subsection": self.subsection,
            "case_index": self.case_index,
            "case_id": self.case_id,
            "outcome": self.outcome.value,
            "detail": self.detail,
        }


@dataclass(frozen=True, slots=True)
class Observation:
    """Observed ``input``/``output`` pair handed to statement checkers."""

    subsection: str
    case_index: int
    input: Mapping[str, Value]
    output: Mapping[str, object]


@dataclass(frozen=True, slots=True)
class ValidationReport:
    """Document-level result of one validation-loop run."""

    document_id: str
    outcome: DocumentOutcome
    final_state: LoopState
    transitions: tuple[LoopState, ...]
    results: tuple[CaseResult, ...] = ()
    failing_case_ids: tuple[str, ...] = ()
    aborted: bool = False
    warnings: tuple[DocumentWarning, ...] = ()

    @property
    def passed(self) -> bool:
        return self.outcome is DocumentOutcome.PASSED

    def outcomes(self) -> dict[str, CaseOutcome]:
        """``case_id -> outcome`` in execution order."""
        return {result.case_id: result.outcome for result in self.results}

    def to_dict(self) -> dict[str, object]:
        return {
            "document_id": self.document_id,
            "outcome": self.outcome.value,
            "final_state": self.final_state.value,
            "transitions": [state.value for state in self.transitions],
            "failing_case_ids": list(self.failing_case_ids),
            "aborted": self.aborted,
            "results": [result.to_dict() for result in self.results],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=2, ensure_ascii=False)


__all__ = [
    "CaseOutcome",
    "CaseResult",
    "DocumentOutcome",
    "LoopState",
    "Observation",
    "ValidationReport",
]
