"""
reqdoc — error and diagnostic taxonomy.

File: src/reqdoc/domain/errors.py

Purpose
- Typed failures raised while parsing a requirement document, resolving a
  corpus, or executing validation cases, plus the non-fatal diagnostics that
  travel alongside a parsed document.

Functional requirements
- Every failure carries the document ID (when known), the offending line or
  field, and a human-readable cause.
- ``SchemaViolation`` aggregates every issue collected in one pass.

Non-functional requirements
- Rendered messages are deterministic so automated fix-and-retry loops can
  diff them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum


@dataclass(frozen=True, slots=True)
class Issue:
    """Single grammar or schema problem found while parsing."""

    message: str
    line: int | None = None
    field: str | None = None
    hint: str | None = None

    def render(self) -> str:
        location = f"line {self.line}" if self.line is not None else "document"
        scope = f" [{self.field}]" if self.field else ""
        hint = f" (hint: {self.hint})" if self.hint else ""
        return f"{location}{scope}: {self.message}{hint}"

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"message": self.message}
        if self.line is not None:
            payload["line"] = self.line
        if self.field is not None:
            payload["field"] = self.field
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ReqDocError(Exception):
    """Base class for all reqdoc failures."""

    document_id: str | None
    path: str | None
    line: int | None
    field: str | None
    hint: str | None

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        path: str | None = None,
        line: int | None = None,
        field: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.document_id = document_id
        self.path = path
        self.line = line
        self.field = field
        self.hint = hint

    def locate(self, *, document_id: str | None = None, path: str | None = None) -> ReqDocError:
        """Fill in document identity once it becomes known; returns ``self``."""

        if self.document_id is None and document_id:
            self.document_id = document_id
        if self.path is None and path:
            self.path = path
        return self

    def _prefix(self) -> str:
        parts: list[str] = []
        if self.path:
            parts.append(self.path if self.line is None else f"{self.path}:{self.line}")
        elif self.line is not None:
            parts.append(f"line {self.line}")
        if self.document_id:
            parts.append(f"<{self.document_id}>")
        if self.field:
            parts.append(f"[{self.field}]")
        return " ".join(parts)

    def __str__(self) -> str:
        prefix = self._prefix()
        hint = f" (hint: {self.hint})" if self.hint else ""
        return f"{prefix} {self.message}{hint}" if prefix else f"{self.message}{hint}"

    def to_dict(self) -> dict[str, object]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "document_id": self.document_id,
            "path": self.path,
            "line": self.line,
            "field": self.field,
            "hint": self.hint,
        }


class EncodingError(ReqDocError):
    """Document bytes carry a BOM or are not valid UTF-8."""


class StructuralError(ReqDocError):
    """Grammar violated at a fixed structural point (delimiters, keywords)."""


class SchemaViolation(ReqDocError):
    """One or more schema/grammar issues collected during a single parse pass."""

    issues: tuple[Issue, ...]

    def __init__(
        self,
        issues: Sequence[Issue],
        *,
        document_id: str | None = None,
        path: str | None = None,
    ) -> None:
        self.issues = tuple(issues)
        first = self.issues[0] if self.issues else None
        count = len(self.issues)
        summary = f"{count} schema violation{'s' if count != 1 else ''}"
        super().__init__(
            summary,
            document_id=document_id,
            path=path,
            line=first.line if first is not None else None,
            field=first.field if first is not None else None,
        )

    def __str__(self) -> str:
        header = self.message
        if self.path:
            header = f"{self.path}: {header}"
        if self.document_id:
            header = f"{header} in <{self.document_id}>"
        rendered = "\n".join(f"- {issue.render()}" for issue in self.issues)
        return f"{header}\n{rendered}" if rendered else header

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["issues"] = [issue.to_dict() for issue in self.issues]
        return payload


class CorpusError(ReqDocError):
    """Failure raised while resolving a set of documents together."""


class CycleError(CorpusError):
    """``depends_on`` edges form a cycle."""

    cycle: tuple[str, ...]

    def __init__(
        self,
        cycle: Sequence[str],
        *,
        message: str | None = None,
        document_id: str | None = None,
        path: str | None = None,
    ) -> None:
        self.cycle = tuple(cycle)
        rendered = message or f"dependency cycle: {' -> '.join((*self.cycle, self.cycle[0]))}"
        super().__init__(rendered, document_id=document_id, path=path, field="depends_on")


class UnresolvedReferenceError(CorpusError):
    """A referenced requirement ID is not available to the referencing document."""

    reference: str

    def __init__(
        self,
        reference: str,
        *,
        message: str | None = None,
        document_id: str | None = None,
        path: str | None = None,
        field: str | None = None,
        line: int | None = None,
    ) -> None:
        self.reference = reference
        rendered = message or f"unknown requirement {reference!r}"
        super().__init__(rendered, document_id=document_id, path=path, field=field, line=line)


class UndeclaredDependencyError(UnresolvedReferenceError, CycleError):
    """Foreign invariant targets a known document outside the ``depends_on`` closure."""

    def __init__(
        self,
        reference: str,
        *,
        document_id: str,
        path: str | None = None,
        line: int | None = None,
    ) -> None:
        self.reference = reference
        self.cycle = (document_id, reference)
        CorpusError.__init__(
            self,
            f"invariant references {reference!r} which is not reachable via depends_on",
            document_id=document_id,
            path=path,
            field="invariants",
            line=line,
            hint=f"add {reference!r} to depends_on, directly or transitively",
        )


class AdapterError(ReqDocError):
    """Candidate implementation adapter failed to execute a case."""

    fatal: bool

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal


class WarningKind(StrEnum):
    """Non-fatal diagnostic categories."""

    SEQUENCE = "sequence"
    EMPTY_VALIDATE = "empty_validate"
    STATEMENT_CONFLICT = "statement_conflict"


@dataclass(frozen=True, slots=True)
class DocumentWarning:
    """Non-fatal diagnostic attached to a parsed document."""

    kind: WarningKind
    message: str
    line: int | None = None
    field: str | None = None

    def render(self) -> str:
        location = f"line {self.line}" if self.line is not None else "document"
        return f"{location} [{self.kind.value}]: {self.message}"

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"kind": self.kind.value, "message": self.message}
        if self.line is not None:
            payload["line"] = self.line
        if self.field is not None:
            payload["field"] = self.field
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> DocumentWarning:
        kind = WarningKind(str(data.get("kind")))
        message = data.get("message")
        line = data.get("line")
        field_name = data.get("field")
        if not isinstance(message, str):
            raise ValueError("DocumentWarning.message must be a string")
        if line is not None and not isinstance(line, int):
            raise ValueError("DocumentWarning.line must be an integer when set")
        if field_name is not None and not isinstance(field_name, str):
            raise ValueError("DocumentWarning.field must be a string when set")
        factory = _WARNING_TYPES.get(kind, DocumentWarning)
        if factory is DocumentWarning:
            return DocumentWarning(kind=kind, message=message, line=line, field=field_name)
        return factory(message, line=line, field=field_name)


def SequenceWarning(  # noqa: N802 - warning factory named after its kind
    message: str, *, line: int | None = None, field: str | None = "flow"
) -> DocumentWarning:
    """Step numbering gap; the document stays usable."""

    return DocumentWarning(kind=WarningKind.SEQUENCE, message=message, line=line, field=field)


def EmptyValidateWarning(  # noqa: N802
    message: str, *, line: int | None = None, field: str | None = "validate"
) -> DocumentWarning:
    """``Validate:`` block present or absent without any acceptance criteria."""

    return DocumentWarning(
        kind=WarningKind.EMPTY_VALIDATE, message=message, line=line, field=field
    )


def StatementConflictWarning(  # noqa: N802
    message: str, *, line: int | None = None, field: str | None = "validate"
) -> DocumentWarning:
    """Invariant and contract constrain the same output field; precedence is undefined."""

    return DocumentWarning(
        kind=WarningKind.STATEMENT_CONFLICT, message=message, line=line, field=field
    )


_WARNING_TYPES = {
    WarningKind.SEQUENCE: SequenceWarning,
    WarningKind.EMPTY_VALIDATE: EmptyValidateWarning,
    WarningKind.STATEMENT_CONFLICT: StatementConflictWarning,
}


__all__ = [
    "AdapterError",
    "CorpusError",
    "CycleError",
    "DocumentWarning",
    "EmptyValidateWarning",
    "EncodingError",
    "Issue",
    "ReqDocError",
    "SchemaViolation",
    "SequenceWarning",
    "StatementConflictWarning",
    "StructuralError",
    "UndeclaredDependencyError",
    "UnresolvedReferenceError",
    "WarningKind",
]
