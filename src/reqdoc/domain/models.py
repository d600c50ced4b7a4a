"""
reqdoc — canonical requirement-document model.

File: src/reqdoc/domain/models.py

Purpose
- Immutable typed values produced by one parse pass of a requirement document:
  frontmatter, numbered flow, technical sections and the ``Validate`` block.

Functional requirements
- Values are frozen; a changed source is re-parsed wholesale.
- Every record round-trips through ``to_dict``/``from_dict``.
- Source line numbers and warnings are carried for diagnostics but never take
  part in equality, so a re-serialized document compares field-for-field equal.

Non-functional requirements
- ``input``/``expect`` values form a closed variant so the matcher can dispatch
  exhaustively on type.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final, TypeAlias

from reqdoc.constants import (
    CONDITION_CUE_WORDS,
    DOCUMENT_SCHEMA_VERSION,
    KNOWN_SECTION_NAMES,
    NON_EMPTY_SENTINEL,
    VALIDATE_SUBSECTIONS,
)
from reqdoc.domain.errors import DocumentWarning

_REQUIREMENT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]*$")


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Status(StrEnum):
    DRAFT = "draft"
    APPROVED = "approved"
    IMPLEMENTED = "implemented"


class NonEmpty:
    """Sentinel for ``expect`` values: the field exists and is not empty."""

    __slots__ = ()
    _instance: NonEmpty | None = None

    def __new__(cls) -> NonEmpty:
        if cls._instance is None:
            cls._instance = object.__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NON_EMPTY"

    def __reduce__(self) -> str:
        return "NON_EMPTY"


NON_EMPTY: Final[NonEmpty] = NonEmpty()

Scalar: TypeAlias = str | int | float | bool | None
Value: TypeAlias = Scalar | dict[str, "Value"]
Expected: TypeAlias = Scalar | NonEmpty | dict[str, "Expected"]


def coerce_value(raw: object, field_name: str) -> Value:
    """Validate ``raw`` against the closed value variant and return a private copy."""

    if raw is None or isinstance(raw, (str, bool, int)):
        return raw
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise ValueError(f"{field_name} must be a finite number")
        return raw
    if isinstance(raw, Mapping):
        out: dict[str, Value] = {}
        for key, item in raw.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            out[key] = coerce_value(item, f"{field_name}.{key}")
        return out
    raise ValueError(
        f"{field_name} must be a string, number, boolean, null or mapping, "
        f"got {type(raw).__name__}"
    )


def coerce_expected(raw: object, field_name: str) -> Expected:
    """Like ``coerce_value`` but decodes the ``non-empty`` literal into ``NON_EMPTY``."""

    if isinstance(raw, NonEmpty):
        return NON_EMPTY
    if isinstance(raw, str) and raw == NON_EMPTY_SENTINEL:
        return NON_EMPTY
    if isinstance(raw, Mapping):
        out: dict[str, Expected] = {}
        for key, item in raw.items():
            if not isinstance(key, str):
                raise ValueError(f"{field_name} keys must be strings")
            out[key] = coerce_expected(item, f"{field_name}.{key}")
        return out
    return coerce_value(raw, field_name)


def expected_to_plain(value: Expected) -> Value:
    """Render an expected value back to plain data (``NON_EMPTY`` -> ``"non-empty"``)."""

    if isinstance(value, NonEmpty):
        return NON_EMPTY_SENTINEL
    if isinstance(value, dict):
        return {key: expected_to_plain(item) for key, item in value.items()}
    return value


def is_requirement_id(value: str) -> bool:
    return _REQUIREMENT_ID_RE.fullmatch(value) is not None


def _strip_text(value: str, field_name: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must not be empty")
    return normalized


def _unique_preserve_order(values: Sequence[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in values:
        text = raw.strip()
        if not text or text in seen:
            continue
        seen.add(text)
        ordered.append(text)
    return tuple(ordered)


def _as_str(data: Mapping[str, object], key: str, owner: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{owner}.{key} must be a string")
    return value


def _as_optional_str(data: Mapping[str, object], key: str, owner: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{owner}.{key} must be a string when set")
    return value


def _as_list(data: Mapping[str, object], key: str, owner: str) -> list[object]:
    value = data.get(key, [])
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{owner}.{key} must be a list")
    return list(value)


def _as_mapping(value: object, owner: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{owner} must be an object")
    return value


@dataclass(frozen=True, slots=True)
class Frontmatter:
    """Typed metadata decoded from the leading ``---`` block."""

    id: str
    user: str
    context: str
    trigger: str
    user_outcome: str
    business_outcome: str | None = None
    priority: Priority | None = None
    status: Status | None = None
    estimate: str | None = None
    depends_on: tuple[str, ...] = ()
    tags: frozenset[str] = frozenset()
    extensions: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("id", "user", "context", "trigger", "user_outcome"):
            object.__setattr__(self, name, _strip_text(getattr(self, name), f"Frontmatter.{name}"))
        if self.priority is not None:
            object.__setattr__(self, "priority", Priority(self.priority))
        if self.status is not None:
            object.__setattr__(self, "status", Status(self.status))
        object.__setattr__(self, "depends_on", _unique_preserve_order(self.depends_on))
        object.__setattr__(
            self, "tags", frozenset(tag.strip() for tag in self.tags if tag.strip())
        )
        object.__setattr__(self, "extensions", dict(self.extensions))

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "user": self.user,
            "context": self.context,
            "trigger": self.trigger,
            "user_outcome": self.user_outcome,
        }
        if self.business_outcome is not None:
            payload["business_outcome"] = self.business_outcome
        if self.priority is not None:
            payload["priority"] = self.priority.value
        if self.status is not None:
            payload["status"] = self.status.value
        if self.estimate is not None:
            payload["estimate"] = self.estimate
        if self.depends_on:
            payload["depends_on"] = list(self.depends_on)
        if self.tags:
            payload["tags"] = sorted(self.tags)
        for key, value in self.extensions.items():
            payload.setdefault(key, value)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Frontmatter:
        owner = "Frontmatter"
        known = {
            "id",
            "user",
            "context",
            "trigger",
            "user_outcome",
            "business_outcome",
            "priority",
            "status",
            "estimate",
            "depends_on",
            "tags",
        }
        priority = _as_optional_str(data, "priority", owner)
        status = _as_optional_str(data, "status", owner)
        return cls(
            id=_as_str(data, "id", owner),
            user=_as_str(data, "user", owner),
            context=_as_str(data, "context", owner),
            trigger=_as_str(data, "trigger", owner),
            user_outcome=_as_str(data, "user_outcome", owner),
            business_outcome=_as_optional_str(data, "business_outcome", owner),
            priority=Priority(priority) if priority is not None else None,
            status=Status(status) if status is not None else None,
            estimate=_as_optional_str(data, "estimate", owner),
            depends_on=tuple(str(item) for item in _as_list(data, "depends_on", owner)),
            tags=frozenset(str(item) for item in _as_list(data, "tags", owner)),
            extensions={key: value for key, value in data.items() if key not in known},
        )


@dataclass(frozen=True, slots=True)
class AlternativePath:
    """Conditional branch owned by exactly one flow step."""

    condition: str
    outcome: str
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        condition = _strip_text(self.condition, "AlternativePath.condition")
        if condition.split(maxsplit=1)[0] not in CONDITION_CUE_WORDS:
            cues = "/".join(CONDITION_CUE_WORDS)
            raise ValueError(f"AlternativePath.condition must begin with {cues}")
        object.__setattr__(self, "condition", condition)
        object.__setattr__(self, "outcome", _strip_text(self.outcome, "AlternativePath.outcome"))

    def to_dict(self) -> dict[str, object]:
        return {"condition": self.condition, "outcome": self.outcome}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AlternativePath:
        return cls(
            condition=_as_str(data, "condition", "AlternativePath"),
            outcome=_as_str(data, "outcome", "AlternativePath"),
        )


@dataclass(frozen=True, slots=True)
class FlowStep:
    """Numbered primary-scenario step with its alternative paths."""

    number: int
    text: str
    alternatives: tuple[AlternativePath, ...] = ()
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if isinstance(self.number, bool) or self.number < 1:
            raise ValueError("FlowStep.number must be a positive integer")
        object.__setattr__(self, "text", _strip_text(self.text, "FlowStep.text"))
        object.__setattr__(self, "alternatives", tuple(self.alternatives))

    def to_dict(self) -> dict[str, object]:
        return {
            "number": self.number,
            "text": self.text,
            "alternatives": [alternative.to_dict() for alternative in self.alternatives],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FlowStep:
        number = data.get("number")
        if not isinstance(number, int):
            raise ValueError("FlowStep.number must be an integer")
        return cls(
            number=number,
            text=_as_str(data, "text", "FlowStep"),
            alternatives=tuple(
                AlternativePath.from_dict(_as_mapping(item, "FlowStep.alternatives[]"))
                for item in _as_list(data, "alternatives", "FlowStep")
            ),
        )


@dataclass(frozen=True, slots=True)
class TestCase:
    """Positional ``input``/``expect`` pair from ``happy_path`` or ``boundaries``."""

    __test__ = False

    input: dict[str, Value]
    expect: dict[str, Expected]
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        input_value = coerce_value(_as_mapping(self.input, "TestCase.input"), "input")
        expect_value = coerce_expected(_as_mapping(self.expect, "TestCase.expect"), "expect")
        object.__setattr__(self, "input", input_value)
        object.__setattr__(self, "expect", expect_value)

    def to_dict(self) -> dict[str, object]:
        return {"input": dict(self.input), "expect": expected_to_plain(self.expect)}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> TestCase:
        case_input = _as_mapping(data.get("input"), "TestCase.input")
        expect = _as_mapping(data.get("expect"), "TestCase.expect")
        return cls(input=dict(case_input), expect=dict(expect))  # type: ignore[arg-type]


@dataclass(frozen=True, slots=True)
class InvariantStatement:
    """Condition that must hold for all inputs; optionally scoped to another document."""

    text: str
    requirement_id: str | None = None
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _strip_text(self.text, "InvariantStatement.text"))
        if self.requirement_id is not None:
            object.__setattr__(
                self,
                "requirement_id",
                _strip_text(self.requirement_id, "InvariantStatement.requirement_id"),
            )

    @property
    def is_foreign(self) -> bool:
        return self.requirement_id is not None

    @property
    def statement(self) -> str:
        """Statement body without the ``<ID>: `` scope prefix."""

        if self.requirement_id is None:
            return self.text
        prefix = f"{self.requirement_id}:"
        if self.text.startswith(prefix):
            return self.text[len(prefix) :].strip()
        return self.text

    def to_dict(self) -> dict[str, object]:
        scope: dict[str, object] = (
            {"kind": "own"}
            if self.requirement_id is None
            else {"kind": "foreign", "requirement_id": self.requirement_id}
        )
        return {"text": self.text, "scope": scope}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> InvariantStatement:
        scope = _as_mapping(data.get("scope", {"kind": "own"}), "InvariantStatement.scope")
        requirement_id = (
            _as_str(scope, "requirement_id", "InvariantStatement.scope")
            if scope.get("kind") == "foreign"
            else None
        )
        return cls(text=_as_str(data, "text", "InvariantStatement"), requirement_id=requirement_id)


@dataclass(frozen=True, slots=True)
class Tolerance:
    """Numeric ``± N unit`` bound attached to a contract."""

    value: float
    unit: str

    def __post_init__(self) -> None:
        if not math.isfinite(self.value) or self.value < 0:
            raise ValueError("Tolerance.value must be a finite non-negative number")
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "unit", _strip_text(self.unit, "Tolerance.unit"))

    def to_dict(self) -> dict[str, object]:
        return {"value": self.value, "unit": self.unit}


@dataclass(frozen=True, slots=True)
class ContractStatement:
    """Quantitative or logical input/output relationship."""

    text: str
    tolerance: Tolerance | None = None
    line: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "text", _strip_text(self.text, "ContractStatement.text"))

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"text": self.text}
        if self.tolerance is not None:
            payload["tolerance"] = self.tolerance.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ContractStatement:
        tolerance_raw = data.get("tolerance")
        tolerance: Tolerance | None = None
        if tolerance_raw is not None:
            tolerance_map = _as_mapping(tolerance_raw, "ContractStatement.tolerance")
            value = tolerance_map.get("value")
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError("ContractStatement.tolerance.value must be a number")
            tolerance = Tolerance(
                value=float(value),
                unit=_as_str(tolerance_map, "unit", "ContractStatement.tolerance"),
            )
        return cls(text=_as_str(data, "text", "ContractStatement"), tolerance=tolerance)


@dataclass(frozen=True, slots=True)
class ValidateBlock:
    """Machine-checkable acceptance criteria."""

    happy_path: tuple[TestCase, ...] = ()
    boundaries: tuple[TestCase, ...] = ()
    invariants: tuple[InvariantStatement, ...] = ()
    contracts: tuple[ContractStatement, ...] = ()
    declared: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in ("happy_path", "boundaries", "invariants", "contracts"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        unknown = [name for name in self.declared if name not in VALIDATE_SUBSECTIONS]
        if unknown:
            raise ValueError(f"ValidateBlock.declared has unknown subsections: {unknown}")
        # Declared order is normalized so positional layout does not affect equality.
        declared = set(self.declared) | {
            name for name in VALIDATE_SUBSECTIONS if getattr(self, name)
        }
        object.__setattr__(
            self, "declared", tuple(name for name in VALIDATE_SUBSECTIONS if name in declared)
        )

    @property
    def is_empty(self) -> bool:
        return not (self.happy_path or self.boundaries or self.invariants or self.contracts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        if "happy_path" in self.declared:
            payload["happy_path"] = [case.to_dict() for case in self.happy_path]
        if "boundaries" in self.declared:
            payload["boundaries"] = [case.to_dict() for case in self.boundaries]
        if "invariants" in self.declared:
            payload["invariants"] = [item.to_dict() for item in self.invariants]
        if "contracts" in self.declared:
            payload["contracts"] = [item.to_dict() for item in self.contracts]
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ValidateBlock:
        owner = "ValidateBlock"
        return cls(
            happy_path=tuple(
                TestCase.from_dict(_as_mapping(item, f"{owner}.happy_path[]"))
                for item in _as_list(data, "happy_path", owner)
            ),
            boundaries=tuple(
                TestCase.from_dict(_as_mapping(item, f"{owner}.boundaries[]"))
                for item in _as_list(data, "boundaries", owner)
            ),
            invariants=tuple(
                InvariantStatement.from_dict(_as_mapping(item, f"{owner}.invariants[]"))
                for item in _as_list(data, "invariants", owner)
            ),
            contracts=tuple(
                ContractStatement.from_dict(_as_mapping(item, f"{owner}.contracts[]"))
                for item in _as_list(data, "contracts", owner)
            ),
            declared=tuple(name for name in VALIDATE_SUBSECTIONS if name in data),
        )


@dataclass(frozen=True, slots=True)
class Document:
    """Fully assembled requirement document."""

    frontmatter: Frontmatter
    flow: tuple[FlowStep, ...]
    sections: dict[str, str] = field(default_factory=dict)
    validate: ValidateBlock | None = None
    warnings: tuple[DocumentWarning, ...] = field(default=(), compare=False)
    source_path: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        steps = tuple(self.flow)
        if not steps:
            raise ValueError("Document.flow must contain at least one step")
        object.__setattr__(self, "flow", steps)
        object.__setattr__(self, "sections", dict(self.sections))
        object.__setattr__(self, "warnings", tuple(self.warnings))

    @property
    def id(self) -> str:
        return self.frontmatter.id

    @property
    def depends_on(self) -> tuple[str, ...]:
        return self.frontmatter.depends_on

    @property
    def known_sections(self) -> dict[str, str]:
        return {name: text for name, text in self.sections.items() if name in KNOWN_SECTION_NAMES}

    @property
    def extra_sections(self) -> dict[str, str]:
        """Unrecognized labels, retained verbatim for forward compatibility."""

        return {
            name: text for name, text in self.sections.items() if name not in KNOWN_SECTION_NAMES
        }

    def to_dict(self) -> dict[str, object]:
        return {
            "schema_version": DOCUMENT_SCHEMA_VERSION,
            "id": self.id,
            "frontmatter": self.frontmatter.to_dict(),
            "flow": [step.to_dict() for step in self.flow],
            "sections": [{"name": name, "text": text} for name, text in self.sections.items()],
            "validate": self.validate.to_dict() if self.validate is not None else None,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Document:
        version = data.get("schema_version", DOCUMENT_SCHEMA_VERSION)
        if version != DOCUMENT_SCHEMA_VERSION:
            raise ValueError(
                f"unsupported document schema_version {version!r}; "
                f"expected {DOCUMENT_SCHEMA_VERSION}"
            )
        sections: dict[str, str] = {}
        for item in _as_list(data, "sections", "Document"):
            entry = _as_mapping(item, "Document.sections[]")
            sections[_as_str(entry, "name", "Document.sections[]")] = _as_str(
                entry, "text", "Document.sections[]"
            )
        validate_raw = data.get("validate")
        return cls(
            frontmatter=Frontmatter.from_dict(
                _as_mapping(data.get("frontmatter"), "Document.frontmatter")
            ),
            flow=tuple(
                FlowStep.from_dict(_as_mapping(item, "Document.flow[]"))
                for item in _as_list(data, "flow", "Document")
            ),
            sections=sections,
            validate=(
                ValidateBlock.from_dict(_as_mapping(validate_raw, "Document.validate"))
                if validate_raw is not None
                else None
            ),
            warnings=tuple(
                DocumentWarning.from_dict(_as_mapping(item, "Document.warnings[]"))
                for item in _as_list(data, "warnings", "Document")
            ),
        )


__all__ = [
    "NON_EMPTY",
    "AlternativePath",
    "ContractStatement",
    "Document",
    "Expected",
    "FlowStep",
    "Frontmatter",
    "InvariantStatement",
    "NonEmpty",
    "Priority",
    "Scalar",
    "Status",
    "TestCase",
    "Tolerance",
    "ValidateBlock",
    "Value",
    "coerce_expected",
    "coerce_value",
    "expected_to_plain",
    "is_requirement_id",
]
