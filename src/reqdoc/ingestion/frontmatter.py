"""
reqdoc — frontmatter decoder.

File: src/reqdoc/ingestion/frontmatter.py

Purpose
- Decode the YAML metadata block into a typed ``Frontmatter`` record.

Functional requirements
- Report every missing or invalid field in one pass instead of failing fast.
- Retain unknown fields under ``extensions`` for forward compatibility.
- Normalize ``depends_on`` to a deduplicated sequence keeping first occurrence.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Final

import yaml

from reqdoc.constants import OPTIONAL_FRONTMATTER_FIELDS, REQUIRED_FRONTMATTER_FIELDS
from reqdoc.domain.errors import Issue
from reqdoc.domain.models import Frontmatter, Priority, Status, is_requirement_id

_ESTIMATE_RE: Final[re.Pattern[str]] = re.compile(
    r"^\d+(?:\.\d+)?\s*(?:m|mins?|minutes?|h|hrs?|hours?|d|days?|w|wks?|weeks?|sprints?)$",
    flags=re.IGNORECASE,
)
_SECTION: Final[str] = "frontmatter"


@dataclass(slots=True)
class FrontmatterResult:
    frontmatter: Frontmatter | None
    document_id: str | None
    issues: list[Issue] = field(default_factory=list)


def decode_frontmatter(text: str, *, first_line: int = 2) -> FrontmatterResult:
    """Decode ``text`` (the lines between the ``---`` delimiters)."""

    try:
        payload = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        line = first_line + mark.line if mark is not None else first_line
        problem = getattr(exc, "problem", None) or str(exc)
        return FrontmatterResult(
            frontmatter=None,
            document_id=None,
            issues=[Issue(f"invalid YAML: {problem}", line=line, field=_SECTION)],
        )

    if not isinstance(payload, Mapping):
        return FrontmatterResult(
            frontmatter=None,
            document_id=None,
            issues=[
                Issue(
                    f"frontmatter must be a mapping, got {type(payload).__name__}",
                    line=first_line,
                    field=_SECTION,
                )
            ],
        )

    issues: list[Issue] = []
    lines = _key_lines(text, first_line)
    data: dict[str, object] = {}
    for key, value in payload.items():
        if not isinstance(key, str):
            issues.append(Issue(f"field names must be strings, got {key!r}", line=first_line))
            continue
        data[key] = value

    def line_of(key: str) -> int:
        return lines.get(key, first_line)

    required: dict[str, str] = {}
    for name in REQUIRED_FRONTMATTER_FIELDS:
        if name not in data or data[name] is None:
            issues.append(
                Issue(
                    "missing required field",
                    line=first_line,
                    field=name,
                    hint=f"add '{name}: ...' to the frontmatter",
                )
            )
            continue
        parsed = _as_text(data[name])
        if parsed is None:
            issues.append(
                Issue(
                    f"expected text, got {type(data[name]).__name__}",
                    line=line_of(name),
                    field=name,
                )
            )
        elif not parsed:
            issues.append(Issue("must not be empty", line=line_of(name), field=name))
        else:
            required[name] = parsed

    business_outcome = _optional_text(data, "business_outcome", line_of, issues)
    estimate = _optional_text(data, "estimate", line_of, issues)
    if estimate is not None and _ESTIMATE_RE.fullmatch(estimate) is None:
        issues.append(
            Issue(
                f"invalid duration {estimate!r}",
                line=line_of("estimate"),
                field="estimate",
                hint="use forms like '4h', '3d', '1w' or '2 sprints'",
            )
        )
        estimate = None

    priority = _enum_field(data, "priority", Priority, line_of, issues)
    status = _enum_field(data, "status", Status, line_of, issues)
    depends_on = _id_list(data, "depends_on", line_of, issues)
    tags = _string_list(data, "tags", line_of, issues)

    known = set(REQUIRED_FRONTMATTER_FIELDS) | set(OPTIONAL_FRONTMATTER_FIELDS)
    extensions = {key: value for key, value in data.items() if key not in known}

    document_id = required.get("id")
    if document_id is not None and not is_requirement_id(document_id):
        issues.append(
            Issue(
                f"invalid requirement id {document_id!r}",
                line=line_of("id"),
                field="id",
                hint="ids start with a letter and use letters, digits, '-', '_' or '.'",
            )
        )
    if document_id is not None and document_id in depends_on:
        issues.append(
            Issue(
                "document cannot depend on itself",
                line=line_of("depends_on"),
                field="depends_on",
            )
        )

    if issues:
        return FrontmatterResult(frontmatter=None, document_id=document_id, issues=issues)

    frontmatter = Frontmatter(
        id=required["id"],
        user=required["user"],
        context=required["context"],
        trigger=required["trigger"],
        user_outcome=required["user_outcome"],
        business_outcome=business_outcome,
        priority=priority,
        status=status,
        estimate=estimate,
        depends_on=tuple(depends_on),
        tags=frozenset(tags),
        extensions=extensions,
    )
    return FrontmatterResult(frontmatter=frontmatter, document_id=document_id)


def _key_lines(text: str, first_line: int) -> dict[str, int]:
    lines: dict[str, int] = {}
    for offset, raw in enumerate(text.splitlines()):
        if not raw or raw[0].isspace() or ":" not in raw:
            continue
        key = raw.split(":", 1)[0].strip().strip("'\"")
        lines.setdefault(key, first_line + offset)
    return lines


def _as_text(value: object) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _optional_text(
    data: Mapping[str, object],
    name: str,
    line_of: Callable[[str], int],
    issues: list[Issue],
) -> str | None:
    if name not in data or data[name] is None:
        return None
    parsed = _as_text(data[name])
    if parsed is None:
        issues.append(
            Issue(
                f"expected text, got {type(data[name]).__name__}",
                line=line_of(name),
                field=name,
            )
        )
        return None
    return parsed or None


def _enum_field(
    data: Mapping[str, object],
    name: str,
    enum_type: type[Priority] | type[Status],
    line_of: Callable[[str], int],
    issues: list[Issue],
) -> Priority | Status | None:
    raw = data.get(name)
    if raw is None:
        return None
    allowed = ", ".join(member.value for member in enum_type)
    if not isinstance(raw, str):
        issues.append(
            Issue(
                f"expected one of: {allowed}",
                line=line_of(name),
                field=name,
            )
        )
        return None
    try:
        return enum_type(raw.strip().lower())
    except ValueError:
        issues.append(
            Issue(
                f"invalid value {raw!r}; expected one of: {allowed}",
                line=line_of(name),
                field=name,
            )
        )
        return None


def _string_list(
    data: Mapping[str, object],
    name: str,
    line_of: Callable[[str], int],
    issues: list[Issue],
) -> list[str]:
    raw = data.get(name)
    if raw is None:
        return []
    if isinstance(raw, str):
        items: list[object] = [piece for piece in raw.split(",")]
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        issues.append(
            Issue(
                f"expected a list, got {type(raw).__name__}",
                line=line_of(name),
                field=name,
            )
        )
        return []

    values: list[str] = []
    for index, item in enumerate(items):
        text = _as_text(item)
        if text is None:
            issues.append(
                Issue(
                    f"entry {index} must be text, got {type(item).__name__}",
                    line=line_of(name),
                    field=name,
                )
            )
            continue
        if text and text not in values:
            values.append(text)
    return values


def _id_list(
    data: Mapping[str, object],
    name: str,
    line_of: Callable[[str], int],
    issues: list[Issue],
) -> list[str]:
    values = _string_list(data, name, line_of, issues)
    for value in values:
        if not is_requirement_id(value):
            issues.append(
                Issue(
                    f"invalid requirement id {value!r}",
                    line=line_of(name),
                    field=name,
                )
            )
    return values


__all__ = ["FrontmatterResult", "decode_frontmatter"]
