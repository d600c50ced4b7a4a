"""Render a ``Document`` back to source text or JSON, and load it again."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Final, Literal

import yaml

from reqdoc.constants import FLOW_KEYWORD, FRONTMATTER_DELIMITER, VALIDATE_KEYWORD
from reqdoc.domain.errors import Issue, SchemaViolation
from reqdoc.domain.models import Document, ValidateBlock, expected_to_plain
from reqdoc.ingestion.assembler import parse_document

Format = Literal["text", "json"]

_ALTERNATIVE_PREFIX: Final[str] = "   - "
_VALIDATE_INDENT: Final[str] = "  "


def serialize_document(document: Document, fmt: Format = "text") -> str:
    """Serialize ``document``; parsing the result yields an equal ``Document``."""

    if fmt == "json":
        return json.dumps(document.to_dict(), indent=2, ensure_ascii=False, default=str) + "\n"
    if fmt != "text":
        raise ValueError(f"unsupported format {fmt!r}; expected 'text' or 'json'")

    lines: list[str] = [FRONTMATTER_DELIMITER]
    lines.extend(_dump_yaml(document.frontmatter.to_dict()).splitlines())
    lines.append(FRONTMATTER_DELIMITER)
    lines.append("")

    lines.append(FLOW_KEYWORD)
    for step in document.flow:
        lines.append(f"{step.number}. {step.text}")
        for alternative in step.alternatives:
            lines.append(f"{_ALTERNATIVE_PREFIX}{alternative.condition}: {alternative.outcome}")

    for name, text in document.sections.items():
        lines.append("")
        lines.extend(_section_lines(name, text))

    if document.validate is not None:
        lines.append("")
        lines.append(VALIDATE_KEYWORD)
        lines.extend(
            f"{_VALIDATE_INDENT}{line}" if line else ""
            for line in _validate_yaml(document.validate).splitlines()
        )
    return "\n".join(lines) + "\n"


def deserialize_document(
    payload: str | bytes | Mapping[str, object], fmt: Format = "json"
) -> Document:
    """Inverse of ``serialize_document``."""

    if fmt == "text":
        if isinstance(payload, Mapping):
            raise TypeError("text payloads must be str or bytes")
        return parse_document(payload)
    if fmt != "json":
        raise ValueError(f"unsupported format {fmt!r}; expected 'text' or 'json'")

    try:
        data = payload if isinstance(payload, Mapping) else json.loads(payload)
    except json.JSONDecodeError as exc:
        raise SchemaViolation([Issue(f"invalid JSON: {exc.msg}", line=exc.lineno)]) from exc
    if not isinstance(data, Mapping):
        raise SchemaViolation([Issue("serialized document must be a JSON object")])
    try:
        return Document.from_dict(data)
    except ValueError as exc:
        document_id = data.get("id")
        raise SchemaViolation(
            [Issue(str(exc))],
            document_id=document_id if isinstance(document_id, str) else None,
        ) from exc


def _dump_yaml(data: object) -> str:
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


def _section_lines(name: str, text: str) -> list[str]:
    if not text:
        return [f"{name}:"]
    first, *rest = text.split("\n")
    # An indented or blank first line would be stripped if joined onto the label.
    if not first or first[0].isspace():
        return [f"{name}:", *text.split("\n")]
    return [f"{name}: {first}", *rest]


def _validate_yaml(block: ValidateBlock) -> str:
    payload: dict[str, object] = {}
    for name in block.declared:
        if name in ("happy_path", "boundaries"):
            payload[name] = [
                {"input": dict(case.input), "expect": expected_to_plain(case.expect)}
                for case in getattr(block, name)
            ]
        else:
            payload[name] = [item.text for item in getattr(block, name)]
    if not payload:
        return ""
    return _dump_yaml(payload)


__all__ = ["Format", "deserialize_document", "serialize_document"]
