"""Technical section parser: ``API:``, ``Performance:``, ``Security:``, ``Data:``, ``Rule:``."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

from reqdoc.constants import KNOWN_SECTION_NAMES, VALIDATE_KEYWORD
from reqdoc.domain.errors import Issue
from reqdoc.ingestion.lexer import Token

_LABEL_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<label>[A-Z][A-Za-z0-9_-]*(?: [A-Za-z0-9_-]+){0,3}):(?:[ \t]+(?P<rest>.*))?$"
)


@dataclass(slots=True)
class SectionsResult:
    sections: dict[str, str] = field(default_factory=dict)
    issues: list[Issue] = field(default_factory=list)
    end: int = 0


def match_label(token: Token) -> tuple[str, str] | None:
    """Return ``(label, rest)`` when ``token`` is a depth-0 labeled line."""

    if token.depth != 0 or token.is_blank:
        return None
    match = _LABEL_RE.match(token.text)
    if match is None:
        return None
    return match.group("label"), (match.group("rest") or "").strip()


def is_validate_keyword(token: Token) -> bool:
    return token.depth == 0 and token.text == VALIDATE_KEYWORD


def parse_sections(tokens: Sequence[Token], start: int) -> SectionsResult:
    """Collect labeled sections from ``tokens[start:]`` until ``Validate:`` or end of body."""

    result = SectionsResult(end=len(tokens))
    current: str | None = None
    buffer: list[str] = []
    first_lines: dict[str, int] = {}

    def flush() -> None:
        if current is None:
            return
        while buffer and not buffer[-1].strip():
            buffer.pop()
        result.sections[current] = "\n".join(buffer)

    index = start
    while index < len(tokens):
        token = tokens[index]
        if is_validate_keyword(token):
            result.end = index
            break

        labeled = match_label(token)
        if labeled is not None:
            flush()
            label, rest = labeled
            if label in first_lines:
                result.issues.append(
                    Issue(
                        f"section {label!r} is declared more than once "
                        f"(first at line {first_lines[label]})",
                        line=token.line,
                        field="sections",
                        hint="merge the duplicated section into one block",
                    )
                )
                current = None
                buffer = []
                index += 1
                # Swallow the duplicate block so its lines are not misattributed.
                while index < len(tokens) and not (
                    is_validate_keyword(tokens[index]) or match_label(tokens[index])
                ):
                    index += 1
                continue
            first_lines[label] = token.line
            current = label
            buffer = [rest] if rest else []
            index += 1
            continue

        if current is None:
            if not token.is_blank:
                result.issues.append(
                    Issue(
                        "text outside of any section",
                        line=token.line,
                        field="sections",
                        hint=f"start a section with one of: {', '.join(KNOWN_SECTION_NAMES)}",
                    )
                )
            index += 1
            continue

        if token.is_blank and not buffer:
            index += 1
            continue
        buffer.append(token.raw)
        index += 1

    flush()
    return result


__all__ = ["SectionsResult", "is_validate_keyword", "match_label", "parse_sections"]
