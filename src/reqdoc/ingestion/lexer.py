"""
reqdoc — lexer/segmenter.

File: src/reqdoc/ingestion/lexer.py

Purpose
- Split raw document text into the frontmatter block and body tokens tagged
  with indentation depth. Purely structural; no semantic interpretation.

Functional requirements
- Reject a byte-order mark or invalid UTF-8 with ``EncodingError``.
- Require the frontmatter to be opened and closed by ``---`` lines.
- Preserve blank lines as depth-0 separator tokens.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import Final

from reqdoc.constants import FRONTMATTER_DELIMITER
from reqdoc.domain.errors import EncodingError, StructuralError

_BOM_CHAR: Final[str] = "﻿"


@dataclass(frozen=True, slots=True)
class Token:
    """One body line with its 1-based source line number and leading-space depth."""

    line: int
    depth: int
    text: str
    raw: str

    @property
    def is_blank(self) -> bool:
        return not self.text


@dataclass(frozen=True, slots=True)
class Segments:
    frontmatter: str
    frontmatter_line: int
    body: tuple[Token, ...]


def decode_source(raw: bytes | str) -> str:
    """Decode document bytes as strict UTF-8 without BOM."""

    if isinstance(raw, str):
        if raw.startswith(_BOM_CHAR):
            raise EncodingError(
                "byte-order mark is not allowed",
                line=1,
                hint="save the file as UTF-8 without BOM",
            )
        return raw

    if raw.startswith(codecs.BOM_UTF8):
        raise EncodingError(
            "byte-order mark is not allowed",
            line=1,
            hint="save the file as UTF-8 without BOM",
        )
    try:
        return raw.decode("utf-8", errors="strict")
    except UnicodeDecodeError as exc:
        line = raw.count(b"\n", 0, exc.start) + 1
        raise EncodingError(
            f"invalid UTF-8 sequence at byte offset {exc.start}",
            line=line,
            hint="re-encode the document as UTF-8",
        ) from exc


def segment(raw: bytes | str) -> Segments:
    """Split ``raw`` into frontmatter text and tokenized body lines."""

    text = decode_source(raw)
    lines = text.splitlines()

    opening = _first_non_blank(lines, 0)
    if opening is None or lines[opening].strip() != FRONTMATTER_DELIMITER:
        raise StructuralError(
            "document must begin with a '---' frontmatter delimiter",
            line=(opening + 1) if opening is not None else 1,
            field="frontmatter",
            hint="start the file with '---', the metadata block, then '---'",
        )

    closing: int | None = None
    for index in range(opening + 1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            closing = index
            break
    if closing is None:
        raise StructuralError(
            "frontmatter block is not closed by a second '---' delimiter",
            line=opening + 1,
            field="frontmatter",
            hint="add a '---' line after the metadata block",
        )

    frontmatter = "\n".join(lines[opening + 1 : closing])
    body = tuple(
        tokenize_line(line_number, raw_line)
        for line_number, raw_line in enumerate(lines[closing + 1 :], start=closing + 2)
    )
    return Segments(frontmatter=frontmatter, frontmatter_line=opening + 2, body=body)


def tokenize_line(line_number: int, raw_line: str) -> Token:
    stripped = raw_line.rstrip()
    content = stripped.lstrip(" ")
    if content.startswith("\t"):
        raise StructuralError(
            "tab characters are not allowed in indentation",
            line=line_number,
            hint="indent with spaces; alternatives use three spaces",
        )
    if not content:
        return Token(line=line_number, depth=0, text="", raw="")
    return Token(
        line=line_number,
        depth=len(stripped) - len(content),
        text=content,
        raw=stripped,
    )


def _first_non_blank(lines: list[str], start: int) -> int | None:
    for index in range(start, len(lines)):
        if lines[index].strip():
            return index
    return None


__all__ = ["Segments", "Token", "decode_source", "segment", "tokenize_line"]
