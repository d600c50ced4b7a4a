"""
reqdoc — document assembler.

File: src/reqdoc/ingestion/assembler.py

Purpose
- Run every parse stage over one source and combine the results into a single
  immutable ``Document``.

Functional requirements
- Parsing never partially succeeds: either a complete ``Document`` is returned
  or one ``SchemaViolation`` lists every issue found by every stage.
- Errors are tagged with the document ID (once decoded) and the source path.
- A foreign-scoped invariant naming the document's own ID is own-scoped.
"""

from __future__ import annotations

from pathlib import Path

from reqdoc.domain.errors import (
    DocumentWarning,
    EmptyValidateWarning,
    Issue,
    ReqDocError,
    SchemaViolation,
)
from reqdoc.domain.models import Document, InvariantStatement, ValidateBlock
from reqdoc.ingestion.flow import parse_flow
from reqdoc.ingestion.frontmatter import decode_frontmatter
from reqdoc.ingestion.lexer import segment
from reqdoc.ingestion.sections import is_validate_keyword, parse_sections
from reqdoc.ingestion.validate_block import parse_validate


def parse_document(raw: bytes | str, *, source: str | Path | None = None) -> Document:
    """Parse one requirement document.

    Raises ``EncodingError``, ``StructuralError`` or ``SchemaViolation``.
    """

    path = str(source) if source is not None else None
    document_id: str | None = None
    try:
        segments = segment(raw)
        front = decode_frontmatter(segments.frontmatter, first_line=segments.frontmatter_line)
        document_id = front.document_id

        issues: list[Issue] = list(front.issues)
        warnings: list[DocumentWarning] = []
        tokens = segments.body

        flow = parse_flow(tokens)
        issues.extend(flow.issues)
        warnings.extend(flow.warnings)

        sections = parse_sections(tokens, flow.end)
        issues.extend(sections.issues)

        validate: ValidateBlock | None = None
        if sections.end < len(tokens) and is_validate_keyword(tokens[sections.end]):
            parsed = parse_validate(tokens, sections.end)
            issues.extend(parsed.issues)
            warnings.extend(parsed.warnings)
            validate = parsed.block
        else:
            warnings.append(
                EmptyValidateWarning("document has no Validate block; no acceptance criteria exist")
            )

        if issues or front.frontmatter is None:
            raise SchemaViolation(_ordered(issues), document_id=document_id, path=path)

        if validate is not None:
            validate = _own_scope(validate, front.frontmatter.id)

        return Document(
            frontmatter=front.frontmatter,
            flow=flow.steps,
            sections=sections.sections,
            validate=validate,
            warnings=tuple(warnings),
            source_path=path,
        )
    except ReqDocError as exc:
        exc.locate(document_id=document_id, path=path)
        raise


def parse_file(path: str | Path) -> Document:
    """Read ``path`` as bytes and parse it; errors carry the path."""

    source = Path(path)
    return parse_document(source.read_bytes(), source=source)


def _own_scope(block: ValidateBlock, document_id: str) -> ValidateBlock:
    if not any(item.requirement_id == document_id for item in block.invariants):
        return block
    invariants = tuple(
        InvariantStatement(text=item.text, line=item.line)
        if item.requirement_id == document_id
        else item
        for item in block.invariants
    )
    return ValidateBlock(
        happy_path=block.happy_path,
        boundaries=block.boundaries,
        invariants=invariants,
        contracts=block.contracts,
        declared=block.declared,
    )


def _ordered(issues: list[Issue]) -> list[Issue]:
    # Stable by line so the rendered report reads top to bottom.
    return sorted(issues, key=lambda issue: issue.line if issue.line is not None else 0)


__all__ = ["parse_document", "parse_file"]
