"""Output rendering abstraction for the reqdoc CLI.

File: src/reqdoc/ui/render.py

Purpose
- Provide a thin plain-text rendering layer for CLI output.
- Keep report formatting in one place so handlers only decide *what* to show.

Functional requirements
- All output goes to the stream the renderer was created with (stdout by default).
- Rendering is deterministic for identical inputs.
"""

from __future__ import annotations

import sys
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reqdoc.corpus import CorpusFailure, ResolvedCorpus
    from reqdoc.domain.errors import DocumentWarning
    from reqdoc.domain.models import Document
    from reqdoc.verification import ValidationReport


class CLIRenderer:
    """Thin CLI output renderer producing clean, deterministic plain text."""

    def __init__(self, *, verbose: bool = False, stream: IO[str] | None = None) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout

    def text(self, line: str) -> None:
        """Print a plain text line."""

        print(line, file=self._stream)

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self.text(f"{key}: {value}")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self.text(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self.text(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self.text(f"  {_pad(list(headers))}")
        self.text(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self.text(f"  {_pad(list(row))}")

    def warnings(self, warnings: Sequence[DocumentWarning]) -> None:
        if not warnings:
            return
        self.section("Warnings:")
        self.items([warning.render() for warning in warnings])

    def document(self, document: Document) -> None:
        """Summarize a parsed document."""

        front = document.frontmatter
        self.kv("Document", document.id)
        if document.source_path:
            self.kv("Source", document.source_path)
        self.kv("User", front.user)
        self.kv("Trigger", front.trigger)
        if front.priority is not None:
            self.kv("Priority", front.priority.value)
        if front.status is not None:
            self.kv("Status", front.status.value)
        if front.depends_on:
            self.kv("Depends on", ", ".join(front.depends_on))

        self.section("Flow:")
        for step in document.flow:
            self.text(f"  {step.number}. {step.text}")
            for alternative in step.alternatives:
                self.text(f"     - {alternative.condition}: {alternative.outcome}")

        if document.sections:
            self.section("Sections:")
            self.items(list(document.sections))

        block = document.validate
        if block is not None and block.declared:
            self.section("Validate:")
            self.items(
                [f"{name}: {len(getattr(block, name))}" for name in block.declared]
            )
        self.warnings(document.warnings)

    def corpus(self, corpus: ResolvedCorpus) -> None:
        rows = [
            [
                document_id,
                ", ".join(corpus.documents[document_id].depends_on) or "-",
                str(len(corpus.invariants_for(document_id))),
            ]
            for document_id in corpus.order
        ]
        self.kv("Resolved", len(corpus.order))
        self.kv("Failures", len(corpus.failures))
        self.table(("ID", "DEPENDS ON", "INVARIANTS"), rows, title="Resolution order:")
        self.failures(corpus.failures)

    def failures(self, failures: Sequence[CorpusFailure]) -> None:
        if not failures:
            return
        self.section("Failures:")
        for failure in failures:
            self.text(f"  - {failure.error}")

    def report(self, report: ValidationReport) -> None:
        """Render a validation report with one row per executed case."""

        self.kv("Document", report.document_id)
        self.kv("Outcome", report.outcome.value)
        self.kv("Final state", report.final_state.value)
        if report.aborted:
            self.kv("Aborted", "yes (fatal adapter error)")
        rows = [
            [result.case_id, result.outcome.value, result.detail]
            for result in report.results
            if self.verbose or not result.passed
        ]
        self.table(("CASE", "OUTCOME", "DETAIL"), rows, title="Cases:")
        if report.failing_case_ids:
            self.kv("\nFailing cases", ", ".join(report.failing_case_ids))
        self.warnings(report.warnings)


def create_renderer(*, verbose: bool = False, stream: IO[str] | None = None) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
