"""
reqdoc — corpus loader and resolver.

File: src/reqdoc/corpus/resolver.py

Purpose
- Load every requirement document under a directory and resolve the
  ``depends_on`` graph plus cross-document invariant references.

Functional requirements
- Parsing is embarrassingly parallel: each file is parsed on a worker thread
  and owns its ``Document`` until the results are merged here.
- Resolution is a sequential, read-only pass over the completed parse results.
- Failures are recorded per offending document; every other document stays
  resolved.
- A foreign invariant is trusted only when its target is reachable from the
  referencing document through ``depends_on``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import structlog

from reqdoc.constants import DEFAULT_CORPUS_PATTERNS
from reqdoc.corpus.graph import DependencyGraph
from reqdoc.domain.errors import (
    CorpusError,
    CycleError,
    ReqDocError,
    UndeclaredDependencyError,
    UnresolvedReferenceError,
)
from reqdoc.domain.models import Document, InvariantStatement
from reqdoc.ingestion.assembler import parse_file
from reqdoc.ingestion.validate_block import reference_prefix
from reqdoc.utils.concurrency import CancellationToken, WorkerPool

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True, slots=True)
class CorpusFailure:
    """One document (or unreadable file) that could not be loaded or resolved."""

    error: ReqDocError
    path: str | None = None
    document_id: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "document_id": self.document_id,
            "error": self.error.to_dict(),
            "message": str(self.error),
        }


@dataclass(frozen=True, slots=True)
class ResolvedInvariant:
    """Invariant attached to ``owner_id`` and scoped to ``target_id``."""

    owner_id: str
    target_id: str
    statement: InvariantStatement

    @property
    def is_foreign(self) -> bool:
        return self.owner_id != self.target_id

    def to_dict(self) -> dict[str, object]:
        return {
            "owner_id": self.owner_id,
            "target_id": self.target_id,
            "text": self.statement.text,
        }


@dataclass(frozen=True, slots=True)
class LoadedCorpus:
    """Parse results for one directory, ordered by source path."""

    documents: tuple[Document, ...] = ()
    failures: tuple[CorpusFailure, ...] = ()

    def resolve(self, *, strict: bool = False, logger: Any | None = None) -> ResolvedCorpus:
        return resolve_corpus(
            self.documents, load_failures=self.failures, strict=strict, logger=logger
        )


@dataclass(frozen=True, slots=True)
class ResolvedCorpus:
    """Immutable, fully resolved view of a corpus built once per resolution pass."""

    documents: Mapping[str, Document]
    graph: DependencyGraph
    order: tuple[str, ...]
    invariants: Mapping[str, tuple[ResolvedInvariant, ...]]
    failures: tuple[CorpusFailure, ...] = ()
    _closures: Mapping[str, tuple[str, ...]] = field(default_factory=dict, repr=False)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise self.failures[0].error

    def get(self, document_id: str) -> Document:
        try:
            return self.documents[document_id]
        except KeyError:
            raise KeyError(f"requirement {document_id!r} is not resolved") from None

    def closure(self, document_id: str) -> tuple[str, ...]:
        """Transitive ``depends_on`` closure of a resolved document."""
        self.get(document_id)
        return self._closures[document_id]

    def invariants_for(self, document_id: str) -> tuple[ResolvedInvariant, ...]:
        """Own plus resolved foreign invariants, in document order."""
        self.get(document_id)
        return self.invariants[document_id]

    def iter_documents(self) -> Iterable[Document]:
        """Resolved documents, dependencies first."""
        for document_id in self.order:
            yield self.documents[document_id]

    def to_dict(self) -> dict[str, object]:
        return {
            "order": list(self.order),
            "documents": {
                document_id: {
                    "path": self.documents[document_id].source_path,
                    "depends_on": list(self.documents[document_id].depends_on),
                    "closure": list(self._closures[document_id]),
                    "invariants": [item.to_dict() for item in self.invariants[document_id]],
                }
                for document_id in self.order
            },
            "graph": self.graph.to_dict(),
            "failures": [failure.to_dict() for failure in self.failures],
        }


def discover_sources(
    directory: str | Path,
    patterns: Sequence[str] = DEFAULT_CORPUS_PATTERNS,
) -> list[Path]:
    """Return unique files under ``directory`` matching any of ``patterns``, sorted."""

    root = Path(directory)
    if not root.is_dir():
        raise NotADirectoryError(f"corpus directory does not exist: {root}")
    found: set[Path] = set()
    for pattern in patterns:
        found.update(path for path in root.rglob(pattern) if path.is_file())
    return sorted(found)


async def load_corpus(
    directory: str | Path,
    *,
    patterns: Sequence[str] = DEFAULT_CORPUS_PATTERNS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel_token: CancellationToken | None = None,
    logger: Any | None = None,
) -> LoadedCorpus:
    """Parse every matching file in parallel worker threads.

    Parse failures are collected per file. A requirement ID defined by more than
    one file is kept from the first file (by path) and reported for the others.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    sources = discover_sources(directory, patterns)
    pool: WorkerPool[Path, Document | CorpusFailure] = WorkerPool(
        max_concurrency=max_workers, cancel_token=cancel_token
    )

    async def load_one(path: Path) -> Document | CorpusFailure:
        try:
            return await asyncio.to_thread(parse_file, path)
        except ReqDocError as exc:
            return CorpusFailure(error=exc, path=str(path), document_id=exc.document_id)
        except OSError as exc:
            error = CorpusError(f"cannot read document: {exc.strerror or exc}", path=str(path))
            return CorpusFailure(error=error, path=str(path))

    results = await pool.map(load_one, sources)

    documents: list[Document] = []
    failures: list[CorpusFailure] = []
    seen: dict[str, str] = {}
    for path, result in zip(sources, results, strict=True):
        if isinstance(result, CorpusFailure):
            log.warning(
                "corpus_document_rejected",
                path=result.path,
                document_id=result.document_id,
                error=type(result.error).__name__,
            )
            failures.append(result)
            continue
        if result.id in seen:
            error = CorpusError(
                f"duplicate requirement id {result.id!r} (first defined in {seen[result.id]})",
                document_id=result.id,
                path=str(path),
                field="id",
            )
            log.warning("corpus_duplicate_id", path=str(path), document_id=result.id)
            failures.append(CorpusFailure(error=error, path=str(path), document_id=result.id))
            continue
        seen[result.id] = str(path)
        documents.append(result)

    log.info(
        "corpus_loaded",
        directory=str(directory),
        files=len(sources),
        documents=len(documents),
        failures=len(failures),
    )
    return LoadedCorpus(documents=tuple(documents), failures=tuple(failures))


def load_corpus_sync(
    directory: str | Path,
    *,
    patterns: Sequence[str] = DEFAULT_CORPUS_PATTERNS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    logger: Any | None = None,
) -> LoadedCorpus:
    return asyncio.run(
        load_corpus(directory, patterns=patterns, max_workers=max_workers, logger=logger)
    )


def resolve_corpus(
    documents: Iterable[Document],
    *,
    load_failures: Sequence[CorpusFailure] = (),
    strict: bool = False,
    logger: Any | None = None,
) -> ResolvedCorpus:
    """Build the dependency graph and resolve cross-document invariants.

    With ``strict=True`` the first failure is raised instead of recorded.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    failures: list[CorpusFailure] = list(load_failures)
    failed: set[str] = set()

    by_id: dict[str, Document] = {}
    for document in documents:
        if document.id in by_id:
            error = CorpusError(
                f"duplicate requirement id {document.id!r}",
                document_id=document.id,
                path=document.source_path,
                field="id",
            )
            failures.append(_failure(error, document))
            continue
        by_id[document.id] = document

    def fail(error: ReqDocError, document: Document) -> None:
        failures.append(_failure(error, document))
        failed.add(document.id)

    for document in by_id.values():
        for dependency in document.depends_on:
            if dependency not in by_id:
                fail(
                    UnresolvedReferenceError(
                        dependency,
                        message=f"depends_on references unknown requirement {dependency!r}",
                        document_id=document.id,
                        path=document.source_path,
                        field="depends_on",
                    ),
                    document,
                )

    graph = DependencyGraph.from_dependencies(
        {
            document_id: [dependency for dependency in document.depends_on if dependency in by_id]
            for document_id, document in by_id.items()
        }
    )
    for cycle in graph.detect_cycles():
        log.warning("corpus_cycle_detected", cycle=list(cycle))
        for document_id in cycle:
            if document_id not in failed:
                document = by_id[document_id]
                fail(
                    CycleError(cycle, document_id=document_id, path=document.source_path),
                    document,
                )

    closures = {
        document_id: graph.dependencies(document_id, transitive=True) for document_id in by_id
    }
    invariants: dict[str, tuple[ResolvedInvariant, ...]] = {}
    for document_id, document in by_id.items():
        if document_id in failed:
            continue
        resolved, error = _resolve_invariants(document, closures[document_id], by_id)
        if error is not None:
            fail(error, document)
            continue
        invariants[document_id] = resolved

    order = DependencyGraph.from_dependencies(
        {
            document_id: [dep for dep in by_id[document_id].depends_on if dep in invariants]
            for document_id in invariants
        }
    ).topological_order()
    corpus = ResolvedCorpus(
        documents={document_id: by_id[document_id] for document_id in order},
        graph=graph,
        order=order,
        invariants={document_id: invariants[document_id] for document_id in order},
        failures=tuple(failures),
        _closures={document_id: closures[document_id] for document_id in order},
    )
    log.info("corpus_resolved", resolved=len(order), failures=len(failures))
    if strict:
        corpus.raise_for_failures()
    return corpus


def _resolve_invariants(
    document: Document,
    closure: Sequence[str],
    by_id: Mapping[str, Document],
) -> tuple[tuple[ResolvedInvariant, ...], ReqDocError | None]:
    if document.validate is None:
        return (), None
    resolved: list[ResolvedInvariant] = []
    for declared in document.validate.invariants:
        statement = _rescope(declared, document.id, by_id)
        target = statement.requirement_id or document.id
        if target == document.id:
            resolved.append(ResolvedInvariant(document.id, document.id, statement))
            continue
        if target not in by_id:
            return (), UnresolvedReferenceError(
                target,
                message=f"invariant references unknown requirement {target!r}",
                document_id=document.id,
                path=document.source_path,
                field="invariants",
                line=statement.line,
            )
        if target not in closure:
            return (), UndeclaredDependencyError(
                target,
                document_id=document.id,
                path=document.source_path,
                line=statement.line,
            )
        resolved.append(ResolvedInvariant(document.id, target, statement))
    return tuple(resolved), None


def _rescope(
    statement: InvariantStatement, owner_id: str, by_id: Mapping[str, Document]
) -> InvariantStatement:
    """Treat a ``"<ID>: ..."`` invariant as foreign when ``<ID>`` names another document."""
    if statement.requirement_id is not None:
        return statement
    candidate = reference_prefix(statement.text)
    if candidate is None or candidate == owner_id or candidate not in by_id:
        return statement
    return replace(statement, requirement_id=candidate)


def _failure(error: ReqDocError, document: Document) -> CorpusFailure:
    return CorpusFailure(error=error, path=document.source_path, document_id=document.id)


__all__ = [
    "DEFAULT_MAX_WORKERS",
    "CorpusFailure",
    "LoadedCorpus",
    "ResolvedCorpus",
    "ResolvedInvariant",
    "discover_sources",
    "load_corpus",
    "load_corpus_sync",
    "resolve_corpus",
]
