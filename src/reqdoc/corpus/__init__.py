"""Corpus loading, dependency graph and cross-document resolution."""

from reqdoc.corpus.graph import DependencyGraph
from reqdoc.corpus.resolver import (
    CorpusFailure,
    LoadedCorpus,
    ResolvedCorpus,
    ResolvedInvariant,
    discover_sources,
    load_corpus,
    load_corpus_sync,
    resolve_corpus,
)

__all__ = [
    "CorpusFailure",
    "DependencyGraph",
    "LoadedCorpus",
    "ResolvedCorpus",
    "ResolvedInvariant",
    "discover_sources",
    "load_corpus",
    "load_corpus_sync",
    "resolve_corpus",
]
