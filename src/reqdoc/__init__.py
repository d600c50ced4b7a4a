"""
reqdoc — requirement documents as executable acceptance criteria.

File: src/reqdoc/__init__.py

Purpose
- Package root. Parses requirement documents (frontmatter, numbered flow,
  alternative paths, technical sections and a ``Validate:`` block) into an
  immutable typed model, resolves cross-document references, and scores
  candidate implementations against the ``Validate`` block.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
