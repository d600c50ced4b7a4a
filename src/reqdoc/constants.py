"""Stable constants shared across the parser, resolver and validation loop."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
DOCUMENT_SCHEMA_VERSION: Final[int] = 1

# Grammar keywords and conventions.
FRONTMATTER_DELIMITER: Final[str] = "---"
FLOW_KEYWORD: Final[str] = "Flow:"
VALIDATE_KEYWORD: Final[str] = "Validate:"
ALTERNATIVE_INDENT: Final[int] = 3
CONDITION_CUE_WORDS: Final[tuple[str, ...]] = ("If", "When", "On")
NON_EMPTY_SENTINEL: Final[str] = "non-empty"
TOLERANCE_MARKER: Final[str] = "±"

KNOWN_SECTION_NAMES: Final[tuple[str, ...]] = ("API", "Performance", "Security", "Data", "Rule")

REQUIRED_FRONTMATTER_FIELDS: Final[tuple[str, ...]] = (
    "id",
    "user",
    "context",
    "trigger",
    "user_outcome",
)
OPTIONAL_FRONTMATTER_FIELDS: Final[tuple[str, ...]] = (
    "business_outcome",
    "priority",
    "status",
    "estimate",
    "depends_on",
    "tags",
)

# Validate subsections in evaluation order.
HAPPY_PATH: Final[str] = "happy_path"
BOUNDARIES: Final[str] = "boundaries"
INVARIANTS: Final[str] = "invariants"
CONTRACTS: Final[str] = "contracts"
VALIDATE_SUBSECTIONS: Final[tuple[str, ...]] = (HAPPY_PATH, BOUNDARIES, INVARIANTS, CONTRACTS)

DEFAULT_CORPUS_PATTERNS: Final[tuple[str, ...]] = ("*.req.md", "*.md")
DEFAULT_CONFIG_FILE: Final[str] = "reqdoc.toml"

__all__ = [
    "ALTERNATIVE_INDENT",
    "BOUNDARIES",
    "CONDITION_CUE_WORDS",
    "CONFIG_SCHEMA_VERSION",
    "CONTRACTS",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_CORPUS_PATTERNS",
    "DOCUMENT_SCHEMA_VERSION",
    "FLOW_KEYWORD",
    "FRONTMATTER_DELIMITER",
    "HAPPY_PATH",
    "INVARIANTS",
    "KNOWN_SECTION_NAMES",
    "NON_EMPTY_SENTINEL",
    "OPTIONAL_FRONTMATTER_FIELDS",
    "REQUIRED_FRONTMATTER_FIELDS",
    "TOLERANCE_MARKER",
    "VALIDATE_KEYWORD",
    "VALIDATE_SUBSECTIONS",
]
