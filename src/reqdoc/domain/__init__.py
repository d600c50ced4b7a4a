"""Domain model and error taxonomy for requirement documents."""

from reqdoc.domain.errors import (
    AdapterError,
    CorpusError,
    CycleError,
    DocumentWarning,
    EmptyValidateWarning,
    EncodingError,
    Issue,
    ReqDocError,
    SchemaViolation,
    SequenceWarning,
    StatementConflictWarning,
    StructuralError,
    UndeclaredDependencyError,
    UnresolvedReferenceError,
    WarningKind,
)
from reqdoc.domain.models import (
    NON_EMPTY,
    AlternativePath,
    ContractStatement,
    Document,
    Expected,
    FlowStep,
    Frontmatter,
    InvariantStatement,
    NonEmpty,
    Priority,
    Scalar,
    Status,
    TestCase,
    Tolerance,
    ValidateBlock,
    Value,
)

__all__ = [
    "NON_EMPTY",
    "AdapterError",
    "AlternativePath",
    "ContractStatement",
    "CorpusError",
    "CycleError",
    "Document",
    "DocumentWarning",
    "EmptyValidateWarning",
    "EncodingError",
    "Expected",
    "FlowStep",
    "Frontmatter",
    "InvariantStatement",
    "Issue",
    "NonEmpty",
    "Priority",
    "ReqDocError",
    "Scalar",
    "SchemaViolation",
    "SequenceWarning",
    "StatementConflictWarning",
    "Status",
    "StructuralError",
    "TestCase",
    "Tolerance",
    "UndeclaredDependencyError",
    "UnresolvedReferenceError",
    "ValidateBlock",
    "Value",
    "WarningKind",
]
