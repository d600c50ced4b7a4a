"""
reqdoc — validation loop public API.

File: src/reqdoc/verification/__init__.py

Purpose
- Export the orchestrator, adapter contract, equality policy and report types.

Non-functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from reqdoc.verification.adapters import (
    AdapterFactory,
    AdapterOutput,
    CallableAdapter,
    ExecutionAdapter,
    SubprocessAdapter,
    invoke_adapter,
)
from reqdoc.verification.matching import MatchPolicy, Mismatch, is_empty_value, scalars_equal
from reqdoc.verification.orchestrator import (
    DEFAULT_CASE_TIMEOUT_SECONDS,
    NO_CHECKER_DETAIL,
    CallableChecker,
    LoopSettings,
    StatementChecker,
    StatementVerdict,
    SubprocessChecker,
    ValidationLoop,
)
from reqdoc.verification.report import (
    CaseOutcome,
    CaseResult,
    DocumentOutcome,
    LoopState,
    Observation,
    ValidationReport,
)

__all__ = [
    "DEFAULT_CASE_TIMEOUT_SECONDS",
    "NO_CHECKER_DETAIL",
    "AdapterFactory",
    "AdapterOutput",
    "CallableAdapter",
    "CallableChecker",
    "CaseOutcome",
    "CaseResult",
    "DocumentOutcome",
    "ExecutionAdapter",
    "LoopSettings",
    "LoopState",
    "MatchPolicy",
    "Mismatch",
    "Observation",
    "StatementChecker",
    "StatementVerdict",
    "SubprocessAdapter",
    "SubprocessChecker",
    "ValidationLoop",
    "ValidationReport",
    "invoke_adapter",
    "is_empty_value",
    "scalars_equal",
]
