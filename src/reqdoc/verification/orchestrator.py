"""
reqdoc — validation-loop orchestrator.

File: src/reqdoc/verification/orchestrator.py

Purpose
- Score a candidate implementation against a document's ``Validate`` block and
  produce a deterministic ``ValidationReport``.

Normative behavior
- States advance in a fixed order: GENERATED, HAPPY_PATH_CHECKED,
  BOUNDARIES_CHECKED, INVARIANTS_CHECKED, CONTRACTS_CHECKED and finally PASSED.
  The first subsection with a non-passing result moves the loop to FAILED and
  later subsections are not attempted.
- Subsections the document does not declare pass vacuously.
- ``boundaries`` cases always run sequentially, in document order, against a
  single adapter instance because later cases depend on earlier side effects.
- ``happy_path`` cases run concurrently only when an ``adapter_factory`` hands
  out independent adapters and ``max_parallel_cases`` is above one.
- Every case is bounded by ``case_timeout_seconds``. A timeout is its own
  outcome and never a pass.
- After a timeout on a shared adapter the remaining cases of that subsection
  are reported as ``error`` without being run.
- A fatal ``AdapterError`` cancels the remaining cases of the subsection and
  every later subsection; results gathered so far are still reported.
- Invariants and contracts are handed to a ``StatementChecker`` together with
  the observed case outputs. Without a checker they are reported as ``error``.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Protocol, runtime_checkable

import structlog

from reqdoc.constants import BOUNDARIES, CONTRACTS, HAPPY_PATH, INVARIANTS
from reqdoc.domain.errors import AdapterError
from reqdoc.domain.models import (
    ContractStatement,
    Document,
    InvariantStatement,
    TestCase,
    ValidateBlock,
)
from reqdoc.observability.logging import correlation_scope
from reqdoc.utils.concurrency import CancellationToken, WorkerPool, run_with_timeout
from reqdoc.verification.adapters import (
    AdapterFactory,
    ExecutionAdapter,
    SubprocessAdapter,
    invoke_adapter,
)
from reqdoc.verification.matching import MatchPolicy
from reqdoc.verification.report import (
    CaseOutcome,
    CaseResult,
    DocumentOutcome,
    LoopState,
    Observation,
    ValidationReport,
)

if TYPE_CHECKING:
    from reqdoc.corpus.resolver import ResolvedCorpus

DEFAULT_CASE_TIMEOUT_SECONDS: Final[float] = 30.0
NO_CHECKER_DETAIL: Final[str] = "no statement checker configured"

_CHECKED_STATE: Final[Mapping[str, LoopState]] = {
    HAPPY_PATH: LoopState.HAPPY_PATH_CHECKED,
    BOUNDARIES: LoopState.BOUNDARIES_CHECKED,
    INVARIANTS: LoopState.INVARIANTS_CHECKED,
    CONTRACTS: LoopState.CONTRACTS_CHECKED,
}

Statement = InvariantStatement | ContractStatement


@dataclass(frozen=True, slots=True)
class StatementVerdict:
    """Checker answer for one invariant or contract."""

    passed: bool
    detail: str = ""


CheckerOutput = bool | StatementVerdict


@runtime_checkable
class StatementChecker(Protocol):
    """Decides whether an invariant or contract holds over the observed cases."""

    def check(
        self, statement: Statement, observations: Sequence[Observation]
    ) -> CheckerOutput | Awaitable[CheckerOutput]: ...


class CallableChecker:
    """Checker over a plain function or coroutine function."""

    def __init__(
        self,
        func: Callable[
            [Statement, Sequence[Observation]], CheckerOutput | Awaitable[CheckerOutput]
        ],
    ) -> None:
        self._func = func

    def check(
        self, statement: Statement, observations: Sequence[Observation]
    ) -> CheckerOutput | Awaitable[CheckerOutput]:
        return self._func(statement, observations)


class SubprocessChecker:
    """Ask an external command whether a statement holds.

    The command receives ``{kind, statement, requirement_id, tolerance,
    observations}`` as JSON on stdin and must answer ``{"passed": bool,
    "detail": str}`` on stdout.
    """

    def __init__(self, argv: Sequence[str] | str, **kwargs: Any) -> None:
        self._runner = SubprocessAdapter(argv, **kwargs)

    async def check(
        self, statement: Statement, observations: Sequence[Observation]
    ) -> StatementVerdict:
        answer = await self._runner.execute(_statement_request(statement, observations))
        passed = answer.get("passed")
        if not isinstance(passed, bool):
            raise AdapterError("checker output must contain a boolean 'passed' field")
        detail = answer.get("detail", "")
        return StatementVerdict(passed=passed, detail=detail if isinstance(detail, str) else "")


@dataclass(frozen=True, slots=True)
class LoopSettings:
    """Execution knobs; mirrors the ``validation`` config section."""

    case_timeout_seconds: float | None = DEFAULT_CASE_TIMEOUT_SECONDS
    strict_mapping: bool = False
    max_parallel_cases: int = 1
    cancel_on_fatal_adapter_error: bool = True

    def __post_init__(self) -> None:
        if self.case_timeout_seconds is not None and self.case_timeout_seconds <= 0:
            raise ValueError("case_timeout_seconds must be > 0")
        if self.max_parallel_cases < 1:
            raise ValueError("max_parallel_cases must be >= 1")

    @classmethod
    def from_config(cls, config: Mapping[str, object]) -> LoopSettings:
        """Build settings from an effective config (or its ``validation`` section)."""

        section = config.get("validation", config)
        if not isinstance(section, Mapping):
            raise ValueError("validation config must be a mapping")
        defaults = cls()
        timeout = section.get("case_timeout_seconds", defaults.case_timeout_seconds)
        if timeout is not None and (
            isinstance(timeout, bool) or not isinstance(timeout, (int, float))
        ):
            raise ValueError("case_timeout_seconds must be a number")
        parallel = section.get("max_parallel_cases", defaults.max_parallel_cases)
        if isinstance(parallel, bool) or not isinstance(parallel, int):
            raise ValueError("max_parallel_cases must be an integer")
        return cls(
            case_timeout_seconds=None if timeout is None else float(timeout),
            strict_mapping=bool(section.get("strict_mapping", defaults.strict_mapping)),
            max_parallel_cases=parallel,
            cancel_on_fatal_adapter_error=bool(
                section.get(
                    "cancel_on_fatal_adapter_error", defaults.cancel_on_fatal_adapter_error
                )
            ),
        )


@dataclass(frozen=True, slots=True)
class _CaseRun:
    result: CaseResult
    observation: Observation | None = None
    fatal: bool = False


@dataclass(slots=True)
class _RunState:
    document_id: str
    token: CancellationToken
    results: list[CaseResult] = field(default_factory=list)
    observations: list[Observation] = field(default_factory=list)
    aborted: bool = False

    def record(self, run: _CaseRun) -> None:
        self.results.append(run.result)
        if run.observation is not None:
            self.observations.append(run.observation)


class ValidationLoop:
    """Drive one document's ``Validate`` block against a candidate implementation."""

    def __init__(
        self,
        adapter: ExecutionAdapter | None = None,
        *,
        adapter_factory: AdapterFactory | None = None,
        checker: StatementChecker | None = None,
        settings: LoopSettings | None = None,
        logger: Any | None = None,
    ) -> None:
        if adapter is None and adapter_factory is None:
            raise ValueError("either adapter or adapter_factory is required")
        self._adapter = adapter
        self._adapter_factory = adapter_factory
        self._checker = checker
        self._settings = settings if settings is not None else LoopSettings()
        self._policy = MatchPolicy(strict=self._settings.strict_mapping)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def settings(self) -> LoopSettings:
        return self._settings

    async def run(
        self,
        document: Document,
        *,
        invariants: Sequence[InvariantStatement] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ValidationReport:
        """Run every declared subsection and return the report.

        ``invariants`` overrides the document's own list, e.g. with foreign
        invariants resolved from a corpus.
        """

        block = document.validate if document.validate is not None else ValidateBlock()
        statements = tuple(block.invariants if invariants is None else invariants)
        token = CancellationToken()
        forwarder = _forward_cancellation(cancel_token, token)
        state = _RunState(document_id=document.id, token=token)
        try:
            return await self._run_states(document, block, statements, state)
        finally:
            if forwarder is not None:
                forwarder.cancel()

    async def _run_states(
        self,
        document: Document,
        block: ValidateBlock,
        statements: Sequence[InvariantStatement],
        state: _RunState,
    ) -> ValidationReport:
        transitions: list[LoopState] = [LoopState.GENERATED]
        with correlation_scope(document_id=document.id):
            log = self._logger.bind(document_id=document.id)
            log.info("validation_started", declared=list(block.declared))

            failed_at: str | None = None
            for subsection in (HAPPY_PATH, BOUNDARIES, INVARIANTS, CONTRACTS):
                start = len(state.results)
                if subsection == HAPPY_PATH:
                    await self._run_happy_path(block.happy_path, state)
                elif subsection == BOUNDARIES:
                    await self._run_sequential(BOUNDARIES, block.boundaries, state)
                elif subsection == INVARIANTS:
                    await self._run_statements(INVARIANTS, statements, state)
                else:
                    await self._run_statements(CONTRACTS, block.contracts, state)

                gathered = state.results[start:]
                if state.aborted or any(not result.passed for result in gathered):
                    failed_at = subsection
                    break
                transitions.append(_CHECKED_STATE[subsection])
                log.debug(
                    "validation_state_transition",
                    state=_CHECKED_STATE[subsection].value,
                    cases=len(gathered),
                )

            final_state = LoopState.FAILED if failed_at is not None else LoopState.PASSED
            transitions.append(final_state)
            failing = tuple(result.case_id for result in state.results if not result.passed)
            report = ValidationReport(
                document_id=document.id,
                outcome=DocumentOutcome.FAILED if failed_at else DocumentOutcome.PASSED,
                final_state=final_state,
                transitions=tuple(transitions),
                results=tuple(state.results),
                failing_case_ids=failing,
                aborted=state.aborted,
                warnings=document.warnings,
            )
            log.info(
                "validation_finished",
                outcome=report.outcome.value,
                failed_subsection=failed_at,
                failing_case_ids=list(failing),
                aborted=state.aborted,
            )
        return report

    def run_sync(
        self,
        document: Document,
        *,
        invariants: Sequence[InvariantStatement] | None = None,
    ) -> ValidationReport:
        """Blocking wrapper around ``run`` for callers without an event loop."""

        return asyncio.run(self.run(document, invariants=invariants))

    async def run_corpus(
        self,
        corpus: ResolvedCorpus,
        *,
        document_ids: Sequence[str] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> dict[str, ValidationReport]:
        """Score resolved documents, dependencies first, with their foreign invariants."""

        selected = corpus.order if document_ids is None else tuple(document_ids)
        reports: dict[str, ValidationReport] = {}
        for document_id in selected:
            document = corpus.get(document_id)
            invariants = tuple(item.statement for item in corpus.invariants_for(document_id))
            reports[document_id] = await self.run(
                document, invariants=invariants, cancel_token=cancel_token
            )
        return reports

    async def _run_happy_path(self, cases: Sequence[TestCase], state: _RunState) -> None:
        if (
            self._adapter_factory is None
            or self._settings.max_parallel_cases <= 1
            or len(cases) <= 1
        ):
            await self._run_sequential(HAPPY_PATH, cases, state)
            return

        factory = self._adapter_factory
        pool: WorkerPool[int, _CaseRun] = WorkerPool(
            max_concurrency=self._settings.max_parallel_cases,
            cancel_token=state.token,
        )

        async def run_one(index: int) -> _CaseRun:
            return await self._run_case(factory(), HAPPY_PATH, index, cases[index], state)

        finished: dict[int, _CaseRun] = {}
        try:
            async with aclosing(pool.as_completed(run_one, range(len(cases)))) as stream:
                async for index, run in stream:
                    finished[index] = run
                    if run.fatal and self._abort(state, run.result):
                        break
        except asyncio.CancelledError:
            if not state.token.is_cancelled:
                raise
            self._abort(state, None)
        for index in sorted(finished):
            state.record(finished[index])

    async def _run_sequential(
        self, subsection: str, cases: Sequence[TestCase], state: _RunState
    ) -> None:
        if not cases:
            return
        adapter = self._adapter if self._adapter is not None else self._new_adapter()
        for index, case in enumerate(cases):
            if state.token.is_cancelled:
                self._abort(state, None)
                return
            run = await self._run_case(adapter, subsection, index, case, state)
            state.record(run)
            if run.fatal and self._abort(state, run.result):
                return
            if run.result.outcome is CaseOutcome.TIMEOUT:
                # The timed-out call may still be running inside the shared adapter.
                self._skip_rest(subsection, cases, index + 1, run.result.case_id, state)
                return

    def _skip_rest(
        self,
        subsection: str,
        cases: Sequence[TestCase],
        start: int,
        timed_out: str,
        state: _RunState,
    ) -> None:
        if start >= len(cases):
            return
        self._logger.warning(
            "validation_adapter_poisoned",
            document_id=state.document_id,
            subsection=subsection,
            timed_out_case=timed_out,
            skipped=len(cases) - start,
        )
        for index in range(start, len(cases)):
            state.results.append(
                CaseResult(
                    document_id=state.document_id,
                    subsection=subsection,
                    case_index=index,
                    outcome=CaseOutcome.ERROR,
                    detail=f"not run: adapter timed out on {timed_out}",
                )
            )

    async def _run_case(
        self,
        adapter: ExecutionAdapter,
        subsection: str,
        index: int,
        case: TestCase,
        state: _RunState,
    ) -> _CaseRun:
        timeout = self._settings.case_timeout_seconds
        fatal = False
        output: Mapping[str, object] | None = None
        try:
            output = await run_with_timeout(
                invoke_adapter(adapter, case.input), timeout, state.token
            )
        except TimeoutError:
            outcome, detail = CaseOutcome.TIMEOUT, f"case timed out after {timeout:g}s"
        except AdapterError as exc:
            outcome, detail, fatal = CaseOutcome.ERROR, exc.message, exc.fatal
        except asyncio.CancelledError:
            if not state.token.is_cancelled:
                raise
            outcome = CaseOutcome.ERROR
            detail = f"cancelled: {state.token.reason or 'validation aborted'}"
            fatal = True
        except Exception as exc:  # noqa: BLE001
            outcome, detail = CaseOutcome.ERROR, f"{type(exc).__name__}: {exc}"
        else:
            mismatches = self._policy.compare(case.expect, output)
            if mismatches:
                outcome = CaseOutcome.FAIL
                detail = "; ".join(mismatch.render() for mismatch in mismatches)
            else:
                outcome, detail = CaseOutcome.PASS, ""

        result = CaseResult(
            document_id=state.document_id,
            subsection=subsection,
            case_index=index,
            outcome=outcome,
            detail=detail,
            output=output,
        )
        self._logger.debug(
            "validation_case_finished",
            document_id=state.document_id,
            case_id=result.case_id,
            outcome=outcome.value,
        )
        observation = (
            Observation(subsection, index, case.input, output) if output is not None else None
        )
        return _CaseRun(result=result, observation=observation, fatal=fatal)

    async def _run_statements(
        self, subsection: str, statements: Sequence[Statement], state: _RunState
    ) -> None:
        observations = tuple(state.observations)
        for index, statement in enumerate(statements):
            if state.token.is_cancelled:
                self._abort(state, None)
                return
            outcome, detail = await self._check_statement(statement, observations, state)
            result = CaseResult(
                document_id=state.document_id,
                subsection=subsection,
                case_index=index,
                outcome=outcome,
                detail=detail,
            )
            state.results.append(result)
            self._logger.debug(
                "validation_case_finished",
                document_id=state.document_id,
                case_id=result.case_id,
                outcome=outcome.value,
            )

    async def _check_statement(
        self,
        statement: Statement,
        observations: Sequence[Observation],
        state: _RunState,
    ) -> tuple[CaseOutcome, str]:
        checker = self._checker
        if checker is None:
            return CaseOutcome.ERROR, NO_CHECKER_DETAIL
        timeout = self._settings.case_timeout_seconds
        try:
            verdict = await run_with_timeout(
                _invoke_checker(checker, statement, observations), timeout, state.token
            )
        except TimeoutError:
            return CaseOutcome.TIMEOUT, f"statement check timed out after {timeout:g}s"
        except asyncio.CancelledError:
            if not state.token.is_cancelled:
                raise
            return CaseOutcome.ERROR, f"cancelled: {state.token.reason or 'validation aborted'}"
        except Exception as exc:  # noqa: BLE001
            return CaseOutcome.ERROR, f"{type(exc).__name__}: {exc}"

        if isinstance(verdict, StatementVerdict):
            outcome = CaseOutcome.PASS if verdict.passed else CaseOutcome.FAIL
            return outcome, verdict.detail
        if isinstance(verdict, bool):
            return (CaseOutcome.PASS, "") if verdict else (CaseOutcome.FAIL, "statement violated")
        return CaseOutcome.ERROR, f"checker returned {type(verdict).__name__}, expected bool"

    def _abort(self, state: _RunState, result: CaseResult | None) -> bool:
        if result is not None and not self._settings.cancel_on_fatal_adapter_error:
            return False
        if not state.aborted:
            state.aborted = True
            state.token.cancel("fatal adapter error")
            self._logger.warning(
                "validation_aborted",
                document_id=state.document_id,
                case_id=result.case_id if result is not None else None,
                detail=result.detail if result is not None else state.token.reason,
            )
        return True

    def _new_adapter(self) -> ExecutionAdapter:
        if self._adapter_factory is None:
            raise RuntimeError("no adapter or adapter_factory configured")
        return self._adapter_factory()


def _forward_cancellation(
    parent: CancellationToken | None, child: CancellationToken
) -> asyncio.Task[None] | None:
    if parent is None:
        return None
    if parent.is_cancelled:
        child.cancel(parent.reason)
        return None

    async def forward() -> None:
        await parent.wait()
        child.cancel(parent.reason)

    return asyncio.get_running_loop().create_task(forward())


def _statement_request(
    statement: Statement, observations: Sequence[Observation]
) -> dict[str, Any]:
    if isinstance(statement, InvariantStatement):
        kind, text, target = "invariant", statement.statement, statement.requirement_id
        tolerance = None
    else:
        kind, text, target = "contract", statement.text, None
        tolerance = statement.tolerance.to_dict() if statement.tolerance is not None else None
    return {
        "kind": kind,
        "statement": text,
        "requirement_id": target,
        "tolerance": tolerance,
        "observations": [
            {
                "subsection": item.subsection,
                "case_index": item.case_index,
                "input": dict(item.input),
                "output": dict(item.output),
            }
            for item in observations
        ],
    }


async def _invoke_checker(
    checker: StatementChecker,
    statement: Statement,
    observations: Sequence[Observation],
) -> object:
    result: object = checker.check(statement, observations)
    if inspect.isawaitable(result):
        result = await result
    return result


__all__ = [
    "DEFAULT_CASE_TIMEOUT_SECONDS",
    "NO_CHECKER_DETAIL",
    "CallableChecker",
    "CheckerOutput",
    "StatementChecker",
    "StatementVerdict",
    "SubprocessChecker",
    "LoopSettings",
    "Statement",
    "ValidationLoop",
]
