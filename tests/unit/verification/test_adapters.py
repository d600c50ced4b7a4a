"""
reqdoc — unit tests for candidate adapters and statement checkers.

File: tests/unit/verification/test_adapters.py

Purpose
- Validate the JSON stdin/stdout contract of subprocess adapters and checkers.

Functional requirements
- Works offline; subprocesses are the current interpreter.
"""

from __future__ import annotations

import sys

import pytest

from reqdoc.domain.errors import AdapterError
from reqdoc.domain.models import ContractStatement, InvariantStatement, Tolerance, Value
from reqdoc.verification import (
    CallableAdapter,
    Observation,
    StatementVerdict,
    SubprocessAdapter,
    SubprocessChecker,
    invoke_adapter,
)

ECHO = "import json,sys; d=json.load(sys.stdin.buffer); print(json.dumps({'echo': d}))"


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.unit
async def test_subprocess_adapter_exchanges_json() -> None:
    adapter = SubprocessAdapter(_python(ECHO))

    output = await invoke_adapter(adapter, {"email": "a@b.co", "age": 3})

    assert output == {"echo": {"email": "a@b.co", "age": 3}}


@pytest.mark.unit
async def test_non_zero_exit_is_a_non_fatal_error() -> None:
    adapter = SubprocessAdapter(_python("import sys; sys.stderr.write('boom'); sys.exit(3)"))

    with pytest.raises(AdapterError, match="status 3: boom") as excinfo:
        await adapter.execute({})

    assert excinfo.value.fatal is False


@pytest.mark.unit
async def test_missing_command_is_fatal() -> None:
    adapter = SubprocessAdapter(["reqdoc-no-such-command-xyz"])

    with pytest.raises(AdapterError, match="not found") as excinfo:
        await adapter.execute({})

    assert excinfo.value.fatal is True


@pytest.mark.unit
@pytest.mark.parametrize(
    ("code", "message"),
    [
        ("pass", "no output"),
        ("print('not json')", "not valid JSON"),
        ("print('[1, 2]')", "must be a JSON object"),
    ],
)
async def test_bad_output_is_rejected(code: str, message: str) -> None:
    with pytest.raises(AdapterError, match=message):
        await SubprocessAdapter(_python(code)).execute({})


@pytest.mark.unit
def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        SubprocessAdapter("")


@pytest.mark.unit
async def test_callable_adapter_receives_private_copy() -> None:
    original: dict[str, Value] = {"cart": {"qty": 1}}

    def mutate(payload: dict[str, Value]) -> dict[str, object]:
        cart = payload["cart"]
        assert isinstance(cart, dict)
        cart["qty"] = 99
        return {"ok": True}

    await invoke_adapter(CallableAdapter(mutate), original)

    assert original == {"cart": {"qty": 1}}


@pytest.mark.unit
async def test_async_callable_and_non_mapping_output() -> None:
    async def answer(payload: dict[str, Value]) -> object:
        return ["not", "a", "mapping"]

    with pytest.raises(AdapterError, match="expected a mapping"):
        await invoke_adapter(CallableAdapter(answer), {})  # type: ignore[arg-type]


@pytest.mark.unit
async def test_subprocess_checker_sends_statement_and_observations() -> None:
    code = (
        "import json,sys; d=json.load(sys.stdin.buffer); "
        "ok = d['kind'] == 'contract' and d['tolerance']['unit'] == 'ms' "
        "and d['observations'][0]['output']['status'] == 201; "
        "print(json.dumps({'passed': ok, 'detail': d['statement']}))"
    )
    checker = SubprocessChecker(_python(code))
    statement = ContractStatement(text="p95 < 200ms ± 5 ms", tolerance=Tolerance(5, "ms"))
    observations = [Observation("happy_path", 0, {"email": "a@b.co"}, {"status": 201})]

    verdict = await checker.check(statement, observations)

    assert verdict == StatementVerdict(passed=True, detail="p95 < 200ms ± 5 ms")


@pytest.mark.unit
async def test_subprocess_checker_strips_foreign_prefix() -> None:
    code = (
        "import json,sys; d=json.load(sys.stdin.buffer); "
        "print(json.dumps({'passed': d['requirement_id'] == 'AUTH-001', "
        "'detail': d['statement']}))"
    )
    statement = InvariantStatement(
        text="AUTH-001: sessions expire", requirement_id="AUTH-001"
    )

    verdict = await SubprocessChecker(_python(code)).check(statement, [])

    assert verdict.passed
    assert verdict.detail == "sessions expire"


@pytest.mark.unit
async def test_subprocess_checker_requires_boolean_verdict() -> None:
    checker = SubprocessChecker(_python("print('{\"passed\": \"yes\"}')"))

    with pytest.raises(AdapterError, match="boolean 'passed'"):
        await checker.check(InvariantStatement(text="totals add up"), [])
