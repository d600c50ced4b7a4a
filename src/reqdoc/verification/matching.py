"""Equality policy comparing adapter output against ``expect`` mappings."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from reqdoc.domain.models import Expected, NonEmpty

_MISSING = object()


@dataclass(frozen=True, slots=True)
class Mismatch:
    """One expected field the observed output did not satisfy."""

    path: str
    reason: str

    def render(self) -> str:
        return f"{self.path}: {self.reason}" if self.path else self.reason


@dataclass(frozen=True, slots=True)
class MatchPolicy:
    """Scalars compare exactly, mappings compare as subsets.

    ``strict`` additionally rejects output keys that ``expect`` does not name.
    Booleans never equal numbers. ``NON_EMPTY`` accepts any present value other
    than ``None``, ``""``, ``0`` or an empty container.
    """

    strict: bool = False

    def compare(self, expected: Mapping[str, Expected], actual: object) -> tuple[Mismatch, ...]:
        if not isinstance(actual, Mapping):
            return (Mismatch("", f"output must be a mapping, got {type(actual).__name__}"),)
        mismatches: list[Mismatch] = []
        self._compare_mapping(expected, actual, "", mismatches)
        return tuple(mismatches)

    def matches(self, expected: Mapping[str, Expected], actual: object) -> bool:
        return not self.compare(expected, actual)

    def _compare_mapping(
        self,
        expected: Mapping[str, Expected],
        actual: Mapping[object, object],
        path: str,
        mismatches: list[Mismatch],
    ) -> None:
        for key, want in expected.items():
            child = f"{path}.{key}" if path else key
            self._compare_value(want, actual.get(key, _MISSING), child, mismatches)
        if self.strict:
            for key in actual:
                if key not in expected:
                    child = f"{path}.{key}" if path else str(key)
                    mismatches.append(Mismatch(child, "unexpected field in strict mode"))

    def _compare_value(
        self,
        want: Expected,
        got: object,
        path: str,
        mismatches: list[Mismatch],
    ) -> None:
        if got is _MISSING:
            mismatches.append(Mismatch(path, "missing from output"))
            return
        if isinstance(want, NonEmpty):
            if is_empty_value(got):
                mismatches.append(Mismatch(path, f"expected non-empty value, got {got!r}"))
            return
        if isinstance(want, dict):
            if not isinstance(got, Mapping):
                mismatches.append(
                    Mismatch(path, f"expected a mapping, got {type(got).__name__}")
                )
                return
            self._compare_mapping(want, got, path, mismatches)
            return
        if not scalars_equal(want, got):
            mismatches.append(Mismatch(path, f"expected {want!r}, got {got!r}"))


def scalars_equal(want: object, got: object) -> bool:
    """Exact scalar equality; ``True`` never equals ``1`` and ``200`` equals ``200.0``."""

    if isinstance(want, bool) or isinstance(got, bool):
        return isinstance(want, bool) and isinstance(got, bool) and want is got
    if want is None or got is None:
        return want is None and got is None
    if isinstance(want, (int, float)) and isinstance(got, (int, float)):
        return want == got
    if isinstance(want, str) and isinstance(got, str):
        return want == got
    return False


def is_empty_value(value: object) -> bool:
    if value is None:
        return True
    # A present boolean is an answer, so False is non-empty; numeric zero is empty.
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, bytes, Mapping, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


__all__ = ["MatchPolicy", "Mismatch", "is_empty_value", "scalars_equal"]
