"""
reqdoc — unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Profile selection from argument, CLI override or environment.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from reqdoc.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _sha256_json(data: dict[str, object]) -> str:
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@pytest.mark.unit
def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    default_path = tmp_path / "default.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[validation]
max_parallel_cases = 2
""".strip(),
    )
    env = {"REQDOC_VALIDATION_MAX_PARALLEL_CASES": "6"}

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ=env)
    cli_loaded = load_config(
        config_path,
        environ=env,
        cli_overrides={"validation.max_parallel_cases": 7},
    )

    assert default_loaded["validation"]["max_parallel_cases"] == 1
    assert file_loaded["validation"]["max_parallel_cases"] == 2
    assert env_loaded["validation"]["max_parallel_cases"] == 6
    assert cli_loaded["validation"]["max_parallel_cases"] == 7


@pytest.mark.unit
def test_env_mapping_coerces_each_value_type(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "REQDOC_VALIDATION_CASE_TIMEOUT_SECONDS": "2.5",
            "REQDOC_VALIDATION_STRICT_MAPPING": "yes",
            "REQDOC_CORPUS_PATTERNS": "*.req.md, *.story.md",
            "REQDOC_OBSERVABILITY_LOG_LEVEL": "DEBUG",
        },
    )

    assert loaded["validation"]["case_timeout_seconds"] == 2.5
    assert loaded["validation"]["strict_mapping"] is True
    assert loaded["corpus"]["patterns"] == ["*.req.md", "*.story.md"]
    assert loaded["observability"]["log_level"] == "DEBUG"


@pytest.mark.unit
def test_invalid_env_coercion_raises_actionable_error(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="REQDOC_CORPUS_MAX_WORKERS"):
        load_config(config_path, environ={"REQDOC_CORPUS_MAX_WORKERS": "many"})


@pytest.mark.unit
def test_loader_is_deterministic_for_same_inputs(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    env = {"REQDOC_CORPUS_MAX_WORKERS": "8"}
    cli = {"validation.strict_mapping": True}

    first = load_config(config_path, environ=env, cli_overrides=cli)
    second = load_config(config_path, environ=env, cli_overrides=cli)

    assert _sha256_json(first) == _sha256_json(second)
    assert dump_effective_config(first) == dump_effective_config(second)


@pytest.mark.unit
def test_path_normalization_is_relative_to_config_file(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "reqdoc.toml"
    _write_config(
        config_path,
        """
[corpus]
root = "../requirements"
""".strip(),
    )

    loaded = load_config(config_path, environ={})

    assert loaded["corpus"]["root"] == (tmp_path / "requirements").resolve().as_posix()


@pytest.mark.unit
def test_profile_overlay_selected_by_argument_or_env(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    strict = load_config(config_path, profile="strict", environ={})
    ci = load_config(config_path, environ={"REQDOC_PROFILE": "ci"})
    ci_with_env = load_config(
        config_path,
        environ={"REQDOC_PROFILE": "ci", "REQDOC_OBSERVABILITY_LOG_FORMAT": "text"},
    )

    assert strict["validation"]["strict_mapping"] is True
    assert ci["validation"]["case_timeout_seconds"] == 10.0
    assert ci["observability"]["log_format"] == "json"
    # Env overrides still beat the profile overlay.
    assert ci_with_env["observability"]["log_format"] == "text"


@pytest.mark.unit
def test_unknown_profile_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigValidationError, match="profile 'nightly' is not defined"):
        load_config(config_path, profile="nightly", environ={})


@pytest.mark.unit
def test_cli_none_values_are_ignored(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "[validation]\ncase_timeout_seconds = 4.0\n")

    loaded = load_config(
        config_path,
        environ={},
        cli_overrides={"validation.case_timeout_seconds": None},
    )

    assert loaded["validation"]["case_timeout_seconds"] == 4.0


@pytest.mark.unit
def test_missing_explicit_config_and_invalid_toml(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})

    broken = tmp_path / "broken.toml"
    _write_config(broken, "[corpus\n")
    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(broken, environ={})


@pytest.mark.unit
def test_file_values_are_validated(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "[validation]\ncase_timeout_seconds = -1\nretries = 3\n")

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    rendered = str(excinfo.value)
    assert "validation.case_timeout_seconds: must be > 0" in rendered
    assert "validation.retries: unknown field" in rendered


@pytest.mark.unit
def test_only_runtime_sections_are_env_settable(tmp_path: Path) -> None:
    config_path = tmp_path / "reqdoc.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "REQDOC_META_SCHEMA_VERSION": "99",
            "REQDOC_PROFILES_STRICT_VALIDATION_STRICT_MAPPING": "no",
            "REQDOC_CORPUS_ROOT": "specs",
        },
    )

    assert loaded["meta"] == load_config(config_path, environ={})["meta"]
    assert loaded["profiles"] == load_config(config_path, environ={})["profiles"]
    assert loaded["corpus"]["root"] == (tmp_path / "specs").resolve().as_posix()
