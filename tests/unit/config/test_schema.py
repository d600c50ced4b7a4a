"""
reqdoc — unit tests for config schema validation.

File: tests/unit/config/test_schema.py

Purpose
- Validate defaults, strict unknown-key rejection, profile overlays and
  schema-version guidance.
"""

from __future__ import annotations

import pytest

from reqdoc.config import (
    BUILTIN_PROFILE_NAMES,
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)


@pytest.mark.unit
def test_defaults_are_valid_and_carry_builtin_profiles() -> None:
    config = default_config()

    result = validate_config(config)

    assert result.is_valid
    assert set(BUILTIN_PROFILE_NAMES) <= set(config["profiles"])
    assert config["validation"]["case_timeout_seconds"] == 30.0
    assert config["corpus"]["patterns"] == ["*.req.md", "*.md"]


@pytest.mark.unit
def test_default_config_returns_independent_copies() -> None:
    first = default_config()
    first["corpus"]["patterns"].append("*.txt")

    assert default_config()["corpus"]["patterns"] == ["*.req.md", "*.md"]


@pytest.mark.unit
def test_issues_have_deterministic_paths() -> None:
    config = merge_config(
        default_config(),
        {
            "corpus": {"max_workers": 0, "patterns": []},
            "observability": {"log_format": "yaml"},
            "extra": {},
        },
    )

    result = validate_config(config)

    assert not result.is_valid
    paths = [issue.path for issue in result.issues]
    assert "extra" in paths
    assert "corpus.max_workers" in paths
    assert "corpus.patterns" in paths
    assert "observability.log_format" in paths


@pytest.mark.unit
def test_schema_version_mismatch_gives_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": 2}})

    with pytest.raises(ConfigValidationError, match="upgrade the reqdoc package"):
        assert_valid_config(config)
    assert "older than supported" in migration_guidance(0)


@pytest.mark.unit
def test_profile_overlay_merges_and_revalidates() -> None:
    strict = apply_profile_overlay(default_config(), "strict")

    assert strict["validation"]["strict_mapping"] is True
    assert strict["validation"]["max_parallel_cases"] == 1


@pytest.mark.unit
def test_profile_overlay_rejects_unknown_sections() -> None:
    config = merge_config(
        default_config(), {"profiles": {"nightly": {"meta": {"schema_version": 1}}}}
    )

    result = validate_config(config)

    assert [issue.path for issue in result.issues] == ["profiles.nightly.meta"]


@pytest.mark.unit
def test_invalid_profile_name_and_missing_profile() -> None:
    config = merge_config(default_config(), {"profiles": {"Nightly": {}}})

    result = validate_config(config)

    assert result.issues[0].path == "profiles.Nightly"
    with pytest.raises(ConfigValidationError, match="'weekly' is not defined"):
        apply_profile_overlay(default_config(), "weekly")
