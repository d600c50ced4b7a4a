"""
reqdoc — runtime config loader.

File: src/reqdoc/config/loader.py

Purpose
- Assemble the effective config from built-in defaults, ``reqdoc.toml``, the
  selected profile, ``REQDOC_*`` environment variables and command-line flags.
  Later sources win.

Environment mapping
- Every ``corpus``, ``validation`` and ``observability`` setting is reachable as
  ``REQDOC_<SECTION>_<KEY>``, e.g. ``REQDOC_CORPUS_MAX_WORKERS``. Values take the
  type of the built-in default; pattern lists are comma separated.
- ``REQDOC_PROFILE`` picks a profile when ``--profile`` is not given.

Paths
- ``corpus.root`` is resolved against the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

from reqdoc.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)
from reqdoc.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "REQDOC_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

# ``meta`` and ``profiles`` are only read from the config file.
_ENV_SECTIONS: Final[tuple[str, ...]] = ("corpus", "validation", "observability")

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Config file unreadable, or an env/flag override has the wrong type."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the effective config.

    ``cli_overrides`` maps dotted setting names (``"validation.strict_mapping"``)
    to values; ``None`` values are ignored so unset flags never mask the file.
    Without an explicit ``config_path`` a missing ``reqdoc.toml`` is not an error.
    """

    path = _config_file(config_path)
    env = os.environ if environ is None else environ
    flags = dict(cli_overrides or {})

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(path, required=config_path is not None))
    )
    selected = _pick_profile(profile, flags, env)
    if selected is not None:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, _env_overrides(env))
    config = merge_config(config, _flag_overrides(flags))
    config = assert_valid_config(config, active_profile=None)
    return normalize_paths(config, base_dir=path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with path settings made absolute against ``base_dir``."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        settings = resolved.get(section)
        if isinstance(settings, dict) and isinstance(settings.get(key), str):
            settings[key] = _absolute(settings[key], base_dir)
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _config_file(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(
    profile: str | None, flags: Mapping[str, object], env: Mapping[str, str]
) -> str | None:
    if profile is None:
        flagged = flags.get("profile")
        if flagged is not None and not isinstance(flagged, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
        profile = flagged if flagged is not None else env.get(PROFILE_ENV)
    if profile is None:
        return None
    return profile.strip() or None


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    defaults: Mapping[str, object] = default_config()
    overrides: dict[str, Any] = {}
    for section in _ENV_SECTIONS:
        settings = defaults[section]
        if not isinstance(settings, Mapping):
            continue
        for key in sorted(settings):
            name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
            raw = env.get(name)
            if raw is None:
                continue
            value = _coerce(raw.strip(), settings[key], name, f"{section}.{key}")
            overrides.setdefault(section, {})[key] = value
    return overrides


def _coerce(raw: str, default: object, name: str, setting: str) -> object:
    """Parse ``raw`` as the type of ``default``."""

    if isinstance(default, bool):
        lowered = raw.lower()
        if lowered in _TRUE_WORDS:
            return True
        if lowered in _FALSE_WORDS:
            return False
        raise ConfigLoadError(
            f"{name} -> {setting} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {setting} must be a number") from exc
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {setting} must be an integer") from exc
    return raw


def _flag_overrides(flags: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(flags):
        value = flags[key]
        if key == "profile" or value is None:
            continue
        parts = [part for part in key.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        cursor = payload
        for part in parts[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[parts[-1]] = value
    return payload


def _absolute(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
