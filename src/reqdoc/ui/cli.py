"""Command-line interface router for reqdoc."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import structlog

from reqdoc.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from reqdoc.corpus import load_corpus_sync, resolve_corpus
from reqdoc.domain.errors import ReqDocError
from reqdoc.domain.models import Document, InvariantStatement
from reqdoc.ingestion import parse_file, serialize_document
from reqdoc.observability import configure_logging
from reqdoc.ui.render import CLIRenderer, create_renderer
from reqdoc.verification import (
    LoopSettings,
    SubprocessAdapter,
    SubprocessChecker,
    ValidationLoop,
)

EXIT_OK: Final[int] = 0
EXIT_FAILED: Final[int] = 1
EXIT_USAGE: Final[int] = 2

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_USAGE

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="reqdoc",
        description=(
            "reqdoc — parse requirement documents and score implementations against them.\n\n"
            "Common workflows:\n"
            "  reqdoc parse login.req.md                     Check one document\n"
            "  reqdoc corpus requirements/                   Resolve a whole corpus\n"
            "  reqdoc validate login.req.md --adapter-cmd ./run-case\n"
            "  reqdoc config --profile ci                    Show effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to reqdoc TOML config (default: ./reqdoc.toml if present).",
    )
    common.add_argument("--profile", default=None, help="Optional config profile overlay name.")
    common.add_argument(
        "--log-level",
        default=None,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Override observability.log_level.",
    )
    common.add_argument(
        "--log-format",
        default=None,
        choices=("json", "text"),
        help="Override observability.log_format.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # parse ---------------------------------------------------------------
    parse_parser = subparsers.add_parser(
        "parse",
        parents=[common],
        help="Parse one requirement document",
        description=(
            "Parse a document and report every schema violation found in one pass.\n\n"
            "Examples:\n"
            "  reqdoc parse login.req.md\n"
            "  reqdoc parse login.req.md --json\n"
            "  reqdoc parse login.req.md --canonical > login.req.md.new\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parse_parser.add_argument("path", help="Path to the requirement document")
    parse_parser.add_argument(
        "--canonical",
        action="store_true",
        help="Print the document re-serialized in canonical source form",
    )
    parse_parser.set_defaults(handler=_cmd_parse)

    # corpus --------------------------------------------------------------
    corpus_parser = subparsers.add_parser(
        "corpus",
        parents=[common],
        help="Load and resolve a directory of requirement documents",
        description=(
            "Parse every matching file in parallel, then check depends_on cycles and\n"
            "cross-document invariant references.\n\n"
            "Examples:\n"
            "  reqdoc corpus requirements/\n"
            "  reqdoc corpus --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    corpus_parser.add_argument(
        "directory",
        nargs="?",
        default=None,
        help="Corpus directory (default: corpus.root from config)",
    )
    corpus_parser.set_defaults(handler=_cmd_corpus)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Score a candidate implementation against a document's Validate block",
        description=(
            "Run every Validate case through an adapter command. The command receives\n"
            "the case input as a JSON object on stdin and prints the output as JSON.\n\n"
            "Examples:\n"
            "  reqdoc validate login.req.md --adapter-cmd './bin/login-case'\n"
            "  reqdoc validate login.req.md --adapter-cmd ./case --strict --timeout 5\n"
            "  reqdoc validate login.req.md --adapter-cmd ./case --corpus requirements/\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    validate_parser.add_argument("path", help="Path to the requirement document")
    validate_parser.add_argument(
        "--adapter-cmd", required=True, help="Command executing one case (JSON stdin/stdout)"
    )
    validate_parser.add_argument(
        "--checker-cmd",
        default=None,
        help="Command deciding invariants/contracts (JSON stdin/stdout)",
    )
    validate_parser.add_argument(
        "--corpus",
        dest="corpus_dir",
        default=None,
        help="Resolve foreign invariants against this corpus directory",
    )
    validate_parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Reject output fields that expect does not name",
    )
    validate_parser.add_argument(
        "--timeout", type=float, default=None, help="Per-case timeout in seconds"
    )
    validate_parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Max concurrent happy_path cases (boundaries always run in order)",
    )
    validate_parser.set_defaults(handler=_cmd_validate)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  reqdoc config\n"
            "  reqdoc config --json\n"
            "  reqdoc config --profile strict\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    try:
        namespace = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_USAGE
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_USAGE

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_parse(args: argparse.Namespace) -> int:
    _load_effective_config(args)
    path = _resolve_file(args.path)
    try:
        document = parse_file(path)
    except ReqDocError as exc:
        return _emit_document_error(args, "parse", exc)

    if _flag(args, "canonical"):
        sys.stdout.write(serialize_document(document))
        return EXIT_OK
    if _flag(args, "json"):
        _emit_json({"command": "parse", "ok": True, "document": document.to_dict()})
        return EXIT_OK
    _get_renderer(args).document(document)
    return EXIT_OK


def _cmd_corpus(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    corpus_config = _mapping(config, "corpus")
    directory = args.directory if args.directory is not None else corpus_config["root"]
    try:
        loaded = load_corpus_sync(
            directory,
            patterns=tuple(corpus_config["patterns"]),
            max_workers=int(corpus_config["max_workers"]),
        )
    except NotADirectoryError as exc:
        raise CLIError(str(exc)) from exc
    resolved = loaded.resolve()

    if _flag(args, "json"):
        _emit_json({"command": "corpus", "ok": resolved.ok, "corpus": resolved.to_dict()})
    else:
        _get_renderer(args).corpus(resolved)
    return EXIT_OK if resolved.ok else EXIT_FAILED


def _cmd_validate(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args,
        overrides={
            "validation.strict_mapping": args.strict,
            "validation.case_timeout_seconds": args.timeout,
            "validation.max_parallel_cases": args.parallel,
        },
    )
    path = _resolve_file(args.path)
    try:
        document = parse_file(path)
        invariants = _corpus_invariants(document, args.corpus_dir, config)
    except ReqDocError as exc:
        return _emit_document_error(args, "validate", exc)

    adapter_cmd = args.adapter_cmd
    try:
        SubprocessAdapter(adapter_cmd)
    except ValueError as exc:
        raise CLIError(f"invalid --adapter-cmd: {exc}") from exc

    loop = ValidationLoop(
        adapter_factory=lambda: SubprocessAdapter(adapter_cmd, cwd=Path.cwd()),
        checker=SubprocessChecker(args.checker_cmd) if args.checker_cmd else None,
        settings=LoopSettings.from_config(config),
    )
    report = loop.run_sync(document, invariants=invariants)

    if _flag(args, "json"):
        _emit_json({"command": "validate", "ok": report.passed, "report": report.to_dict()})
    else:
        _get_renderer(args).report(report)
    return EXIT_OK if report.passed else EXIT_FAILED


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = _optional_str(getattr(args, "profile", None))

    if _flag(args, "json"):
        _emit_json({"command": "config", "active_profile": profile, "config": config})
        return EXIT_OK

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _corpus_invariants(
    document: Document, corpus_dir: str | None, config: Mapping[str, object]
) -> tuple[InvariantStatement, ...] | None:
    if corpus_dir is None:
        return None
    corpus_config = _mapping(config, "corpus")
    try:
        loaded = load_corpus_sync(
            corpus_dir,
            patterns=tuple(corpus_config["patterns"]),
            max_workers=int(corpus_config["max_workers"]),
        )
    except NotADirectoryError as exc:
        raise CLIError(str(exc)) from exc

    documents = [item for item in loaded.documents if item.id != document.id]
    documents.append(document)
    resolved = resolve_corpus(documents)
    for failure in resolved.failures:
        if failure.document_id == document.id:
            raise failure.error
    return tuple(item.statement for item in resolved.invariants_for(document.id))


def _emit_document_error(args: argparse.Namespace, command: str, exc: ReqDocError) -> int:
    logger.info("document_rejected", command=command, error=type(exc).__name__)
    if _flag(args, "json"):
        _emit_json({"command": command, "ok": False, "error": exc.to_dict()})
    else:
        print(str(exc), file=sys.stderr)
    return EXIT_FAILED


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"))


def _load_effective_config(
    args: argparse.Namespace,
    *,
    overrides: Mapping[str, object] | None = None,
) -> dict[str, Any]:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))
    cli_overrides: dict[str, object] = dict(overrides or {})
    cli_overrides["observability.log_level"] = getattr(args, "log_level", None)
    cli_overrides["observability.log_format"] = getattr(args, "log_format", None)

    try:
        config = load_config(config_path, profile=profile, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc

    observability = _mapping(config, "observability")
    configure_logging(level=observability["log_level"], fmt=observability["log_format"])
    return config


def _resolve_file(raw: str) -> Path:
    candidate = Path(raw).expanduser()
    if not candidate.is_file():
        raise CLIError(f"document not found: {candidate}")
    return candidate


def _mapping(config: Mapping[str, object], key: str) -> Mapping[str, Any]:
    section = config.get(key)
    if not isinstance(section, Mapping):
        raise CLIError(f"config section {key!r} is missing")
    return section


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
