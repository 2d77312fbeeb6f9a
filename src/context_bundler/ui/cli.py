"""Command-line interface router for context-bundler."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import uuid
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import yaml

from context_bundler import __version__
from context_bundler.assembly import (
    EngineSettings,
    MetaPrompt,
    PromptCodeGenerator,
    RepositoryContextEngine,
    parse_assemble_request,
    parse_meta_prompts,
    validate_max_tokens,
)
from context_bundler.config import dump_effective_config, load_config
from context_bundler.constants import KNOWN_ENCODINGS
from context_bundler.file_tree import render_file_tree
from context_bundler.main import ExitCode
from context_bundler.observability import (
    reset_correlation_fields,
    set_correlation_fields,
    setup_logging,
    shutdown_logging,
)
from context_bundler.ui.render import CLIRenderer, create_renderer
from context_bundler.utils.concurrency import run_with_timeout

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = int(ExitCode.INVALID_INPUT)

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="context-bundler",
        description=(
            "context-bundler — token-budgeted repository context for LLM prompts.\n\n"
            "Common workflows:\n"
            "  context-bundler files                      List non-ignored files\n"
            "  context-bundler tokens src/app.py          Per-file token estimate\n"
            "  context-bundler assemble a.py b.py -i '…'  Build the prompt document\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--repo-root",
        default=None,
        help="Repository root directory (default: [repository].root, then the CWD).",
    )
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to bundler TOML config (default: ./bundler.toml if present).",
    )
    common.add_argument("--json", action="store_true", default=False, help="Emit JSON output")
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and debug logs.",
    )
    common.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the command after this many seconds.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # files ---------------------------------------------------------------
    files_parser = subparsers.add_parser(
        "files",
        parents=[common],
        help="List discovered, non-ignored files",
    )
    _add_pattern_argument(files_parser)
    files_parser.set_defaults(handler=_cmd_files)

    # tree ----------------------------------------------------------------
    tree_parser = subparsers.add_parser(
        "tree",
        parents=[common],
        help="Render the repository file tree",
    )
    _add_pattern_argument(tree_parser)
    tree_parser.set_defaults(handler=_cmd_tree)

    # tokens --------------------------------------------------------------
    tokens_parser = subparsers.add_parser(
        "tokens",
        parents=[common],
        help="Approximate per-file token counts (cached)",
    )
    tokens_parser.add_argument("files", nargs="+", help="Repository-relative file paths")
    tokens_parser.add_argument("--encoding", default=None, help="Tokenizer encoding name")
    tokens_parser.set_defaults(handler=_cmd_tokens)

    # count ---------------------------------------------------------------
    count_parser = subparsers.add_parser(
        "count",
        parents=[common],
        help="Count tokens in text (argument, --file, or stdin)",
    )
    count_parser.add_argument("text", nargs="?", default=None, help="Text to count")
    count_parser.add_argument("--file", dest="text_file", default=None, help="Read text from file")
    encoding_group = count_parser.add_mutually_exclusive_group()
    encoding_group.add_argument("--encoding", default=None, help="Tokenizer encoding name")
    encoding_group.add_argument("--model", default=None, help="Resolve encoding from model name")
    count_parser.add_argument("--max-tokens", type=int, default=None)
    count_parser.set_defaults(handler=_cmd_count)

    # assemble ------------------------------------------------------------
    assemble_parser = subparsers.add_parser(
        "assemble",
        parents=[common],
        help="Assemble the full prompt document",
        description=(
            "Assemble file map, file contents, meta prompts and instructions.\n\n"
            "Examples:\n"
            "  context-bundler assemble src/a.py -i 'Review this'\n"
            "  context-bundler assemble --request request.yaml --output prompt.txt\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    assemble_parser.add_argument("files", nargs="*", help="Repository-relative file paths")
    assemble_parser.add_argument("--instructions", "-i", default=None)
    assemble_parser.add_argument("--instructions-file", default=None)
    assemble_parser.add_argument(
        "--meta-prompts",
        default=None,
        help="YAML/JSON file with meta prompts (list of {name, content} or a mapping)",
    )
    assemble_parser.add_argument(
        "--request",
        default=None,
        help="YAML/JSON file holding a full assemble request",
    )
    assemble_parser.add_argument("--encoding", default=None)
    assemble_parser.add_argument("--max-tokens", type=int, default=None)
    assemble_parser.add_argument("--output", "-o", default=None, help="Write the prompt here")
    assemble_parser.set_defaults(handler=_cmd_assemble)

    # generate ------------------------------------------------------------
    generate_parser = subparsers.add_parser(
        "generate",
        parents=[common],
        help="Generate context with the external promptcode CLI",
    )
    generate_parser.add_argument("files", nargs="+", help="Repository-relative file paths")
    generate_parser.add_argument("--template", default=None)
    generate_parser.add_argument("--instruction", default=None)
    generate_parser.add_argument("--encoding", default=None)
    generate_parser.add_argument("--max-tokens", type=int, default=None)
    generate_parser.set_defaults(handler=_cmd_generate)

    # dirs ----------------------------------------------------------------
    dirs_parser = subparsers.add_parser(
        "dirs",
        parents=[common],
        help="List non-hidden child directories",
    )
    dirs_parser.add_argument("path", nargs="?", default=None)
    dirs_parser.set_defaults(handler=_cmd_dirs)

    # encodings -----------------------------------------------------------
    encodings_parser = subparsers.add_parser(
        "encodings",
        parents=[common],
        help="List known tokenizer encodings",
    )
    encodings_parser.set_defaults(handler=_cmd_encodings)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def _add_pattern_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--pattern",
        "-p",
        dest="patterns",
        action="append",
        default=None,
        help="Glob pattern (repeatable, or comma-separated; default: [discovery].patterns)",
    )


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.INVALID_INPUT)

    config = _load_effective_config(namespace)
    setup_logging(
        config.get("observability"),
        run_id=uuid.uuid4().hex[:12],
        level="DEBUG" if _flag(namespace, "verbose") else None,
    )
    # CLIError is frozen, so it must not unwind through a generator-based
    # context manager (contextlib rewrites __traceback__ on the way out).
    token = set_correlation_fields(command=str(namespace.command))
    try:
        result = handler(namespace, config)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    finally:
        reset_correlation_fields(token)
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_files(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    listing = engine.list_files(_patterns(args))

    if _flag(args, "json"):
        _emit_json(listing.to_payload())
        return 0

    renderer = _get_renderer(args)
    for path in listing.files:
        renderer.text(path)
    for pattern in listing.failed_patterns:
        _get_renderer(args, stream=sys.stderr).warning(f"pattern skipped: {pattern}")
    return 0


def _cmd_tree(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    tree = engine.file_tree(_patterns(args))

    if _flag(args, "json"):
        _emit_json({"repoPath": str(engine.repository_root), "tree": tree.to_dict()})
        return 0

    renderer = _get_renderer(args)
    renderer.text(str(engine.repository_root))
    renderer.raw(render_file_tree(tree))
    return 0


def _cmd_tokens(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    report = _run_async(args, engine.file_tokens(list(args.files), args.encoding))

    if _flag(args, "json"):
        _emit_json(report.to_payload())
        return 0

    renderer = _get_renderer(args)
    rows = [[path, str(count)] for path, count in report.token_counts.items()]
    renderer.table(("FILE", "TOKENS"), rows)
    renderer.kv("Total", report.total_tokens)
    renderer.kv("Encoding", report.encoding)
    if report.missing_files:
        renderer.section("Missing:")
        renderer.items(list(report.missing_files))
    if report.failed_files:
        renderer.section("Failed:")
        renderer.items(list(report.failed_files))
    return 0


def _cmd_count(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    text = _count_input(args)
    max_tokens = _max_tokens(args)
    result = engine.count_text(
        text,
        encoding=args.encoding,
        model=args.model,
        max_tokens=max_tokens,
    )

    if _flag(args, "json"):
        _emit_json(result.to_payload())
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Tokens", result.count)
    renderer.kv("Encoding", result.encoding)
    if renderer.verbose:
        renderer.kv("Bytes", result.byte_count)
        renderer.kv("Elapsed ms", result.elapsed_ms)
    return 0


def _cmd_assemble(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)

    files: list[str] = list(args.files)
    instructions = _instructions(args)
    meta_prompts: tuple[MetaPrompt, ...] = ()
    encoding: str | None = args.encoding
    max_tokens = _max_tokens(args)

    if args.request is not None:
        request = parse_assemble_request(_load_structured_file(args.request))
        files = files or list(request.files)
        instructions = instructions if instructions is not None else request.user_instructions
        meta_prompts = request.meta_prompts
        encoding = encoding or request.encoding
        max_tokens = max_tokens or request.max_tokens
    if args.meta_prompts is not None:
        meta_prompts = parse_meta_prompts(_load_structured_file(args.meta_prompts))

    if not files:
        raise CLIError("at least one file is required (positional or via --request)")
    if instructions is None:
        raise CLIError("user instructions are required (--instructions or --instructions-file)")

    bundle = _run_async(
        args,
        engine.assemble(
            files,
            instructions,
            meta_prompts,
            encoding=encoding,
            max_tokens=max_tokens,
        ),
    )

    if args.output is not None:
        Path(args.output).write_text(bundle.prompt, encoding="utf-8")

    if _flag(args, "json"):
        payload = bundle.to_payload()
        if args.output is not None:
            payload.pop("prompt")
            payload["output"] = str(args.output)
        _emit_json(payload)
        return 0

    summary_stream = sys.stdout if args.output is not None else sys.stderr
    if args.output is None:
        _get_renderer(args).raw(bundle.prompt)
    summary = _get_renderer(args, stream=summary_stream)
    summary.kv("Tokens", f"{bundle.token_count} / {bundle.max_tokens} ({bundle.encoding})")
    summary.kv("Files", f"{bundle.file_count} of {bundle.total_files}")
    if bundle.is_over_limit:
        summary.warning("token budget exceeded")
    if bundle.missing_files:
        summary.section("Missing:")
        summary.items(list(bundle.missing_files))
    if bundle.skipped_files:
        summary.section("Skipped (unreadable):")
        summary.items(list(bundle.skipped_files))
    return 0


def _cmd_generate(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    result = _run_async(
        args,
        engine.generate_context(
            list(args.files),
            template=args.template,
            instruction=args.instruction,
            encoding=args.encoding,
            max_tokens=_max_tokens(args),
        ),
    )

    if _flag(args, "json"):
        _emit_json(result.to_payload())
        return 0

    _get_renderer(args).raw(result.output)
    summary = _get_renderer(args, stream=sys.stderr)
    summary.kv("Tokens", f"{result.token_count} / {result.max_tokens} ({result.encoding})")
    if result.is_over_limit:
        summary.warning("token budget exceeded")
    if result.missing_files:
        summary.section("Missing:")
        summary.items(list(result.missing_files))
    return 0


def _cmd_dirs(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    engine = _build_engine(config)
    listing = engine.list_directories(args.path)

    if _flag(args, "json"):
        _emit_json(listing.to_payload())
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Current", listing.current_path)
    if listing.can_go_up:
        renderer.kv("Parent", listing.parent_path)
    renderer.items([entry.name + "/" for entry in listing.directories], prefix="")
    return 0


def _cmd_encodings(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    del config
    if _flag(args, "json"):
        _emit_json({"encodings": list(KNOWN_ENCODINGS)})
        return 0
    renderer = _get_renderer(args)
    for name in KNOWN_ENCODINGS:
        renderer.text(name)
    return 0


def _cmd_config(args: argparse.Namespace, config: Mapping[str, Any]) -> int:
    if _flag(args, "json"):
        _emit_json({"command": "config", "config": json.loads(dump_effective_config(config))})
        return 0

    _get_renderer(args).text(json.dumps(config, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace, *, stream: Any = None) -> CLIRenderer:
    return create_renderer(verbose=_flag(args, "verbose"), stream=stream)


# ---------------------------------------------------------------------------
# Helpers — config, engine, inputs
# ---------------------------------------------------------------------------


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, object] = {}
    repo_root = getattr(args, "repo_root", None)
    if isinstance(repo_root, str) and repo_root.strip():
        overrides["repository.root"] = str(Path(repo_root).expanduser().resolve())
    return load_config(getattr(args, "config_path", None), cli_overrides=overrides)


def _build_engine(config: Mapping[str, Any]) -> RepositoryContextEngine:
    generator_cfg = config.get("generator", {})
    generator = PromptCodeGenerator(
        generator_cfg.get("command", "promptcode"),
        timeout_seconds=float(generator_cfg.get("timeout_seconds", 120.0)),
    )
    return RepositoryContextEngine(
        config["repository"]["root"],
        generator=generator,
        settings=EngineSettings.from_config(config),
    )


def _run_async(args: argparse.Namespace, coroutine: Awaitable[T]) -> T:
    timeout = getattr(args, "timeout", None)
    if timeout is None:
        return asyncio.run(_await(coroutine))
    try:
        return asyncio.run(run_with_timeout(coroutine, float(timeout)))
    except TimeoutError as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.COLLABORATOR_ERROR)) from exc


async def _await(awaitable: Awaitable[T]) -> T:
    return await awaitable


def _patterns(args: argparse.Namespace) -> list[str] | None:
    raw = getattr(args, "patterns", None)
    if not raw:
        return None
    patterns = [item.strip() for entry in raw for item in entry.split(",") if item.strip()]
    return patterns or None


def _max_tokens(args: argparse.Namespace) -> int | None:
    value = getattr(args, "max_tokens", None)
    if value is None:
        return None
    return validate_max_tokens(value)


def _instructions(args: argparse.Namespace) -> str | None:
    if args.instructions is not None and args.instructions_file is not None:
        raise CLIError("use either --instructions or --instructions-file, not both")
    if args.instructions_file is not None:
        return _read_text(args.instructions_file)
    return args.instructions


def _count_input(args: argparse.Namespace) -> str:
    if args.text is not None and args.text_file is not None:
        raise CLIError("pass text either as an argument or with --file, not both")
    if args.text is not None:
        return str(args.text)
    if args.text_file is not None:
        return _read_text(args.text_file)
    return sys.stdin.read()


def _read_text(path_arg: str) -> str:
    path = Path(path_arg).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CLIError(f"file not found: {path}", exit_code=int(ExitCode.NOT_FOUND)) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(f"unable to read {path}: {exc}") from exc


def _load_structured_file(path_arg: str) -> object:
    text = _read_text(path_arg)
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CLIError(f"invalid YAML/JSON in {path_arg}: {exc}") from exc


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
