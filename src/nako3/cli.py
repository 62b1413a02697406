"""Command-line interface for the nako3 analyzer."""

from __future__ import annotations

import argparse
import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nako3.analyzer import AnalyzerOptions, analyze
from nako3.builtins import default_registry
from nako3.errors import Diagnostic, Severity
from nako3.plugins import CommandTableError, PluginRegistry


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    analyzer: AnalyzerOptions
    plugin_files: list[Path]
    dump_tokens: bool
    dump_ast: bool
    verbose: bool


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="nako3",
        description="Static analyzer for nadesiko3 source files",
    )
    p.add_argument("input", help="Input .nako3 file")
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover nako3.toml)",
    )
    p.add_argument(
        "--runtime",
        choices=["wnako", "cnako"],
        default=None,
        help="Runtime whose default plugins are active (default: cnako)",
    )
    p.add_argument(
        "--plugin",
        action="append",
        default=[],
        metavar="FILE",
        help="Plugin command table to load (repeatable)",
    )
    p.add_argument(
        "--max-diagnostics",
        type=int,
        default=None,
        metavar="N",
        help="Maximum problems reported per stage (default: 100)",
    )
    p.add_argument("--indent", action="store_true", help="Treat the file as indent-structured")
    p.add_argument("--tokens", action="store_true", help="Dump the tagged token stream")
    p.add_argument("--ast", action="store_true", help="Dump the AST")
    p.add_argument("-v", "--verbose", action="store_true", help="Log stage summaries to stderr")
    return p


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "nako3.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, input_dir)

    analyzer = AnalyzerOptions(module=input_file.stem or "main")
    cfg_analyzer = config.get("analyzer")
    if isinstance(cfg_analyzer, dict):
        runtime = cfg_analyzer.get("runtime")
        if isinstance(runtime, str):
            analyzer.runtime = runtime
        limit = cfg_analyzer.get("max_diagnostics")
        if isinstance(limit, int):
            analyzer.max_diagnostics = limit
        indent = cfg_analyzer.get("indent_semantics")
        if isinstance(indent, bool):
            analyzer.indent_semantics = indent
    if args.runtime is not None:
        analyzer.runtime = args.runtime
    if args.max_diagnostics is not None:
        analyzer.max_diagnostics = args.max_diagnostics
    if args.indent:
        analyzer.indent_semantics = True

    # Plugin tables: config (relative to the config's directory) < CLI
    plugin_files: list[Path] = []
    cfg_plugins = config.get("plugins")
    if isinstance(cfg_plugins, dict):
        cfg_files = cfg_plugins.get("files")
        if isinstance(cfg_files, list):
            base = config_path.parent if config_path is not None else input_dir
            plugin_files.extend(base / str(f) for f in cfg_files)
    plugin_files.extend(Path(f) for f in args.plugin)

    return CliOptions(
        input_file=input_file,
        analyzer=analyzer,
        plugin_files=plugin_files,
        dump_tokens=args.tokens,
        dump_ast=args.ast,
        verbose=args.verbose,
    )


def build_registry(plugin_files: list[Path]) -> tuple[PluginRegistry, list[tuple[Path, Diagnostic]]]:
    """System command table plus every plugin file given.

    Also returns the problems found in each file's argument declarations.
    """
    registry = default_registry()
    problems: list[tuple[Path, Diagnostic]] = []
    for path in plugin_files:
        seen = len(registry.diagnostics)
        registry.load_text(path.read_text(encoding="utf-8"), str(path))
        problems.extend((path, d) for d in list(registry.diagnostics)[seen:])
    return registry, problems


def analyze_file(options: CliOptions) -> int:
    """Analyze one file, print its problems and dumps; return the exit code."""
    from nako3.debug import dump_ast, dump_tokens

    source = options.input_file.read_text(encoding="utf-8")
    registry, plugin_problems = build_registry(options.plugin_files)
    result = analyze(source, str(options.input_file), options=options.analyzer, registry=registry)

    if options.dump_tokens:
        dump_tokens(result.tokens, file=sys.stdout)
    if options.dump_ast:
        dump_ast(result.ast, file=sys.stdout)

    # Declaration problems have no source line to show
    for path, diag in plugin_problems:
        print(f"{diag.severity.value}: {path}: {diag.message}", file=sys.stderr)
    for diag in result.diagnostics:
        print(diag.format(source, str(options.input_file)), file=sys.stderr)

    found = [d for _, d in plugin_problems] + result.diagnostics
    errors = sum(1 for d in found if d.severity == Severity.ERROR)
    warnings = sum(1 for d in found if d.severity == Severity.WARN)
    if errors or warnings:
        print(f"{options.input_file}: {errors} error(s), {warnings} warning(s)", file=sys.stderr)
    return 1 if errors else 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = resolve_options(args)
    except tomllib.TOMLDecodeError as exc:
        print(f"error: invalid config: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if options.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    try:
        return analyze_file(options)
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except CommandTableError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
