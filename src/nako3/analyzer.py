"""Analysis pipeline: lex, normalize, tag, parse and tag again."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from nako3.ast import Block
from nako3.builtins import default_registry
from nako3.declarations import GLOBAL_SCOPE, DeclKind, ModuleSymbols
from nako3.errors import Diagnostic, Severity
from nako3.lexer import LexResult, tokenize
from nako3.normalizer import FixResult, ImportStatement, fix_tokens
from nako3.parser import ParseResult, parse
from nako3.plugins import PluginRegistry
from nako3.tagger import SemanticTagger
from nako3.tokens import Token

logger = logging.getLogger(__name__)

_PLUGIN_SUFFIXES = (".js", ".mjs", ".cjs")


@dataclass(slots=True)
class AnalyzerOptions:
    """Settings shared by every stage of one analysis."""

    max_diagnostics: int = 100
    runtime: str = "cnako"
    module: str = "main"
    indent_semantics: bool = False


@dataclass(slots=True)
class Analysis:
    """Results of every stage for one source text."""

    source: str
    filename: str
    module: str
    lexed: LexResult
    fixed: FixResult
    parsed: ParseResult
    tag_diagnostics: list[Diagnostic] = field(default_factory=list)
    active_plugins: list[str] = field(default_factory=list)

    @property
    def tokens(self) -> list[Token]:
        return self.fixed.tokens

    @property
    def ast(self) -> Block:
        return self.parsed.ast

    @property
    def imports(self) -> list[ImportStatement]:
        return self.fixed.imports

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Problems from all stages, ordered by source position."""
        merged = [
            *self.lexed.diagnostics,
            *self.fixed.diagnostics,
            *self.parsed.diagnostics,
            *self.tag_diagnostics,
        ]
        merged.sort(key=lambda d: d.span.start.offset)
        return merged

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    def module_symbols(self) -> ModuleSymbols:
        """Exported symbol table for other modules that import this one."""
        symbols = ModuleSymbols(self.module, dict(self.fixed.declared_funcs))
        for name, decl in self.parsed.symbols.get(GLOBAL_SCOPE, {}).items():
            if decl.kind in (DeclKind.VAR, DeclKind.CONST):
                symbols.vars[name] = decl
        return symbols


def plugin_name(statement: ImportStatement) -> str | None:
    """Plugin name named by an import directive, or None for a nako3 module."""
    path = PurePosixPath(statement.value)
    if path.suffix in _PLUGIN_SUFFIXES:
        return path.stem
    if path.name.startswith("plugin_") and not path.suffix:
        return path.name
    return None


def analyze(
    source: str,
    filename: str = "main.nako3",
    *,
    options: AnalyzerOptions | None = None,
    registry: PluginRegistry | None = None,
    imports: Mapping[str, ModuleSymbols] | None = None,
) -> Analysis:
    """Run the full front end over *source*.

    *imports* maps imported module names to their exported symbols; plugin
    imports are resolved against *registry* (the system table by default).
    """
    options = options or AnalyzerOptions()
    registry = registry or default_registry()
    limit = options.max_diagnostics

    lexed = tokenize(source, filename, limit)
    fixed = fix_tokens(lexed.tokens, options.module, limit)
    if options.indent_semantics:
        fixed.options.indent_semantics = True

    imported_plugins = [name for name in map(plugin_name, fixed.imports) if name is not None]
    active = registry.active_set(options.runtime, imported_plugins)

    tagger = SemanticTagger(fixed.declared_funcs, imports, registry, active, limit)
    tagger.apply_function_tags(fixed.tokens)
    parsed = parse(
        fixed.tokens,
        module=options.module,
        options=fixed.options,
        headers=fixed.headers,
        max_diagnostics=limit,
    )
    tagger.apply_varconst_tags(fixed.tokens, parsed.scope_ranges, parsed.symbols)

    analysis = Analysis(
        source=source,
        filename=filename,
        module=options.module,
        lexed=lexed,
        fixed=fixed,
        parsed=parsed,
        tag_diagnostics=list(tagger.diagnostics),
        active_plugins=active,
    )
    logger.debug(
        "%s: %d tokens, %d diagnostics, plugins=%s",
        filename,
        len(fixed.tokens),
        len(analysis.diagnostics),
        ",".join(active),
    )
    return analysis
