"""Semantic tagger: classifies bare words as functions, variables or constants."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from nako3.declarations import (
    GLOBAL_SCOPE,
    DeclaredThing,
    DeclKind,
    ModuleSymbols,
    Origin,
    ScopeIdRange,
    enclosing_scopes,
)
from nako3.errors import DiagnosticList
from nako3.plugins import PluginRegistry
from nako3.reserved import lookup_reserved
from nako3.tokens import Token, TokenKind

logger = logging.getLogger(__name__)

K = TokenKind

SymbolTable = Mapping[str, Mapping[str, DeclaredThing]]

# parse_kind values the value pass may (re)assign
_VALUE_KINDS = frozenset({K.WORD, K.USER_VAR, K.USER_CONST, K.SYS_VAR, K.SYS_CONST, K.SORE})

# Undeclared words that refer to the last result (「足した結果を戻す」)
_RESULT_WORDS = frozenset({"それ", "結果"})


def _value_kind(decl: DeclaredThing) -> TokenKind:
    system = decl.origin in (Origin.PLUGIN, Origin.SYSTEM)
    if decl.kind == DeclKind.CONST:
        return K.SYS_CONST if system else K.USER_CONST
    return K.SYS_VAR if system else K.USER_VAR


class SemanticTagger:
    """Resolve bare-word tokens against the declared-symbol tables.

    Both passes derive their output from fields set by earlier stages only, so
    running them again over the same tokens and declarations changes nothing.
    """

    def __init__(
        self,
        declared_funcs: Mapping[str, DeclaredThing] | None = None,
        imports: Mapping[str, ModuleSymbols] | None = None,
        registry: PluginRegistry | None = None,
        active_plugins: Iterable[str] = (),
        max_diagnostics: int = 100,
    ) -> None:
        self._funcs = declared_funcs or {}
        self._imports = imports or {}
        self._registry = registry
        self._active = list(active_plugins)
        self.diagnostics = DiagnosticList(max_diagnostics)

    # ------------------------------------------------------------------
    # Pass 1: callables
    # ------------------------------------------------------------------

    def apply_function_tags(self, tokens: list[Token]) -> None:
        count = 0
        for tok in tokens:
            if tok.kind != K.WORD:
                continue
            kind, meta = self.resolve_callable(tok)
            tok.func_kind = kind
            tok.parse_kind = kind
            tok.meta = meta
            if kind != K.WORD:
                count += 1
        logger.debug("function pass tagged %d words", count)

    def resolve_callable(self, tok: Token) -> tuple[TokenKind, DeclaredThing | None]:
        name = str(tok.value)
        decl = self._funcs.get(name)
        if decl is not None:
            return K.USER_FUNC, decl
        for module in self._imports.values():
            decl = module.find_func(name)
            if decl is not None:
                return K.USER_FUNC, decl
        reserved = lookup_reserved(tok)
        if reserved is not None:
            return reserved, None
        if self._registry is not None:
            decl = self._registry.find_func(name, self._active)
            if decl is not None:
                return K.SYS_FUNC, decl
        return K.WORD, None

    # ------------------------------------------------------------------
    # Pass 2: variables and constants
    # ------------------------------------------------------------------

    def apply_varconst_tags(
        self,
        tokens: list[Token],
        scope_ranges: list[ScopeIdRange],
        symbols: SymbolTable,
    ) -> None:
        self.diagnostics.clear()
        unknown = 0
        for i, tok in enumerate(tokens):
            if tok.kind == K.FUNCTION_ARG_PARAMETER:
                tok.meta = self._find_local(str(tok.value), i, scope_ranges, symbols)
                continue
            if tok.func_kind != K.WORD or tok.parse_kind not in _VALUE_KINDS:
                continue
            decl = self.resolve_value(str(tok.value), i, scope_ranges, symbols)
            if decl is None:
                if tok.value in _RESULT_WORDS:
                    tok.parse_kind = K.SORE
                    tok.meta = None
                    continue
                tok.parse_kind = K.WORD
                tok.meta = None
                self.diagnostics.error(tok.span, "unknownWord", name=tok.value)
                unknown += 1
                continue
            tok.parse_kind = _value_kind(decl)
            tok.meta = decl
        logger.debug("value pass left %d unknown words", unknown)

    def resolve_value(
        self,
        name: str,
        index: int,
        scope_ranges: list[ScopeIdRange],
        symbols: SymbolTable,
    ) -> DeclaredThing | None:
        decl = symbols.get(GLOBAL_SCOPE, {}).get(name)
        if decl is not None:
            return decl
        decl = self._find_local(name, index, scope_ranges, symbols)
        if decl is not None:
            return decl
        for module in self._imports.values():
            decl = module.find_var(name)
            if decl is not None:
                return decl
        if self._registry is not None:
            return self._registry.find_value(name, self._active)
        return None

    @staticmethod
    def _find_local(
        name: str,
        index: int,
        scope_ranges: list[ScopeIdRange],
        symbols: SymbolTable,
    ) -> DeclaredThing | None:
        for scope_id in enclosing_scopes(scope_ranges, index):
            decl = symbols.get(scope_id, {}).get(name)
            if decl is not None:
                return decl
        return None
