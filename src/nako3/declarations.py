"""Declared symbols: functions, variables and constants known to the analysis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from nako3.tokens import Span

GLOBAL_SCOPE = "global"


class DeclKind(Enum):
    FUNC = "func"
    VAR = "var"
    CONST = "const"


class Origin(Enum):
    GLOBAL = "global"
    LOCAL = "local"
    PLUGIN = "plugin"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class FuncParam:
    """One declared parameter and the particles it accepts."""

    name: str
    josi: tuple[str, ...]
    attrs: frozenset[str] = frozenset()

    @property
    def is_func_pointer(self) -> bool:
        return "関数" in self.attrs

    @property
    def accepts_any(self) -> bool:
        """True when the parameter binds positionally (no particle declared)."""
        return not self.josi or self.josi == ("",)

    def text(self) -> str:
        """Declaration form such as 「Sを|Sと」."""
        return "|".join(self.name + j for j in self.josi) or self.name


@dataclass(slots=True)
class DeclaredThing:
    """A function, variable or constant, whatever its origin."""

    kind: DeclKind
    name: str
    trimmed_name: str
    module: str
    origin: Origin
    span: Span | None = None
    is_export: bool = True
    is_private: bool = False
    params: tuple[FuncParam, ...] = ()
    scope_id: str = GLOBAL_SCOPE
    is_async: bool = False
    is_pure: bool = False
    is_variadic: bool = False
    hint: str = ""
    token_index: int | None = None

    @property
    def is_function(self) -> bool:
        return self.kind == DeclKind.FUNC

    def signature(self) -> str:
        """Declaration text such as 「(AをBに)足す」."""
        if not self.is_function:
            return self.name
        if not self.params:
            return self.name
        args = "".join(p.text() for p in self.params)
        return f"({args}){self.name}"


@dataclass(frozen=True, slots=True)
class ScopeIdRange:
    """A contiguous token-index interval (inclusive) belonging to one scope."""

    start: int
    end: int
    scope_id: str

    def __contains__(self, index: object) -> bool:
        return isinstance(index, int) and self.start <= index <= self.end


def enclosing_scopes(ranges: Iterable[ScopeIdRange], index: int) -> list[str]:
    """Scope ids containing *index*, innermost first."""
    found = [r for r in ranges if index in r]
    found.sort(key=lambda r: r.end - r.start)
    return [r.scope_id for r in found]


@dataclass(slots=True)
class ModuleSymbols:
    """Exported symbol table of one module, supplied to other modules."""

    name: str
    funcs: dict[str, DeclaredThing] = field(default_factory=dict)
    vars: dict[str, DeclaredThing] = field(default_factory=dict)

    def find_func(self, key: str) -> DeclaredThing | None:
        d = self.funcs.get(key)
        if d is not None and d.is_export and not d.is_private:
            return d
        return None

    def find_var(self, key: str) -> DeclaredThing | None:
        d = self.vars.get(key)
        if d is not None and d.is_export and not d.is_private:
            return d
        return None
