"""Plugin command tables: parsing and lookup.

A command table declares the functions, variables and constants a plugin
provides. Two textual forms are accepted:

Verbose (line oriented)::

    [plugin_system]
    # comment
    関数	表示	Sを|Sと	Sを表示する
    定数	はい		1

Minified (one JSON document)::

    {"plugin_system": {"基本": {"表示": ["関数", "Sを|Sと", "Sを表示する", ""]}}}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from nako3.declarations import DeclaredThing, DeclKind, FuncParam, Origin
from nako3.errors import DiagnosticList
from nako3.lexer import tokenize
from nako3.normalizer import read_param_list, trim_okurigana

logger = logging.getLogger(__name__)

SYSTEM_PLUGIN = "plugin_system"

_KINDS: dict[str, DeclKind] = {
    "関数": DeclKind.FUNC,
    "func": DeclKind.FUNC,
    "変数": DeclKind.VAR,
    "var": DeclKind.VAR,
    "定数": DeclKind.CONST,
    "const": DeclKind.CONST,
}

# Plugins active in each runtime before any explicit import
RUNTIME_DEFAULTS: dict[str, tuple[str, ...]] = {
    "wnako": (
        SYSTEM_PLUGIN,
        "plugin_math",
        "plugin_promise",
        "plugin_test",
        "plugin_csv",
        "plugin_datetime",
        "plugin_browser",
        "plugin_turtle",
    ),
    "cnako": (
        SYSTEM_PLUGIN,
        "plugin_math",
        "plugin_promise",
        "plugin_test",
        "plugin_csv",
        "plugin_datetime",
        "plugin_node",
    ),
}


class CommandTableError(Exception):
    """Raised when a command table cannot be read at all."""

    def __init__(self, message: str, source: str = "", line: int = 0) -> None:
        self.source = source
        self.line = line
        where = f"{source}:{line}: " if source and line else ""
        super().__init__(where + message)


@dataclass(slots=True)
class CommandEntry:
    """One row of a command table before it becomes a DeclaredThing."""

    kind: DeclKind
    name: str
    args: str = ""
    hint: str = ""
    flags: frozenset[str] = frozenset()


def parse_args(args: str, diagnostics: DiagnosticList | None = None) -> tuple[FuncParam, ...]:
    """Parse an argument declaration such as 「AをBに|Bへ」 into parameters."""
    args = args.strip()
    if not args:
        return ()
    if not args.startswith(("(", "（")):
        args = f"({args})"
    result = tokenize(args)
    if diagnostics is not None:
        diagnostics.extend(result.diagnostics)
    params, _ = read_param_list(result.tokens, 0, diagnostics)
    return params


def _flags(text: str) -> frozenset[str]:
    names = {"純粋": "pure", "非同期": "async", "可変": "variadic"}
    found = set()
    for part in text.replace(",", " ").split():
        found.add(names.get(part, part))
    return frozenset(found)


def _entry_from_row(row: list[str], source: str, line: int) -> CommandEntry:
    if len(row) < 2:
        raise CommandTableError(f"expected at least 2 fields, got {len(row)}", source, line)
    kind = _KINDS.get(row[0].strip())
    if kind is None:
        raise CommandTableError(f"unknown declaration kind {row[0]!r}", source, line)
    fields = [f.strip() for f in row] + [""] * (5 - len(row))
    return CommandEntry(kind, fields[1], fields[2], fields[3], _flags(fields[4]))


def parse_command_table(text: str, source: str = "") -> dict[str, list[CommandEntry]]:
    """Parse either command-table form into ``{plugin: [entries]}``."""
    stripped = text.lstrip("﻿ \t\r\n")
    if stripped.startswith("{"):
        return _parse_minified(stripped, source)
    return _parse_verbose(text, source)


def _parse_verbose(text: str, source: str) -> dict[str, list[CommandEntry]]:
    tables: dict[str, list[CommandEntry]] = {}
    current: list[CommandEntry] | None = None
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        head = line.strip()
        if head.startswith("[") and head.endswith("]"):
            current = tables.setdefault(head[1:-1].strip(), [])
            continue
        if current is None:
            raise CommandTableError("declaration before any [plugin] header", source, lineno)
        current.append(_entry_from_row(line.split("\t"), source, lineno))
    return tables


def _parse_minified(text: str, source: str) -> dict[str, list[CommandEntry]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CommandTableError(f"invalid JSON: {e.msg}", source, e.lineno) from e
    if not isinstance(data, dict):
        raise CommandTableError("top level must be an object", source)

    tables: dict[str, list[CommandEntry]] = {}
    for plugin, sections in data.items():
        entries = tables.setdefault(plugin, [])
        if not isinstance(sections, dict):
            raise CommandTableError(f"plugin {plugin!r} must map to an object", source)
        for section, rows in sections.items():
            if not isinstance(rows, dict):
                raise CommandTableError(f"section {section!r} of {plugin!r} must map to an object", source)
            for name, row in rows.items():
                if not isinstance(row, list):
                    raise CommandTableError(f"entry {name!r} must be a list", source)
                entries.append(_entry_from_row([str(row[0]), name, *map(str, row[1:])], source, 0))
    return tables


def _declare(entry: CommandEntry, plugin: str, diagnostics: DiagnosticList | None) -> DeclaredThing:
    is_func = entry.kind == DeclKind.FUNC
    return DeclaredThing(
        kind=entry.kind,
        name=entry.name,
        trimmed_name=trim_okurigana(entry.name),
        module=plugin,
        origin=Origin.SYSTEM if plugin == SYSTEM_PLUGIN else Origin.PLUGIN,
        params=parse_args(entry.args, diagnostics) if is_func else (),
        is_async="async" in entry.flags,
        is_pure="pure" in entry.flags,
        is_variadic="variadic" in entry.flags,
        hint=entry.hint,
    )


class PluginRegistry:
    """Symbol tables of loaded plugins, resolved against an active plugin set."""

    def __init__(self) -> None:
        self._funcs: dict[str, dict[str, DeclaredThing]] = {}
        self._values: dict[str, dict[str, DeclaredThing]] = {}
        self.diagnostics = DiagnosticList()

    def add(self, plugin: str, decl: DeclaredThing) -> None:
        if decl.is_function:
            self._funcs.setdefault(plugin, {})[decl.trimmed_name] = decl
        else:
            self._values.setdefault(plugin, {})[decl.trimmed_name] = decl
        self._funcs.setdefault(plugin, {})
        self._values.setdefault(plugin, {})

    def add_entries(self, plugin: str, entries: Iterable[CommandEntry]) -> None:
        for entry in entries:
            self.add(plugin, _declare(entry, plugin, self.diagnostics))

    def load_text(self, text: str, source: str = "") -> list[str]:
        """Load a command table; return the plugin names it declared."""
        tables = parse_command_table(text, source)
        for plugin, entries in tables.items():
            self.add_entries(plugin, entries)
        logger.debug(
            "loaded %d plugin tables from %s",
            len(tables),
            source or "<text>",
        )
        return list(tables)

    @property
    def plugins(self) -> list[str]:
        return list(self._funcs)

    def active_set(self, runtime: str = "wnako", imported: Iterable[str] = ()) -> list[str]:
        """Runtime defaults plus explicitly imported plugins, in lookup order."""
        names = list(RUNTIME_DEFAULTS.get(runtime, (SYSTEM_PLUGIN,)))
        for name in imported:
            if name not in names:
                names.append(name)
        return names

    def find_func(self, name: str, active: Iterable[str]) -> DeclaredThing | None:
        for plugin in active:
            decl = self._funcs.get(plugin, {}).get(name)
            if decl is not None:
                return decl
        return None

    def find_value(self, name: str, active: Iterable[str]) -> DeclaredThing | None:
        for plugin in active:
            decl = self._values.get(plugin, {}).get(name)
            if decl is not None:
                return decl
        return None

