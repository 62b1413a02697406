"""--tokens and --ast dumps."""

from __future__ import annotations

import dataclasses
import sys
from typing import TextIO

from nako3.ast import NODE_TYPES, Node
from nako3.declarations import DeclaredThing
from nako3.tokens import Token


def dump_tokens(tokens: list[Token], *, file: TextIO = sys.stdout) -> None:
    """Print one line per token: position, effective kind, text and particle."""
    for i, tok in enumerate(tokens):
        start = tok.span.start
        line = f"{i:5d} {start.line}:{start.column} {tok.effective_kind.name:<24} {tok.core_text!r}"
        if tok.josi:
            line += f" josi={tok.josi!r}"
        if tok.unit:
            line += f" unit={tok.unit!r}"
        if tok.indent.level:
            line += f" level={tok.indent.level}"
        file.write(line + "\n")


def dump_ast(node: Node, *, file: TextIO = sys.stdout) -> None:
    """Print a human-readable AST tree to *file*."""
    _dump(node, 0, "", file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump(node: Node, depth: int, label: str, f: TextIO) -> None:
    scalars: list[str] = []
    children: list[tuple[str, Node]] = []
    for fld in dataclasses.fields(node):  # type: ignore[arg-type]
        if fld.name == "span":
            continue
        value = getattr(node, fld.name)
        if isinstance(value, NODE_TYPES):
            children.append((fld.name, value))
        elif isinstance(value, tuple) and value and _holds_nodes(value):
            for i, item in enumerate(value):
                if isinstance(item, tuple):
                    for j, part in enumerate(item):
                        children.append((f"{fld.name}[{i}].{j}", part))
                else:
                    children.append((f"{fld.name}[{i}]", item))
        elif isinstance(value, DeclaredThing):
            scalars.append(f"{fld.name}={value.signature()}")
        elif value not in ("", None, ()):
            scalars.append(f"{fld.name}={value!r}")

    prefix = f"{label}: " if label else ""
    detail = f" {' '.join(scalars)}" if scalars else ""
    f.write(f"{_indent(depth)}{prefix}{type(node).__name__}{detail}\n")
    for name, child in children:
        _dump(child, depth + 1, name, f)


def _holds_nodes(value: tuple) -> bool:
    first = value[0]
    if isinstance(first, tuple):
        return bool(first) and isinstance(first[0], NODE_TYPES)
    return isinstance(first, NODE_TYPES)
