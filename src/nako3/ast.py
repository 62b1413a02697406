"""AST node types for parsed nako3 modules.

Every node carries its source span and the particle (josi) that followed it;
the particle drives argument binding inside the parser and is informational
afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union, get_args

from nako3.declarations import DeclaredThing, FuncParam
from nako3.tokens import Span

# ----------------------------------------------------------------------
# Values
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Nop:
    """Placeholder produced in place of a failed sub-parse."""

    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Number:
    value: int | float
    span: Span
    josi: str = ""
    unit: str = ""


@dataclass(frozen=True, slots=True)
class BigInt:
    value: int
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class String:
    value: str
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class TemplateString:
    """Interpolating string: literal segments and embedded expressions in order."""

    parts: tuple[Node, ...]
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Word:
    """Reference to a variable, constant or それ; *index* is the token index."""

    name: str
    index: int
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class RefArray:
    target: Node
    index: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class RefProp:
    target: Node
    name: str
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class JsonArray:
    items: tuple[Node, ...]
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class JsonObj:
    items: tuple[tuple[Node, Node], ...]
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Op:
    op: str
    left: Node
    right: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class UnaryOp:
    op: str
    operand: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Call:
    """Function call with arguments ordered as the declaration lists them."""

    name: str
    decl: DeclaredThing | None
    args: tuple[Node, ...]
    index: int
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Renbun:
    """Sentence chaining: *left* runs, then *right* with its result as それ."""

    left: Node
    right: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class FuncObj:
    """Anonymous function (関数(...) or a には block)."""

    decl: DeclaredThing
    body: Block
    span: Span
    josi: str = ""


# ----------------------------------------------------------------------
# Statements
# ----------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Block:
    body: tuple[Node, ...]
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class If:
    cond: Node
    then: Node
    otherwise: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Switch:
    target: Node
    cases: tuple[tuple[Node, Block], ...]
    default: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class For:
    """Counting loop; *direction* is "up", "down" or "auto"."""

    counter: str | None
    start: Node
    end: Node
    step: Node | None
    direction: str
    body: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Foreach:
    counter: str | None
    target: Node
    body: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class RepeatTimes:
    count: Node
    body: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class While:
    cond: Node
    body: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Atohantei:
    """Do-while: the body runs before *cond* is first tested."""

    body: Block
    cond: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class TryExcept:
    body: Block
    handler: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class DefFunc:
    name: str
    decl: DeclaredThing
    params: tuple[FuncParam, ...]
    body: Block
    is_test: bool
    span: Span
    josi: str = ""

    @property
    def is_async(self) -> bool:
        return self.decl.is_async


@dataclass(frozen=True, slots=True)
class Return:
    value: Node | None
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Break:
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Continue:
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class Let:
    name: str
    value: Node
    decl: DeclaredThing | None
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class LetArray:
    target: Node
    index: Node
    value: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class LetProp:
    target: Node
    name: str
    value: Node
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class DefLocalVar:
    name: str
    value: Node | None
    is_const: bool
    decl: DeclaredThing
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class IncDec:
    """増やす/減らす; *direction* is "inc" or "dec"."""

    name: str
    amount: Node
    direction: str
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class SpeedMode:
    options: Node
    body: Block
    span: Span
    josi: str = ""


@dataclass(frozen=True, slots=True)
class PerformanceMonitor:
    options: Node
    body: Block
    span: Span
    josi: str = ""


Node = Union[
    Nop,
    Number,
    BigInt,
    String,
    TemplateString,
    Word,
    RefArray,
    RefProp,
    JsonArray,
    JsonObj,
    Op,
    UnaryOp,
    Call,
    Renbun,
    FuncObj,
    Block,
    If,
    Switch,
    For,
    Foreach,
    RepeatTimes,
    While,
    Atohantei,
    TryExcept,
    DefFunc,
    Return,
    Break,
    Continue,
    Let,
    LetArray,
    LetProp,
    DefLocalVar,
    IncDec,
    SpeedMode,
    PerformanceMonitor,
]

# Nodes that stand alone as statements rather than values on the operand stack
STATEMENTS = (
    Block,
    If,
    Switch,
    For,
    Foreach,
    RepeatTimes,
    While,
    Atohantei,
    TryExcept,
    DefFunc,
    Return,
    Break,
    Continue,
    Let,
    LetArray,
    LetProp,
    DefLocalVar,
    IncDec,
    SpeedMode,
    PerformanceMonitor,
)

NODE_TYPES: tuple[type, ...] = get_args(Node)
