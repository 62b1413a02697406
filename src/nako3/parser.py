"""nako3 parser: converts the tagged token stream into an AST.

Sentences are assembled on an explicit operand stack. Values are pushed with
their particles; a function word pops its arguments by particle, and reserved
words such as 回 or 間 pop the value they govern. Block constructs end either
at ここまで (keyword mode) or where the indentation returns to the level of
the construct's own line (indent mode).
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum, auto

from nako3.ast import (
    NODE_TYPES,
    STATEMENTS,
    Atohantei,
    BigInt,
    Block,
    Break,
    Call,
    Continue,
    DefFunc,
    DefLocalVar,
    For,
    Foreach,
    FuncObj,
    If,
    IncDec,
    JsonArray,
    JsonObj,
    Let,
    LetArray,
    LetProp,
    Node,
    Nop,
    Number,
    Op,
    PerformanceMonitor,
    RefArray,
    RefProp,
    Renbun,
    RepeatTimes,
    Return,
    SpeedMode,
    String,
    Switch,
    TemplateString,
    TryExcept,
    UnaryOp,
    While,
    Word,
)
from nako3.declarations import GLOBAL_SCOPE, DeclaredThing, DeclKind, Origin, ScopeIdRange
from nako3.errors import DiagnosticList
from nako3.josi import RENBUN_JOSI
from nako3.normalizer import ModuleOptions
from nako3.tokens import Link, Position, Span, Token, TokenKind

logger = logging.getLogger(__name__)

K = TokenKind

_WORDISH = frozenset({K.WORD, K.USER_VAR, K.USER_CONST, K.SYS_VAR, K.SYS_CONST, K.SORE})
_FUNCS = frozenset({K.USER_FUNC, K.SYS_FUNC})
_DECL_KW = frozenset({K.HENSU, K.TEISU})

# Operator token -> (operator name, priority); higher binds tighter
_OPS: dict[TokenKind, tuple[str, int]] = {
    K.AND: ("and", 1),
    K.OR: ("or", 1),
    K.EQ: ("==", 2),
    K.STRICT_EQ: ("===", 2),
    K.NOTEQ: ("!=", 2),
    K.STRICT_NOTEQ: ("!==", 2),
    K.GT: (">", 2),
    K.GTEQ: (">=", 2),
    K.LT: ("<", 2),
    K.LTEQ: ("<=", 2),
    K.PLUS: ("+", 4),
    K.MINUS: ("-", 4),
    K.AMP: ("&", 4),
    K.SHIFT_L: ("<<", 4),
    K.SHIFT_R: (">>", 4),
    K.SHIFT_R0: (">>>", 4),
    K.MUL: ("*", 5),
    K.DIV: ("/", 5),
    K.MOD: ("%", 5),
    K.INTDIV: ("÷÷", 5),
    K.CARET: ("^", 6),
    K.POW: ("**", 6),
}

_COMPARATORS: dict[TokenKind, str] = {K.IJOU: ">=", K.IKA: "<=", K.MIMAN: "<", K.CHOU: ">"}

# Keywords that cannot start a sentence item
_STRAY = frozenset(
    {K.KOKOMADE, K.KOKOKARA, K.CHIGAEBA, K.NARABA, K.DENAKEREBA, K.ERROR_NARABA, K.TOHA, K.KURIKAESU}
)


class BlockMode(Enum):
    INLINE = auto()
    INDENT = auto()
    KEYWORD = auto()


@dataclass(slots=True)
class ParseResult:
    ast: Block
    diagnostics: DiagnosticList
    scope_ranges: list[ScopeIdRange]
    symbols: dict[str, dict[str, DeclaredThing]]
    async_functions: set[str] = field(default_factory=set)


def _earliest(*positions: Position) -> Position:
    return min(positions, key=lambda p: p.offset)


class Parser:
    """Particle-driven parser for normalized, function-tagged nako3 tokens."""

    def __init__(
        self,
        tokens: list[Token],
        *,
        module: str = "main",
        options: ModuleOptions | None = None,
        headers: dict[int, int] | None = None,
        max_diagnostics: int = 100,
    ) -> None:
        self._t = tokens
        self._pos = 0
        self._module = module
        self._options = options or ModuleOptions()
        self._headers = headers or {}
        self.diagnostics = DiagnosticList(max_diagnostics)

        self._stack: list[Node] = []
        self._recent: list[DeclaredThing] = []
        self._scopes: list[str] = [GLOBAL_SCOPE]
        self._symbols: dict[str, dict[str, DeclaredThing]] = {GLOBAL_SCOPE: {}}
        self._ranges: list[ScopeIdRange] = []
        self._keyword_depth = 0
        self._sentence_done = False

        self._handlers: dict[TokenKind, Callable[[], Node | None]] = {
            K.MOSHI: self._if,
            K.ERROR_KANSHI: self._try,
            K.ATOHANTEI: self._atohantei,
            K.KAI: self._repeat_times,
            K.AIDA: self._while,
            K.KURIKAESU: self._for,
            K.INC_KURIKAESU: self._for,
            K.DEC_KURIKAESU: self._for,
            K.HANPUKU: self._foreach,
            K.JOUKEN_BUNKI: self._switch,
            K.SPEED_MODE: self._speed_mode,
            K.PERF_MONITOR: self._speed_mode,
            K.DAINYU: self._dainyu,
            K.SADAMERU: self._sadameru,
            K.MODORU: self._return,
            K.NUKERU: self._break,
            K.TSUZUKERU: self._break,
            K.INC: self._incdec,
            K.DEC: self._incdec,
            K.HENSU: self._decl_var,
            K.TEISU: self._decl_var,
            K.CHIKUJI: self._chikuji,
            K.IJOU: self._comparator,
            K.IKA: self._comparator,
            K.MIMAN: self._comparator,
            K.CHOU: self._comparator,
        }

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = self._pos + offset
        if idx < len(self._t):
            return self._t[idx]
        return self._t[-1]  # EOF

    def _kind(self, offset: int = 0) -> TokenKind:
        return self._peek(offset).effective_kind

    def _at(self, *kinds: TokenKind) -> bool:
        return self._kind() in kinds

    def _advance(self) -> Token:
        tok = self._peek()
        if tok.effective_kind != K.EOF:
            self._pos += 1
        return tok

    def _accept(self, *pattern: TokenKind | frozenset[TokenKind]) -> tuple[Token, ...] | None:
        """Consume tokens matching *pattern* and return them, or restore and return None."""
        save = self._pos
        got: list[Token] = []
        for want in pattern:
            kind = self._kind()
            ok = kind in want if isinstance(want, frozenset) else kind == want
            if not ok:
                self._pos = save
                return None
            got.append(self._advance())
        return tuple(got)

    def _prev_end(self) -> Position:
        """End position of the previously consumed token."""
        if self._pos > 0:
            return self._t[self._pos - 1].span.end
        return self._t[0].span.start

    def _span_from(self, start: Position) -> Span:
        end = self._prev_end()
        if end.offset < start.offset:
            end = start
        return Span(start, end)

    def _skip_eols(self) -> None:
        while self._at(K.EOL):
            self._advance()

    def _skip_to_eol(self) -> None:
        while not self._at(K.EOL, K.EOF):
            self._advance()

    def _end_line(self) -> None:
        if self._at(K.EOL):
            self._advance()

    def _link(self, main: int, *children: int | None) -> None:
        tok = self._t[main]
        if tok.link is None:
            tok.link = Link(main)
        for child in children:
            if child is None or child == main:
                continue
            tok.link.children.append(child)
            self._t[child].link = Link(main)

    def _unexpected(self, tok: Token) -> None:
        if tok.effective_kind == K.KOKOMADE:
            self.diagnostics.error(tok.span, "unexpectedKokomade")
        else:
            self.diagnostics.error(tok.span, "unexpectedKeyword", text=tok.core_text or tok.text)

    # ------------------------------------------------------------------
    # Module level
    # ------------------------------------------------------------------

    def parse(self) -> ParseResult:
        start = self._peek().span.start
        body: list[Node] = []
        while True:
            self._skip_eols()
            if self._at(K.EOF):
                break
            before = self._pos
            body.extend(self._sentence())
            if self._pos == before:
                self._unexpected(self._advance())
            self._end_line()

        root = Block(tuple(body), Span(start, self._peek().span.end))
        self._ranges.append(ScopeIdRange(0, len(self._t) - 1, GLOBAL_SCOPE))
        async_functions = self._propagate_async(root)
        logger.debug(
            "parsed %d statements, %d scopes, %d structural problems",
            len(body),
            len(self._ranges),
            len(self.diagnostics),
        )
        return ParseResult(root, self.diagnostics, self._ranges, self._symbols, async_functions)

    # ------------------------------------------------------------------
    # Sentences
    # ------------------------------------------------------------------

    def _sentence(self, stops: frozenset[TokenKind] = frozenset()) -> list[Node]:
        """Parse one sentence up to end of line; return its statements."""
        stops = stops | {K.KOKOMADE}
        saved_stack, self._stack = self._stack, []
        saved_recent, self._recent = self._recent, []
        self._sentence_done = False
        results: list[Node] = []
        chain: Node | None = None
        first = True
        try:
            while not self._at(K.EOL, K.EOF) and self._kind() not in stops:
                if self._at(K.COMMA):
                    self._advance()
                    continue
                node = self._item(allow_let=first)
                first = False
                if node is not None:
                    if isinstance(node, STATEMENTS) or (
                        isinstance(node, Call) and (not node.josi or node.josi in RENBUN_JOSI)
                    ):
                        if chain is not None:
                            node = Renbun(chain, node, Span(chain.span.start, node.span.end), node.josi)
                            chain = None
                        if isinstance(node, (Call, Renbun)) and node.josi in RENBUN_JOSI:
                            chain = node
                        else:
                            results.append(node)
                    else:
                        self._stack.append(node)
                if self._sentence_done:
                    break
            if chain is not None:
                results.append(chain)
            if self._stack:
                self._report_stranded(self._stack)
            return results
        finally:
            self._stack = saved_stack
            self._recent = saved_recent
            self._sentence_done = False

    def _collect(self, stops: frozenset[TokenKind]) -> list[Node]:
        """Parse items up to *stops* or end of line and return every produced value."""
        saved, self._stack = self._stack, []
        try:
            while not self._at(K.EOL, K.EOF, K.KOKOMADE) and self._kind() not in stops:
                if self._at(K.COMMA):
                    self._advance()
                    continue
                node = self._item()
                if node is not None:
                    self._stack.append(node)
                if self._sentence_done:
                    break
            return list(self._stack)
        finally:
            self._stack = saved

    def _report_stranded(self, nodes: list[Node]) -> None:
        words = "、".join(_describe(n) for n in nodes)
        hint = ""
        if self._recent:
            hint = "（直前の命令: " + "、".join(d.signature() for d in self._recent[-3:]) + "）"
        span = Span(nodes[0].span.start, nodes[-1].span.end)
        self.diagnostics.error(span, "strandedWords", words=words, hint=hint)

    def _item(self, allow_let: bool = False) -> Node | None:
        tok = self._peek()
        kind = tok.effective_kind
        handler = self._handlers.get(kind)
        if handler is not None:
            return handler()
        if kind in (K.DEF_FUNC, K.DEF_TEST):
            return self._def_func()
        if kind == K.DIRECTIVE:
            self._skip_to_eol()
            return None
        if kind == K.NIWA:
            return self._anon_func(self._pos)
        if kind in (K.SAKINI, K.TSUGINI):
            self._advance()
            return None
        if kind in _STRAY:
            self._unexpected(self._advance())
            return None
        if allow_let:
            if self._looks_like_let():
                return self._let()
            named = self._accept(_WORDISH, K.TOHA, _DECL_KW)
            if named is not None:
                return self._finish_decl(named[0], self._pos - 3, named[2])
        node = self._expr()
        if node is None:
            bad = self._advance()
            self.diagnostics.error(bad.span, "unexpectedToken", text=bad.core_text or bad.text)
        return node

    def _pop(self) -> Node | None:
        return self._stack.pop() if self._stack else None

    def _pop_josi(self, *josi: str) -> Node | None:
        for j in range(len(self._stack) - 1, -1, -1):
            if self._stack[j].josi in josi:
                return self._stack.pop(j)
        return None

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _expr(self) -> Node | None:
        first = self._value()
        if first is None:
            return None
        items: list[Node | Token] = [first]
        last = first
        while not last.josi and self._kind() in _OPS:
            op = self._advance()
            right = self._value()
            if right is None:
                self.diagnostics.error(op.span, "missingOperand", op=op.core_text)
                items += [op, Nop(op.span)]
                break
            items += [op, right]
            last = right
        if len(items) == 1:
            return first
        return self._fold(items)

    @staticmethod
    def _fold(items: list[Node | Token]) -> Node:
        """Convert an infix item list to postfix and fold it into a tree."""
        output: list[Node | Token] = []
        ops: list[Token] = []
        for item in items:
            if isinstance(item, Token):
                priority = _OPS[item.effective_kind][1]
                while ops and _OPS[ops[-1].effective_kind][1] >= priority:
                    output.append(ops.pop())
                ops.append(item)
            else:
                output.append(item)
        while ops:
            output.append(ops.pop())

        stack: list[Node] = []
        for item in output:
            if isinstance(item, Token):
                right = stack.pop()
                left = stack.pop()
                name = _OPS[item.effective_kind][0]
                stack.append(Op(name, left, right, Span(left.span.start, right.span.end), right.josi))
            else:
                stack.append(item)
        return stack[0]

    def _value(self) -> Node | None:
        tok = self._peek()
        kind = tok.effective_kind
        index = self._pos
        node: Node
        if kind == K.NUMBER:
            self._advance()
            node = Number(tok.value, tok.span, tok.josi, tok.unit)  # type: ignore[arg-type]
        elif kind == K.BIGINT:
            self._advance()
            node = BigInt(int(tok.value), tok.span, tok.josi)  # type: ignore[call-overload]
        elif kind == K.STRING:
            self._advance()
            node = String(str(tok.value), tok.span, tok.josi)
        elif kind == K.STRING_EX:
            node = self._template()
        elif kind in _WORDISH:
            self._advance()
            name = "それ" if kind == K.SORE else str(tok.value)
            node = Word(name, index, tok.span, tok.josi)
        elif kind == K.EIEN:
            self._advance()
            node = Word("永遠", index, tok.span, tok.josi)
        elif kind in _FUNCS:
            return self._call()
        elif kind == K.FUNC_OBJ:
            return self._anon_func(self._pos)
        elif kind == K.LPAREN:
            node = self._paren()
        elif kind == K.LBRACKET:
            node = self._json_array()
        elif kind == K.LBRACE:
            node = self._json_obj()
        elif kind in (K.MINUS, K.NOT):
            self._advance()
            operand = self._value()
            if operand is None:
                self.diagnostics.error(tok.span, "missingOperand", op=tok.core_text)
                return Nop(tok.span)
            span = Span(tok.span.start, operand.span.end)
            if kind == K.MINUS and isinstance(operand, Number):
                return Number(-operand.value, span, operand.josi, operand.unit)
            return UnaryOp("-" if kind == K.MINUS else "not", operand, span, operand.josi)
        else:
            return None
        return self._postfix(node)

    def _postfix(self, node: Node) -> Node:
        """Apply trailing index (A[1]) and property (A$名前, A@1) references."""
        while not node.josi:
            tok = self._peek()
            if tok.effective_kind == K.LBRACKET and tok.span.start.offset == node.span.end.offset:
                self._advance()
                index = self._expr() or Nop(tok.span)
                josi = ""
                if self._at(K.RBRACKET):
                    josi = self._advance().josi
                else:
                    self.diagnostics.error(tok.span, "missingCloseBracket")
                node = RefArray(node, index, self._span_from(node.span.start), josi)
            elif tok.effective_kind in (K.DOLLAR, K.AT):
                self._advance()
                name_tok = self._peek()
                name_kind = name_tok.effective_kind
                if tok.effective_kind == K.AT and name_kind == K.NUMBER:
                    self._advance()
                    index = Number(name_tok.value, name_tok.span)  # type: ignore[arg-type]
                    node = RefArray(node, index, self._span_from(node.span.start), name_tok.josi)
                elif name_kind in _WORDISH or name_kind in _FUNCS:
                    self._advance()
                    name_tok.parse_kind = K.PROPERTY
                    node = RefProp(node, name_tok.core_text, self._span_from(node.span.start), name_tok.josi)
                else:
                    self.diagnostics.error(tok.span, "missingOperand", op=tok.core_text)
                    break
            else:
                break
        return node

    def _template(self) -> Node:
        start = self._peek().span.start
        parts: list[Node] = []
        josi = ""
        injected = False
        while True:
            seg = self._advance()
            if seg.value:
                parts.append(String(str(seg.value), seg.span))
            if not self._at(K.STRING_INJECT_START):
                josi = seg.josi
                break
            injected = True
            self._advance()
            parts.extend(self._collect(frozenset({K.STRING_INJECT_END})))
            if self._at(K.STRING_INJECT_END):
                self._advance()
            if not self._at(K.STRING_EX):
                break
        span = self._span_from(start)
        if not injected:
            value = parts[0].value if parts else ""  # type: ignore[union-attr]
            return String(value, span, josi)
        return TemplateString(tuple(parts), span, josi)

    def _paren(self) -> Node:
        lp = self._advance()
        values = self._collect(frozenset({K.RPAREN}))
        josi = ""
        if self._at(K.RPAREN):
            josi = self._advance().josi
        else:
            self.diagnostics.error(lp.span, "missingCloseParen")
        span = self._span_from(lp.span.start)
        if not values:
            return Nop(span, josi)
        if len(values) > 1:
            self._report_stranded(values[:-1])
        return dataclasses.replace(values[-1], span=span, josi=josi)

    def _json_array(self) -> Node:
        lb = self._advance()
        items: list[Node] = []
        josi = ""
        while True:
            while self._at(K.EOL, K.COMMA):
                self._advance()
            if self._at(K.RBRACKET):
                josi = self._advance().josi
                break
            if self._at(K.EOF, K.KOKOMADE):
                self.diagnostics.error(lb.span, "missingCloseBracket")
                break
            item = self._expr()
            if item is None:
                bad = self._advance()
                self.diagnostics.error(bad.span, "unexpectedToken", text=bad.core_text or bad.text)
                continue
            items.append(item)
        return JsonArray(tuple(items), self._span_from(lb.span.start), josi)

    def _json_obj(self) -> Node:
        lb = self._advance()
        items: list[tuple[Node, Node]] = []
        josi = ""
        while True:
            while self._at(K.EOL, K.COMMA):
                self._advance()
            if self._at(K.RBRACE):
                josi = self._advance().josi
                break
            if self._at(K.EOF, K.KOKOMADE):
                self.diagnostics.error(lb.span, "missingCloseBrace")
                break
            key_tok = self._advance()
            key_kind = key_tok.effective_kind
            key: Node
            if key_kind in (K.STRING, K.STRING_EX):
                key = String(str(key_tok.value), key_tok.span)
            elif key_kind in _WORDISH or key_kind in _FUNCS:
                key_tok.parse_kind = K.PROPERTY
                key = String(key_tok.core_text, key_tok.span)
            elif key_kind == K.NUMBER:
                key = Number(key_tok.value, key_tok.span)  # type: ignore[arg-type]
            else:
                self.diagnostics.error(key_tok.span, "unexpectedToken", text=key_tok.core_text or key_tok.text)
                continue
            if not self._at(K.COLON):
                self.diagnostics.error(key_tok.span, "missingOperand", op=":")
                items.append((key, Nop(key_tok.span)))
                continue
            colon = self._advance()
            value = self._expr()
            if value is None:
                self.diagnostics.error(colon.span, "missingOperand", op=":")
                value = Nop(colon.span)
            items.append((key, value))
        return JsonObj(tuple(items), self._span_from(lb.span.start), josi)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _call(self) -> Node:
        index = self._pos
        tok = self._advance()
        decl = tok.meta
        if decl is None:
            return Word(str(tok.value), index, tok.span, tok.josi)

        nxt = self._peek()
        if nxt.effective_kind == K.LPAREN and nxt.span.start.offset == tok.span.end.offset:
            args = self._c_args(decl, tok, index)
            josi = self._t[self._pos - 1].josi
        else:
            if self._at(K.NIWA):
                fn = self._anon_func(self._pos)
                self._stack.append(dataclasses.replace(fn, josi=_niwa_josi(decl)))
            args = self._bind(decl, tok, index)
            josi = tok.josi
        self._recent.append(decl)
        start = _earliest(tok.span.start, *(a.span.start for a in args))
        return Call(decl.trimmed_name, decl, args, index, self._span_from(start), josi)

    def _bind(self, decl: DeclaredThing, tok: Token, index: int) -> tuple[Node, ...]:
        """Pop arguments off the operand stack by particle.

        Parameters with a declared particle take the topmost value carrying it;
        positional parameters then take whatever is left on top. When that leaves
        a gap while at least as many values as parameters were waiting, the top
        values bind in declaration order. One missing argument becomes それ.
        """
        params = decl.params
        if decl.is_variadic:
            slots: list[Node | None] = list(self._stack)
            self._stack.clear()
            slots += [None] * (len(params) - len(slots))
        else:
            before = list(self._stack)
            slots = [None] * len(params)
            for i in range(len(params) - 1, -1, -1):
                if not params[i].accepts_any:
                    slots[i] = self._pop_josi(*params[i].josi)
            for i in range(len(params) - 1, -1, -1):
                if slots[i] is None and params[i].accepts_any:
                    slots[i] = self._pop()
            if None in slots and len(before) >= len(params):
                # Particles did not line up but enough values are waiting:
                # take them in declaration order instead.
                self._stack[:] = before[: len(before) - len(params)]
                slots = list(before[len(before) - len(params) :])
        if slots.count(None) >= 2:
            self.diagnostics.error(tok.span, "argumentShortage", name=decl.trimmed_name)
        return tuple(Word("それ", index, tok.span) if a is None else a for a in slots)

    def _c_args(self, decl: DeclaredThing, tok: Token, index: int) -> tuple[Node, ...]:
        lp = self._advance()
        args: list[Node] = []
        while True:
            while self._at(K.COMMA):
                self._advance()
            if self._at(K.RPAREN):
                self._advance()
                break
            if self._at(K.EOL, K.EOF):
                self.diagnostics.error(lp.span, "missingCloseParen")
                break
            value = self._expr()
            if value is None:
                bad = self._advance()
                self.diagnostics.error(bad.span, "unexpectedToken", text=bad.core_text or bad.text)
                continue
            args.append(value)
        missing = len(decl.params) - len(args)
        if missing > 0:
            if missing >= 2:
                self.diagnostics.error(tok.span, "argumentShortage", name=decl.trimmed_name)
            args += [Word("それ", index, tok.span)] * missing
        return tuple(args)

    # ------------------------------------------------------------------
    # Scopes and symbols
    # ------------------------------------------------------------------

    @contextmanager
    def _enter(self, decl: DeclaredThing, anchor: int) -> Iterator[None]:
        scope = decl.scope_id
        table = self._symbols.setdefault(scope, {})
        end = self._headers.get(anchor, self._pos)
        for param in decl.params:
            param_index = self._find_param(param.name, anchor, end)
            param_tok = self._t[param_index] if param_index is not None else self._t[anchor]
            table[param.name] = DeclaredThing(
                kind=DeclKind.VAR,
                name=param.name,
                trimmed_name=param.name,
                module=self._module,
                origin=Origin.LOCAL,
                span=param_tok.span,
                is_export=False,
                scope_id=scope,
                token_index=param_index,
            )
        self._scopes.append(scope)
        try:
            yield
        finally:
            self._scopes.pop()
            self._ranges.append(ScopeIdRange(anchor, max(anchor, self._pos - 1), scope))

    def _find_param(self, name: str, start: int, end: int) -> int | None:
        for i in range(start, min(end, len(self._t))):
            tok = self._t[i]
            if tok.effective_kind == K.FUNCTION_ARG_PARAMETER and tok.value == name:
                return i
        return None

    def _declare(self, tok: Token, index: int, kind: DeclKind, fresh: bool = False) -> DeclaredThing:
        """Find or create the symbol a token assigns to in the current scope."""
        name = str(tok.value)
        scope = self._scopes[-1]
        table = self._symbols.setdefault(scope, {})
        existing: DeclaredThing | None = None
        if fresh:
            existing = table.get(name)
        else:
            for s in reversed(self._scopes):
                existing = self._symbols.get(s, {}).get(name)
                if existing is not None:
                    break
        if existing is not None:
            if existing.kind == DeclKind.CONST:
                self.diagnostics.error(tok.span, "assignToConstant", name=name)
            if not fresh or existing.kind == kind:
                return existing
        decl = DeclaredThing(
            kind=kind,
            name=tok.core_text,
            trimmed_name=name,
            module=self._module,
            origin=Origin.GLOBAL if scope == GLOBAL_SCOPE else Origin.LOCAL,
            span=tok.span,
            is_export=self._options.export_default if scope == GLOBAL_SCOPE else False,
            scope_id=scope,
            token_index=index,
        )
        table[name] = decl
        return decl

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    def _block_mode(self) -> BlockMode:
        while self._at(K.COMMA):
            self._advance()
        keyword = BlockMode.INDENT if self._options.indent_semantics else BlockMode.KEYWORD
        if self._at(K.COLON):
            self._advance()
            return BlockMode.INDENT if self._at(K.EOL, K.EOF) else BlockMode.INLINE
        if self._at(K.KOKOKARA):
            self._advance()
            return keyword
        if self._at(K.EOL, K.EOF):
            return keyword
        return BlockMode.INLINE

    def _block(
        self,
        owner: Token,
        stops: frozenset[TokenKind] = frozenset(),
        label: str | None = None,
    ) -> tuple[Block, int | None]:
        """Parse the body of a construct whose header ends here.

        Returns the block and the index of its closing ここまで, if one was
        consumed.
        """
        mode = self._block_mode()
        start = self._peek().span.start
        end_index: int | None = None
        if mode is BlockMode.INLINE:
            body = self._sentence(stops)
        elif mode is BlockMode.INDENT:
            body = self._indent_body(owner, stops)
            self._sentence_done = True
        else:
            self._keyword_depth += 1
            try:
                body, end_index = self._keyword_body(owner, stops, label or owner.core_text)
            finally:
                self._keyword_depth -= 1
        return Block(tuple(body), self._span_from(start)), end_index

    def _indent_body(self, owner: Token, stops: frozenset[TokenKind]) -> list[Node]:
        level = owner.indent.level
        body: list[Node] = []
        while True:
            self._skip_eols()
            tok = self._peek()
            kind = tok.effective_kind
            if kind == K.EOF:
                break
            if tok.indent.level <= level:
                if kind == K.KOKOMADE and tok.indent.level == level and self._keyword_depth == 0:
                    self.diagnostics.error(tok.span, "kokomadeInIndentMode")
                    self._advance()
                    self._skip_to_eol()
                break
            if kind == K.KOKOMADE:
                self.diagnostics.error(tok.span, "kokomadeInIndentMode")
                self._advance()
                continue
            before = self._pos
            body.extend(self._sentence(stops))
            if self._pos == before:
                self._unexpected(self._advance())
            self._end_line()
        return body

    def _keyword_body(
        self,
        owner: Token,
        stops: frozenset[TokenKind],
        label: str,
    ) -> tuple[list[Node], int | None]:
        body: list[Node] = []
        while True:
            self._skip_eols()
            kind = self._kind()
            if kind == K.EOF:
                self.diagnostics.error(owner.span, "missingKokomade", name=label)
                return body, None
            if kind == K.KOKOMADE:
                end = self._pos
                self._advance()
                return body, end
            if kind in stops:
                return body, None
            before = self._pos
            body.extend(self._sentence(stops))
            if self._pos == before:
                self._unexpected(self._advance())
            self._end_line()

    def _next_line_head(self, kind: TokenKind, level: int) -> int | None:
        """Index of a *kind* token continuing the current construct, if any.

        Matches on the current line, or at the head of the next non-blank
        line when its indent level equals *level*.
        """
        if self._at(kind):
            return self._pos
        j = self._pos
        while j < len(self._t) and self._t[j].effective_kind == K.EOL:
            j += 1
        if j < len(self._t) and self._t[j].effective_kind == kind and self._t[j].indent.level == level:
            return j
        return None

    # ------------------------------------------------------------------
    # Control flow
    # ------------------------------------------------------------------

    def _if(self) -> Node:
        moshi_index = self._pos
        moshi = self._advance()
        values = self._collect(frozenset({K.NARABA, K.DENAKEREBA}))
        naraba_index: int | None = None
        if not self._at(K.NARABA, K.DENAKEREBA):
            self.diagnostics.error(moshi.span, "missingNaraba")
            self._skip_to_eol()
            cond: Node = Nop(moshi.span)
            if not self._body_follows(moshi.indent.level):
                return If(cond, cond, cond, self._span_from(moshi.span.start))
        else:
            naraba_index = self._pos
            naraba = self._advance()
            cond = self._condition(values, moshi)
            if naraba.effective_kind == K.DENAKEREBA:
                cond = UnaryOp("not", cond, cond.span)

        then, end_index = self._block(moshi, frozenset({K.CHIGAEBA}))
        otherwise: Node = Nop(self._span_from(self._prev_end()))
        else_index: int | None = None
        if end_index is None:
            else_index = self._next_line_head(K.CHIGAEBA, moshi.indent.level)
        if else_index is not None:
            self._pos = else_index
            chigaeba = self._advance()
            if self._at(K.MOSHI):
                otherwise = self._if()
            else:
                otherwise, end_index = self._block(chigaeba)
        self._link(moshi_index, naraba_index, else_index, end_index)
        return If(cond, then, otherwise, self._span_from(moshi.span.start))

    def _body_follows(self, level: int) -> bool:
        """True when the next non-blank line is indented deeper than *level*."""
        j = self._pos
        while j < len(self._t) and self._t[j].effective_kind == K.EOL:
            j += 1
        return j < len(self._t) and self._t[j].effective_kind != K.EOF and self._t[j].indent.level > level

    def _condition(self, values: list[Node], anchor: Token) -> Node:
        if not values:
            self.diagnostics.error(anchor.span, "missingOperand", op=anchor.core_text)
            return Nop(anchor.span)
        if len(values) == 1:
            return values[0]
        if len(values) > 2:
            self._report_stranded(values[:-2])
        left, right = values[-2], values[-1]
        return Op("==", left, right, Span(left.span.start, right.span.end), right.josi)

    def _switch(self) -> Node:
        index = self._pos
        tok = self._advance()
        target = self._pop()
        if target is None:
            self.diagnostics.error(tok.span, "missingOperand", op=tok.core_text)
            target = Nop(tok.span)
        mode = self._block_mode()
        indent = mode is BlockMode.INDENT
        level = tok.indent.level
        cases: list[tuple[Node, Block]] = []
        default: Node = Nop(tok.span)
        links: list[int | None] = []
        end_index: int | None = None
        if not indent:
            self._keyword_depth += 1
        try:
            while True:
                self._skip_eols()
                head = self._peek()
                kind = head.effective_kind
                if kind == K.EOF:
                    if not indent:
                        self.diagnostics.error(tok.span, "missingKokomade", name=tok.core_text)
                    break
                if indent and head.indent.level <= level:
                    break
                if not indent and kind == K.KOKOMADE:
                    end_index = self._pos
                    self._advance()
                    break
                if kind == K.CHIGAEBA:
                    links.append(self._pos)
                    self._advance()
                    default, case_end = self._block(head)
                    links.append(case_end)
                    continue
                values = self._collect(frozenset({K.NARABA}))
                if not self._at(K.NARABA):
                    self.diagnostics.error(head.span, "missingNaraba")
                    self._skip_to_eol()
                    continue
                links.append(self._pos)
                self._advance()
                block, case_end = self._block(head)
                links.append(case_end)
                cases.append((values[-1] if values else Nop(head.span), block))
        finally:
            if not indent:
                self._keyword_depth -= 1
        if indent:
            self._sentence_done = True
        self._link(index, *links, end_index)
        return Switch(target, tuple(cases), default, self._span_from(target.span.start))

    def _try(self) -> Node:
        index = self._pos
        tok = self._advance()
        body, end_index = self._block(tok, frozenset({K.ERROR_NARABA}))
        handler = Block((), Span(self._prev_end(), self._prev_end()))
        err_index: int | None = None
        if end_index is None:
            err_index = self._next_line_head(K.ERROR_NARABA, tok.indent.level)
        if err_index is not None:
            self._pos = err_index
            err = self._advance()
            handler, end_index = self._block(err)
        else:
            self.diagnostics.error(tok.span, "missingErrorNaraba")
        self._link(index, err_index, end_index)
        return TryExcept(body, handler, self._span_from(tok.span.start))

    def _atohantei(self) -> Node:
        index = self._pos
        tok = self._advance()
        kuri = self._accept(K.KURIKAESU)
        kuri_index = self._pos - 1 if kuri is not None else None
        body, end_index = self._block(tok)
        while self._at(K.COMMA):
            self._advance()
        values = self._collect(frozenset({K.AIDA}))
        aida_index: int | None = None
        if self._at(K.AIDA):
            aida_index = self._pos
            self._advance()
            cond = self._condition(values, tok)
        else:
            self.diagnostics.error(tok.span, "missingAida")
            cond = Nop(tok.span)
        self._link(index, kuri_index, end_index, aida_index)
        return Atohantei(body, cond, self._span_from(tok.span.start))

    def _repeat_times(self) -> Node:
        index = self._pos
        tok = self._advance()
        count = self._pop()
        if count is None:
            self.diagnostics.error(tok.span, "missingLoopCount", name=tok.core_text)
            count = Nop(tok.span)
        body, end_index = self._block(tok)
        self._link(index, end_index)
        return RepeatTimes(count, body, self._span_from(_earliest(count.span.start, tok.span.start)))

    def _while(self) -> Node:
        index = self._pos
        tok = self._advance()
        values = list(self._stack)
        self._stack.clear()
        if not values:
            self.diagnostics.error(tok.span, "missingLoopCount", name=tok.core_text)
            cond: Node = Nop(tok.span)
        else:
            cond = self._condition(values, tok)
        body, end_index = self._block(tok)
        self._link(index, end_index)
        return While(cond, body, self._span_from(_earliest(cond.span.start, tok.span.start)))

    def _for(self) -> Node:
        index = self._pos
        tok = self._advance()
        counter = self._pop_josi("を", "で")
        end = self._pop_josi("まで")
        start = self._pop_josi("から")
        step = self._pop_josi("ずつ")
        if start is None or end is None:
            self.diagnostics.error(tok.span, "missingLoopCount", name=tok.core_text)
            start = start or Nop(tok.span)
            end = end or Nop(tok.span)
        counter_name: str | None = None
        if isinstance(counter, Word):
            counter_name = counter.name
            self._declare(self._t[counter.index], counter.index, DeclKind.VAR)
        direction = {K.INC_KURIKAESU: "up", K.DEC_KURIKAESU: "down"}.get(tok.effective_kind, "auto")
        body, end_index = self._block(tok)
        self._link(index, end_index)
        first = counter.span.start if counter is not None else start.span.start
        return For(
            counter_name,
            start,
            end,
            step,
            direction,
            body,
            self._span_from(_earliest(first, start.span.start, tok.span.start)),
        )

    def _foreach(self) -> Node:
        index = self._pos
        tok = self._advance()
        target = self._pop_josi("を")
        counter = self._pop_josi("で")
        if target is None:
            target = self._pop()
        if target is None:
            self.diagnostics.error(tok.span, "missingLoopCount", name=tok.core_text)
            target = Nop(tok.span)
        counter_name: str | None = None
        if isinstance(counter, Word):
            counter_name = counter.name
            self._declare(self._t[counter.index], counter.index, DeclKind.VAR)
        body, end_index = self._block(tok)
        self._link(index, end_index)
        return Foreach(counter_name, target, body, self._span_from(_earliest(target.span.start, tok.span.start)))

    def _speed_mode(self) -> Node:
        index = self._pos
        tok = self._advance()
        options = self._pop() or Nop(tok.span)
        body, end_index = self._block(tok)
        self._link(index, end_index)
        span = self._span_from(_earliest(options.span.start, tok.span.start))
        if tok.effective_kind == K.PERF_MONITOR:
            return PerformanceMonitor(options, body, span)
        return SpeedMode(options, body, span)

    def _chikuji(self) -> Node:
        tok = self._advance()
        self.diagnostics.error(tok.span, "chikujiDeprecated")
        body, _ = self._block(tok)
        return body

    def _return(self) -> Node:
        tok = self._advance()
        value = self._pop()
        start = value.span.start if value is not None else tok.span.start
        return Return(value, self._span_from(start))

    def _break(self) -> Node:
        tok = self._advance()
        if tok.effective_kind == K.TSUZUKERU:
            return Continue(tok.span)
        return Break(tok.span)

    def _comparator(self) -> Node:
        tok = self._advance()
        right = self._pop()
        left = self._pop()
        if left is None or right is None:
            self.diagnostics.error(tok.span, "missingOperand", op=tok.core_text)
            return Nop(tok.span, tok.josi)
        op = _COMPARATORS[tok.effective_kind]
        return Op(op, left, right, Span(left.span.start, tok.span.end), tok.josi)

    # ------------------------------------------------------------------
    # Assignment and declarations
    # ------------------------------------------------------------------

    def _looks_like_let(self) -> bool:
        t = self._t
        i = self._pos
        head = t[i]
        if head.josi or (head.effective_kind not in _WORDISH and head.effective_kind not in _FUNCS):
            return False
        i += 1
        while i < len(t):
            kind = t[i].effective_kind
            if kind == K.LBRACKET:
                depth = 0
                while i < len(t):
                    k = t[i].effective_kind
                    if k == K.LBRACKET:
                        depth += 1
                    elif k == K.RBRACKET:
                        depth -= 1
                        if depth == 0:
                            break
                    elif k in (K.EOL, K.EOF):
                        return False
                    i += 1
                if i >= len(t) or t[i].josi:
                    return False
                i += 1
            elif kind in (K.DOLLAR, K.AT):
                i += 2
                if i > len(t) or t[i - 1].josi:
                    return False
            else:
                return kind == K.EQ
        return False

    def _let(self) -> Node | None:
        index = self._pos
        tok = self._advance()
        if tok.effective_kind in _FUNCS:
            self.diagnostics.error(tok.span, "assignToFunction", name=tok.value)
            self._skip_to_eol()
            return None
        target = self._postfix(Word(str(tok.value), index, tok.span))
        eq = self._advance()
        value = self._rhs(eq)
        span = self._span_from(tok.span.start)
        if isinstance(target, RefArray):
            return LetArray(target.target, target.index, value, span)
        if isinstance(target, RefProp):
            return LetProp(target.target, target.name, value, span)
        decl = self._declare(tok, index, DeclKind.VAR)
        return Let(str(tok.value), value, decl, span)

    def _rhs(self, eq: Token) -> Node:
        values = self._collect(frozenset())
        if not values:
            self.diagnostics.error(eq.span, "missingOperand", op=eq.core_text)
            return Nop(eq.span)
        if len(values) > 1:
            self._report_stranded(values[:-1])
        return values[-1]

    def _dainyu(self) -> Node | None:
        tok = self._advance()
        value = self._pop_josi("を")
        target = self._pop_josi("に", "へ")
        if value is None:
            value = Word("それ", self._pos - 1, tok.span)
        span = self._span_from(_earliest(value.span.start, tok.span.start))
        if isinstance(target, Word):
            decl = self._declare(self._t[target.index], target.index, DeclKind.VAR)
            return Let(target.name, value, decl, span)
        if isinstance(target, RefArray):
            return LetArray(target.target, target.index, value, span)
        if isinstance(target, RefProp):
            return LetProp(target.target, target.name, value, span)
        self.diagnostics.error(tok.span, "invalidAssignTarget")
        return None

    def _sadameru(self) -> Node | None:
        tok = self._advance()
        target = self._pop_josi("を")
        value = self._pop_josi("に", "へ")
        if not isinstance(target, Word):
            self.diagnostics.error(tok.span, "invalidAssignTarget")
            return None
        decl = self._declare(self._t[target.index], target.index, DeclKind.CONST, fresh=True)
        return DefLocalVar(target.name, value, True, decl, self._span_from(target.span.start))

    def _decl_var(self) -> Node | None:
        kw = self._advance()
        if self._kind() not in _WORDISH:
            self.diagnostics.error(kw.span, "missingDeclName", name=kw.core_text)
            self._skip_to_eol()
            return None
        index = self._pos
        name_tok = self._advance()
        return self._finish_decl(name_tok, index, kw)

    def _finish_decl(self, name_tok: Token, index: int, kw: Token) -> Node:
        is_const = kw.effective_kind == K.TEISU
        value: Node | None = None
        if self._at(K.EQ):
            value = self._rhs(self._advance())
        kind = DeclKind.CONST if is_const else DeclKind.VAR
        decl = self._declare(name_tok, index, kind, fresh=True)
        start = _earliest(kw.span.start, name_tok.span.start)
        return DefLocalVar(str(name_tok.value), value, is_const, decl, self._span_from(start))

    def _incdec(self) -> Node | None:
        tok = self._advance()
        target = self._pop_josi("を")
        amount = self._pop_josi("だけ", "")
        direction = "inc" if tok.effective_kind == K.INC else "dec"
        if not isinstance(target, Word):
            self.diagnostics.error(tok.span, "invalidAssignTarget")
            return None
        self._declare(self._t[target.index], target.index, DeclKind.VAR)
        if amount is None:
            amount = Number(1, tok.span)
        return IncDec(target.name, amount, direction, self._span_from(target.span.start))

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def _skip_header(self, anchor: int) -> None:
        end = self._headers.get(anchor)
        if end is not None:
            self._pos = end
            return
        while not self._at(K.EOL, K.EOF, K.COLON, K.KOKOKARA):
            self._advance()

    def _def_func(self) -> Node:
        anchor = self._pos
        tok = self._advance()
        decl = tok.meta or self._anonymous_decl(anchor, "func")
        self._skip_header(anchor)
        with self._enter(decl, anchor):
            body, end_index = self._block(tok, label=decl.name or tok.core_text)
        name_index = decl.token_index if decl.token_index != anchor else None
        self._link(anchor, name_index, end_index)
        return DefFunc(
            decl.trimmed_name,
            decl,
            decl.params,
            body,
            tok.effective_kind == K.DEF_TEST,
            self._span_from(tok.span.start),
        )

    def _anon_func(self, anchor: int) -> FuncObj:
        self._pos = anchor
        tok = self._advance()
        decl = tok.meta or self._anonymous_decl(anchor, "anon")
        self._skip_header(anchor)
        with self._enter(decl, anchor):
            body, end_index = self._block(tok)
        self._link(anchor, end_index)
        return FuncObj(decl, body, self._span_from(tok.span.start))

    def _anonymous_decl(self, anchor: int, prefix: str) -> DeclaredThing:
        tok = self._t[anchor]
        decl = DeclaredThing(
            kind=DeclKind.FUNC,
            name="",
            trimmed_name="",
            module=self._module,
            origin=Origin.LOCAL,
            span=tok.span,
            scope_id=f"{prefix}@{anchor}",
            token_index=anchor,
        )
        tok.meta = decl
        return decl

    # ------------------------------------------------------------------
    # Async propagation
    # ------------------------------------------------------------------

    def _propagate_async(self, root: Block) -> set[str]:
        """Mark functions async when their bodies reach an async call."""
        entries: list[tuple[DeclaredThing, list[DeclaredThing], bool]] = []
        for node in _walk(root):
            if isinstance(node, DefFunc):
                calls, chained = _calls_in(node.body)
                entries.append((node.decl, calls, chained))
        changed = True
        while changed:
            changed = False
            for decl, calls, chained in entries:
                if decl.is_async:
                    continue
                if chained or any(c.is_async for c in calls):
                    decl.is_async = True
                    changed = True
        return {decl.trimmed_name for decl, _, _ in entries if decl.is_async}


def _children(node: Node) -> Iterator[Node]:
    for f in dataclasses.fields(node):  # type: ignore[arg-type]
        value = getattr(node, f.name)
        if isinstance(value, tuple):
            for item in value:
                if isinstance(item, tuple):
                    yield from (x for x in item if isinstance(x, NODE_TYPES))
                elif isinstance(item, NODE_TYPES):
                    yield item
        elif isinstance(value, NODE_TYPES):
            yield value


def _walk(node: Node) -> Iterator[Node]:
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(_children(current))


def _calls_in(body: Block) -> tuple[list[DeclaredThing], bool]:
    calls: list[DeclaredThing] = []
    chained = False
    for node in _walk(body):
        if isinstance(node, Call) and node.decl is not None:
            calls.append(node.decl)
        elif isinstance(node, DefFunc):
            calls.append(node.decl)
        elif isinstance(node, Renbun):
            chained = True
    return calls, chained


def _niwa_josi(decl: DeclaredThing) -> str:
    """Particle under which a には block is passed to *decl*."""
    if not decl.params:
        return ""
    chosen = next((p for p in decl.params if p.is_func_pointer), decl.params[-1])
    return chosen.josi[0] if chosen.josi else ""


def _describe(node: Node) -> str:
    if isinstance(node, Word):
        text = node.name
    elif isinstance(node, (Number, BigInt)):
        text = str(node.value)
    elif isinstance(node, String):
        text = f"「{node.value}」"
    elif isinstance(node, Call):
        text = node.name
    else:
        text = type(node).__name__
    return text + node.josi


def parse(
    tokens: list[Token],
    *,
    module: str = "main",
    options: ModuleOptions | None = None,
    headers: dict[int, int] | None = None,
    max_diagnostics: int = 100,
) -> ParseResult:
    """Convenience function: parse normalized, function-tagged tokens."""
    parser = Parser(tokens, module=module, options=options, headers=headers, max_diagnostics=max_diagnostics)
    return parser.parse()
