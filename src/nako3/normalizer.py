"""Token normalizer: splits, merges and reclassifies raw tokens for the parser.

Also runs the preprocessor pass over ``!`` directive lines and enumerates
function-declaration headers into the declared-function table.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass, field

from nako3.declarations import DeclaredThing, DeclKind, FuncParam, Origin
from nako3.errors import DiagnosticList
from nako3.josi import EQ_JOSI, NARABA_JOSI
from nako3.tokens import Position, Span, Token, TokenKind

logger = logging.getLogger(__name__)

K = TokenKind

_HIRAGANA_RUN = re.compile(r"[ぁ-ゟ]+")
_TRAILING_HIRAGANA = re.compile(r"[ぁ-ゟ]+$")
_ALL_HIRAGANA = re.compile(r"^[ぁ-ゟ]+$")

FUNC_ATTRIBUTES = frozenset({"公開", "非公開", "非同期"})
PARAM_ATTRIBUTES = frozenset({"関数", "参照渡", "配列", "文字列", "数値", "整数", "オブジェクト"})

_ANCHORS = frozenset({K.DEF_FUNC, K.DEF_TEST, K.FUNC_OBJ, K.NIWA})


def trim_okurigana(word: str) -> str:
    """Strip okurigana: 「表示する」 -> 「表示」, 「どうぞ」 stays, 「お茶しよう」 -> 「お茶」."""
    if not word:
        return word
    if not ("ぁ" <= word[0] <= "ゟ"):
        return _HIRAGANA_RUN.sub("", word) or word
    if _ALL_HIRAGANA.match(word):
        return word
    return _TRAILING_HIRAGANA.sub("", word)


@dataclass(slots=True)
class ImportStatement:
    """A ``!「file」を取り込む`` directive, resolved by an external collaborator."""

    value: str
    span: Span
    token_index: int


@dataclass(slots=True)
class ModuleOptions:
    """Flags set by preprocessor directives."""

    indent_semantics: bool = False
    strict: bool = False
    async_mode: bool = False
    dncl: str = ""
    export_default: bool = True


@dataclass(slots=True)
class FixResult:
    tokens: list[Token]
    comment_tokens: list[Token]
    imports: list[ImportStatement]
    options: ModuleOptions
    declared_funcs: dict[str, DeclaredThing]
    diagnostics: DiagnosticList
    headers: dict[int, int] = field(default_factory=dict)


def _k(tok: Token) -> TokenKind:
    return tok.kind if tok.kind is not None else tok.raw_kind


def read_param_list(
    tokens: list[Token],
    start: int,
    diagnostics: DiagnosticList | None = None,
) -> tuple[tuple[FuncParam, ...], int]:
    """Read a ``(AをBに|Bと)`` parameter list whose ``(`` is at *start*.

    Parameter tokens are reclassified in place. Returns the parameters (with
    repeated names merged) and the index just past the closing ``)``.
    """
    names: dict[str, list[str]] = {}
    attrs: dict[str, set[str]] = {}
    pending_attrs: set[str] = set()
    last: str | None = None
    i = start + 1
    while i < len(tokens):
        tok = tokens[i]
        kind = _k(tok)
        if kind == K.RPAREN:
            i += 1
            break
        if kind in (K.EOL, K.EOF):
            if diagnostics is not None:
                diagnostics.error(tokens[start].span, "paramListNotClosed")
            break
        if kind in (K.SPACE, K.PIPE, K.COMMA):
            i += 1
            continue
        if kind == K.LBRACE:
            i, found, josi = _read_param_attrs(tokens, i, diagnostics)
            if last is not None and josi:
                # 「A{関数}を」: the block follows the name and carries its particle
                attrs[last] |= found
                if names[last] == [""]:
                    names[last] = []
                names[last].append(josi)
            else:
                pending_attrs |= found
            continue
        if kind == K.WORD:
            tok.kind = K.FUNCTION_ARG_PARAMETER
            name = str(tok.value)
            josi_list = names.setdefault(name, [])
            if tok.josi not in josi_list:
                josi_list.append(tok.josi)
            attrs.setdefault(name, set()).update(pending_attrs)
            pending_attrs = set()
            last = name
            i += 1
            continue
        if diagnostics is not None:
            diagnostics.error(tok.span, "invalidParam", text=tok.text)
        i += 1
    params = tuple(FuncParam(n, tuple(j), frozenset(attrs[n])) for n, j in names.items())
    return params, i


def merge_params(first: tuple[FuncParam, ...], second: tuple[FuncParam, ...]) -> tuple[FuncParam, ...]:
    """Join the parameter lists before and after a function name, in order.

    A name appearing in both lists keeps its first position and gains the
    later particles and attributes.
    """
    merged: dict[str, FuncParam] = {p.name: p for p in first}
    for p in second:
        old = merged.get(p.name)
        if old is None:
            merged[p.name] = p
            continue
        josi = old.josi + tuple(j for j in p.josi if j not in old.josi)
        merged[p.name] = FuncParam(p.name, josi, old.attrs | p.attrs)
    return tuple(merged.values())


def _read_param_attrs(
    tokens: list[Token],
    start: int,
    diagnostics: DiagnosticList | None,
) -> tuple[int, set[str], str]:
    found: set[str] = set()
    i = start + 1
    while i < len(tokens):
        tok = tokens[i]
        kind = _k(tok)
        if kind == K.RBRACE:
            return i + 1, found, tok.josi
        if kind in (K.EOL, K.EOF, K.RPAREN):
            break
        if kind == K.WORD:
            tok.kind = K.FUNCTION_ARG_ATTRIBUTE
            name = str(tok.value)
            if diagnostics is not None and name not in PARAM_ATTRIBUTES:
                diagnostics.warn(tok.span, "unknownAttribute", name=name)
            found.add(name)
        i += 1
    if diagnostics is not None:
        diagnostics.error(tokens[start].span, "attributeNotClosed")
    return i, found, ""


class Normalizer:
    """Rewrite a raw token stream into the form the parser consumes."""

    def __init__(self, raw: list[Token], module: str = "main", max_diagnostics: int = 100) -> None:
        self._raw = raw
        self._module = module
        self._out: list[Token] = []
        self._comments: list[Token] = []
        self._imports: list[ImportStatement] = []
        self._options = ModuleOptions()
        self._funcs: dict[str, DeclaredThing] = {}
        self._headers: dict[int, int] = {}
        self.diagnostics = DiagnosticList(max_diagnostics)
        self._join_line = False
        self._forever = False

    def fix(self) -> FixResult:
        for i, raw in enumerate(self._raw):
            self._step(i, dataclasses.replace(raw, kind=raw.raw_kind))
        self._append_sentinels()

        self._preprocess()
        self._enumerate_functions()
        for tok in self._out:
            tok.func_kind = tok.kind
            tok.parse_kind = tok.kind

        logger.debug(
            "normalized %d raw tokens into %d (%d comments, %d functions)",
            len(self._raw),
            len(self._out),
            len(self._comments),
            len(self._funcs),
        )
        return FixResult(
            tokens=self._out,
            comment_tokens=self._comments,
            imports=self._imports,
            options=self._options,
            declared_funcs=self._funcs,
            diagnostics=self.diagnostics,
            headers=self._headers,
        )

    # ------------------------------------------------------------------
    # Token rewriting
    # ------------------------------------------------------------------

    def _next_kind(self, i: int) -> TokenKind | None:
        for raw in self._raw[i + 1 :]:
            if raw.raw_kind != K.SPACE:
                return raw.raw_kind
        return None

    def _step(self, i: int, tok: Token) -> None:
        kind = tok.raw_kind
        if kind == K.SPACE:
            return
        if kind in (K.LINE_COMMENT, K.RANGE_COMMENT):
            self._comments.append(tok)
            return
        if kind == K.EOL:
            if self._join_line and tok.text in ("\n", "\r\n", "\r"):
                self._join_line = False
                return
            self._join_line = False
            self._out.append(tok)
            return
        self._join_line = False

        if kind == K.WORD:
            if tok.value == "_" and not tok.josi and self._next_kind(i) == K.EOL:
                tok.kind = K.LINE_CONTINUATION
                self._comments.append(tok)
                self._join_line = True
                return
            if not tok.text.startswith(("《", "【")):
                tok.value = trim_okurigana(str(tok.value))
            if self._forever:
                self._forever = False
                if tok.value == "繰返":
                    tok.kind = K.AIDA
                    self._emit(tok)
                    return
            if tok.value == "永遠" and tok.josi == "に":
                tok.kind = K.EIEN
                tok.josi = "の"
                self._forever = True
                self._out.append(tok)
                return
            if tok.value == "関数" and not tok.josi and self._next_kind(i) == K.LPAREN:
                tok.kind = K.FUNC_OBJ
                self._out.append(tok)
                return
            value = str(tok.value)
            if not tok.josi and len(value) > 1 and value.endswith("回"):
                self._split_kai(tok)
                return
        self._forever = False
        self._emit(tok)

    def _emit(self, tok: Token) -> None:
        """Append *tok*, splitting off control particles as their own tokens."""
        josi = tok.josi
        if josi == "には":
            synth_kind = K.NIWA
        elif josi == "とは":
            synth_kind = K.TOHA
        elif josi in EQ_JOSI:
            synth_kind = K.EQ
            if josi != "は":
                self._join_line = True
        elif josi in NARABA_JOSI:
            synth_kind = K.NARABA
        elif josi in ("でなければ", "なければ"):
            synth_kind = K.DENAKEREBA
        else:
            self._out.append(tok)
            return

        head, tail = self._split_particle(tok, synth_kind)
        if synth_kind == K.NARABA and head.kind == K.WORD and head.value == "エラー":
            merged = dataclasses.replace(
                tail,
                raw_kind=K.ERROR_NARABA,
                kind=K.ERROR_NARABA,
                text=head.text + tail.text,
                value="エラーならば",
                span=Span(head.span.start, tail.span.end),
            )
            self._out.append(merged)
            return
        self._out.append(head)
        self._out.append(tail)

    def _split_particle(self, tok: Token, synth_kind: TokenKind) -> tuple[Token, Token]:
        cut = tok.result_end.offset - tok.span.start.offset
        tail_start = tok.josi_start or tok.result_end
        tail = Token(
            raw_kind=synth_kind,
            text=tok.text[cut:],
            value="=" if synth_kind == K.EQ else tok.josi,
            span=Span(tail_start, tok.span.end),
            result_end=tok.span.end,
            indent=tok.indent,
            kind=synth_kind,
        )
        head = dataclasses.replace(
            tok,
            text=tok.text[:cut],
            span=Span(tok.span.start, tok.result_end),
            josi="",
            josi_start=None,
        )
        return head, tail

    def _split_kai(self, tok: Token) -> None:
        end = tok.result_end
        mid = Position(end.line, end.column - 1, end.offset - 1)
        cut = mid.offset - tok.span.start.offset
        head = dataclasses.replace(
            tok,
            text=tok.text[:cut],
            value=str(tok.value)[:-1],
            span=Span(tok.span.start, mid),
            result_end=mid,
        )
        kai = Token(
            raw_kind=K.KAI,
            text=tok.text[cut:],
            value="回",
            span=Span(mid, tok.span.end),
            result_end=tok.span.end,
            indent=tok.indent,
            kind=K.KAI,
        )
        self._out.append(head)
        self._out.append(kai)

    def _append_sentinels(self) -> None:
        if self._raw:
            last = self._raw[-1].span.end
        else:
            last = Position(1, 1, 0)
        here = Span(last, last)
        for kind in (K.EOL, K.EOF):
            self._out.append(Token(raw_kind=kind, text="", value="", span=here, result_end=last, kind=kind))

    # ------------------------------------------------------------------
    # Preprocessor
    # ------------------------------------------------------------------

    def _preprocess(self) -> None:
        toks = self._out
        for i, tok in enumerate(toks):
            if tok.kind != K.NOT:
                continue
            if i > 0 and toks[i - 1].kind != K.EOL:
                continue
            end = self._directive(i)
            if end is None:
                continue
            tok.kind = K.DIRECTIVE
            if toks[end].kind not in (K.EOL, K.EOF):
                self.diagnostics.error(toks[end].span, "directiveNotEol", name=toks[i + 1].core_text)
                while toks[end].kind not in (K.EOL, K.EOF):
                    toks[end].kind = K.DIRECTIVE
                    end += 1

    def _directive(self, i: int) -> int | None:
        """Apply the directive after the ``!`` at *i*; return the index after it."""
        toks = self._out
        head = toks[i + 1]
        opts = self._options
        value = head.value

        if head.kind == K.KOKOMADE and toks[i + 2].kind == K.WORD and toks[i + 2].value == "だるい":
            opts.indent_semantics = True
            toks[i + 2].kind = K.DIRECTIVE
            return i + 3
        if head.kind in (K.STRING, K.STRING_EX) and toks[i + 2].kind == K.WORD and toks[i + 2].value == "取込":
            self._imports.append(ImportStatement(str(value), head.span, i + 1))
            toks[i + 2].kind = K.DIRECTIVE
            return i + 3
        if head.kind != K.WORD:
            return None

        if value == "インデント構文":
            opts.indent_semantics = True
        elif value == "厳チェック":
            opts.strict = True
        elif value == "非同期モード":
            opts.async_mode = True
            self.diagnostics.warn(head.span, "asyncModeDeprecated")
        elif value in ("DNCLモード", "DNCL2モード"):
            opts.dncl = str(value)[:-3]
            self.diagnostics.warn(head.span, "dnclUnsupported", mode=value)
        elif value == "モジュール公開既定値":
            head.kind = K.DIRECTIVE
            if toks[i + 2].kind != K.EQ or toks[i + 3].kind not in (K.STRING, K.STRING_EX):
                self.diagnostics.error(head.span, "unknownDirectiveValue")
                return i + 2
            setting = toks[i + 3].value
            if setting == "公開":
                opts.export_default = True
            elif setting == "非公開":
                opts.export_default = False
            else:
                self.diagnostics.error(toks[i + 3].span, "unknownDirectiveValue")
            return i + 4
        else:
            return None
        head.kind = K.DIRECTIVE
        return i + 2

    # ------------------------------------------------------------------
    # Function enumeration
    # ------------------------------------------------------------------

    def _enumerate_functions(self) -> None:
        for i, tok in enumerate(self._out):
            if tok.kind in _ANCHORS:
                self._read_header(i)

    def _read_header(self, anchor: int) -> None:
        toks = self._out
        anchor_tok = toks[anchor]
        diags = self.diagnostics
        i = anchor + 1
        named = anchor_tok.kind in (K.DEF_FUNC, K.DEF_TEST)

        is_export = self._options.export_default
        is_private = False
        is_async = False
        if named and toks[i].kind == K.LBRACE:
            i, attrs = self._read_func_attrs(i)
            for attr in attrs:
                if attr == "公開":
                    is_export, is_private = True, False
                elif attr == "非公開":
                    is_export, is_private = False, True
                elif attr == "非同期":
                    is_async = True

        params: tuple[FuncParam, ...] = ()
        if toks[i].kind == K.LPAREN:
            params, i = read_param_list(toks, i, diags)
            i = self._skip_extra_params(i)

        name_tok: Token | None = None
        name_index: int | None = None
        if named:
            if toks[i].kind == K.WORD:
                name_tok = toks[i]
                name_index = i
                name_tok.kind = K.FUNC_NAME
                i += 1
            else:
                diags.error(anchor_tok.span, "funcNameMissing")
            if toks[i].kind == K.LPAREN:
                after, i = read_param_list(toks, i, diags)
                params = merge_params(params, after)
                i = self._skip_extra_params(i)
            if toks[i].kind == K.TOHA:
                i += 1
        self._headers[anchor] = i

        scope_id = f"func@{anchor}" if named else f"anon@{anchor}"
        if name_tok is not None:
            name = name_tok.core_text
            trimmed = str(name_tok.value)
        else:
            name = trimmed = ""
        decl = DeclaredThing(
            kind=DeclKind.FUNC,
            name=name,
            trimmed_name=trimmed,
            module=self._module,
            origin=Origin.GLOBAL if named else Origin.LOCAL,
            span=name_tok.span if name_tok is not None else anchor_tok.span,
            is_export=is_export,
            is_private=is_private,
            params=params,
            scope_id=scope_id,
            is_async=is_async,
            token_index=name_index if name_index is not None else anchor,
        )
        anchor_tok.meta = decl
        if name_tok is None:
            return
        name_tok.meta = decl
        if trimmed in self._funcs:
            diags.error(name_tok.span, "duplicateFunction", name=trimmed)
            return
        self._funcs[trimmed] = decl

    def _skip_extra_params(self, i: int) -> int:
        """Report and skip further parameter lists at the same header position."""
        toks = self._out
        while toks[i].kind == K.LPAREN:
            self.diagnostics.error(toks[i].span, "duplicateParamBlock")
            _, i = read_param_list(toks, i, self.diagnostics)
        return i

    def _read_func_attrs(self, start: int) -> tuple[int, list[str]]:
        toks = self._out
        found: list[str] = []
        i = start + 1
        while toks[i].kind not in (K.RBRACE, K.EOL, K.EOF):
            tok = toks[i]
            if tok.kind == K.WORD:
                tok.kind = K.FUNC_ATTRIBUTE
                name = str(tok.value)
                if name not in FUNC_ATTRIBUTES:
                    self.diagnostics.warn(tok.span, "unknownAttribute", name=name)
                found.append(name)
            i += 1
        if toks[i].kind != K.RBRACE:
            self.diagnostics.error(toks[start].span, "attributeNotClosed")
            return i, found
        return i + 1, found


def fix_tokens(raw: list[Token], module: str = "main", max_diagnostics: int = 100) -> FixResult:
    """Convenience function: normalize raw tokens without mutating them."""
    return Normalizer(raw, module, max_diagnostics).fix()
