"""nako3 lexer: converts source text into a flat, lossless raw token stream."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from nako3.errors import DiagnosticList
from nako3.josi import SEPARATOR_CHARS, match_josi
from nako3.rules import COMPARE_SUFFIXES, CSS_UNIT_RE, RULES, UNIT_RE, LexRule, Scanner
from nako3.tokens import (
    INDENT_CHARS,
    NO_INDENT,
    Indent,
    Position,
    Span,
    Token,
    TokenKind,
    indent_width,
    is_hiragana,
    is_word_char,
)

logger = logging.getLogger(__name__)

_HIRAGANA_AIDA = re.compile(r"[ぁ-ゟ]間$")

# Past-tense okurigana; a kanji or katakana after it starts a new word (足した結果)
_PAST_ENDINGS = ("た", "だ")
_INJECT_OPEN = "{｛"
_INJECT_CLOSE = frozenset("}｝")


@dataclass(slots=True)
class _Cursor:
    """Scan position shared by the outer scan and any interpolation re-entry."""

    pos: int = 0
    line: int = 1
    col: int = 1
    indent: Indent = NO_INDENT


@dataclass(slots=True)
class LexResult:
    tokens: list[Token]
    line_lengths: list[int]
    diagnostics: DiagnosticList


class Lexer:
    """Tokenize nako3 source text using the priority-ordered rule table."""

    def __init__(self, source: str, filename: str = "input.nako3", max_diagnostics: int = 100) -> None:
        self._source = source
        self._filename = filename
        self._tokens: list[Token] = []
        self._line_lengths: list[int] = []
        self.diagnostics = DiagnosticList(max_diagnostics)

    def tokenize(self) -> tuple[list[Token], list[int]]:
        """Tokenize the full source; return tokens and per-line column lengths."""
        cur = _Cursor()
        self._scan(cur)
        self._line_lengths.append(cur.col - 1)
        logger.debug(
            "%s: %d tokens, %d lines, %d lexical problems",
            self._filename,
            len(self._tokens),
            len(self._line_lengths),
            len(self.diagnostics),
        )
        return self._tokens, self._line_lengths

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _here(cur: _Cursor) -> Position:
        return Position(cur.line, cur.col, cur.pos)

    def _advance_to(self, cur: _Cursor, end: int) -> None:
        src = self._source
        while cur.pos < end:
            ch = src[cur.pos]
            if ch == "\n" or (ch == "\r" and src[cur.pos + 1 : cur.pos + 2] != "\n"):
                self._line_lengths.append(cur.col - 1)
                cur.line += 1
                cur.col = 1
                cur.indent = NO_INDENT
            elif ch != "\r":
                cur.col += 1
            cur.pos += 1

    def _emit(
        self,
        kind: TokenKind,
        start: Position,
        cur: _Cursor,
        value: object,
        indent: Indent,
        *,
        result_end: Position | None = None,
        josi: str = "",
        josi_start: Position | None = None,
        unit: str = "",
    ) -> Token:
        end = self._here(cur)
        tok = Token(
            raw_kind=kind,
            text=self._source[start.offset : end.offset],
            value=value,
            span=Span(start, end),
            result_end=result_end or end,
            indent=indent,
            josi=josi,
            josi_start=josi_start,
            unit=unit,
        )
        self._tokens.append(tok)
        return tok

    # ------------------------------------------------------------------
    # Main scan
    # ------------------------------------------------------------------

    def _scan(self, cur: _Cursor, nested: bool = False, abort: str = "") -> bool:
        """Scan tokens from *cur*.

        At top level this runs to the end of input. When *nested* (inside a
        string interpolation) it stops before an unbalanced closing brace and
        returns True, or returns False at a line end, at *abort* (the string's
        closing quote) or at end of input.
        """
        src = self._source
        depth = 0
        while cur.pos < len(src):
            if nested:
                ch = src[cur.pos]
                if ch in "\r\n" or (abort and src.startswith(abort, cur.pos)):
                    return False
                if ch in _INJECT_CLOSE and depth == 0:
                    return True
            elif cur.col == 1 and cur.indent is NO_INDENT:
                if self._scan_indent(cur):
                    continue

            for rule in RULES:
                m = rule.pattern.match(src, cur.pos)
                if m is None or m.end() == cur.pos:
                    continue
                if nested and rule.kind == TokenKind.LBRACE:
                    depth += 1
                elif nested and rule.kind == TokenKind.RBRACE:
                    depth -= 1
                self._apply_rule(rule, m, cur)
                break
            else:
                self._invalid_char(cur)
        return False

    def _scan_indent(self, cur: _Cursor) -> bool:
        src = self._source
        end = cur.pos
        while end < len(src) and src[end] in INDENT_CHARS:
            end += 1
        if end == cur.pos:
            return False
        text = src[cur.pos : end]
        start = self._here(cur)
        indent = Indent(text, len(text), indent_width(text))
        self._advance_to(cur, end)
        cur.indent = indent
        self._emit(TokenKind.SPACE, start, cur, text, indent)
        return True

    def _apply_rule(self, rule: LexRule, m: re.Match[str], cur: _Cursor) -> None:
        start = self._here(cur)
        indent = cur.indent
        if rule.scanner is Scanner.RANGE_COMMENT:
            self._scan_range_comment(m, cur, start, indent)
            return
        if rule.scanner is Scanner.STRING or rule.scanner is Scanner.STRING_EX:
            self._scan_string(rule, m, cur, start, indent)
            return
        if rule.scanner is Scanner.WORD:
            self._scan_word(cur, start, indent)
            return

        self._advance_to(cur, m.end())
        value = rule.decode(m.group()) if rule.decode else m.group()
        if rule.read_josi:
            self._finish(rule.kind, start, cur, value, indent)
        else:
            self._emit(rule.kind, start, cur, value, indent)

    def _invalid_char(self, cur: _Cursor) -> None:
        start = self._here(cur)
        ch = self._source[cur.pos]
        self._advance_to(cur, cur.pos + 1)
        tok = self._emit(TokenKind.CHARACTER, start, cur, ch, cur.indent)
        self.diagnostics.error(tok.span, "invalidChar", char=ch)

    # ------------------------------------------------------------------
    # Suffix rules: unit, particle, separator
    # ------------------------------------------------------------------

    def _finish(
        self,
        kind: TokenKind,
        start: Position,
        cur: _Cursor,
        value: object,
        indent: Indent,
    ) -> Token:
        src = self._source
        unit = ""
        if kind == TokenKind.NUMBER:
            m = CSS_UNIT_RE.match(src, cur.pos)
            if m is not None:
                self._advance_to(cur, m.end())
                kind = TokenKind.STRING
                value = src[start.offset : cur.pos]
            else:
                m = UNIT_RE.match(src, cur.pos)
                if m is not None:
                    self._advance_to(cur, m.end())
                    unit = m.group()
        return self._read_josi(kind, start, cur, value, indent, unit=unit)

    def _read_josi(
        self,
        kind: TokenKind,
        start: Position,
        cur: _Cursor,
        value: object,
        indent: Indent,
        *,
        unit: str = "",
        found: tuple[int, str] | None = None,
    ) -> Token:
        src = self._source
        result_end = self._here(cur)
        if found is None:
            found = match_josi(src, cur.pos)
        josi = ""
        josi_start: Position | None = None
        if found is not None:
            end, josi = found
            josi_start = self._josi_head(cur, end)
            self._advance_to(cur, end)
            if cur.pos < len(src) and src[cur.pos] in SEPARATOR_CHARS:
                self._advance_to(cur, cur.pos + 1)
            if not josi:
                josi_start = None
        return self._emit(
            kind,
            start,
            cur,
            value,
            indent,
            result_end=result_end,
            josi=josi,
            josi_start=josi_start,
            unit=unit,
        )

    def _josi_head(self, cur: _Cursor, end: int) -> Position:
        """Position of the first non-blank character of a particle."""
        src = self._source
        skip = 0
        while cur.pos + skip < end and src[cur.pos + skip] in "\t ":
            skip += 1
        return Position(cur.line, cur.col + skip, cur.pos + skip)

    # ------------------------------------------------------------------
    # Sub-scanners
    # ------------------------------------------------------------------

    def _scan_range_comment(self, m: re.Match[str], cur: _Cursor, start: Position, indent: Indent) -> None:
        src = self._source
        closer = "*/" if m.group() == "/*" else "＊／"
        end = src.find(closer, m.end())
        if end < 0:
            # Runs to end of input; the error marks only the opener
            opener = Position(start.line, start.column + len(m.group()), start.offset + len(m.group()))
            self._advance_to(cur, len(src))
            self._emit(TokenKind.RANGE_COMMENT, start, cur, src[m.end() :], indent)
            self.diagnostics.error(Span(start, opener), "unclosedBlockComment")
            return
        value = src[m.end() : end]
        self._advance_to(cur, end + len(closer))
        self._emit(TokenKind.RANGE_COMMENT, start, cur, value, indent)

    def _scan_string(self, rule: LexRule, m: re.Match[str], cur: _Cursor, start: Position, indent: Indent) -> None:
        src = self._source
        closer = rule.closer
        interpolate = rule.scanner is Scanner.STRING_EX
        self._advance_to(cur, m.end())
        seg_start = start
        content_start = cur.pos
        while cur.pos < len(src):
            if src.startswith(closer, cur.pos):
                value = src[content_start : cur.pos]
                self._advance_to(cur, cur.pos + len(closer))
                self._finish(rule.kind, seg_start, cur, value, indent)
                return
            ch = src[cur.pos]
            if interpolate and ch in _INJECT_OPEN:
                self._emit(rule.kind, seg_start, cur, src[content_start : cur.pos], indent)
                open_pos = self._here(cur)
                self._advance_to(cur, cur.pos + 1)
                self._emit(TokenKind.STRING_INJECT_START, open_pos, cur, ch, indent)
                if self._scan(cur, nested=True, abort=closer):
                    close_pos = self._here(cur)
                    close_ch = src[cur.pos]
                    self._advance_to(cur, cur.pos + 1)
                    self._emit(TokenKind.STRING_INJECT_END, close_pos, cur, close_ch, indent)
                else:
                    self.diagnostics.error(
                        Span(open_pos, self._here(cur)),
                        "unclosedInterpolation",
                        open=ch,
                        close="}" if ch == "{" else "｝",
                    )
                seg_start = self._here(cur)
                content_start = cur.pos
                continue
            self._advance_to(cur, cur.pos + 1)

        tok = self._emit(rule.kind, seg_start, cur, src[content_start : cur.pos], indent)
        self.diagnostics.error(Span(start, tok.span.end), "unclosedString", closer=closer)

    def _scan_word(self, cur: _Cursor, start: Position, indent: Indent) -> None:
        """Scan a bare word, checking for a particle before each hiragana step."""
        src = self._source
        head = cur.pos
        p = head
        found: tuple[int, str] | None = None
        seen_word = False
        while p < len(src):
            if p > head:
                found = match_josi(src, p)
                if found is not None:
                    break
            ch = src[p]
            if is_word_char(ch):
                if p > head and src[p - 1] in _PAST_ENDINGS and seen_word:
                    break
                seen_word = True
                while p < len(src) and is_word_char(src[p]):
                    p += 1
                continue
            if is_hiragana(ch):
                p += 1
                continue
            break

        word = src[head:p]
        for suffix in COMPARE_SUFFIXES:
            if len(word) > len(suffix) and word.endswith(suffix):
                p -= len(suffix)
                found = None
                break
        else:
            if _HIRAGANA_AIDA.search(word):
                p -= 1
                found = None

        self._advance_to(cur, p)
        value = src[head:p]
        if found is None:
            self._emit(TokenKind.WORD, start, cur, value, indent)
        else:
            self._read_josi(TokenKind.WORD, start, cur, value, indent, found=found)


def tokenize(source: str, filename: str = "input.nako3", max_diagnostics: int = 100) -> LexResult:
    """Convenience function: tokenize source text and return tokens, line lengths and problems."""
    lexer = Lexer(source, filename, max_diagnostics)
    tokens, line_lengths = lexer.tokenize()
    return LexResult(tokens, line_lengths, lexer.diagnostics)
