"""Token kinds, token data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nako3.declarations import DeclaredThing


class TokenKind(Enum):
    # Structural
    EOL = "eol"  # newline, ; 。
    EOF = "eof"
    SPACE = "space"  # indentation and inline whitespace
    COMMA = "comma"  # , 、 ，
    LINE_COMMENT = "line_comment"
    RANGE_COMMENT = "range_comment"
    LINE_CONTINUATION = "line_continuation"  # _ before end of line
    CHARACTER = "character"  # input matching no rule
    DIRECTIVE = "directive"  # ! at the head of a preprocessor line

    # Definitions
    DEF_FUNC = "def_func"  # ●
    DEF_TEST = "def_test"  # ●テスト:
    FUNC_OBJ = "func_obj"  # 関数( ... anonymous function
    FUNC_NAME = "func_name"
    FUNC_ATTRIBUTE = "func_attribute"
    FUNCTION_ARG_PARAMETER = "function_arg_parameter"
    FUNCTION_ARG_ATTRIBUTE = "function_arg_attribute"

    # Literals
    NUMBER = "number"
    BIGINT = "bigint"
    STRING = "string"  # 『』 '' 🌿
    STRING_EX = "string_ex"  # 「」 "" “” 🌴 (interpolating)
    STRING_INJECT_START = "string_inject_start"
    STRING_INJECT_END = "string_inject_end"
    WORD = "word"

    # Keywords recognised by the rule table or the normalizer
    KOKOKARA = "ここから"
    KOKOMADE = "ここまで"
    MOSHI = "もし"
    CHIGAEBA = "違えば"
    NARABA = "ならば"
    DENAKEREBA = "でなければ"
    TOHA = "とは"
    NIWA = "には"
    ERROR_NARABA = "エラーならば"
    INC_KURIKAESU = "増繰返"
    DEC_KURIKAESU = "減繰返"

    # Operators
    EQ = "eq"  # = == ＝
    STRICT_EQ = "==="
    STRICT_NOTEQ = "!=="
    NOTEQ = "noteq"
    GT = "gt"
    GTEQ = "gteq"
    LT = "lt"
    LTEQ = "lteq"
    NOT = "not"
    AND = "and"
    OR = "or"
    PLUS = "+"
    MINUS = "-"
    MUL = "*"
    DIV = "÷"
    INTDIV = "÷÷"
    MOD = "%"
    POW = "**"
    CARET = "^"
    AMP = "&"
    SHIFT_L = "<<"
    SHIFT_R = ">>"
    SHIFT_R0 = ">>>"
    ARROW = "←"
    AT = "@"
    DOLLAR = "$"
    LBRACKET = "["
    RBRACKET = "]"
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    PIPE = "|"
    COLON = ":"

    # Reserved words (assigned by the semantic tagger)
    KAI = "回"
    AIDA = "間"
    KURIKAESU = "繰返"
    HANPUKU = "反復"
    ATOHANTEI = "後判定"
    JOUKEN_BUNKI = "条件分岐"
    NUKERU = "抜"
    TSUZUKERU = "続"
    MODORU = "戻"
    SAKINI = "先に"
    TSUGINI = "次に"
    DAINYU = "代入"
    SADAMERU = "定"
    SPEED_MODE = "実行速度優先"
    PERF_MONITOR = "パフォーマンスモニタ適用"
    CHIKUJI = "逐次実行"
    INC = "増"
    DEC = "減"
    HENSU = "変数"
    TEISU = "定数"
    ERROR_KANSHI = "エラー監視"
    SORE = "それ"
    EIEN = "永遠"
    IJOU = "以上"
    IKA = "以下"
    MIMAN = "未満"
    CHOU = "超"

    # Semantic categories
    USER_FUNC = "user_func"
    SYS_FUNC = "sys_func"
    USER_VAR = "user_var"
    USER_CONST = "user_const"
    SYS_VAR = "sys_var"
    SYS_CONST = "sys_const"
    PROPERTY = "property"


class TokenGroup(Enum):
    """Display group consumed by highlighting."""

    NONE = auto()
    COMMENT = auto()
    STRING = auto()
    NUMBER = auto()
    KEYWORD = auto()
    OPERATOR = auto()
    FUNCTION = auto()
    VARIABLE = auto()
    CONSTANT = auto()
    PARAMETER = auto()
    PROPERTY = auto()
    ERROR = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


@dataclass(frozen=True, slots=True)
class Indent:
    """Leading whitespace of a line and its computed level."""

    text: str = ""
    length: int = 0
    level: int = 0


NO_INDENT = Indent()


@dataclass(slots=True)
class Link:
    """Joint-highlight linkage between the tokens of one construct.

    The primary token has ``main`` equal to its own index and lists its
    auxiliary tokens in ``children``; auxiliary tokens point back via ``main``.
    """

    main: int
    children: list[int] = field(default_factory=list)


@dataclass(slots=True)
class Token:
    """A lexical unit, refined in place by the later pipeline stages."""

    raw_kind: TokenKind
    text: str
    value: object
    span: Span
    result_end: Position
    indent: Indent = NO_INDENT
    josi: str = ""
    josi_start: Position | None = None
    unit: str = ""
    kind: TokenKind | None = None
    func_kind: TokenKind | None = None
    parse_kind: TokenKind | None = None
    meta: DeclaredThing | None = None
    link: Link | None = None

    @property
    def core_text(self) -> str:
        """Source text without the trailing particle and separator."""
        return self.text[: self.result_end.offset - self.span.start.offset]

    @property
    def josi_text(self) -> str:
        """Raw source text of the trailing particle (and absorbed separator)."""
        return self.text[self.result_end.offset - self.span.start.offset :]

    @property
    def effective_kind(self) -> TokenKind:
        """Most derived kind assigned so far."""
        for k in (self.parse_kind, self.func_kind, self.kind):
            if k is not None:
                return k
        return self.raw_kind

    @property
    def group(self) -> TokenGroup:
        return _GROUPS.get(self.effective_kind, TokenGroup.KEYWORD)

    def __repr__(self) -> str:
        josi = f", josi={self.josi!r}" if self.josi else ""
        return f"Token({self.effective_kind.name}, {self.value!r}{josi} @{self.span.start.line}:{self.span.start.column})"


_GROUPS: dict[TokenKind, TokenGroup] = {
    TokenKind.EOL: TokenGroup.NONE,
    TokenKind.EOF: TokenGroup.NONE,
    TokenKind.SPACE: TokenGroup.NONE,
    TokenKind.COMMA: TokenGroup.NONE,
    TokenKind.LINE_COMMENT: TokenGroup.COMMENT,
    TokenKind.RANGE_COMMENT: TokenGroup.COMMENT,
    TokenKind.LINE_CONTINUATION: TokenGroup.COMMENT,
    TokenKind.CHARACTER: TokenGroup.ERROR,
    TokenKind.NUMBER: TokenGroup.NUMBER,
    TokenKind.BIGINT: TokenGroup.NUMBER,
    TokenKind.STRING: TokenGroup.STRING,
    TokenKind.STRING_EX: TokenGroup.STRING,
    TokenKind.STRING_INJECT_START: TokenGroup.OPERATOR,
    TokenKind.STRING_INJECT_END: TokenGroup.OPERATOR,
    TokenKind.WORD: TokenGroup.VARIABLE,
    TokenKind.FUNC_NAME: TokenGroup.FUNCTION,
    TokenKind.FUNC_ATTRIBUTE: TokenGroup.KEYWORD,
    TokenKind.FUNCTION_ARG_PARAMETER: TokenGroup.PARAMETER,
    TokenKind.FUNCTION_ARG_ATTRIBUTE: TokenGroup.KEYWORD,
    TokenKind.USER_FUNC: TokenGroup.FUNCTION,
    TokenKind.SYS_FUNC: TokenGroup.FUNCTION,
    TokenKind.USER_VAR: TokenGroup.VARIABLE,
    TokenKind.SYS_VAR: TokenGroup.VARIABLE,
    TokenKind.USER_CONST: TokenGroup.CONSTANT,
    TokenKind.SYS_CONST: TokenGroup.CONSTANT,
    TokenKind.SORE: TokenGroup.VARIABLE,
    TokenKind.PROPERTY: TokenGroup.PROPERTY,
}
for _k in (
    TokenKind.EQ,
    TokenKind.STRICT_EQ,
    TokenKind.STRICT_NOTEQ,
    TokenKind.NOTEQ,
    TokenKind.GT,
    TokenKind.GTEQ,
    TokenKind.LT,
    TokenKind.LTEQ,
    TokenKind.NOT,
    TokenKind.AND,
    TokenKind.OR,
    TokenKind.PLUS,
    TokenKind.MINUS,
    TokenKind.MUL,
    TokenKind.DIV,
    TokenKind.INTDIV,
    TokenKind.MOD,
    TokenKind.POW,
    TokenKind.CARET,
    TokenKind.AMP,
    TokenKind.SHIFT_L,
    TokenKind.SHIFT_R,
    TokenKind.SHIFT_R0,
    TokenKind.ARROW,
    TokenKind.AT,
    TokenKind.DOLLAR,
    TokenKind.LBRACKET,
    TokenKind.RBRACKET,
    TokenKind.LPAREN,
    TokenKind.RPAREN,
    TokenKind.LBRACE,
    TokenKind.RBRACE,
    TokenKind.PIPE,
    TokenKind.COLON,
):
    _GROUPS[_k] = TokenGroup.OPERATOR


# Characters allowed at the head of a line as indentation
INDENT_CHARS = frozenset(" \t　・⎿└｜")


def indent_width(text: str) -> int:
    """Return the indent level of a run of leading whitespace.

    Half-width space counts 1, full-width space 2, a tab rounds up to the next
    multiple of 8, any other continuation mark counts 1.
    """
    level = 0
    for ch in text:
        if ch == "\t":
            level = (level // 8 + 1) * 8
        elif ch == "　":
            level += 2
        else:
            level += 1
    return level


def is_hiragana(ch: str) -> bool:
    return "ぁ" <= ch <= "ゟ"


def is_word_char(ch: str) -> bool:
    """Return True for characters that may continue a bare word (not hiragana)."""
    if ch.isascii():
        return ch.isalnum() or ch == "_"
    return (
        "一" <= ch <= "鿏"  # CJK ideographs
        or ch == "々"  # 々
        or "ァ" <= ch <= "ヶ"  # katakana
        or ch == "ー"
        or "０" <= ch <= "９"  # full-width digits
        or "Ａ" <= ch <= "Ｚ"  # full-width upper
        or "ａ" <= ch <= "ｚ"  # full-width lower
        or ch == "＿"  # ＿
        or "①" <= ch <= "⓿"  # circled numbers
        or "❶" <= ch <= "❿"
        or "㉑" <= ch <= "㉟"
    )
