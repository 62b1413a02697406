"""Priority-ordered lexical rule table.

The tokenizer tries each rule in order and the first match wins, so numeric
literals come before words and comments come before operators.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto

from nako3.tokens import TokenKind

_FULL_TO_HALF = str.maketrans(
    "０１２３４５６７８９．＿ｘＸｏＯｂＢｅＥａｂｃｄｅｆＡＢＣＤＥＦ＋－",
    "0123456789._xXoObBeEabcdefABCDEF+-",
)


class Scanner(Enum):
    """Sub-scanners a rule can delegate to after matching its opening text."""

    RANGE_COMMENT = auto()
    STRING = auto()
    STRING_EX = auto()
    WORD = auto()


@dataclass(frozen=True, slots=True)
class LexRule:
    """One entry of the rule table."""

    kind: TokenKind
    pattern: re.Pattern[str]
    read_josi: bool = False
    scanner: Scanner | None = None
    closer: str = ""
    decode: Callable[[str], object] | None = None


def _number(text: str) -> int | float:
    s = text.translate(_FULL_TO_HALF).replace("_", "")
    if s[:2] in ("0x", "0X"):
        return int(s[2:], 16)
    if s[:2] in ("0o", "0O"):
        return int(s[2:], 8)
    if s[:2] in ("0b", "0B"):
        return int(s[2:], 2)
    if any(c in s for c in ".eE"):
        return float(s)
    return int(s)


def _bigint(text: str) -> int:
    return int(text.translate(_FULL_TO_HALF).replace("_", "").rstrip("n"))


def _r(
    kind: TokenKind,
    pattern: str,
    *,
    read_josi: bool = False,
    scanner: Scanner | None = None,
    closer: str = "",
    decode: Callable[[str], object] | None = None,
) -> LexRule:
    return LexRule(kind, re.compile(pattern), read_josi, scanner, closer, decode)


K = TokenKind

RULES: tuple[LexRule, ...] = (
    _r(K.EOL, r"\r\n|\r|\n"),
    _r(K.EOL, r"[;；。]"),
    _r(K.SPACE, r"[ \t　・]+"),
    _r(K.COMMA, r"[,，、]"),
    # Comments
    _r(K.LINE_COMMENT, r"[#＃※][^\r\n]*"),
    _r(K.LINE_COMMENT, r"(?://|／／)[^\r\n]*"),
    _r(K.RANGE_COMMENT, r"/\*|／＊", scanner=Scanner.RANGE_COMMENT),
    # Definitions
    _r(K.DEF_TEST, r"●テスト[:：]"),
    _r(K.DEF_FUNC, r"●"),
    # Numbers
    _r(K.NUMBER, r"0[xX][0-9a-fA-F]+(?:_[0-9a-fA-F]+)*", read_josi=True, decode=_number),
    _r(K.NUMBER, r"0[oO][0-7]+(?:_[0-7]+)*", read_josi=True, decode=_number),
    _r(K.NUMBER, r"0[bB][01]+(?:_[01]+)*", read_josi=True, decode=_number),
    _r(K.BIGINT, r"\d+(?:_\d+)*n(?![a-zA-Z])", read_josi=True, decode=_bigint),
    _r(
        K.NUMBER,
        r"\d+(?:_\d+)*\.(?:\d+(?:_\d+)*)?(?:[eE][+-]?\d+(?:_\d+)*)?",
        read_josi=True,
        decode=_number,
    ),
    _r(K.NUMBER, r"\.\d+(?:_\d+)*(?:[eE][+-]?\d+(?:_\d+)*)?", read_josi=True, decode=_number),
    _r(K.NUMBER, r"\d+(?:_\d+)*(?:[eE][+-]?\d+(?:_\d+)*)?", read_josi=True, decode=_number),
    _r(K.NUMBER, r"[０-９]+(?:[．.][０-９]+)?", read_josi=True, decode=_number),
    # Block keywords
    _r(K.KOKOKARA, r"ここから[,、]?"),
    _r(K.KOKOMADE, r"ここまで|💧"),
    _r(K.MOSHI, r"もしも?"),
    _r(K.CHIGAEBA, r"違えば"),
    _r(K.INC_KURIKAESU, r"増(?:やし|や|え)?(?:て)?繰り?返(?:す|し)?"),
    _r(K.DEC_KURIKAESU, r"減(?:らし|ら)?(?:て)?繰り?返(?:す|し)?"),
    # Operators, longest first
    _r(K.SHIFT_R0, r">>>"),
    _r(K.SHIFT_R, r">>"),
    _r(K.SHIFT_L, r"<<"),
    _r(K.STRICT_EQ, r"==="),
    _r(K.STRICT_NOTEQ, r"!=="),
    _r(K.GTEQ, r"≧|>=|=>|＞＝"),
    _r(K.LTEQ, r"≦|<=|=<|＜＝"),
    _r(K.NOTEQ, r"≠|<>|!=|！＝"),
    _r(K.ARROW, r"←|<--"),
    _r(K.EQ, r"==|＝＝|=|＝"),
    _r(K.NOT, r"[!！]"),
    _r(K.GT, r"[>＞]"),
    _r(K.LT, r"[<＜]"),
    _r(K.AND, r"かつ|&&"),
    _r(K.OR, r"または|或いは|あるいは|\|\|"),
    _r(K.AT, r"[@＠]"),
    _r(K.DOLLAR, r"[$＄]"),
    _r(K.PLUS, r"[+＋]"),
    _r(K.MINUS, r"[-－]"),
    _r(K.POW, r"\*\*|××"),
    _r(K.MUL, r"[*×＊]"),
    _r(K.INTDIV, r"÷÷"),
    _r(K.DIV, r"[÷/／]"),
    _r(K.MOD, r"[%％]"),
    _r(K.CARET, r"\^"),
    _r(K.AMP, r"[&＆]"),
    _r(K.LBRACKET, r"[\[［]"),
    _r(K.RBRACKET, r"[\]］]", read_josi=True),
    _r(K.LPAREN, r"[(（]"),
    _r(K.RPAREN, r"[)）]", read_josi=True),
    _r(K.LBRACE, r"[{｛]"),
    _r(K.RBRACE, r"[}｝]", read_josi=True),
    _r(K.PIPE, r"[|｜]"),
    _r(K.COLON, r"[:：]"),
    # Strings
    _r(K.STRING, r"🌿", read_josi=True, scanner=Scanner.STRING, closer="🌿"),
    _r(K.STRING_EX, r"🌴", read_josi=True, scanner=Scanner.STRING_EX, closer="🌴"),
    _r(K.STRING_EX, r"「", read_josi=True, scanner=Scanner.STRING_EX, closer="」"),
    _r(K.STRING, r"『", read_josi=True, scanner=Scanner.STRING, closer="』"),
    _r(K.STRING_EX, r"“", read_josi=True, scanner=Scanner.STRING_EX, closer="”"),
    _r(K.STRING_EX, r'"', read_josi=True, scanner=Scanner.STRING_EX, closer='"'),
    _r(K.STRING, r"'", read_josi=True, scanner=Scanner.STRING, closer="'"),
    # Words
    _r(K.WORD, r"《[^》\r\n]+》", read_josi=True, decode=lambda s: s[1:-1]),
    _r(K.WORD, r"【[^】\r\n]+】", read_josi=True, decode=lambda s: s[1:-1]),
    _r(K.WORD, r"[_a-zA-Zぁ-ゟァ-ヶー々一-鿏Ａ-Ｚａ-ｚ＿①-⓿❶-❿㉑-㉟]", scanner=Scanner.WORD),
)

# A number followed by a CSS unit becomes a string literal ("10px")
CSS_UNIT_RE = re.compile(r"(?:px|em|ex|rem|vw|vh|vmin|vmax)(?![a-zA-Z])")

# Measurement words absorbed into a number's unit field ("3個", "5cm")
UNIT_RE = re.compile(
    r"(?:円|ドル|元|歩|㎡|坪|度|℃|°|個|つ|本|冊|才|歳|匹|枚|皿|セット|羽|人|件|行|列|機|品"
    r"|mm|cm|km|kg|mb|kb|gb|m|g|t|b|ｍｍ|ｃｍ|ｋｍ|ｋｇ|ｍ|ｇ)(?![a-zA-Zａ-ｚ])"
)

# Word endings split back off by the word scanner
COMPARE_SUFFIXES: tuple[str, ...] = ("以上", "以下", "未満")
