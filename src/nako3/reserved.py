"""Reserved words, keyed by okurigana-trimmed form."""

from __future__ import annotations

from nako3.tokens import Token, TokenKind

K = TokenKind

RESERVED: dict[str, TokenKind] = {
    # Loops
    "回": K.KAI,
    "間": K.AIDA,
    "繰返": K.KURIKAESU,
    "反復": K.HANPUKU,
    "後判定": K.ATOHANTEI,
    # Control
    "条件分岐": K.JOUKEN_BUNKI,
    "抜": K.NUKERU,
    "続": K.TSUZUKERU,
    "戻": K.MODORU,
    "逐次実行": K.CHIKUJI,
    "エラー監視": K.ERROR_KANSHI,
    # Assignment and declarations
    "代入": K.DAINYU,
    "定": K.SADAMERU,
    "変数": K.HENSU,
    "定数": K.TEISU,
    "増": K.INC,
    "減": K.DEC,
    # Modes
    "実行速度優先": K.SPEED_MODE,
    "パフォーマンスモニタ適用": K.PERF_MONITOR,
    # Values and comparators
    "それ": K.SORE,
    "そう": K.SORE,
    "永遠": K.EIEN,
    "以上": K.IJOU,
    "以下": K.IKA,
    "未満": K.MIMAN,
    "超": K.CHOU,
}

# Words that are only reserved with a particular particle (「先に」「次に」)
RESERVED_WITH_JOSI: dict[tuple[str, str], TokenKind] = {
    ("先", "に"): K.SAKINI,
    ("次", "に"): K.TSUGINI,
}


def lookup_reserved(tok: Token) -> TokenKind | None:
    """Return the reserved kind for a word token, or None."""
    key = str(tok.value)
    kind = RESERVED.get(key)
    if kind is not None:
        return kind
    return RESERVED_WITH_JOSI.get((key, tok.josi))
