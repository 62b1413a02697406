"""Particle (josi) tables and the matcher used by the tokenizer."""

from __future__ import annotations

import re

# Conditional particles; the normalizer turns them into control tokens
TARAREBA_JOSI: tuple[str, ...] = ("でなければ", "なければ", "ならば", "なら", "たら", "れば")

# Particles that carry no meaning and are dropped (「表示すること」「5です」)
REMOVE_JOSI: tuple[str, ...] = ("こと", "である", "です", "します", "でした")

NORMAL_JOSI: tuple[str, ...] = (
    "について",
    "くらい",
    "なのか",
    "までを",
    "までの",
    "による",
    "とは",
    "から",
    "まで",
    "だけ",
    "より",
    "ほど",
    "など",
    "ずつ",
    "いて",
    "えて",
    "きて",
    "けて",
    "して",
    "って",
    "にて",
    "みて",
    "めて",
    "ねて",
    "では",
    "には",
    "は~",
    "は～",
    "んで",
    "ずに",
    "は",
    "を",
    "に",
    "へ",
    "で",
    "と",
    "が",
    "の",
)

JOSI_LIST: tuple[str, ...] = tuple(
    sorted({*TARAREBA_JOSI, *REMOVE_JOSI, *NORMAL_JOSI}, key=len, reverse=True)
)

# Particles after which a call result is chained into the next call
RENBUN_JOSI: frozenset[str] = frozenset(
    {"いて", "えて", "きて", "けて", "して", "って", "にて", "みて", "めて", "ねて", "んで"}
)

NARABA_JOSI: frozenset[str] = frozenset({"ならば", "なら", "たら", "れば"})
DENAKEREBA_JOSI: frozenset[str] = frozenset({"でなければ", "なければ"})
EQ_JOSI: frozenset[str] = frozenset({"は", "は~", "は～"})

_REMOVE = frozenset(REMOVE_JOSI)

# Optional leading blanks, optional 「もの」, then the longest particle
JOSI_RE = re.compile(r"[\t ]*(?:もの)?(?:" + "|".join(map(re.escape, JOSI_LIST)) + ")")

SEPARATOR_CHARS = frozenset(",、，")


def match_josi(src: str, pos: int) -> tuple[int, str] | None:
    """Match a particle at *pos*.

    Returns ``(end, josi)`` where *end* is the offset after the particle and
    *josi* the normalized particle (empty for the removal class, with any
    「もの」 prefix stripped), or None when no particle starts at *pos*.
    """
    m = JOSI_RE.match(src, pos)
    if m is None:
        return None
    josi = m.group(0).lstrip("\t ")
    if josi.startswith("もの"):
        josi = josi[2:]
    if josi in _REMOVE:
        josi = ""
    return m.end(), josi
