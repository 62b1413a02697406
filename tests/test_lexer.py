"""Tests for the tokenizer: rules, particles, indentation and error recovery."""

from __future__ import annotations

import pytest

from nako3.josi import match_josi
from nako3.lexer import tokenize
from nako3.tokens import TokenKind

from .conftest import ids

K = TokenKind


def raw_kinds(tokens):
    return [t.raw_kind for t in tokens]


# ---------------------------------------------------------------------------
# Lossless output
# ---------------------------------------------------------------------------


class TestLossless:
    @pytest.mark.parametrize(
        "source",
        [
            "「こんにちは」と表示。",
            "●(AをBに)足すとは\n  (A+B)を戻す\nここまで\n3を5に足す。",
            "# コメント\r\nA=1 /* 範囲 */ + 2\n",
            "「a{B}c」を表示\n\t『x』の長さ",
            "/* 閉じない",
            "「閉じない文字列",
            "A☆B",
        ],
    )
    def test_concatenated_text_reproduces_source(self, lex, source: str):
        assert "".join(t.text for t in lex(source)) == source

    def test_spans_are_contiguous(self, lex):
        tokens = lex("Aを表示\nBは5")
        for prev, cur in zip(tokens, tokens[1:]):
            assert prev.span.end.offset == cur.span.start.offset


# ---------------------------------------------------------------------------
# Positions and indentation
# ---------------------------------------------------------------------------


class TestPositions:
    def test_second_line_position(self, lex):
        tokens = lex("A\nBを")
        assert raw_kinds(tokens) == [K.WORD, K.EOL, K.WORD]
        start = tokens[2].span.start
        assert (start.line, start.column, start.offset) == (2, 1, 2)

    def test_line_lengths(self):
        assert tokenize("ab\ncd\n").line_lengths == [2, 2, 0]

    def test_crlf_counts_as_one_line_break(self):
        assert tokenize("ab\r\ncd").line_lengths == [2, 2]


class TestIndent:
    def test_indent_levels(self, lex):
        tokens = lex("表示\n  表示\n\t表示\n　表示")
        words = [t for t in tokens if t.raw_kind == K.WORD]
        assert [t.indent.level for t in words] == [0, 2, 8, 2]

    def test_indent_is_a_space_token(self, lex):
        tokens = lex("  表示")
        assert raw_kinds(tokens) == [K.SPACE, K.WORD]
        assert tokens[0].indent.text == "  "
        assert tokens[0].indent.length == 2

    def test_eol_carries_line_indent(self, lex):
        tokens = lex("  A\n")
        assert tokens[-1].raw_kind == K.EOL
        assert tokens[-1].indent.level == 2


# ---------------------------------------------------------------------------
# Particles
# ---------------------------------------------------------------------------


class TestJosi:
    def test_word_with_particle(self, lex):
        tok = lex("Aを表示")[0]
        assert tok.value == "A"
        assert tok.josi == "を"
        assert tok.core_text == "A"
        assert tok.josi_text == "を"

    def test_separator_absorbed_after_particle(self, lex):
        tokens = lex("Aを、Bを")
        assert raw_kinds(tokens) == [K.WORD, K.WORD]
        assert tokens[0].josi_text == "を、"

    def test_removal_particle_never_reaches_josi(self, lex):
        tok = lex("5です")[0]
        assert tok.raw_kind == K.NUMBER
        assert tok.value == 5
        assert tok.josi == ""
        assert tok.josi_start is None
        assert tok.text == "5です"

    def test_koto_is_removed_from_word(self, lex):
        tok = lex("表示すること")[0]
        assert tok.value == "表示する"
        assert tok.josi == ""
        assert tok.core_text == "表示する"

    def test_string_particle(self, lex):
        tok = lex("「a」を")[0]
        assert tok.value == "a"
        assert tok.josi == "を"

    def test_rparen_reads_particle(self, lex):
        tokens = lex("(A)を")
        assert tokens[-1].raw_kind == K.RPAREN
        assert tokens[-1].josi == "を"

    def test_josi_start_points_at_particle(self, lex):
        tok = lex("Aを")[0]
        assert tok.josi_start is not None
        assert tok.josi_start.offset == 1


class TestMatchJosi:
    def test_simple(self):
        assert match_josi("を", 0) == (1, "を")

    def test_longest_match(self):
        assert match_josi("までを", 0) == (3, "までを")

    def test_mono_prefix_is_stripped(self):
        assert match_josi("ものを", 0) == (3, "を")

    def test_removal_class_is_empty(self):
        assert match_josi("です", 0) == (2, "")

    def test_leading_blank(self):
        assert match_josi(" を", 0) == (2, "を")

    def test_no_particle(self):
        assert match_josi("表示", 0) is None


# ---------------------------------------------------------------------------
# Words
# ---------------------------------------------------------------------------


class TestWords:
    def test_okurigana_kept_in_raw_value(self, lex):
        tok = lex("繰り返す")[0]
        assert tok.raw_kind == K.WORD
        assert tok.value == "繰り返す"

    def test_compare_suffix_split(self, lex):
        assert [t.value for t in lex("A以上")] == ["A", "以上"]

    def test_hiragana_aida_split(self, lex):
        assert [t.value for t in lex("待つ間")] == ["待つ", "間"]

    def test_past_tense_ends_word(self, lex):
        tokens = lex("足した結果を")
        assert [t.value for t in tokens] == ["足した", "結果"]
        assert [t.josi for t in tokens] == ["", "を"]

    def test_okurigana_inside_word_not_split(self, lex):
        assert [t.value for t in lex("取り込む")] == ["取り込む"]

    def test_bracketed_word(self, lex):
        tok = lex("《変数 名》を")[0]
        assert tok.raw_kind == K.WORD
        assert tok.value == "変数 名"
        assert tok.josi == "を"

    def test_keywords(self, lex):
        tokens = lex("もし 違えば ここまで ここから ●")
        keywords = [t.raw_kind for t in tokens if t.raw_kind != K.SPACE]
        assert keywords == [K.MOSHI, K.CHIGAEBA, K.KOKOMADE, K.KOKOKARA, K.DEF_FUNC]


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


class TestNumbers:
    @pytest.mark.parametrize(
        ("source", "value"),
        [
            ("42", 42),
            ("0x1F", 31),
            ("0o17", 15),
            ("0b101", 5),
            ("1_000", 1000),
            ("3.5", 3.5),
            ("1e3", 1000.0),
            ("１２", 12),
        ],
    )
    def test_values(self, lex, source: str, value: float):
        tok = lex(source)[0]
        assert tok.raw_kind == K.NUMBER
        assert tok.value == value

    def test_bigint(self, lex):
        tok = lex("12n")[0]
        assert tok.raw_kind == K.BIGINT
        assert tok.value == 12

    def test_unit_is_absorbed(self, lex):
        tok = lex("3個を")[0]
        assert tok.value == 3
        assert tok.unit == "個"
        assert tok.josi == "を"

    def test_css_unit_makes_string(self, lex):
        tok = lex("10px")[0]
        assert tok.raw_kind == K.STRING
        assert tok.value == "10px"


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


class TestComments:
    @pytest.mark.parametrize("source", ["# メモ", "※メモ", "// メモ"])
    def test_line_comment(self, lex, source: str):
        tokens = lex(source + "\n表示")
        assert tokens[0].raw_kind == K.LINE_COMMENT
        assert tokens[0].text == source

    def test_range_comment(self, lex):
        tokens = lex("/* a */表示")
        assert tokens[0].raw_kind == K.RANGE_COMMENT
        assert tokens[0].value == " a "
        assert tokens[1].value == "表示"

    def test_unclosed_range_comment_runs_to_end(self):
        result = tokenize("A=1\n/* abc\nB=2")
        assert ids(result.diagnostics) == ["unclosedBlockComment"]
        comment = result.tokens[-1]
        assert comment.raw_kind == K.RANGE_COMMENT
        assert comment.value == " abc\nB=2"
        span = result.diagnostics[0].span
        assert (span.start.line, span.start.column) == (2, 1)
        assert (span.end.line, span.end.column) == (2, 3)


# ---------------------------------------------------------------------------
# Strings and interpolation
# ---------------------------------------------------------------------------


class TestStrings:
    def test_plain_string_does_not_interpolate(self, lex):
        tokens = lex("『a{b}』")
        assert raw_kinds(tokens) == [K.STRING]
        assert tokens[0].value == "a{b}"

    def test_interpolation(self, lex):
        tokens = lex("「a{B}c」")
        assert raw_kinds(tokens) == [
            K.STRING_EX,
            K.STRING_INJECT_START,
            K.WORD,
            K.STRING_INJECT_END,
            K.STRING_EX,
        ]
        assert [t.value for t in tokens] == ["a", "{", "B", "}", "c"]

    def test_full_width_interpolation(self, lex):
        tokens = lex("「a｛B｝c」")
        assert tokens[1].raw_kind == K.STRING_INJECT_START
        assert tokens[3].raw_kind == K.STRING_INJECT_END

    def test_unclosed_string(self):
        result = tokenize("「abc")
        assert ids(result.diagnostics) == ["unclosedString"]
        assert result.tokens[0].value == "abc"

    def test_unclosed_interpolation(self):
        result = tokenize("「a{B」")
        assert ids(result.diagnostics) == ["unclosedInterpolation"]


# ---------------------------------------------------------------------------
# Invalid input
# ---------------------------------------------------------------------------


class TestInvalid:
    def test_invalid_char_recovers(self):
        result = tokenize("A☆B")
        assert [t.raw_kind for t in result.tokens] == [K.WORD, K.CHARACTER, K.WORD]
        assert ids(result.diagnostics) == ["invalidChar"]

    def test_diagnostic_limit(self):
        result = tokenize("☆" * 5, max_diagnostics=3)
        assert len(result.diagnostics) == 3
        assert result.diagnostics.dropped == 2
