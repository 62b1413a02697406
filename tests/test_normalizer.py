"""Tests for the token normalizer, preprocessor and function-header reader."""

from __future__ import annotations

import pytest

from nako3.declarations import DeclKind, Origin
from nako3.lexer import tokenize
from nako3.normalizer import fix_tokens, trim_okurigana
from nako3.tokens import TokenKind

from .conftest import assert_kinds, ids, kinds

K = TokenKind


# ---------------------------------------------------------------------------
# Okurigana trimming
# ---------------------------------------------------------------------------


class TestTrimOkurigana:
    @pytest.mark.parametrize(
        ("word", "trimmed"),
        [
            ("表示する", "表示"),
            ("繰り返す", "繰返"),
            ("どうぞ", "どうぞ"),
            ("お茶しよう", "お茶"),
            ("ABC", "ABC"),
            ("", ""),
        ],
    )
    def test_trim(self, word: str, trimmed: str):
        assert trim_okurigana(word) == trimmed


# ---------------------------------------------------------------------------
# Stream shape
# ---------------------------------------------------------------------------


class TestStream:
    def test_sentinels_appended(self, fix):
        result = fix("A")
        assert kinds(result.tokens, sentinels=True) == [K.WORD, K.EOL, K.EOF]

    def test_empty_source_has_sentinels(self, fix):
        assert kinds(fix("").tokens, sentinels=True) == [K.EOL, K.EOF]

    def test_spaces_dropped_and_comments_collected(self, fix):
        result = fix("  A # メモ")
        assert_kinds(result.tokens, [K.WORD])
        assert [t.raw_kind for t in result.comment_tokens] == [K.LINE_COMMENT]

    def test_raw_tokens_not_mutated(self):
        raw = tokenize("表示する").tokens
        fix_tokens(raw)
        assert raw[0].value == "表示する"
        assert raw[0].kind is None

    def test_okurigana_trimmed_on_words(self, fix):
        assert fix("表示する").tokens[0].value == "表示"

    def test_bracketed_word_not_trimmed(self, fix):
        assert fix("《表示する》").tokens[0].value == "表示する"

    def test_all_stage_kinds_start_equal(self, fix):
        tok = fix("A").tokens[0]
        assert tok.kind == tok.func_kind == tok.parse_kind == K.WORD

    def test_line_continuation(self, fix):
        result = fix("A=1+_\n2")
        assert_kinds(result.tokens, [K.WORD, K.EQ, K.NUMBER, K.PLUS, K.NUMBER])
        assert [t.kind for t in result.comment_tokens] == [K.LINE_CONTINUATION]


# ---------------------------------------------------------------------------
# Particle splitting and merges
# ---------------------------------------------------------------------------


class TestParticles:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("Aには", [K.WORD, K.NIWA]),
            ("Aとは", [K.WORD, K.TOHA]),
            ("Aは5", [K.WORD, K.EQ, K.NUMBER]),
            ("Aならば", [K.WORD, K.NARABA]),
            ("Aでなければ", [K.WORD, K.DENAKEREBA]),
            ("エラーならば", [K.ERROR_NARABA]),
        ],
    )
    def test_control_particles_split(self, fix, source: str, expected: list[TokenKind]):
        assert_kinds(fix(source).tokens, expected)

    def test_split_keeps_text(self, fix):
        head, tail = fix("Aは5").tokens[:2]
        assert head.text == "A"
        assert head.josi == ""
        assert tail.text == "は"
        assert tail.value == "="

    def test_forever_loop(self, fix):
        tokens = fix("永遠に繰り返す").tokens
        assert_kinds(tokens, [K.EIEN, K.AIDA])
        assert tokens[0].josi == "の"

    def test_func_obj(self, fix):
        tokens = fix("関数(X)").tokens
        assert tokens[0].kind == K.FUNC_OBJ

    def test_kai_split_off_word(self, fix):
        tokens = fix("N回").tokens
        assert_kinds(tokens, [K.WORD, K.KAI])
        assert [t.value for t in tokens[:2]] == ["N", "回"]
        assert [t.text for t in tokens[:2]] == ["N", "回"]


# ---------------------------------------------------------------------------
# Preprocessor directives
# ---------------------------------------------------------------------------


class TestDirectives:
    def test_indent_mode(self, fix):
        result = fix("!インデント構文\nA")
        assert result.options.indent_semantics
        assert [t.kind for t in result.tokens[:2]] == [K.DIRECTIVE, K.DIRECTIVE]

    def test_indent_mode_alias(self, fix):
        assert fix("!ここまでだるい").options.indent_semantics

    def test_strict(self, fix):
        assert fix("!厳チェック").options.strict

    def test_async_mode_deprecated(self, fix):
        result = fix("!非同期モード")
        assert result.options.async_mode
        assert ids(result.diagnostics) == ["asyncModeDeprecated"]

    def test_dncl_unsupported(self, fix):
        result = fix("!DNCLモード")
        assert result.options.dncl == "DNCL"
        assert ids(result.diagnostics) == ["dnclUnsupported"]

    def test_import(self, fix):
        result = fix("!「lib.nako3」を取り込む")
        assert [i.value for i in result.imports] == ["lib.nako3"]
        assert_kinds(result.tokens, [K.DIRECTIVE, K.STRING_EX, K.DIRECTIVE])

    def test_export_default(self, fix):
        result = fix("!モジュール公開既定値は「非公開」\n●Aとは\nここまで")
        assert not result.options.export_default
        assert not result.declared_funcs["A"].is_export

    def test_export_default_bad_value(self, fix):
        result = fix("!モジュール公開既定値は「なし」")
        assert ids(result.diagnostics) == ["unknownDirectiveValue"]

    def test_trailing_text_after_directive(self, fix):
        result = fix("!厳チェック 5")
        assert ids(result.diagnostics) == ["directiveNotEol"]
        assert result.tokens[2].kind == K.DIRECTIVE

    def test_bang_not_at_line_head(self, fix):
        result = fix("A!厳チェック")
        assert not result.options.strict
        assert result.tokens[1].kind == K.NOT


# ---------------------------------------------------------------------------
# Function headers
# ---------------------------------------------------------------------------


class TestFunctionHeaders:
    def test_params_before_name(self, fix):
        result = fix("●(AをBに)足すとは\n")
        decl = result.declared_funcs["足"]
        assert decl.kind == DeclKind.FUNC
        assert decl.name == "足す"
        assert decl.origin == Origin.GLOBAL
        assert decl.scope_id == "func@0"
        assert [(p.name, p.josi) for p in decl.params] == [("A", ("を",)), ("B", ("に",))]
        assert decl.token_index == 5

    def test_header_end_recorded(self, fix):
        result = fix("●(AをBに)足すとは\n")
        assert result.headers[0] == 7
        assert result.tokens[7].kind == K.EOL

    def test_header_tokens_reclassified(self, fix):
        tokens = fix("●(AをBに)足すとは\n").tokens
        assert_kinds(
            tokens,
            [
                K.DEF_FUNC,
                K.LPAREN,
                K.FUNCTION_ARG_PARAMETER,
                K.FUNCTION_ARG_PARAMETER,
                K.RPAREN,
                K.FUNC_NAME,
                K.TOHA,
                K.EOL,
            ],
        )

    def test_params_after_name(self, fix):
        decl = fix("●足す(AとBを)").declared_funcs["足"]
        assert [p.name for p in decl.params] == ["A", "B"]

    def test_repeated_param_names_merge(self, fix):
        decl = fix("●(AとBを|Aを)足すとは").declared_funcs["足"]
        assert [(p.name, p.josi) for p in decl.params] == [("A", ("と", "を")), ("B", ("を",))]

    def test_param_attribute(self, fix):
        decl = fix("●({関数}Fを)呼ぶとは").declared_funcs["呼"]
        assert decl.params[0].attrs == frozenset({"関数"})
        assert decl.params[0].is_func_pointer

    def test_func_attributes(self, fix):
        funcs = fix("●{非公開}Aとは\nここまで\n●{非同期}Bとは\nここまで").declared_funcs
        assert funcs["A"].is_private
        assert not funcs["A"].is_export
        assert funcs["B"].is_async

    def test_unknown_attribute_warns(self, fix):
        assert ids(fix("●{謎}Aとは").diagnostics) == ["unknownAttribute"]

    def test_params_split_around_name(self, fix):
        result = fix("●(Aを)足す(Bを)とは")
        assert result.diagnostics == []
        decl = result.declared_funcs["足"]
        assert [(p.name, p.josi) for p in decl.params] == [("A", ("を",)), ("B", ("を",))]

    def test_name_in_both_blocks_merges(self, fix):
        decl = fix("●(Aと)足す(AをBに)").declared_funcs["足"]
        assert [(p.name, p.josi) for p in decl.params] == [("A", ("と", "を")), ("B", ("に",))]

    def test_duplicate_param_block(self, fix):
        assert ids(fix("●(A)(B)足す").diagnostics) == ["duplicateParamBlock"]

    def test_duplicate_param_block_after_name(self, fix):
        result = fix("●足す(A)(B)")
        assert ids(result.diagnostics) == ["duplicateParamBlock"]
        assert [p.name for p in result.declared_funcs["足"].params] == ["A"]

    def test_missing_name(self, fix):
        assert ids(fix("●(A)とは").diagnostics) == ["funcNameMissing"]

    def test_param_list_not_closed(self, fix):
        assert "paramListNotClosed" in ids(fix("●(Aを").diagnostics)

    def test_duplicate_function(self, fix):
        result = fix("●Aとは\nここまで\n●Aとは\nここまで")
        assert ids(result.diagnostics) == ["duplicateFunction"]

    def test_anonymous_function_not_declared(self, fix):
        result = fix("関数(X)")
        assert result.declared_funcs == {}
        decl = result.tokens[0].meta
        assert decl is not None
        assert decl.origin == Origin.LOCAL
        assert decl.scope_id == "anon@0"
        assert [p.name for p in decl.params] == ["X"]
