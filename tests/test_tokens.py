"""Tests for token display groups and indentation width."""

from __future__ import annotations

import pytest

from nako3.tokens import TokenGroup, TokenKind, indent_width

from .conftest import find_tokens

K = TokenKind


def group_of(tokens, value):
    return next(t.group for t in tokens if t.value == value)


# ---------------------------------------------------------------------------
# Display groups
# ---------------------------------------------------------------------------


class TestGroup:
    def test_call_statement(self, run):
        tokens = run("「a」を表示").tokens
        assert tokens[0].group == TokenGroup.STRING
        assert tokens[1].group == TokenGroup.FUNCTION

    def test_assignment(self, run):
        tokens = run("A=1+2\nAを表示").tokens
        assert [t.group for t in tokens[:5]] == [
            TokenGroup.VARIABLE,
            TokenGroup.OPERATOR,
            TokenGroup.NUMBER,
            TokenGroup.OPERATOR,
            TokenGroup.NUMBER,
        ]

    def test_parameter_and_function_name(self, run):
        tokens = run("●(Aを)見るとは\n  Aを表示\nここまで").tokens
        (param,) = find_tokens(tokens, K.FUNCTION_ARG_PARAMETER)
        assert param.group == TokenGroup.PARAMETER
        assert find_tokens(tokens, K.FUNC_NAME)[0].group == TokenGroup.FUNCTION
        assert find_tokens(tokens, K.USER_VAR)[0].group == TokenGroup.VARIABLE

    def test_system_constant(self, run):
        assert group_of(run("はいを表示").tokens, "はい") == TokenGroup.CONSTANT

    def test_keywords_by_default(self, run):
        tokens = run("もし1が1ならば\n  「a」を表示\nここまで").tokens
        assert tokens[0].effective_kind == K.MOSHI
        assert tokens[0].group == TokenGroup.KEYWORD
        assert find_tokens(tokens, K.KOKOMADE)[0].group == TokenGroup.KEYWORD

    def test_sentinels_have_no_group(self, run):
        tokens = run("「a」を表示").tokens
        assert tokens[-1].group == TokenGroup.NONE

    def test_comment(self, fix):
        (comment,) = fix("A # メモ").comment_tokens
        assert comment.group == TokenGroup.COMMENT


# ---------------------------------------------------------------------------
# Indentation
# ---------------------------------------------------------------------------


class TestIndentWidth:
    @pytest.mark.parametrize(
        ("text", "width"),
        [
            ("", 0),
            ("  ", 2),
            ("　", 2),
            ("\t", 8),
            (" \t", 8),
            ("\t ", 9),
            ("・", 1),
        ],
    )
    def test_width(self, text: str, width: int):
        assert indent_width(text) == width
