"""Shared test fixtures and helpers."""

from __future__ import annotations

import pytest

from nako3.analyzer import Analysis, AnalyzerOptions, analyze
from nako3.ast import Node
from nako3.errors import Diagnostic
from nako3.lexer import tokenize
from nako3.normalizer import FixResult, fix_tokens
from nako3.tokens import Token, TokenKind


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns the raw tokens."""

    def _lex(source: str) -> list[Token]:
        return tokenize(source).tokens

    return _lex


@pytest.fixture
def fix():
    """Return a helper that tokenizes and normalizes source."""

    def _fix(source: str) -> FixResult:
        return fix_tokens(tokenize(source).tokens)

    return _fix


@pytest.fixture
def run():
    """Return a helper that runs the whole front end over source."""

    def _run(source: str, **options: object) -> Analysis:
        return analyze(source, "test.nako3", options=AnalyzerOptions(**options))  # type: ignore[arg-type]

    return _run


def kinds(tokens: list[Token], *, sentinels: bool = False) -> list[TokenKind]:
    """Effective kinds, optionally keeping the trailing EOL/EOF sentinels."""
    out = [t.effective_kind for t in tokens]
    if not sentinels and out[-2:] == [TokenKind.EOL, TokenKind.EOF]:
        out = out[:-2]
    return out


def assert_kinds(tokens: list[Token], expected: list[TokenKind]) -> None:
    """Assert that the token kinds match the expected list."""
    actual = kinds(tokens)
    assert actual == expected, f"Expected {expected}, got {actual}"


def find_tokens(tokens: list[Token], kind: TokenKind) -> list[Token]:
    """Return all tokens of the given effective kind."""
    return [t for t in tokens if t.effective_kind == kind]


def ids(diagnostics: list[Diagnostic] | object) -> list[str | None]:
    """Message ids of a diagnostic collection, in order."""
    return [d.message_id for d in diagnostics]  # type: ignore[attr-defined]


def body(result: Analysis) -> tuple[Node, ...]:
    """Top-level statements of an analysis."""
    return result.ast.body
