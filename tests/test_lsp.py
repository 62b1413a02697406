"""Tests for the LSP server: diagnostic generation."""

from __future__ import annotations

import pytest
from lsprotocol.types import (
    DiagnosticSeverity,
    PublishDiagnosticsParams,
    TextDocumentItem,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer
from pygls.workspace import Workspace

from nako3.errors import Diagnostic, Severity
from nako3.lsp import _validate, to_lsp
from nako3.tokens import Position, Span


@pytest.fixture
def lsp_env():
    """Create a LanguageServer with an initialized workspace and captured diagnostics."""
    ls = LanguageServer("test", "v0", text_document_sync_kind=TextDocumentSyncKind.Full)
    ws = Workspace(None)
    ls.protocol._workspace = ws

    published: list[PublishDiagnosticsParams] = []
    ls.text_document_publish_diagnostics = lambda params: published.append(params)

    def put(source: str, uri: str = "file:///test.nako3") -> None:
        ws.put_text_document(
            TextDocumentItem(uri=uri, language_id="nako3", version=0, text=source)
        )

    return ls, published, put


# ---------------------------------------------------------------------------
# Lex errors → Error severity
# ---------------------------------------------------------------------------


class TestLexErrors:
    def test_invalid_char(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("A☆")
        _validate(ls, "file:///test.nako3")

        assert len(published) == 1
        assert published[0].uri == "file:///test.nako3"
        d = next(d for d in published[0].diagnostics if d.code == "invalidChar")
        assert d.severity == DiagnosticSeverity.Error
        assert "☆" in d.message
        assert d.source == "nako3"
        # ☆ is at column 2 (1-based) → character 1 (0-based)
        assert d.range.start.line == 0
        assert d.range.start.character == 1
        assert d.range.end.character == 2


# ---------------------------------------------------------------------------
# Tagger errors
# ---------------------------------------------------------------------------


class TestUnknownWords:
    def test_unknown_word(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("「a」を表示\nXを表示")
        _validate(ls, "file:///test.nako3")

        (d,) = published[0].diagnostics
        assert d.code == "unknownWord"
        assert d.severity == DiagnosticSeverity.Error
        assert d.range.start.line == 1
        assert d.range.start.character == 0


# ---------------------------------------------------------------------------
# Normalizer warnings → Warning severity
# ---------------------------------------------------------------------------


class TestWarnings:
    def test_async_mode(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("!非同期モード\n")
        _validate(ls, "file:///test.nako3")

        (d,) = published[0].diagnostics
        assert d.severity == DiagnosticSeverity.Warning
        assert d.code == "asyncModeDeprecated"


# ---------------------------------------------------------------------------
# Clean document
# ---------------------------------------------------------------------------


class TestClean:
    def test_no_diagnostics(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("Aは1\nAを表示\n")
        _validate(ls, "file:///test.nako3")

        assert len(published) == 1
        assert published[0].diagnostics == []

    def test_revalidate_clears(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("Xを表示")
        _validate(ls, "file:///test.nako3")
        put("「a」を表示")
        _validate(ls, "file:///test.nako3")

        assert len(published) == 2
        assert published[0].diagnostics
        assert published[1].diagnostics == []


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


class TestToLsp:
    def test_zero_width_span_widened(self) -> None:
        here = Position(3, 5, 20)
        d = to_lsp(Diagnostic(Severity.HINT, Span(here, here), raw_message="x"))
        assert d.range.start.line == 2
        assert d.range.start.character == 4
        assert d.range.end.character == 5
        assert d.severity == DiagnosticSeverity.Hint
        assert d.code is None

    def test_multiline_span(self) -> None:
        span = Span(Position(1, 2, 1), Position(3, 4, 12))
        d = to_lsp(Diagnostic(Severity.INFO, span, "unknownWord", {"name": "Y"}))
        assert (d.range.end.line, d.range.end.character) == (2, 3)
        assert d.severity == DiagnosticSeverity.Information
        assert d.message == "単語『Y』が見つかりません。"
