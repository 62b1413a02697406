"""Minimal LSP server for nako3: diagnostics only."""

from __future__ import annotations

from pathlib import PurePosixPath

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from nako3 import __version__
from nako3.analyzer import AnalyzerOptions, analyze
from nako3.errors import Diagnostic as NakoDiagnostic
from nako3.errors import Severity

server = LanguageServer("nako3-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full)

_SEVERITY = {
    Severity.ERROR: DiagnosticSeverity.Error,
    Severity.WARN: DiagnosticSeverity.Warning,
    Severity.INFO: DiagnosticSeverity.Information,
    Severity.HINT: DiagnosticSeverity.Hint,
}


def to_lsp(diag: NakoDiagnostic) -> Diagnostic:
    """Convert a 1-based analyzer diagnostic to a 0-based LSP one."""
    start = diag.span.start
    end = diag.span.end
    end_char = end.column - 1
    if end.line == start.line and end.column <= start.column:
        end_char = start.column
    return Diagnostic(
        range=Range(
            start=Position(line=start.line - 1, character=start.column - 1),
            end=Position(line=end.line - 1, character=end_char),
        ),
        message=diag.message,
        severity=_SEVERITY[diag.severity],
        source="nako3",
        code=diag.message_id,
    )


def _document_names(uri: str) -> tuple[str, str]:
    """File name and module name for a document URI."""
    filename = PurePosixPath(uri).name or uri
    return filename, PurePosixPath(filename).stem or "main"


def _validate(ls: LanguageServer, uri: str) -> None:
    """Re-analyze the document and publish every problem found."""
    text = ls.workspace.get_text_document(uri).source
    filename, module = _document_names(uri)

    result = analyze(text, filename, options=AnalyzerOptions(module=module))
    diagnostics = [to_lsp(d) for d in result.diagnostics]

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
