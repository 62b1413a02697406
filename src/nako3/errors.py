"""Diagnostics with message templates and formatted source context."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from nako3.tokens import Span


class Severity(Enum):
    ERROR = "error"
    WARN = "warning"
    INFO = "info"
    HINT = "hint"


# Message id -> template; arguments are substituted with str.format
MESSAGES: dict[str, str] = {
    # lexer
    "invalidChar": "不正な文字『{char}』があります。",
    "unclosedBlockComment": "範囲コメントが『*/』で閉じられていません。",
    "unclosedString": "文字列が『{closer}』で閉じられていません。",
    "unclosedInterpolation": "文字列の展開『{open}』が『{close}』で閉じられていません。",
    # normalizer
    "directiveNotEol": "プリプロセス命令『{name}』の後ろに余計な記述があります。",
    "asyncModeDeprecated": "『!非同期モード』は非推奨です。",
    "dnclUnsupported": "『!{mode}』には対応していません。",
    "unknownDirectiveValue": "『!モジュール公開既定値』には『公開』か『非公開』を指定してください。",
    "funcNameMissing": "関数の宣言で関数名がありません。",
    "duplicateParamBlock": "関数の宣言で、引数定義は名前の前か後に一度だけ可能です。",
    "paramListNotClosed": "関数の引数定義が『)』で閉じられていません。",
    "invalidParam": "関数の引数定義に不正な記述『{text}』があります。",
    "attributeNotClosed": "属性の指定が『}}』で閉じられていません。",
    "unknownAttribute": "不明な属性『{name}』です。",
    "duplicateFunction": "関数『{name}』は既に定義されています。",
    # tagger
    "unknownWord": "単語『{name}』が見つかりません。",
    # parser
    "missingKokomade": "『{name}』に対応する『ここまで』がありません。",
    "kokomadeInIndentMode": "インデント構文では『ここまで』は使えません。",
    "unexpectedKokomade": "対応する構文のない『ここまで』があります。",
    "missingNaraba": "『もし』文で『ならば』がないか、条件が複雑過ぎます。",
    "unexpectedToken": "予期しない語句『{text}』があります。",
    "unexpectedKeyword": "ここで『{text}』は使えません。",
    "missingOperand": "演算子『{op}』の後ろに値がありません。",
    "missingCloseParen": "『(』に対応する『)』がありません。",
    "missingCloseBracket": "『[』に対応する『]』がありません。",
    "missingCloseBrace": "『{{』に対応する『}}』がありません。",
    "argumentShortage": "関数『{name}』の引数が不足しています。",
    "strandedWords": "未解決の単語があります: {words}{hint}",
    "assignToFunction": "関数『{name}』に代入することはできません。",
    "assignToConstant": "定数『{name}』は変更できません。",
    "invalidAssignTarget": "代入先が正しくありません。",
    "missingAida": "『後判定』の最後に『(条件)の間』がありません。",
    "missingLoopCount": "『{name}』の回数や条件が指定されていません。",
    "missingErrorNaraba": "『エラー監視』に対応する『エラーならば』がありません。",
    "missingDeclName": "『{name}』の後ろに名前がありません。",
    "chikujiDeprecated": "『逐次実行』は廃止されました。",
    "internal": "内部エラー: {detail}",
}


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A problem found by one pipeline stage."""

    severity: Severity
    span: Span
    message_id: str | None = None
    args: dict[str, Any] = field(default_factory=dict)
    raw_message: str | None = None

    @property
    def message(self) -> str:
        if self.message_id is not None:
            template = MESSAGES.get(self.message_id, self.message_id)
            return template.format(**self.args)
        return self.raw_message or ""

    def format(self, source: str, filename: str = "input.nako3") -> str:
        """Render the diagnostic with the offending source line and carets."""
        lines = source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"{self.severity.value}: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )

    def as_tuple(self) -> tuple[Span, Severity, str]:
        return (self.span, self.severity, self.message)


class DiagnosticList:
    """Append-only diagnostic collection capped at *limit* entries.

    Once the cap is reached further diagnostics are dropped.
    """

    def __init__(self, limit: int = 100) -> None:
        self.limit = limit
        self._items: list[Diagnostic] = []
        self.dropped = 0

    def add(
        self,
        severity: Severity,
        span: Span,
        message_id: str,
        **args: Any,
    ) -> None:
        self.append(Diagnostic(severity, span, message_id, args))

    def error(self, span: Span, message_id: str, **args: Any) -> None:
        self.add(Severity.ERROR, span, message_id, **args)

    def warn(self, span: Span, message_id: str, **args: Any) -> None:
        self.add(Severity.WARN, span, message_id, **args)

    def raw(self, severity: Severity, span: Span, message: str) -> None:
        self.append(Diagnostic(severity, span, raw_message=message))

    def append(self, diag: Diagnostic) -> None:
        if len(self._items) >= self.limit:
            self.dropped += 1
            return
        self._items.append(diag)

    def extend(self, diags: Iterable[Diagnostic]) -> None:
        for d in diags:
            self.append(d)

    def clear(self) -> None:
        self._items.clear()
        self.dropped = 0

    def by_id(self, message_id: str) -> list[Diagnostic]:
        return [d for d in self._items if d.message_id == message_id]

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self._items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Diagnostic:
        return self._items[index]
