"""Tests for the token and AST dumps."""

from __future__ import annotations

import io

from nako3.debug import dump_ast, dump_tokens


class TestDumpTokens:
    def test_one_line_per_token(self, run):
        result = run("「a」を表示")
        buf = io.StringIO()
        dump_tokens(result.tokens, file=buf)
        lines = buf.getvalue().splitlines()
        assert len(lines) == len(result.tokens)
        assert lines[0].split()[:2] == ["0", "1:1"]
        assert "josi='を'" in lines[0]
        assert "SYS_FUNC" in lines[1]

    def test_indent_level_shown(self, run):
        result = run("もし1ならば\n  「a」を表示\nここまで")
        buf = io.StringIO()
        dump_tokens(result.tokens, file=buf)
        assert "level=2" in buf.getvalue()


class TestDumpAst:
    def test_tree(self, run):
        buf = io.StringIO()
        dump_ast(run("「a」を表示").ast, file=buf)
        lines = buf.getvalue().splitlines()
        assert lines[0] == "Block"
        assert lines[1].startswith("  body[0]: Call")
        assert "name='表示'" in lines[1]

    def test_empty_program(self, run):
        buf = io.StringIO()
        dump_ast(run("").ast, file=buf)
        assert buf.getvalue() == "Block\n"
