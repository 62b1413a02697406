"""Tests for plugin command tables and the plugin registry."""

from __future__ import annotations

import pytest

from nako3.builtins import default_registry
from nako3.declarations import DeclKind, Origin
from nako3.plugins import (
    SYSTEM_PLUGIN,
    CommandTableError,
    PluginRegistry,
    parse_args,
    parse_command_table,
)

VERBOSE = """\
[plugin_demo]
# 挨拶系
関数\t挨拶\tSに\tSに挨拶する
関数\t待\tNの\tN秒待つ\t非同期
定数\t答\t\t42
変数\t名前
"""

MINIFIED = '{"plugin_mini": {"基本": {"鳴": ["関数", "Sと", "Sと鳴く", "純粋"], "色": ["定数", "", "赤"]}}}'


# ---------------------------------------------------------------------------
# Argument declarations
# ---------------------------------------------------------------------------


class TestParseArgs:
    def test_alternatives(self):
        params = parse_args("AとBを|AにBを")
        assert [(p.name, p.josi) for p in params] == [("A", ("と", "に")), ("B", ("を",))]

    def test_parenthesized(self):
        params = parse_args("(Sを)")
        assert [p.name for p in params] == ["S"]

    def test_positional(self):
        (param,) = parse_args("N")
        assert param.accepts_any

    def test_func_pointer(self):
        params = parse_args("{関数}Fを N")
        assert params[0].is_func_pointer
        assert params[1].accepts_any

    def test_empty(self):
        assert parse_args("") == ()


# ---------------------------------------------------------------------------
# Command tables
# ---------------------------------------------------------------------------


class TestVerboseTable:
    def test_entries(self):
        tables = parse_command_table(VERBOSE)
        entries = tables["plugin_demo"]
        assert [(e.kind, e.name) for e in entries] == [
            (DeclKind.FUNC, "挨拶"),
            (DeclKind.FUNC, "待"),
            (DeclKind.CONST, "答"),
            (DeclKind.VAR, "名前"),
        ]
        assert entries[0].args == "Sに"
        assert entries[0].hint == "Sに挨拶する"
        assert entries[1].flags == frozenset({"async"})

    def test_row_before_header(self):
        with pytest.raises(CommandTableError, match="before any"):
            parse_command_table("関数\t表示\tSを\n", "demo.txt")

    def test_unknown_kind_reports_line(self):
        with pytest.raises(CommandTableError) as exc:
            parse_command_table("[p]\n謎\t名前\n", "demo.txt")
        assert exc.value.line == 2
        assert str(exc.value).startswith("demo.txt:2:")

    def test_too_few_fields(self):
        with pytest.raises(CommandTableError, match="at least 2"):
            parse_command_table("[p]\n関数\n")


class TestMinifiedTable:
    def test_entries(self):
        entries = parse_command_table(MINIFIED)["plugin_mini"]
        assert [(e.kind, e.name) for e in entries] == [(DeclKind.FUNC, "鳴"), (DeclKind.CONST, "色")]
        assert entries[0].flags == frozenset({"pure"})

    def test_leading_whitespace(self):
        assert "plugin_mini" in parse_command_table("\n  " + MINIFIED)

    def test_invalid_json(self):
        with pytest.raises(CommandTableError, match="invalid JSON"):
            parse_command_table("{bad", "mini.json")

    def test_plugin_must_map_to_object(self):
        with pytest.raises(CommandTableError, match="must map to an object"):
            parse_command_table('{"p": 1}')


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_load_text_returns_plugins(self):
        registry = PluginRegistry()
        assert registry.load_text(VERBOSE) == ["plugin_demo"]
        assert registry.plugins == ["plugin_demo"]

    def test_declarations(self):
        registry = PluginRegistry()
        registry.load_text(VERBOSE)
        active = ["plugin_demo"]
        greet = registry.find_func("挨拶", active)
        assert greet is not None
        assert greet.origin == Origin.PLUGIN
        assert greet.module == "plugin_demo"
        assert [p.name for p in greet.params] == ["S"]
        assert registry.find_func("待", active).is_async
        answer = registry.find_value("答", active)
        assert answer.kind == DeclKind.CONST
        assert answer.hint == "42"

    def test_inactive_plugin_hidden(self):
        registry = PluginRegistry()
        registry.load_text(VERBOSE)
        assert registry.find_func("挨拶", [SYSTEM_PLUGIN]) is None

    def test_earlier_plugin_wins(self):
        registry = PluginRegistry()
        registry.load_text("[a]\n関数\t出\t\t一\n[b]\n関数\t出\t\t二\n")
        assert registry.find_func("出", ["b", "a"]).hint == "二"
        assert registry.find_func("出", ["a", "b"]).hint == "一"

    def test_names_are_trimmed(self):
        registry = PluginRegistry()
        registry.load_text("[p]\n関数\t読み込む\tFを\n")
        assert registry.find_func("読込", ["p"]) is not None

    def test_active_set(self):
        registry = PluginRegistry()
        names = registry.active_set("cnako", ["plugin_extra", "plugin_math"])
        assert names[0] == SYSTEM_PLUGIN
        assert names[-1] == "plugin_extra"
        assert names.count("plugin_math") == 1

    def test_unknown_runtime(self):
        assert PluginRegistry().active_set("deno") == [SYSTEM_PLUGIN]


class TestDefaultRegistry:
    def test_system_functions(self):
        registry = default_registry()
        show = registry.find_func("表示", [SYSTEM_PLUGIN])
        assert show is not None
        assert show.origin == Origin.SYSTEM
        assert show.is_pure
        assert show.params[0].josi == ("を", "と")

    def test_variadic_and_async_flags(self):
        registry = default_registry()
        assert registry.find_func("連続加算", [SYSTEM_PLUGIN]).is_variadic
        assert registry.find_func("秒待機", [SYSTEM_PLUGIN]).is_async

    def test_system_constants(self):
        registry = default_registry()
        assert registry.find_value("はい", [SYSTEM_PLUGIN]).kind == DeclKind.CONST
        assert registry.find_value("対象", [SYSTEM_PLUGIN]).kind == DeclKind.VAR

    def test_signature(self):
        divide = default_registry().find_func("割", [SYSTEM_PLUGIN])
        assert divide.signature() == "(AをBで)割"
