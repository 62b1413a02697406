"""Built-in system plugin table: the commands every runtime provides."""

from __future__ import annotations

from nako3.declarations import DeclKind
from nako3.plugins import SYSTEM_PLUGIN, CommandEntry, PluginRegistry


def _make_system_commands() -> list[CommandEntry]:
    entries: list[CommandEntry] = []

    def d(name: str, args: str = "", hint: str = "", *flags: str) -> None:
        entries.append(CommandEntry(DeclKind.FUNC, name, args, hint, frozenset(flags)))

    def v(name: str, hint: str = "", *, const: bool = False) -> None:
        entries.append(CommandEntry(DeclKind.CONST if const else DeclKind.VAR, name, "", hint))

    # Values
    v("はい", "1", const=True)
    v("いいえ", "0", const=True)
    v("真", "true", const=True)
    v("偽", "false", const=True)
    v("オン", "1", const=True)
    v("オフ", "0", const=True)
    v("改行", "\\n", const=True)
    v("タブ", "\\t", const=True)
    v("空", "''", const=True)
    v("空配列", "[]", const=True)
    v("空辞書", "{}", const=True)
    v("未定義", "undefined", const=True)
    v("PI", "3.141592653589793", const=True)
    v("対象", "反復中の値")
    v("対象キー", "反復中のキー")
    v("回数", "繰り返しの回数")
    v("エラーメッセージ", "エラー監視で捕捉したメッセージ")
    v("ナデシコバージョン", "実行中のバージョン", const=True)

    # Output
    d("表示", "Sを|Sと", "Sを表示する", "pure")
    d("表示ログ", "Sを|Sと", "Sをログとして表示する", "pure")
    d("言", "Sを|Sと", "Sを表示する", "pure")
    d("尋", "Sと|Sを", "Sと尋ねて入力を得る", "async")

    # Arithmetic
    d("足", "AとBを|AにBを", "AとBを足す", "pure")
    d("引", "AからBを", "AからBを引く", "pure")
    d("掛", "AにBを|AとBを", "AにBを掛ける", "pure")
    d("割", "AをBで", "AをBで割る", "pure")
    d("割余", "AをBで", "AをBで割った余りを求める", "pure")
    d("連続加算", "AとBを", "AとBと…を足す", "pure", "variadic")
    d("絶対値", "Vの", "Vの絶対値を返す", "pure")
    d("整数変換", "Vを", "Vを整数に変換する", "pure")
    d("乱数", "Nの", "0からN-1の乱数を返す")

    # Strings
    d("文字数", "Sの", "Sの文字数を返す", "pure")
    d("置換", "SのAをBに|Bへ", "Sの中のAを全てBに置換する", "pure")
    d("区切", "SをAで", "SをAで区切って配列で返す", "pure")
    d("連結", "AとBを", "AとBを連結する", "pure", "variadic")
    d("出現回数", "SでAの", "Sの中のAの出現回数を返す", "pure")

    # Arrays
    d("配列要素数", "Aの", "配列Aの要素数を返す", "pure")
    d("配列追加", "AにSを", "配列AにSを追加する", "pure")
    d("配列カスタムソート", "{関数}FでAを", "関数Fで配列Aを並び替える", "pure")
    d("JSONエンコード", "Vを|Vの", "VをJSONに変換する", "pure")
    d("JSONデコード", "Sを|Sの|Sから", "JSONのSを値に変換する", "pure")

    # Timing
    d("秒待機", "Nの|N", "N秒待機する", "async")
    d("秒後", "{関数}Fを N", "N秒後に関数Fを実行する")
    d("今", "", "現在時刻を返す")
    d("今日", "", "今日の日付を返す")

    # Tests
    d("ASSERT等", "AとBが", "AとBが等しいか検証する")
    return entries


SYSTEM_COMMANDS: list[CommandEntry] = _make_system_commands()


def default_registry() -> PluginRegistry:
    """Return a registry holding the system plugin table."""
    registry = PluginRegistry()
    registry.add_entries(SYSTEM_PLUGIN, SYSTEM_COMMANDS)
    return registry
