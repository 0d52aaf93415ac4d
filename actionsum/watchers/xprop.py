"""Parsers for xprop / gdbus text output.

None of these raise: malformed input yields an empty string (or ``None``).
"""

from __future__ import annotations

import re

_WINDOW_ID_RE = re.compile(r"0x[0-9a-fA-F]+")
_CARDINAL_RE = re.compile(r"=\s*(\d+)")
_UINT_RE = re.compile(r"(?:uint\d+\s+)?(\d+)")


def parse_wm_class(output: str) -> str:
    """WM_CLASS の最後の要素（クラス名）を取り出す.

    ``WM_CLASS(STRING) = "Instance", "ClassName"`` -> ``ClassName``
    """
    if "=" not in output:
        return ""
    class_info = output.split("=", 1)[1].strip()
    classes = class_info.split(",")
    return classes[-1].strip().strip('" ')


def parse_xprop_string(output: str) -> str:
    """``WM_NAME(STRING) = "title"`` の値を取り出す."""
    if "=" not in output:
        return ""
    value = output.split("=", 1)[1].strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):  # noqa: PLR2004
        value = value[1:-1]
    return value.replace('\\"', '"')


def parse_active_window_id(output: str) -> str:
    """``_NET_ACTIVE_WINDOW(WINDOW): window id # 0x80032b`` からIDを取り出す.

    ウィンドウが無い場合（``0x0``）は空文字を返す。
    """
    if "#" not in output:
        return ""
    match = _WINDOW_ID_RE.search(output.split("#", 1)[1])
    if not match:
        return ""
    window_id = match.group(0)
    if int(window_id, 16) == 0:
        return ""
    return window_id


def parse_window_list(output: str) -> list[str]:
    """``_NET_CLIENT_LIST(WINDOW): window id # 0x1, 0x2`` の全IDを返す."""
    if "#" not in output:
        return []
    return _WINDOW_ID_RE.findall(output.split("#", 1)[1])


def parse_cardinal(output: str) -> int | None:
    """``_NET_WM_PID(CARDINAL) = 1234`` の数値を返す."""
    match = _CARDINAL_RE.search(output)
    if not match:
        return None
    return int(match.group(1))


def parse_shell_eval(output: str) -> tuple[str, str] | None:
    """GNOME Shell.Eval の応答 ``(true, 'App|||Title')`` を分解する.

    Eval がブロックされている場合は ``(false, '')`` が返るので ``None``。
    """
    result = output.strip()
    if not result.startswith("(true,"):
        return None
    result = result[len("(true,") :].strip()
    if result.endswith(")"):
        result = result[:-1]
    result = result.strip().strip("'\"")
    parts = result.split("|||")
    app_name = parts[0] if parts else ""
    title = parts[1] if len(parts) > 1 else ""
    return app_name, title


def parse_gdbus_uint(output: str) -> int | None:
    """``(uint64 12345,)`` 形式の gdbus 応答から数値を取り出す."""
    match = _UINT_RE.search(output.strip().lstrip("("))
    if not match:
        return None
    return int(match.group(1))
