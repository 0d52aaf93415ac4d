"""X11 focus detection via xdotool / xprop, plus the XWayland bridge reader."""

from __future__ import annotations

import os
import time

from actionsum.model.models import DEFAULT_IDLE_THRESHOLD, UNKNOWN, DisplayServerKind, FocusedWindow, IdleState
from actionsum.watchers.errors import (
    CommandFailedError,
    CommandTimeoutError,
    NoFocusedWindowError,
    ToolUnavailableError,
)
from actionsum.watchers.idle import X11_LOCKERS, get_idle_ms, is_screen_locked
from actionsum.watchers.logger import logger
from actionsum.watchers.strategy import WindowStrategy, process_name_for_pid
from actionsum.watchers.tools import CommandRunner
from actionsum.watchers.xprop import (
    parse_active_window_id,
    parse_cardinal,
    parse_wm_class,
    parse_window_list,
    parse_xprop_string,
)

# _NET_CLIENT_LIST を辿るときの上限（件数と秒数）
MAX_CLIENT_WINDOWS = 64
CLIENT_LIST_BUDGET = 3.0


class X11Strategy(WindowStrategy):
    """X11 のアクティブウィンドウを xdotool（無ければ xprop）で取得する."""

    name = "x11"
    display_server = DisplayServerKind.X11

    def is_available(self) -> bool:
        return self.runner.has("xdotool") or self.runner.has("xprop")

    def _query_focused_window(self) -> FocusedWindow:
        window_id = self._active_window_id()
        title = self._window_title(window_id)

        # WM_CLASS を優先（Flatpak などで PID が引けないアプリにも効く）
        app_name = ""
        if self.runner.has("xprop"):
            try:
                app_name = parse_wm_class(self.runner.run(["xprop", "-id", window_id, "WM_CLASS"]))
            except (ToolUnavailableError, CommandFailedError) as e:
                logger.debug("WM_CLASS lookup failed for %s: %s", window_id, e)

        pid = self._window_pid(window_id)
        process_name = process_name_for_pid(pid)
        if not app_name:
            app_name = process_name

        return FocusedWindow(
            app_name=app_name,
            window_title=title,
            process_name=process_name,
            pid=pid,
        )

    def _active_window_id(self) -> str:
        if self.runner.has("xdotool"):
            window_id = self.runner.run(["xdotool", "getactivewindow"]).strip()
        else:
            window_id = parse_active_window_id(
                self.runner.run(["xprop", "-root", "_NET_ACTIVE_WINDOW"])
            )
        if not window_id or window_id == "0":
            msg = "no active X11 window"
            raise NoFocusedWindowError(msg)
        return window_id

    def _window_title(self, window_id: str) -> str:
        try:
            if self.runner.has("xdotool"):
                return self.runner.run(["xdotool", "getwindowname", window_id]).strip()
            return parse_xprop_string(self.runner.run(["xprop", "-id", window_id, "WM_NAME"]))
        except (ToolUnavailableError, CommandFailedError) as e:
            logger.debug("window title lookup failed for %s: %s", window_id, e)
            return UNKNOWN

    def _window_pid(self, window_id: str) -> int | None:
        try:
            if self.runner.has("xdotool"):
                output = self.runner.run(["xdotool", "getwindowpid", window_id]).strip()
                return int(output) if output.isdigit() else None
            return parse_cardinal(self.runner.run(["xprop", "-id", window_id, "_NET_WM_PID"]))
        except (ToolUnavailableError, CommandFailedError):
            return None

    def get_idle_state(self, threshold: int = DEFAULT_IDLE_THRESHOLD) -> IdleState:
        """xprintidle のミリ秒を秒に変換し、ロックはロッカープロセスの有無で推定."""
        idle_seconds = get_idle_ms(self.runner) // 1000
        locked = is_screen_locked(self.runner, X11_LOCKERS, check_session=False)
        return IdleState.from_idle_seconds(idle_seconds, is_locked=locked, threshold=threshold)


def read_bridge_window(runner: CommandRunner) -> FocusedWindow:
    """XWayland ブリッジ経由でルートウィンドウのアクティブウィンドウを読む.

    ネイティブ Wayland のウィンドウにフォーカスがある場合は見つからない。
    """
    if not os.getenv("DISPLAY"):
        msg = "DISPLAY is not set (XWayland not available)"
        raise ToolUnavailableError("xprop", msg)

    output = runner.run(["xprop", "-root", "_NET_ACTIVE_WINDOW"], merge_stderr=True)
    window_id = parse_active_window_id(output)
    if not window_id:
        msg = "no active bridge window (focused window may be native Wayland)"
        raise NoFocusedWindowError(msg)

    try:
        title = parse_xprop_string(runner.run(["xprop", "-id", window_id, "WM_NAME"]))
    except CommandFailedError:
        title = ""
    try:
        app_name = parse_wm_class(runner.run(["xprop", "-id", window_id, "WM_CLASS"]))
    except CommandFailedError:
        app_name = ""

    return FocusedWindow(app_name=app_name, window_title=title, process_name=app_name)


def find_window_title_for_pid(runner: CommandRunner, pid: int) -> str:
    """_NET_CLIENT_LIST を辿って PID に対応するウィンドウタイトルを探す."""
    if not os.getenv("DISPLAY") or not runner.has("xprop"):
        return UNKNOWN
    try:
        window_ids = parse_window_list(runner.run(["xprop", "-root", "_NET_CLIENT_LIST"]))
    except (ToolUnavailableError, CommandFailedError) as e:
        logger.debug("client list lookup failed: %s", e)
        return UNKNOWN

    deadline = time.monotonic() + CLIENT_LIST_BUDGET
    for window_id in window_ids[:MAX_CLIENT_WINDOWS]:
        if time.monotonic() > deadline:
            logger.debug("client list walk exceeded %ss, giving up", CLIENT_LIST_BUDGET)
            break
        try:
            owner = parse_cardinal(runner.run(["xprop", "-id", window_id, "_NET_WM_PID"]))
            if owner != pid:
                continue
            title = parse_xprop_string(runner.run(["xprop", "-id", window_id, "WM_NAME"]))
        except CommandTimeoutError as e:
            # X サーバーが応答しないので残りも同じ
            logger.debug("client list walk aborted: %s", e)
            break
        except CommandFailedError:
            # 一覧取得後に閉じられたウィンドウ
            continue
        return title or UNKNOWN
    return UNKNOWN
