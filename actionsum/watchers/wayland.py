"""Wayland focus detection, one strategy per compositor family.

The compositor is detected once by process name; each strategy talks to its
compositor's IPC (swaymsg, hyprctl, GNOME Shell over D-Bus, KWin scripting).
"""

from __future__ import annotations

import json
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

import psutil

from actionsum.model.models import DEFAULT_IDLE_THRESHOLD, UNKNOWN, DisplayServerKind, FocusedWindow, IdleState
from actionsum.watchers.errors import (
    CommandFailedError,
    NoFocusedWindowError,
    ToolUnavailableError,
)
from actionsum.watchers.idle import WAYLAND_LOCKERS, is_screen_locked
from actionsum.watchers.logger import logger
from actionsum.watchers.strategy import WindowStrategy, process_name_for_pid
from actionsum.watchers.tools import CommandRunner
from actionsum.watchers.x11 import read_bridge_window
from actionsum.watchers.xprop import parse_gdbus_uint, parse_shell_eval

UNKNOWN_COMPOSITOR = "unknown"

# 優先順: タイル型 → デスクトップシェル型（最初に見つかったもの）
COMPOSITORS = (
    ("sway", "sway"),
    ("Hyprland", "hyprland"),
    ("wayfire", "wayfire"),
    ("river", "river"),
    ("gnome-shell", "gnome"),
    ("kwin_wayland", "kde"),
)

GNOME_FOCUS_SCRIPT = """
try {
    let win = global.get_window_actors().find(w => w.meta_window && w.meta_window.has_focus());
    if (win && win.meta_window) {
        let wm_class = win.meta_window.get_wm_class() || 'Unknown';
        let title = win.meta_window.get_title() || 'Unknown';
        wm_class + '|||' + title;
    } else {
        'Unknown|||Unknown';
    }
} catch(e) {
    'Unknown|||Unknown';
}
"""

KDE_SCRIPT_NAME = "actionsum-focus"
KDE_MARKER = "actionsum-focus:"

# KWin スクリプトの print はジャーナルに出る（qdbus の戻り値はスクリプト ID のみ）
KDE_FOCUS_SCRIPT = """
var w = workspace.activeWindow || workspace.activeClient;
if (w) {
    print("actionsum-focus:" + w.resourceClass + "|" + w.caption);
} else {
    print("actionsum-focus:");
}
"""


def detect_compositor() -> str:
    """動作中のプロセス名からコンポジタを推定する."""
    running: set[str] = set()
    for proc in psutil.process_iter(["name"]):
        try:
            name = proc.info["name"]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if name:
            running.add(name)

    for process_name, compositor in COMPOSITORS:
        if process_name in running:
            return compositor
    return UNKNOWN_COMPOSITOR


def _load_json(output: str, tool: str) -> Any:
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        msg = f"failed to parse {tool} output: {e}"
        raise CommandFailedError(msg) from e


def _pid_of(value: Any) -> int | None:
    try:
        pid = int(value)
    except (TypeError, ValueError):
        return None
    return pid if pid > 0 else None


def _window_from_fields(app_name: Any, title: Any, pid: Any) -> FocusedWindow:
    app = str(app_name) if app_name else UNKNOWN
    resolved_pid = _pid_of(pid)
    process_name = process_name_for_pid(resolved_pid) or app
    return FocusedWindow(
        app_name=app,
        window_title=str(title) if title else UNKNOWN,
        process_name=process_name,
        pid=resolved_pid,
    )


def parse_kwin_journal(output: str) -> tuple[str, str] | None:
    """ジャーナルから最後のフォーカス出力 (resourceClass, caption) を取り出す."""
    for line in reversed(output.splitlines()):
        _, marker, payload = line.partition(KDE_MARKER)
        if not marker:
            continue
        app_name, _, caption = payload.strip().partition("|")
        return app_name.strip(), caption.strip() or UNKNOWN
    return None


def find_focused_node(tree: dict[str, Any]) -> dict[str, Any] | None:
    """sway のツリーから focused なノードを探す."""
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.get("focused"):
            return node
        for key in ("floating_nodes", "nodes"):
            children = node.get(key) or []
            if isinstance(children, list):
                stack.extend(child for child in children if isinstance(child, dict))
    return None


class WaylandStrategy(WindowStrategy):
    """Wayland 系戦略の共通部分（アイドル・ロック判定）."""

    display_server = DisplayServerKind.WAYLAND
    compositor = UNKNOWN_COMPOSITOR

    def get_idle_state(self, threshold: int = DEFAULT_IDLE_THRESHOLD) -> IdleState:
        """Wayland には共通のアイドル API が無いのでベストエフォート（多くは 0）."""
        locked = is_screen_locked(self.runner, WAYLAND_LOCKERS)
        return IdleState.from_idle_seconds(
            self._idle_seconds(), is_locked=locked, threshold=threshold
        )

    def _idle_seconds(self) -> int:
        return 0


class SwayStrategy(WaylandStrategy):
    name = "sway"
    compositor = "sway"

    def is_available(self) -> bool:
        return self.runner.has("swaymsg")

    def _query_focused_window(self) -> FocusedWindow:
        tree = _load_json(self.runner.run(["swaymsg", "-t", "get_tree"]), "swaymsg")
        if not isinstance(tree, dict):
            msg = "unexpected swaymsg tree payload"
            raise CommandFailedError(msg)

        node = find_focused_node(tree)
        if node is None:
            msg = "sway reports no focused node"
            raise NoFocusedWindowError(msg)

        properties = node.get("window_properties") or {}
        app_name = node.get("app_id") or properties.get("class")
        return _window_from_fields(app_name, node.get("name"), node.get("pid"))


class HyprlandStrategy(WaylandStrategy):
    name = "hyprland"
    compositor = "hyprland"

    def is_available(self) -> bool:
        return self.runner.has("hyprctl")

    def _query_focused_window(self) -> FocusedWindow:
        output = self.runner.run(["hyprctl", "activewindow", "-j"]).strip()
        if output in {"", "{}", "Invalid"}:
            msg = "hyprland reports no active window"
            raise NoFocusedWindowError(msg)

        data = _load_json(output, "hyprctl")
        if not isinstance(data, dict):
            msg = "unexpected hyprctl payload"
            raise CommandFailedError(msg)

        app_name = data.get("class") or data.get("initialClass")
        return _window_from_fields(app_name, data.get("title"), data.get("pid"))


class GnomeStrategy(WaylandStrategy):
    """GNOME Shell の Eval を試し、ダメなら XWayland ブリッジにフォールバック."""

    name = "gnome"
    compositor = "gnome"

    def is_available(self) -> bool:
        return self.runner.has("gdbus")

    def _query_focused_window(self) -> FocusedWindow:
        try:
            window = self._query_shell_eval()
        except (ToolUnavailableError, CommandFailedError) as e:
            logger.debug("gnome Shell.Eval failed: %s", e)
            window = None
        if window is not None:
            return window

        if not self.runner.has("xprop"):
            msg = "Shell.Eval blocked and xprop unavailable"
            raise ToolUnavailableError("xprop", msg)
        try:
            return read_bridge_window(self.runner)
        except NoFocusedWindowError:
            # ネイティブ Wayland サーフェスにフォーカスがあるのは想定内
            logger.debug("gnome focus is on a native Wayland surface")
            raise

    def _query_shell_eval(self) -> FocusedWindow | None:
        output = self.runner.run(
            [
                "gdbus",
                "call",
                "--session",
                "--dest",
                "org.gnome.Shell",
                "--object-path",
                "/org/gnome/Shell",
                "--method",
                "org.gnome.Shell.Eval",
                GNOME_FOCUS_SCRIPT,
            ]
        )
        parsed = parse_shell_eval(output)
        if parsed is None:
            return None
        window = FocusedWindow(app_name=parsed[0], window_title=parsed[1])
        return window if window.is_resolved else None

    def _idle_seconds(self) -> int:
        try:
            output = self.runner.run(
                [
                    "gdbus",
                    "call",
                    "--session",
                    "--dest",
                    "org.gnome.Mutter.IdleMonitor",
                    "--object-path",
                    "/org/gnome/Mutter/IdleMonitor/Core",
                    "--method",
                    "org.gnome.Mutter.IdleMonitor.GetIdletime",
                ]
            )
        except (ToolUnavailableError, CommandFailedError):
            return 0
        idle_ms = parse_gdbus_uint(output)
        return (idle_ms or 0) // 1000


class KdeStrategy(WaylandStrategy):
    name = "kde"
    compositor = "kde"

    def is_available(self) -> bool:
        return self.runner.has("qdbus") and self.runner.has("journalctl")

    def _query_focused_window(self) -> FocusedWindow:
        """KWin スクリプトを読み込んで実行し、print 結果をジャーナルから拾う."""
        since = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with tempfile.NamedTemporaryFile(
            "w", suffix=".js", prefix="actionsum-kwin-", delete=False, encoding="utf-8"
        ) as f:
            f.write(KDE_FOCUS_SCRIPT)
            script_path = Path(f.name)
        try:
            self._run_script(script_path)
        finally:
            self._unload_script()
            script_path.unlink(missing_ok=True)

        journal = self.runner.run(
            ["journalctl", "--user", "_COMM=kwin_wayland", "--output", "cat", "--no-pager", "--since", since]
        )
        focus = parse_kwin_journal(journal)
        if focus is None:
            msg = "KWin script output not found in journal"
            raise CommandFailedError(msg)
        app_name, caption = focus
        if not app_name:
            msg = "KWin reports no active window"
            raise NoFocusedWindowError(msg)
        return FocusedWindow(app_name=app_name, window_title=caption)

    def _run_script(self, script_path: Path) -> None:
        script_id = self.runner.run(
            [
                "qdbus",
                "org.kde.KWin",
                "/Scripting",
                "org.kde.kwin.Scripting.loadScript",
                str(script_path),
                KDE_SCRIPT_NAME,
            ]
        ).strip()
        if not script_id.isdigit():
            msg = f"KWin refused to load the focus script: {script_id!r}"
            raise CommandFailedError(msg)
        try:
            # Plasma 6 のオブジェクトパス
            self.runner.run(["qdbus", "org.kde.KWin", f"/Scripting/Script{script_id}", "org.kde.kwin.Script.run"])
        except CommandFailedError:
            # Plasma 5
            self.runner.run(["qdbus", "org.kde.KWin", f"/{script_id}", "org.kde.kwin.Script.run"])

    def _unload_script(self) -> None:
        try:
            self.runner.run(
                ["qdbus", "org.kde.KWin", "/Scripting", "org.kde.kwin.Scripting.unloadScript", KDE_SCRIPT_NAME]
            )
        except (ToolUnavailableError, CommandFailedError) as e:
            logger.debug("KWin script unload failed: %s", e)


class UnknownCompositorStrategy(WaylandStrategy):
    """未対応・未検出のコンポジタ。問い合わせは一切行わない."""

    name = "wayland-unknown"

    def __init__(self, runner: CommandRunner | None = None, compositor: str = UNKNOWN_COMPOSITOR) -> None:
        super().__init__(runner)
        self.compositor = compositor

    def is_available(self) -> bool:
        return False

    def _query_focused_window(self) -> FocusedWindow:
        raise ToolUnavailableError(self.name, f"unsupported wayland compositor: {self.compositor}")

    def get_idle_state(self, threshold: int = DEFAULT_IDLE_THRESHOLD) -> IdleState:
        raise ToolUnavailableError(self.name, f"unsupported wayland compositor: {self.compositor}")


_STRATEGIES: dict[str, type[WaylandStrategy]] = {
    "sway": SwayStrategy,
    "hyprland": HyprlandStrategy,
    "gnome": GnomeStrategy,
    "kde": KdeStrategy,
}


def create_wayland_strategy(
    runner: CommandRunner | None = None,
    compositor: str | None = None,
) -> WaylandStrategy:
    """検出したコンポジタに対応する戦略を返す."""
    detected = compositor or detect_compositor()
    strategy_cls = _STRATEGIES.get(detected)
    if strategy_cls is None:
        logger.info("Wayland compositor %s is not supported", detected)
        return UnknownCompositorStrategy(runner, compositor=detected)
    return strategy_cls(runner)

