"""Idle and screen-lock probes (xprintidle, logind, screensaver, locker processes)."""

from __future__ import annotations

import os
from collections.abc import Iterable

import psutil

from actionsum.watchers.errors import CommandFailedError, ToolUnavailableError
from actionsum.watchers.logger import logger
from actionsum.watchers.tools import CommandRunner

X11_LOCKERS = (
    "gnome-screensaver-dialog",
    "kscreenlocker",
    "i3lock",
    "slock",
    "xscreensaver",
    "xsecurelock",
)

WAYLAND_LOCKERS = (
    "swaylock",
    "waylock",
    "gtklock",
    "hyprlock",
    "gnome-screensaver-dialog",
)

_SCREENSAVER_CALL = (
    "gdbus",
    "call",
    "--session",
    "--dest",
    "org.gnome.ScreenSaver",
    "--object-path",
    "/org/gnome/ScreenSaver",
    "--method",
    "org.gnome.ScreenSaver.GetActive",
)


def get_idle_ms(runner: CommandRunner) -> int:
    """最後の入力からの経過時間をミリ秒で取得（xprintidle）.

    ツールが無い・出力が不正な場合は 0 を返すフォールバック。
    """
    try:
        output = runner.run(["xprintidle"])
    except (ToolUnavailableError, CommandFailedError) as e:
        logger.debug("xprintidle unavailable: %s", e)
        return 0
    try:
        return max(0, int(output.strip()))
    except ValueError:
        return 0


def any_process_running(names: Iterable[str]) -> bool:
    """指定名のプロセスがひとつでも生きているか."""
    wanted = set(names)
    for proc in psutil.process_iter(["name"]):
        try:
            if proc.info["name"] in wanted:
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return False


def session_locked_hint(runner: CommandRunner) -> bool:
    """logind の LockedHint を確認する."""
    args = ["loginctl", "show-session"]
    session_id = os.getenv("XDG_SESSION_ID")
    if session_id:
        args.append(session_id)
    args.extend(["-p", "LockedHint"])
    try:
        output = runner.run(args)
    except (ToolUnavailableError, CommandFailedError):
        return False
    return "LockedHint=yes" in output


def screensaver_active(runner: CommandRunner) -> bool:
    """GNOME ScreenSaver の GetActive を確認する."""
    try:
        output = runner.run(_SCREENSAVER_CALL)
    except (ToolUnavailableError, CommandFailedError):
        return False
    return "true" in output


def is_screen_locked(
    runner: CommandRunner,
    lockers: Iterable[str] = (),
    *,
    check_session: bool = True,
) -> bool:
    """ロック状態を推定する（ロッカープロセス OR セッションのロックヒント）."""
    if lockers and any_process_running(lockers):
        return True
    if not check_session:
        return False
    return screensaver_active(runner) or session_locked_hint(runner)
