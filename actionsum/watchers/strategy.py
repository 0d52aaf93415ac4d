"""Common interface for per-display-server window-focus strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod

import psutil

from actionsum.model.models import DEFAULT_IDLE_THRESHOLD, DisplayServerKind, FocusedWindow, IdleState
from actionsum.watchers.errors import DetectionError, ToolUnavailableError
from actionsum.watchers.logger import logger
from actionsum.watchers.tools import CommandRunner


class WindowStrategy(ABC):
    """ディスプレイサーバー／コンポジタごとのフォーカス検出戦略."""

    name = "window"
    display_server = DisplayServerKind.X11

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self.runner = runner or CommandRunner()

    @abstractmethod
    def is_available(self) -> bool:
        """この環境で戦略が使えるか."""

    @abstractmethod
    def _query_focused_window(self) -> FocusedWindow:
        """フォーカス中のウィンドウを問い合わせる（失敗時は DetectionError）."""

    @abstractmethod
    def get_idle_state(self, threshold: int = DEFAULT_IDLE_THRESHOLD) -> IdleState:
        """アイドル・ロック状態を返す."""

    def try_get_focused_window(self) -> tuple[FocusedWindow | None, DetectionError | None]:
        """戦略の境界: 例外を (None, error) に変換して返す."""
        if not self.is_available():
            return None, ToolUnavailableError(self.name, f"{self.name} strategy is unavailable")
        try:
            window = self._query_focused_window()
        except DetectionError as e:
            logger.debug("%s focus query failed: %s", self.name, e)
            return None, e
        return window, None

    def close(self) -> None:  # noqa: B027
        """後片付け（デフォルトでは何もしない）."""


def process_name_for_pid(pid: int | None) -> str:
    """PID からプロセス名を引く。取得できなければ空文字."""
    if not pid or pid <= 0:
        return ""
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return ""
