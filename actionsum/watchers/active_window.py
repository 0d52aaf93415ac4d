"""Hybrid focused-application resolver.

The window-focus strategy is tried first (highest confidence); the process
scanner is the fallback. This module exposes the whole surface the poller
depends on.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from actionsum.config import Settings
from actionsum.model.models import (
    DEFAULT_IDLE_THRESHOLD,
    UNKNOWN,
    ActiveApplication,
    DetectionMethod,
    DisplayServerKind,
    IdleState,
)
from actionsum.watchers.errors import AllMethodsFailedError, DetectionError
from actionsum.watchers.idle import is_screen_locked
from actionsum.watchers.logger import logger
from actionsum.watchers.process_scanner import ProcessScanner
from actionsum.watchers.strategy import WindowStrategy
from actionsum.watchers.tools import CommandRunner, ToolProbe
from actionsum.watchers.wayland import create_wayland_strategy
from actionsum.watchers.x11 import X11Strategy, find_window_title_for_pid

WINDOW_CONFIDENCE = 1.0
HYBRID_CONFIDENCE = 0.9


def select_window_strategy(
    runner: CommandRunner,
    environ: Mapping[str, str] | None = None,
) -> WindowStrategy | None:
    """環境変数とプロセスから一度だけ戦略を選ぶ.

    Wayland セッションならコンポジタの戦略、使えなければ DISPLAY があるとき X11。
    未対応コンポジタの戦略は利用不可のまま保持する（状態表示用）。
    """
    env = os.environ if environ is None else environ
    wayland_strategy: WindowStrategy | None = None

    if env.get("WAYLAND_DISPLAY") or env.get("XDG_SESSION_TYPE") == "wayland":
        wayland_strategy = create_wayland_strategy(runner)
        if wayland_strategy.is_available():
            return wayland_strategy

    if env.get("DISPLAY"):
        x11_strategy = X11Strategy(runner)
        if x11_strategy.is_available():
            return x11_strategy

    return wayland_strategy


class ActiveWindowDetector:
    """ウィンドウ戦略とプロセススキャナーを組み合わせたリゾルバー."""

    def __init__(
        self,
        window_strategy: WindowStrategy | None,
        process_scanner: ProcessScanner,
        idle_threshold: int = DEFAULT_IDLE_THRESHOLD,
        runner: CommandRunner | None = None,
    ) -> None:
        self.window_strategy = window_strategy
        self.process_scanner = process_scanner
        self.runner = runner or (window_strategy.runner if window_strategy else CommandRunner())
        self.idle_threshold = idle_threshold
        self.last_successful_method: DetectionMethod | None = None
        self._closed = False

        if window_strategy is not None:
            logger.info(
                "Window strategy selected: %s (available=%s)",
                window_strategy.name,
                window_strategy.is_available(),
            )
        else:
            logger.info("Window strategy unavailable, using process-based detection only")
        self.process_scanner.start()

    def __enter__(self) -> ActiveWindowDetector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def display_server(self) -> DisplayServerKind:
        if self.window_strategy is not None:
            return self.window_strategy.display_server
        return DisplayServerKind.PROCESS_BASED

    def is_available(self) -> bool:
        if self.window_strategy is not None and self.window_strategy.is_available():
            return True
        return self.process_scanner.is_available()

    def get_active_application(self) -> ActiveApplication:
        """現在フォーカスされているアプリケーションを返す.

        Raises:
            AllMethodsFailedError: ウィンドウ経路・プロセス経路の両方が失敗

        """
        window_error: DetectionError | None = None

        if self.window_strategy is not None and self.window_strategy.is_available():
            window, window_error = self.window_strategy.try_get_focused_window()
            if window is not None and window.is_resolved:
                self.last_successful_method = DetectionMethod.WINDOW
                return ActiveApplication(
                    app_name=window.app_name,
                    window_title=window.window_title,
                    process_name=window.process_name,
                    pid=window.pid,
                    display_server=self.window_strategy.display_server,
                    confidence=WINDOW_CONFIDENCE,
                    detection_method=DetectionMethod.WINDOW,
                )
            if window is not None:
                window_error = DetectionError(f"{self.window_strategy.name} returned a placeholder window")

        try:
            app = self.process_scanner.get_active_application()
        except DetectionError as process_error:
            logger.debug(
                "All detection methods failed - window: %s, process: %s",
                window_error,
                process_error,
            )
            raise AllMethodsFailedError(window_error, process_error) from process_error

        self.last_successful_method = DetectionMethod.PROCESS
        return self._enhance_with_window(app)

    def _enhance_with_window(self, app: ActiveApplication) -> ActiveApplication:
        """ウィンドウ戦略を改めて問い合わせ、同じアプリならタイトルを補う."""
        if self.window_strategy is None:
            return app
        window, _ = self.window_strategy.try_get_focused_window()
        if window is None:
            return app
        window_names = {window.app_name, window.process_name} - {UNKNOWN}
        if window_names & {app.app_name, app.process_name}:
            app.window_title = window.window_title
            app.confidence = HYBRID_CONFIDENCE
            app.detection_method = DetectionMethod.HYBRID
            app.display_server = self.window_strategy.display_server
            self.last_successful_method = DetectionMethod.HYBRID
        return app

    def get_idle_info(self) -> IdleState:
        """アイドル・ロック状態を返す（外に例外を出さない）."""
        strategy = self.window_strategy
        if strategy is not None and strategy.is_available():
            try:
                return strategy.get_idle_state(self.idle_threshold)
            except DetectionError as e:
                logger.debug("%s idle probe failed: %s", strategy.name, e)
        return IdleState(
            is_idle=False,
            is_locked=is_screen_locked(self.runner),
            idle_seconds=0,
        )

    def describe_status(self) -> dict[str, Any]:
        """検出器の状態（どの経路が使えるか）を返す."""
        strategy = self.window_strategy
        return {
            "display_server": self.display_server.value,
            "window_strategy": strategy.name if strategy else None,
            "window_available": bool(strategy and strategy.is_available()),
            "process_available": self.process_scanner.is_available(),
            "last_successful_method": (
                self.last_successful_method.value if self.last_successful_method else None
            ),
            "tools": self.runner.probe.available_tools(),
        }

    def close(self) -> None:
        """サンプラーと戦略のリソースを解放する（何度呼んでもよい）."""
        if self._closed:
            return
        self._closed = True
        self.process_scanner.close()
        if self.window_strategy is not None:
            self.window_strategy.close()


def create_detector(settings: Settings | None = None) -> ActiveWindowDetector:
    """現在の環境に合わせた検出器を組み立てる."""
    settings = settings or Settings()
    runner = CommandRunner(ToolProbe(), timeout=settings.command_timeout)
    strategy = select_window_strategy(runner)
    scanner = ProcessScanner(title_lookup=lambda pid: find_window_title_for_pid(runner, pid))
    return ActiveWindowDetector(
        strategy,
        scanner,
        runner=runner,
        idle_threshold=settings.idle_threshold,
    )


def get_active_app(detector: ActiveWindowDetector) -> dict[str, str | None]:
    """前面アプリを辞書で返す（失敗時は None）."""
    try:
        app = detector.get_active_application()
    except AllMethodsFailedError:
        return {"active_app": None, "title": None}
    return {"active_app": app.app_name, "title": app.window_title}


if __name__ == "__main__":  # pragma: no cover
    import time

    with create_detector() as _detector:
        for _ in range(3):
            _ = get_active_app(_detector)
            time.sleep(1)
