"""Detection error taxonomy.

Strategy-local failures are converted to ``(None, error)`` at the strategy
boundary; only :class:`AllMethodsFailedError` is raised to the caller of the
resolver.
"""

from __future__ import annotations


class DetectionError(Exception):
    """検出処理の失敗を表す基底例外."""

    kind = "detection_error"


class ToolUnavailableError(DetectionError):
    """補助コマンドが存在しない、または戦略が利用できない."""

    kind = "tool_unavailable"

    def __init__(self, tool: str, message: str | None = None) -> None:
        self.tool = tool
        super().__init__(message or f"{tool} is not available")


class CommandFailedError(DetectionError):
    """補助コマンドが非ゼロ終了・タイムアウト・不正な出力を返した."""

    kind = "command_failed"


class CommandTimeoutError(CommandFailedError):
    """補助コマンドがタイムアウトした."""


class NoFocusedWindowError(DetectionError):
    """戦略は動いたが解決できるウィンドウが見つからなかった."""

    kind = "no_focused_window"


class NoGuiProcessError(DetectionError):
    """GUIプロセスの候補が一つもない."""

    kind = "no_gui_process"

    def __init__(self, message: str = "no GUI applications detected") -> None:
        super().__init__(message)


class AllMethodsFailedError(DetectionError):
    """ウィンドウ経路とプロセス経路の両方が失敗した."""

    kind = "all_methods_failed"

    def __init__(
        self,
        window_error: DetectionError | None,
        process_error: DetectionError | None,
    ) -> None:
        self.window_error = window_error
        self.process_error = process_error
        super().__init__(
            f"all detection methods failed - window: {window_error or 'not attempted'}, "
            f"process: {process_error or 'not attempted'}"
        )
