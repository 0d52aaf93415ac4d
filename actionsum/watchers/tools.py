"""Availability cache and timeout-guarded runner for external helper commands."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Iterable, Sequence

from actionsum.watchers.errors import CommandFailedError, CommandTimeoutError, ToolUnavailableError
from actionsum.watchers.logger import logger

DEFAULT_COMMAND_TIMEOUT = 2.0

# 起動時に一度だけ確認する補助コマンド
KNOWN_TOOLS = (
    "xdotool",
    "xprop",
    "xprintidle",
    "swaymsg",
    "hyprctl",
    "gdbus",
    "qdbus",
    "loginctl",
    "journalctl",
)


class ToolProbe:
    """PATH 上の補助コマンドの有無をキャッシュする.

    ツールはセッション中に増減しない前提なので、各ツールの確認は一度きり。
    """

    def __init__(self, tools: Iterable[str] = KNOWN_TOOLS) -> None:
        self._available: dict[str, bool] = {}
        for tool in tools:
            self._lookup(tool)

    def _lookup(self, name: str) -> bool:
        found = shutil.which(name) is not None
        self._available[name] = found
        logger.debug("Tool probe | %s=%s", name, found)
        return found

    def is_tool_available(self, name: str) -> bool:
        """ツールが利用可能か（未確認の名前は一度だけ調べてキャッシュ）."""
        cached = self._available.get(name)
        if cached is None:
            return self._lookup(name)
        return cached

    def available_tools(self) -> list[str]:
        return sorted(name for name, ok in self._available.items() if ok)


class CommandRunner:
    """補助コマンドをタイムアウト付きで同期実行する."""

    def __init__(
        self,
        probe: ToolProbe | None = None,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.probe = probe or ToolProbe()
        self.timeout = timeout

    def has(self, tool: str) -> bool:
        return self.probe.is_tool_available(tool)

    def run(self, args: Sequence[str], *, merge_stderr: bool = False) -> str:
        """コマンドを実行して標準出力を返す.

        Raises:
            ToolUnavailableError: コマンドが存在しない
            CommandFailedError: 非ゼロ終了またはタイムアウト

        """
        tool = args[0]
        if not self.has(tool):
            raise ToolUnavailableError(tool)

        try:
            result = subprocess.run(  # noqa: S603
                list(args),
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ToolUnavailableError(tool) from e
        except subprocess.TimeoutExpired as e:
            msg = f"{tool} timed out after {self.timeout}s"
            raise CommandTimeoutError(msg) from e
        except OSError as e:
            msg = f"{tool} could not be executed: {e}"
            raise CommandFailedError(msg) from e

        output = _decode(result.stdout)
        if merge_stderr and result.stderr:
            output = f"{output}{_decode(result.stderr)}"
        if result.returncode != 0:
            msg = f"{tool} exited with status {result.returncode}: {output.strip()[:200]}"
            raise CommandFailedError(msg)
        return output


def _decode(data: bytes | str | None) -> str:
    # 古い X11 アプリは Latin-1 のままタイトルを返すことがある
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")
