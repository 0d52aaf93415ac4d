import subprocess
from unittest.mock import Mock, patch

import pytest

from actionsum.watchers.errors import CommandFailedError, CommandTimeoutError, ToolUnavailableError
from actionsum.watchers.tools import CommandRunner, ToolProbe
from actionsum.watchers.x11 import X11Strategy


def _which_for(*installed):
    return Mock(side_effect=lambda name: f"/usr/bin/{name}" if name in installed else None)


class TestToolProbe:
    """補助コマンドの有無キャッシュ"""

    def test_lookup_happens_once_per_tool(self):
        # Given: xdotool だけが PATH にある
        which = _which_for("xdotool")
        with patch("actionsum.watchers.tools.shutil.which", which):
            probe = ToolProbe(["xdotool", "xprop"])

            # When: 何度問い合わせても
            results = [probe.is_tool_available("xdotool") for _ in range(5)]
            missing = [probe.is_tool_available("xprop") for _ in range(5)]

        # Then: 答えは変わらず which は各ツール1回ずつ
        assert results == [True] * 5
        assert missing == [False] * 5
        assert which.call_count == 2

    def test_unknown_tool_is_looked_up_lazily(self):
        which = _which_for("wmctrl")
        with patch("actionsum.watchers.tools.shutil.which", which):
            probe = ToolProbe([])
            assert probe.is_tool_available("wmctrl") is True
            assert probe.is_tool_available("wmctrl") is True
        assert which.call_count == 1

    def test_available_tools_sorted(self):
        with patch("actionsum.watchers.tools.shutil.which", _which_for("xprop", "gdbus")):
            probe = ToolProbe(["xprop", "gdbus", "swaymsg"])
        assert probe.available_tools() == ["gdbus", "xprop"]


class TestCommandRunner:
    @pytest.fixture
    def runner(self):
        with patch("actionsum.watchers.tools.shutil.which", _which_for("xdotool")):
            return CommandRunner(ToolProbe(["xdotool", "xprop"]), timeout=1.5)

    def test_missing_tool_not_executed(self, runner):
        with patch("actionsum.watchers.tools.subprocess.run") as mock_run:
            with pytest.raises(ToolUnavailableError) as exc:
                runner.run(["xprop", "-root"])
        mock_run.assert_not_called()
        assert exc.value.tool == "xprop"

    def test_returns_stdout_with_timeout(self, runner):
        completed = subprocess.CompletedProcess(["xdotool"], 0, stdout=b"12345\n", stderr=b"")
        with patch("actionsum.watchers.tools.subprocess.run", return_value=completed) as mock_run:
            assert runner.run(["xdotool", "getactivewindow"]) == "12345\n"
        assert mock_run.call_args.kwargs["timeout"] == 1.5

    def test_nonzero_exit(self, runner):
        completed = subprocess.CompletedProcess(["xdotool"], 1, stdout=b"", stderr=b"boom")
        with patch("actionsum.watchers.tools.subprocess.run", return_value=completed):
            with pytest.raises(CommandFailedError):
                runner.run(["xdotool", "getactivewindow"])

    def test_timeout(self, runner):
        with patch(
            "actionsum.watchers.tools.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["xdotool"], 1.5),
        ):
            with pytest.raises(CommandTimeoutError, match="timed out"):
                runner.run(["xdotool", "getactivewindow"])

    def test_binary_vanished(self, runner):
        with patch("actionsum.watchers.tools.subprocess.run", side_effect=FileNotFoundError):
            with pytest.raises(ToolUnavailableError):
                runner.run(["xdotool", "getactivewindow"])

    def test_merge_stderr(self, runner):
        completed = subprocess.CompletedProcess(["xdotool"], 0, stdout=b"out", stderr=b"err")
        with patch("actionsum.watchers.tools.subprocess.run", return_value=completed):
            assert runner.run(["xdotool", "x"], merge_stderr=True) == "outerr"

    def test_undecodable_output_is_replaced(self, runner):
        # Given: Latin-1 のままのタイトルを出力するコマンド
        completed = subprocess.CompletedProcess(["xdotool"], 0, stdout=b"Caf\xe9 - legacy app\n", stderr=b"")
        with patch("actionsum.watchers.tools.subprocess.run", return_value=completed) as mock_run:
            output = runner.run(["xdotool", "getwindowname", "1"])

        # Then: 例外にならず置換文字で読める
        assert output == "Caf\ufffd - legacy app\n"
        assert "text" not in mock_run.call_args.kwargs


class TestLegacyWindowTitle:
    """非 UTF-8 のタイトルでも戦略の境界を越えて例外が漏れない"""

    def test_latin1_title_returns_window(self, process_tree):
        # Given: xdotool だけがあり、タイトルが Latin-1 のバイト列
        process_tree[4242] = (1, ["/usr/bin/xterm"])
        outputs = {
            "getactivewindow": b"71303175\n",
            "getwindowname": b"Caf\xe9 - legacy app\n",
            "getwindowpid": b"4242\n",
        }

        def _run(args, **_kwargs):
            return subprocess.CompletedProcess(args, 0, stdout=outputs[args[1]], stderr=b"")

        with patch("actionsum.watchers.tools.shutil.which", _which_for("xdotool")):
            runner = CommandRunner(ToolProbe(["xdotool", "xprop"]))

        # When
        with patch("actionsum.watchers.tools.subprocess.run", side_effect=_run):
            window, error = X11Strategy(runner).try_get_focused_window()

        # Then
        assert error is None
        assert window.window_title == "Caf\ufffd - legacy app"
        assert window.app_name == "xterm"
