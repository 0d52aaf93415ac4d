from unittest.mock import Mock

import pytest

from actionsum.model.models import UNKNOWN, DetectionMethod, DisplayServerKind
from actionsum.watchers.activity import CpuActivitySampler
from actionsum.watchers.ancestry import AncestryScorer
from actionsum.watchers.errors import NoGuiProcessError
from actionsum.watchers.process_scanner import ProcessScanner, is_gui_process


@pytest.fixture
def scanner(clock):
    # PID 1 から辿るので祖先チェーンは空
    return ProcessScanner(
        sampler=CpuActivitySampler(clock=clock),
        ancestry=AncestryScorer(pid=1),
        clock=clock,
    )


class TestGuiClassification:
    """GUI プロセス判定"""

    def test_allow_list_by_name(self):
        assert is_gui_process("firefox", "/usr/lib/firefox/firefox") is True

    def test_allow_list_by_command_line(self):
        assert is_gui_process("electron", "/opt/slack/slack --enable-crashpad") is True

    def test_plain_daemon_without_display(self):
        assert is_gui_process("cron", "/usr/sbin/cron -f", {"PATH": "/usr/bin"}) is False

    def test_display_environment_marks_gui(self):
        assert is_gui_process("myapp", "./myapp", {"WAYLAND_DISPLAY": "wayland-0"}) is True

    def test_deny_list_only_guards_allow_list_path(self):
        # 拒否リストは許可リスト経路だけに効く: bash のコマンドラインに vim があっても GUI ではない
        assert is_gui_process("bash", "bash -c vim notes.txt") is False
        # DISPLAY 経路では拒否リストを見ないので、DISPLAY を継承した bash は GUI 扱いになる
        assert is_gui_process("bash", "bash", {"DISPLAY": ":0"}) is True


class TestProcessScanner:
    def test_available_when_proc_exists(self, scanner, monkeypatch):
        monkeypatch.setattr("actionsum.watchers.process_scanner.os.path.isdir", lambda path: path == "/proc")
        assert scanner.is_available() is True

    def test_scan_collects_gui_candidates(self, scanner, process_table, make_proc):
        process_table.extend(
            [
                make_proc(100, "systemd", ["/sbin/init"]),
                make_proc(200, "firefox", ["/usr/lib/firefox/firefox"]),
                make_proc(300, "bash", ["bash"], environ={"DISPLAY": ":0"}),
                make_proc(400, "sshd", ["sshd: user"], environ={"HOME": "/root"}),
                make_proc(500, "", []),
            ]
        )

        scanner.scan()

        assert sorted(r.pid for r in scanner.candidates()) == [200, 300]

    def test_candidates_evicted_after_five_seconds(self, scanner, process_table, make_proc, clock):
        # Given: firefox が一度だけ観測される
        process_table.append(make_proc(200, "firefox", ["firefox"]))
        scanner.scan()
        process_table.clear()

        # When/Then: ちょうど 5 秒後はまだ残り、それを過ぎると消える
        clock.advance(5.0)
        scanner.scan()
        assert [r.pid for r in scanner.candidates()] == [200]

        clock.advance(0.5)
        scanner.scan()
        assert scanner.candidates() == []

    def test_no_candidates_raises(self, scanner, process_table, make_proc):
        process_table.append(make_proc(100, "systemd", ["/sbin/init"]))
        with pytest.raises(NoGuiProcessError):
            scanner.get_active_application()

    def test_recent_cpu_activity_wins(self, scanner, process_table, make_proc, clock):
        # Given: ウィンドウ戦略なし、firefox が直近でCPUを使っている
        process_table.extend(
            [
                make_proc(200, "firefox", ["firefox"]),
                make_proc(300, "bash", ["bash"], environ={"DISPLAY": ":0"}),
                make_proc(400, "code", ["/usr/share/code/code"]),
            ]
        )
        scanner.sampler.mark_active(400, at=clock.now - 10)
        scanner.sampler.mark_active(200, at=clock.now - 0.5)

        # When
        app = scanner.get_active_application()

        # Then
        assert app.app_name == "firefox"
        assert app.pid == 200
        assert app.window_title == UNKNOWN
        assert app.display_server is DisplayServerKind.PROCESS_BASED
        assert app.detection_method is DetectionMethod.PROCESS
        assert app.confidence == pytest.approx(0.3 + 0.5 + 0.2)

    def test_ties_broken_by_lowest_pid(self, scanner, process_table, make_proc):
        process_table.extend([make_proc(900, "vlc", ["vlc"]), make_proc(250, "mpv", ["mpv"])])
        scanner.scan()
        ranked = scanner.rank()
        assert [r.pid for r in ranked] == [250, 900]

    def test_title_lookup_used_for_winner(self, clock, process_table, make_proc):
        lookup = Mock(return_value="Inbox - Slack")
        scanner = ProcessScanner(
            sampler=CpuActivitySampler(clock=clock),
            ancestry=AncestryScorer(pid=1),
            title_lookup=lookup,
            clock=clock,
        )
        process_table.append(make_proc(321, "slack", ["/usr/lib/slack/slack"]))

        app = scanner.get_active_application()

        lookup.assert_called_once_with(321)
        assert app.window_title == "Inbox - Slack"

    def test_start_and_close_drive_sampler(self):
        sampler = Mock(spec=CpuActivitySampler)
        scanner = ProcessScanner(sampler=sampler, ancestry=AncestryScorer(pid=1))
        scanner.start()
        scanner.close()
        sampler.start.assert_called_once()
        sampler.close.assert_called_once()
