from collections.abc import Callable, Iterable, Mapping
from unittest.mock import Mock, patch

import psutil
import pytest

from actionsum.watchers.errors import CommandFailedError, ToolUnavailableError
from actionsum.watchers.tools import KNOWN_TOOLS, CommandRunner, ToolProbe


class FakeRunner(CommandRunner):
    """補助コマンドを実行せず、登録済みの応答を返すランナー.

    応答は引数タプルの前方一致（長いキー優先）で引く。値が例外なら送出する。
    """

    def __init__(
        self,
        tools: Iterable[str] = (),
        responses: Mapping[tuple[str, ...], str | Exception] | None = None,
    ) -> None:
        installed = set(tools)
        with patch(
            "actionsum.watchers.tools.shutil.which",
            side_effect=lambda name: f"/usr/bin/{name}" if name in installed else None,
        ):
            probe = ToolProbe(KNOWN_TOOLS)
        super().__init__(probe, timeout=0.1)
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []

    def run(self, args, *, merge_stderr=False):  # noqa: ANN001, ANN201, ARG002
        command = tuple(args)
        self.calls.append(command)
        if not self.has(command[0]):
            raise ToolUnavailableError(command[0])
        for key in sorted(self.responses, key=len, reverse=True):
            if command[: len(key)] == key:
                result = self.responses[key]
                if isinstance(result, Exception):
                    raise result
                return result
        msg = f"unexpected command: {' '.join(command)}"
        raise CommandFailedError(msg)

    def called(self, *prefix: str) -> int:
        """指定した前方一致のコマンドが呼ばれた回数."""
        return sum(1 for call in self.calls if call[: len(prefix)] == prefix)


class FakeClock:
    """テストから進められる時計."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    """FakeRunner のファクトリ"""
    return FakeRunner


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_proc() -> Callable[..., Mock]:
    """psutil.process_iter が返すプロセスのモックを作る.

    environ を省略すると environ() は AccessDenied を送出する。
    """

    def _make(
        pid: int,
        name: str,
        cmdline: Iterable[str] = (),
        environ: Mapping[str, str] | None = None,
        cpu_percent: float | None = None,
    ) -> Mock:
        proc = Mock()
        proc.pid = pid
        proc.info = {
            "pid": pid,
            "name": name,
            "cmdline": list(cmdline),
            "cpu_percent": cpu_percent,
        }
        if environ is None:
            proc.environ.side_effect = psutil.AccessDenied(pid)
        else:
            proc.environ.return_value = dict(environ)
        return proc

    return _make


@pytest.fixture
def process_table():
    """psutil.process_iter を差し替える（呼ばれるたびに新しいイテレータ）."""
    procs: list[Mock] = []
    with patch("psutil.process_iter", side_effect=lambda *_a, **_k: iter(list(procs))):
        yield procs


@pytest.fixture
def process_tree():
    """psutil.Process を PID -> (親PID, コマンドライン) の表で差し替える."""
    tree: dict[int, tuple[int, list[str]]] = {}

    def _process(pid: int) -> Mock:
        if pid not in tree:
            raise psutil.NoSuchProcess(pid)
        ppid, cmdline = tree[pid]
        proc = Mock()
        proc.ppid.return_value = ppid
        proc.cmdline.return_value = cmdline
        proc.name.return_value = cmdline[0].rsplit("/", 1)[-1] if cmdline else ""
        return proc

    with patch("psutil.Process", side_effect=_process):
        yield tree
