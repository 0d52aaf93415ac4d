"""Background CPU-activity sampler used as a proxy for recent user activity."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import psutil

from actionsum.watchers.logger import logger

SAMPLE_INTERVAL = 1.0
TOP_N = 10
CPU_THRESHOLD = 0.5
RETENTION_SECONDS = 30.0


class CpuActivitySampler:
    """1秒ごとに CPU 使用率上位のプロセスを「最近アクティブ」として記録する.

    記録テーブルはポーリング側のスキャンと並行して読まれるのでロックで守る。
    """

    def __init__(
        self,
        interval: float = SAMPLE_INTERVAL,
        top_n: int = TOP_N,
        threshold: float = CPU_THRESHOLD,
        retention: float = RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.interval = interval
        self.top_n = top_n
        self.threshold = threshold
        self.retention = retention
        self._clock = clock
        self._active: dict[int, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """サンプリングスレッドを起動する（起動済みなら何もしない）."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="actionsum-cpu-sampler", daemon=True
        )
        self._thread.start()
        logger.debug("CPU activity sampler started | interval=%s", self.interval)

    def close(self) -> None:
        """停止してスレッドを join する（何度呼んでもよい）."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval * 5)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sample_once()
            except psutil.Error as e:
                logger.debug("CPU sample failed: %s", e)

    def sample_once(self) -> None:
        """CPU 使用率の上位 N 件を読み取り、閾値を超えたものを記録する."""
        usages: list[tuple[float, int]] = []
        for proc in psutil.process_iter(["pid", "cpu_percent"]):
            try:
                cpu = proc.info["cpu_percent"]
                pid = proc.info["pid"]
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            if cpu is None:
                continue
            usages.append((float(cpu), int(pid)))

        usages.sort(reverse=True)
        now = self._clock()
        with self._lock:
            for cpu, pid in usages[: self.top_n]:
                if cpu > self.threshold:
                    self._active[pid] = now
            self._purge(now)

    def mark_active(self, pid: int, at: float | None = None) -> None:
        with self._lock:
            self._active[pid] = self._clock() if at is None else at

    def _purge(self, now: float) -> None:
        stale = [pid for pid, seen in self._active.items() if now - seen > self.retention]
        for pid in stale:
            del self._active[pid]

    def snapshot(self) -> dict[int, float]:
        """PID -> 最後にアクティブだった時刻 のコピーを返す."""
        with self._lock:
            return dict(self._active)
