"""Process-table based fallback detector.

Every scan enumerates the process table, keeps the processes that look like
GUI applications and ranks them by ancestry and recent CPU activity.
"""

from __future__ import annotations

import dataclasses
import os
import threading
import time
from collections.abc import Callable, Mapping

import psutil

from actionsum.model.models import (
    UNKNOWN,
    ActiveApplication,
    CandidateRecord,
    DetectionMethod,
    DisplayServerKind,
)
from actionsum.watchers.activity import CpuActivitySampler
from actionsum.watchers.ancestry import AncestryScorer
from actionsum.watchers.errors import NoGuiProcessError
from actionsum.watchers.logger import logger
from actionsum.watchers.ranking import rank_candidates, score_candidate

LIVENESS_SECONDS = 5.0

GUI_APPS = (
    # Browsers
    "firefox", "chrome", "chromium", "google-chrome", "brave", "opera", "vivaldi", "microsoft-edge",
    # Editors
    "code", "vscode", "sublime_text", "atom", "gedit", "vim", "nvim", "emacs",
    # Terminals
    "gnome-terminal", "konsole", "terminator", "alacritty", "kitty", "wezterm", "tilix",
    # Communication
    "slack", "discord", "telegram", "signal", "zoom", "teams",
    # Office
    "libreoffice", "soffice.bin", "writer", "calc", "impress",
    # Media
    "vlc", "mpv", "spotify", "rhythmbox", "totem",
    # File managers
    "nautilus", "dolphin", "thunar", "nemo", "caja",
    # IDEs
    "idea", "pycharm", "webstorm", "eclipse", "netbeans",
)  # fmt: skip

NON_GUI_PROCESSES = frozenset(
    {
        # Shells
        "sh", "bash", "zsh", "fish", "dash", "ksh", "tcsh", "csh",
        # Session / bus daemons
        "systemd", "dbus-daemon", "dbus-broker", "dbus-launch", "at-spi-bus-launcher",
        "at-spi2-registryd", "gvfsd", "xdg-desktop-portal", "xdg-document-portal",
        # Audio
        "pulseaudio", "pipewire", "pipewire-pulse", "wireplumber",
        # Credential agents
        "gnome-keyring-daemon", "ssh-agent", "gpg-agent", "polkit-gnome-authentication-agent-1",
    }
)  # fmt: skip

DISPLAY_VARIABLES = ("DISPLAY", "WAYLAND_DISPLAY")


def matches_gui_allow_list(name: str, cmdline: str) -> bool:
    """名前が一致するか、コマンドラインに既知の GUI アプリ名を含むか."""
    return any(name == app or app in cmdline for app in GUI_APPS)


def has_display_environment(environ: Mapping[str, str] | None) -> bool:
    return bool(environ) and any(var in environ for var in DISPLAY_VARIABLES)


def is_gui_process(
    name: str,
    cmdline: str,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """GUI アプリらしいプロセスか判定する.

    (a) 許可リストに一致し、かつ拒否リストに無い、または
    (b) 環境変数に DISPLAY / WAYLAND_DISPLAY がある。
    拒否リストは (a) にしか効かない（(b) はセッションへの接続だけで判定）。
    """
    if name not in NON_GUI_PROCESSES and matches_gui_allow_list(name, cmdline):
        return True
    return has_display_environment(environ)


class ProcessScanner:
    """プロセステーブルを走査して GUI アプリの候補を管理する."""

    def __init__(
        self,
        sampler: CpuActivitySampler | None = None,
        ancestry: AncestryScorer | None = None,
        title_lookup: Callable[[int], str] | None = None,
        clock: Callable[[], float] = time.time,
        liveness: float = LIVENESS_SECONDS,
    ) -> None:
        self.sampler = sampler or CpuActivitySampler(clock=clock)
        self.ancestry = ancestry or AncestryScorer()
        self.title_lookup = title_lookup
        self.liveness = liveness
        self._clock = clock
        self._candidates: dict[int, CandidateRecord] = {}
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """プロセステーブル（/proc）が読めるか."""
        return os.path.isdir("/proc")

    def start(self) -> None:
        self.sampler.start()

    def close(self) -> None:
        self.sampler.close()

    def scan(self) -> None:
        """全プロセスを列挙して候補テーブルを更新し、古い候補を捨てる."""
        found: list[CandidateRecord] = []
        for proc in psutil.process_iter(["pid", "name", "cmdline"]):
            info = proc.info
            name = info.get("name") or ""
            cmdline = " ".join(info.get("cmdline") or [])
            if not name:
                continue
            if not self._classify(proc, name, cmdline):
                continue
            found.append(
                CandidateRecord(
                    pid=info["pid"],
                    command_name=name,
                    command_line=cmdline,
                    last_seen_at=0.0,
                )
            )

        now = self._clock()
        with self._lock:
            for record in found:
                record.last_seen_at = now
                self._candidates[record.pid] = record
            self._evict(now)
        logger.debug("Process scan | candidates=%s", len(self._candidates))

    def _classify(self, proc: psutil.Process, name: str, cmdline: str) -> bool:
        if name not in NON_GUI_PROCESSES and matches_gui_allow_list(name, cmdline):
            return True
        try:
            environ = proc.environ()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return False
        return is_gui_process(name, cmdline, environ)

    def _evict(self, now: float) -> None:
        stale = [
            pid for pid, record in self._candidates.items() if now - record.last_seen_at > self.liveness
        ]
        for pid in stale:
            del self._candidates[pid]

    def candidates(self) -> list[CandidateRecord]:
        with self._lock:
            return [dataclasses.replace(r) for r in self._candidates.values()]

    def rank(self) -> list[CandidateRecord]:
        """候補をスコア付けしてスコア降順で返す."""
        chain = self.ancestry.ancestor_chain()
        terminal = self.ancestry.find_enclosing_terminal(chain)
        activity = self.sampler.snapshot()
        now = self._clock()

        with self._lock:
            self._evict(now)
            for record in self._candidates.values():
                record.score = score_candidate(
                    record,
                    now,
                    enclosing_terminal=terminal,
                    is_ancestor=self.ancestry.is_ancestor(record.pid, chain),
                    last_active_at=activity.get(record.pid),
                )
            ranked = [dataclasses.replace(r) for r in self._candidates.values()]
        return rank_candidates(ranked)

    def get_active_application(self) -> ActiveApplication:
        """スキャン → ランキング → 最上位の候補を返す.

        Raises:
            NoGuiProcessError: 候補が一つもない

        """
        self.scan()
        ranked = self.rank()
        if not ranked:
            raise NoGuiProcessError
        best = ranked[0]
        title = self.title_lookup(best.pid) if self.title_lookup else UNKNOWN
        return ActiveApplication(
            app_name=best.command_name,
            window_title=title or UNKNOWN,
            process_name=best.command_name,
            pid=best.pid,
            display_server=DisplayServerKind.PROCESS_BASED,
            # ランキングスコアをそのまま使う（1.0 を超えうる）
            confidence=best.score,
            detection_method=DetectionMethod.PROCESS,
        )
