"""Walks the detector's own parent chain to find an enclosing terminal or IDE.

If the tracker was started from a terminal, that terminal is the window the
user is looking at, which outweighs any CPU-based guess.
"""

from __future__ import annotations

import os

import psutil

TERMINALS = (
    "terminator",
    "gnome-terminal",
    "konsole",
    "alacritty",
    "kitty",
    "tilix",
    "xterm",
    "rxvt",
    "wezterm",
)


class AncestryScorer:
    """自プロセスの祖先チェーンを辿る."""

    def __init__(self, pid: int | None = None, terminals: tuple[str, ...] = TERMINALS) -> None:
        self.pid = pid if pid is not None else os.getpid()
        self.terminals = terminals

    def ancestor_chain(self) -> list[tuple[int, str]]:
        """親から順に (pid, コマンドライン) を返す。PID 1 か読み取り失敗で止まる."""
        chain: list[tuple[int, str]] = []
        seen = {self.pid}
        pid = self.pid
        while pid > 1:
            try:
                ppid = psutil.Process(pid).ppid()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                break
            if ppid <= 0 or ppid in seen:
                break
            seen.add(ppid)
            chain.append((ppid, _command_line(ppid)))
            pid = ppid
        return chain

    def find_enclosing_terminal(self, chain: list[tuple[int, str]] | None = None) -> int | None:
        """コマンドラインが既知の端末名を含む最初の祖先の PID."""
        for pid, cmdline in self.ancestor_chain() if chain is None else chain:
            lowered = cmdline.lower()
            if any(term in lowered for term in self.terminals):
                return pid
        return None

    def is_ancestor(self, candidate_pid: int, chain: list[tuple[int, str]] | None = None) -> bool:
        """candidate_pid が自プロセスの（直接または間接の）親か."""
        return any(pid == candidate_pid for pid, _ in (self.ancestor_chain() if chain is None else chain))


def _command_line(pid: int) -> str:
    try:
        return " ".join(psutil.Process(pid).cmdline())
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return ""
