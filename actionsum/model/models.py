__all__ = [
    "DEFAULT_IDLE_THRESHOLD",
    "UNKNOWN",
    "ActiveApplication",
    "CandidateRecord",
    "DetectionMethod",
    "DisplayServerKind",
    "ErrorModel",
    "EventModel",
    "FocusedWindow",
    "IdleState",
    "normalize_label",
]


import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict

UNKNOWN = "Unknown"
DEFAULT_IDLE_THRESHOLD = 300

# 空文字やプレースホルダーとして扱う値
_PLACEHOLDERS = {"", "unknown", "(null)", "null", "none"}


def normalize_label(value: str | None) -> str:
    """空やプレースホルダーの文字列を "Unknown" に正規化する."""
    if value is None:
        return UNKNOWN
    stripped = value.strip()
    if stripped.lower() in _PLACEHOLDERS:
        return UNKNOWN
    return stripped


class DisplayServerKind(str, Enum):
    """検出結果の出所を示すディスプレイサーバー種別."""

    X11 = "x11"
    WAYLAND = "wayland"
    PROCESS_BASED = "process-based"


class DetectionMethod(str, Enum):
    """どの経路で検出したか."""

    WINDOW = "window"
    PROCESS = "process"
    HYBRID = "hybrid"


@dataclass
class FocusedWindow:
    """ウィンドウ戦略が返すフォーカス中ウィンドウの情報."""

    app_name: str
    window_title: str = UNKNOWN
    process_name: str = ""
    pid: int | None = None

    def __post_init__(self) -> None:
        self.app_name = normalize_label(self.app_name)
        self.window_title = normalize_label(self.window_title)
        if not self.process_name or not self.process_name.strip():
            self.process_name = self.app_name
        else:
            self.process_name = normalize_label(self.process_name)

    @property
    def is_resolved(self) -> bool:
        """アプリ名が確定しているか."""
        return self.app_name != UNKNOWN


@dataclass
class ActiveApplication:
    """1回のポーリングで得られたアクティブアプリケーション.

    ``confidence`` はプロセス経路ではランキングスコアをそのまま使うため
    1.0 を超えることがある。
    """

    app_name: str
    window_title: str
    process_name: str
    display_server: DisplayServerKind
    confidence: float
    detection_method: DetectionMethod
    pid: int | None = None
    observed_at: float = field(default_factory=time.time)

    def to_dict(self, duration: int = 0, *, is_idle: bool = False, is_locked: bool = False) -> "EventModel":
        """送信用のイベント辞書に変換する."""
        return {
            "timestamp": self.observed_at,
            "app_name": self.app_name,
            "window_title": self.window_title,
            "process_name": self.process_name,
            "duration": duration,
            "is_idle": is_idle,
            "is_locked": is_locked,
            "display_server": self.display_server.value,
            "detection_method": self.detection_method.value,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class IdleState:
    """アイドル・ロック状態."""

    is_idle: bool
    is_locked: bool
    idle_seconds: int

    @classmethod
    def from_idle_seconds(
        cls,
        idle_seconds: int,
        *,
        is_locked: bool = False,
        threshold: int = DEFAULT_IDLE_THRESHOLD,
    ) -> "IdleState":
        """閾値を厳密に超えた場合のみアイドルとみなす (t == T はアイドルではない)."""
        seconds = max(0, int(idle_seconds))
        return cls(
            is_idle=seconds > threshold,
            is_locked=is_locked,
            idle_seconds=seconds,
        )


@dataclass
class CandidateRecord:
    """プロセススキャナー内部の候補レコード."""

    pid: int
    command_name: str
    command_line: str
    last_seen_at: float
    score: float = 0.0


class EventModel(TypedDict):
    """ポンプから API へ送るフォーカスイベント."""

    timestamp: float
    app_name: str
    window_title: str
    process_name: str
    duration: int
    is_idle: bool
    is_locked: bool
    display_server: str
    detection_method: str
    confidence: float


class ErrorModel(TypedDict):
    """検出失敗の記録."""

    timestamp: float
    error_msg: str
