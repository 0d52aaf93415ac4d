"""FastAPI app collecting focus events and serving time reports."""

import time
from collections import deque
from dataclasses import asdict
from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, field_validator

from actionsum.api.services.report import PERIOD_TYPES, build_report, format_rounded_unit
from actionsum.config import Settings, load_settings
from actionsum.model.models import UNKNOWN

MAX_EVENTS = 10_000
MAX_ERRORS = 500
DEFAULT_EVENT_LIMIT = 100
DEFAULT_PORT = 5578

# FastAPIアプリケーションのインスタンスを作成
app = FastAPI(
    title="actionsum",
    description="Focused-application time tracking API",
)

# グローバルな状態管理
STATE: dict[str, Any] = {
    "settings": Settings(),
    "started_at": time.time(),
    "events": deque(maxlen=MAX_EVENTS),
    "errors": deque(maxlen=MAX_ERRORS),
    "logs": deque(maxlen=100),  # ログを保存 (最大100件)
}

# --- ロギング ---


def log_message(message: str) -> None:
    """ログキューに追加する."""
    STATE["logs"].append(message)


# --- Pydanticモデル定義 ---


class Event(BaseModel):
    """フォーカスイベントのデータモデル."""

    timestamp: float
    app_name: str
    window_title: str = UNKNOWN
    process_name: str = ""
    duration: int = 0
    is_idle: bool = False
    is_locked: bool = False
    display_server: str = ""
    detection_method: str = ""
    confidence: float = 0.0

    @field_validator("app_name")
    @classmethod
    def app_name_lower(cls, v: str) -> str:
        """アプリ名は小文字で保存する（集計キーになる）."""
        if not v or not v.strip():
            msg = "app_name must not be empty"
            raise ValueError(msg)
        return v.strip().lower()

    @field_validator("duration")
    @classmethod
    def duration_not_negative(cls, v: int) -> int:
        if v < 0:
            msg = "duration cannot be negative"
            raise ValueError(msg)
        return v


class ErrorRecord(BaseModel):
    """検出失敗の記録."""

    timestamp: float
    error_msg: str


# --- アプリケーションのライフサイクルイベント ---


# Deprecated on_event usage is temporarily retained for simplicity.
@app.on_event("startup")  # pyright: ignore[reportDeprecated]
async def startup_event() -> None:
    """起動時に設定を読み込む."""
    STATE["settings"] = load_settings()
    STATE["started_at"] = time.time()
    log_message(f"API started | exclude_idle={STATE['settings'].exclude_idle}")


# --- APIエンドポイント定義 ---


@app.get("/")
async def index() -> dict[str, Any]:
    """エンドポイント一覧."""
    return {
        "name": "actionsum",
        "endpoints": [
            {"path": "/events", "description": "Record a focus event (POST)"},
            {"path": "/errors", "description": "Record a detection failure (POST)"},
            {"path": "/status", "description": "Tracker status"},
            {"path": "/health", "description": "Health check"},
            {"path": "/api/events", "description": "Recent events (query: limit)"},
            {"path": "/api/events/latest", "description": "Most recent event"},
            {"path": "/api/errors", "description": "Recorded detection failures"},
            {"path": "/api/logs", "description": "Recent API log lines"},
            {"path": "/api/report", "description": "Time report (query: period=day|week|month)"},
        ],
    }


@app.post("/events")
async def ingest_event(event: Event) -> dict[str, Any]:
    """フォーカスイベントを取り込む."""
    record = event.model_dump()
    STATE["events"].append(record)
    log_message(f"Event recorded: {event.app_name} ({event.duration}s, {event.detection_method})")
    return {"ok": True, "event": record}


@app.post("/errors")
async def ingest_error(error: ErrorRecord) -> dict[str, Any]:
    """検出失敗を取り込む."""
    STATE["errors"].append(error.model_dump())
    log_message(f"Detection error: {error.error_msg}")
    return {"ok": True}


@app.get("/status")
async def get_current_status() -> dict[str, Any]:
    """現在のシステム状態を取得する."""
    settings: Settings = STATE["settings"]
    status: dict[str, Any] = {
        "running": True,
        "uptime_seconds": time.time() - STATE["started_at"],
        "poll_interval": settings.poll_interval,
        "idle_threshold": settings.idle_threshold,
        "exclude_idle": settings.exclude_idle,
        "event_count": len(STATE["events"]),
        "error_count": len(STATE["errors"]),
    }
    if STATE["events"]:
        latest = STATE["events"][-1]
        status["latest_event"] = {
            "app_name": latest["app_name"],
            "window_title": latest["window_title"],
            "timestamp": latest["timestamp"],
            "display_server": latest["display_server"],
        }
    return status


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy", "time": datetime.now().astimezone().isoformat()}


# --- 参照用エンドポイント ---


@app.get("/api/events")
async def list_events(limit: int = Query(DEFAULT_EVENT_LIMIT, gt=0)) -> list[dict[str, Any]]:
    """直近のイベントを古い順に最大 limit 件返す."""
    events = list(STATE["events"])
    return events[-limit:]


@app.get("/api/events/latest")
async def latest_event() -> dict[str, Any]:
    if not STATE["events"]:
        raise HTTPException(status_code=404, detail="No events recorded")
    return STATE["events"][-1]


@app.get("/api/errors")
async def list_errors() -> list[dict[str, Any]]:
    return list(STATE["errors"])


@app.get("/api/logs")
async def list_logs() -> list[str]:
    """API のログ（最大100件）."""
    return list(STATE["logs"])


@app.get("/api/report")
async def get_report(period: str = "day") -> dict[str, Any]:
    """期間ごとのアプリ別利用時間レポート."""
    if period not in PERIOD_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"invalid period type: {period} (valid: day, week, month)",
        )
    settings: Settings = STATE["settings"]
    report = build_report(
        list(STATE["events"]),
        period,
        exclude_idle=settings.exclude_idle,
    )
    result = asdict(report)
    result["total_time"] = format_rounded_unit(report.total_seconds)
    for summary in result["apps"]:
        summary["time"] = format_rounded_unit(summary["total_seconds"])
    return result


def serve() -> None:
    """ACTIONSUM_API_URL のホスト・ポートで API を起動する."""
    url = urlsplit(load_settings().api_url)
    uvicorn.run(app, host=url.hostname or "127.0.0.1", port=url.port or DEFAULT_PORT)


if __name__ == "__main__":  # pragma: no cover
    serve()
