from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600

PERIOD_TYPES = ("day", "today", "week", "month")


@dataclass
class ReportPeriod:
    """集計期間 [start, end)."""

    start: datetime
    end: datetime
    type: str


@dataclass
class AppSummary:
    """アプリごとの集計."""

    app_name: str
    total_seconds: int = 0
    total_minutes: float = 0.0
    total_hours: float = 0.0
    event_count: int = 0
    percentage: float = 0.0


@dataclass
class Report:
    period: ReportPeriod
    apps: list[AppSummary]
    total_seconds: int
    total_minutes: float
    total_hours: float
    generated_at: datetime = field(default_factory=datetime.now)


def get_period(period_type: str, now: datetime | None = None) -> ReportPeriod:
    """期間種別から開始・終了時刻を求める（週は月曜始まり）.

    Raises:
        ValueError: 未知の期間種別

    """
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period_type in ("day", "today"):
        start = midnight
        end = start + timedelta(days=1)
    elif period_type == "week":
        start = midnight - timedelta(days=now.weekday())
        end = start + timedelta(days=7)
    elif period_type == "month":
        start = midnight.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
    else:
        msg = f"invalid period type: {period_type} (valid: day, week, month)"
        raise ValueError(msg)

    return ReportPeriod(start=start, end=end, type=period_type)


def build_report(
    events: Iterable[Mapping[str, Any]],
    period_type: str = "day",
    now: datetime | None = None,
    *,
    exclude_idle: bool = True,
) -> Report:
    """期間内のイベントをアプリ名ごとに合計したレポートを作る."""
    period = get_period(period_type, now)
    start_ts = period.start.timestamp()
    end_ts = period.end.timestamp()

    summaries: dict[str, AppSummary] = {}
    for event in events:
        timestamp = float(event["timestamp"])
        if not start_ts <= timestamp < end_ts:
            continue
        if exclude_idle and (event.get("is_idle") or event.get("is_locked")):
            continue
        name = event["app_name"]
        summary = summaries.setdefault(name, AppSummary(app_name=name))
        summary.total_seconds += int(event.get("duration", 0))
        summary.event_count += 1

    total_seconds = sum(s.total_seconds for s in summaries.values())
    for summary in summaries.values():
        summary.total_minutes = summary.total_seconds / SECONDS_PER_MINUTE
        summary.total_hours = summary.total_seconds / SECONDS_PER_HOUR
        if total_seconds > 0:
            summary.percentage = summary.total_seconds / total_seconds * 100.0

    apps = sorted(summaries.values(), key=lambda s: (-s.total_seconds, s.app_name))
    return Report(
        period=period,
        apps=apps,
        total_seconds=total_seconds,
        total_minutes=total_seconds / SECONDS_PER_MINUTE,
        total_hours=total_seconds / SECONDS_PER_HOUR,
    )


def format_rounded_unit(seconds: int) -> str:
    """秒数を "45s" / "5m" / "2h" の形に切り捨てで丸める（1時間ちょうどは "60m"）."""
    seconds = abs(int(seconds))
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds}s"
    if seconds > SECONDS_PER_HOUR:
        return f"{seconds // SECONDS_PER_HOUR}h"
    return f"{seconds // SECONDS_PER_MINUTE}m"

