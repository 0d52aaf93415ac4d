import threading
import time

import requests

from actionsum.config import Settings, load_settings
from actionsum.model.models import ErrorModel, EventModel
from actionsum.watchers.active_window import ActiveWindowDetector, create_detector
from actionsum.watchers.errors import AllMethodsFailedError
from actionsum.watchers.logger import configure_log_dir, logger

# HTTP status codes
HTTP_OK = 200

SEND_TIMEOUT = 5
STATUS_TIMEOUT = 3


def collect_event(detector: ActiveWindowDetector, poll_interval: int) -> EventModel | None:
    """1回分のフォーカスイベントを組み立てる.

    アイドル中・ロック中は None を返す（記録しない）。

    Raises:
        AllMethodsFailedError: アクティブアプリを特定できない

    """
    idle = detector.get_idle_info()
    if idle.is_locked:
        logger.info("Screen locked, skipping")
        return None
    if idle.is_idle:
        logger.info("User idle for %ss, skipping", idle.idle_seconds)
        return None

    app = detector.get_active_application()
    return app.to_dict(poll_interval, is_idle=idle.is_idle, is_locked=idle.is_locked)


def send_event(event_data: EventModel, api_url: str) -> bool:
    """イベントデータをAPIに送信

    Args:
        event_data: 送信するイベントデータ
        api_url: API のベース URL

    Returns:
        bool: 送信成功時True

    """
    try:
        response = requests.post(f"{api_url}/events", json=event_data, timeout=SEND_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.warning("Event send failed: %s", e)
        return False
    ok = int(getattr(response, "status_code", 0)) == HTTP_OK
    if not ok:
        logger.warning("Event send failed: HTTP %s", response.status_code)
    return ok


def send_error(message: str, api_url: str) -> bool:
    """検出失敗を API に記録する."""
    error: ErrorModel = {"timestamp": time.time(), "error_msg": message}
    try:
        response = requests.post(f"{api_url}/errors", json=error, timeout=SEND_TIMEOUT)
    except requests.exceptions.RequestException as e:
        logger.warning("Error record send failed: %s", e)
        return False
    return int(getattr(response, "status_code", 0)) == HTTP_OK


def check_api_availability(api_url: str) -> bool:
    """APIの可用性をチェック."""
    # ステータスエンドポイントで確認
    try:
        response = requests.get(f"{api_url}/status", timeout=STATUS_TIMEOUT)
    except requests.exceptions.RequestException:
        return False
    status_code = int(getattr(response, "status_code", 0))
    return status_code == HTTP_OK


def tick(detector: ActiveWindowDetector, settings: Settings) -> bool:
    """1回分の収集と送信. 送信したら True."""
    try:
        event = collect_event(detector, settings.poll_interval)
    except AllMethodsFailedError as e:
        logger.warning("Detection failed: %s", e)
        send_error(str(e), settings.api_url)
        return False
    if event is None:
        return False
    logger.info(
        "%s | %s (%s, confidence=%.2f)",
        event["app_name"],
        event["window_title"],
        event["detection_method"],
        event["confidence"],
    )
    return send_event(event, settings.api_url)


def run(
    detector: ActiveWindowDetector,
    settings: Settings,
    stop_event: threading.Event,
) -> None:
    """stop_event がセットされるまで poll_interval ごとに収集する（初回は即時）."""
    logger.info(
        "Tracking started | interval=%ss idle_threshold=%ss display_server=%s",
        settings.poll_interval,
        settings.idle_threshold,
        detector.display_server.value,
    )
    while not stop_event.is_set():
        tick(detector, settings)
        if stop_event.wait(settings.poll_interval):
            break
    logger.info("Tracking stopped")


def main() -> None:
    """メイン関数."""
    settings = load_settings()
    configure_log_dir(settings.log_dir)
    if not check_api_availability(settings.api_url):
        logger.warning("API not reachable at %s, events may be lost", settings.api_url)

    stop_event = threading.Event()
    with create_detector(settings) as detector:
        if not detector.is_available():
            logger.error("No detection method available: %s", detector.describe_status())
            return
        try:
            run(detector, settings, stop_event)
        except KeyboardInterrupt:
            stop_event.set()
            logger.info("Interrupted")


if __name__ == "__main__":
    main()
