import logging
import os
from pathlib import Path

__all__ = ["configure_log_dir", "logger"]

_FORMATTER = logging.Formatter(
    fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _file_handler(log_dir: Path) -> logging.FileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "pump.log", encoding="utf-8")
    fh.setFormatter(_FORMATTER)
    return fh


logger = logging.getLogger("actionsum")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    logger.addHandler(_file_handler(Path(os.getenv("ACTIONSUM_LOG_DIR", "./log"))))


def configure_log_dir(log_dir: str | Path) -> Path:
    """ログ出力先を設定値のディレクトリに切り替える（同じ場所なら何もしない）."""
    target = (Path(log_dir) / "pump.log").resolve()
    for handler in list(logger.handlers):
        if not isinstance(handler, logging.FileHandler):
            continue
        if Path(handler.baseFilename) == target:
            return target
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(_file_handler(target.parent))
    return target
