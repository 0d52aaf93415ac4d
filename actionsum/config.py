"""Runtime settings loaded from environment variables (and ``.env.local``)."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

REPO_ROOT = Path(__file__).resolve().parent.parent

MIN_POLL_INTERVAL = 10
MAX_POLL_INTERVAL = 300

_ENV_FIELDS = {
    "ACTIONSUM_POLL_INTERVAL": "poll_interval",
    "ACTIONSUM_IDLE_THRESHOLD": "idle_threshold",
    "ACTIONSUM_COMMAND_TIMEOUT": "command_timeout",
    "ACTIONSUM_API_URL": "api_url",
    "ACTIONSUM_EXCLUDE_IDLE": "exclude_idle",
    "ACTIONSUM_LOG_DIR": "log_dir",
}


class Settings(BaseModel):
    """トラッカー全体の設定."""

    poll_interval: int = 10
    idle_threshold: int = 300
    command_timeout: float = 2.0
    api_url: str = "http://127.0.0.1:5578"
    exclude_idle: bool = True
    log_dir: str = "./log"

    @field_validator("poll_interval")
    @classmethod
    def poll_interval_in_range(cls, v: int) -> int:
        """ポーリング間隔は 10〜300 秒."""
        if v < MIN_POLL_INTERVAL or v > MAX_POLL_INTERVAL:
            msg = (
                f"poll interval must be between {MIN_POLL_INTERVAL} and "
                f"{MAX_POLL_INTERVAL} seconds, got {v}"
            )
            raise ValueError(msg)
        return v

    @field_validator("idle_threshold")
    @classmethod
    def idle_threshold_not_negative(cls, v: int) -> int:
        if v < 0:
            msg = "idle threshold cannot be negative"
            raise ValueError(msg)
        return v

    @field_validator("command_timeout")
    @classmethod
    def command_timeout_positive(cls, v: float) -> float:
        if v <= 0:
            msg = "command timeout must be positive"
            raise ValueError(msg)
        return v

    @field_validator("api_url")
    @classmethod
    def api_url_must_be_http(cls, v: str) -> str:
        if not v.lower().startswith(("http://", "https://")):
            msg = f"api url must start with http:// or https://, got {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")


def settings_from_env(environ: dict[str, str] | None = None) -> Settings:
    """環境変数から設定を組み立てる（未設定の項目はデフォルト値）."""
    env = os.environ if environ is None else environ
    values = {
        field: env[name] for name, field in _ENV_FIELDS.items() if env.get(name)
    }
    return Settings.model_validate(values)


def load_settings(env_file: Path | None = None) -> Settings:
    """``.env.local`` を読み込んでから設定を返す.

    不正な値は ``pydantic.ValidationError`` として起動時に失敗させる。
    """
    load_dotenv(dotenv_path=env_file or REPO_ROOT / ".env.local", override=True)
    return settings_from_env()
