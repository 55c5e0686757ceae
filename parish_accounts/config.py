"""設定管理 - 環境変数の型安全な読み込み"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class AppConfig:
    """アプリケーション設定"""

    project_id: str
    local_mode: bool = False
    # "open": 照会失敗時は NoConflict 扱い / "closed": 再試行後にエラー
    lookup_failure_policy: str = "open"
    lookup_retries: int = 2
    lookup_retry_backoff_seconds: float = 0.2
    strict_municipalities: bool = False
    municipalities_path: str = ""
    sendgrid_api_key: str = ""
    mail_from_email: str = "noreply@visita.app"
    password_reset_continue_url: str = ""

    @classmethod
    def from_env(cls) -> "AppConfig":
        """環境変数から設定を読み込む"""
        load_dotenv()

        local_mode = _env_flag("LOCAL_MODE")

        project_id = os.getenv("PROJECT_ID", "")
        if not project_id and not local_mode:
            raise ValueError("PROJECT_ID is not set in environment")

        policy = os.getenv("LOOKUP_FAILURE_POLICY", "open").strip().lower()
        if policy not in ("open", "closed"):
            raise ValueError(
                f"LOOKUP_FAILURE_POLICY must be 'open' or 'closed', got {policy!r}"
            )

        try:
            retries = int(os.getenv("LOOKUP_RETRIES", "2"))
            backoff = float(os.getenv("LOOKUP_RETRY_BACKOFF_SECONDS", "0.2"))
        except ValueError as e:
            raise ValueError(f"Invalid lookup retry settings: {e}") from e
        if retries < 0 or backoff < 0:
            raise ValueError("LOOKUP_RETRIES and LOOKUP_RETRY_BACKOFF_SECONDS must be >= 0")

        return cls(
            project_id=project_id,
            local_mode=local_mode,
            lookup_failure_policy=policy,
            lookup_retries=retries,
            lookup_retry_backoff_seconds=backoff,
            strict_municipalities=_env_flag("STRICT_MUNICIPALITIES"),
            municipalities_path=os.getenv("MUNICIPALITIES_PATH", ""),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", ""),
            mail_from_email=os.getenv("MAIL_FROM_EMAIL", "noreply@visita.app"),
            password_reset_continue_url=os.getenv("PASSWORD_RESET_CONTINUE_URL", ""),
        )
