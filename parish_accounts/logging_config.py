"""ロギング設定

Cloud Run 上では Cloud Logging が解釈できる JSON を1行ずつ出力し、
ローカルでは人が読むテキスト形式にする。

    from parish_accounts.logging_config import setup_logging
    setup_logging()

環境変数:
    LOG_LEVEL: DEBUG / INFO / WARNING / ERROR / CRITICAL（デフォルト: INFO）
    K_SERVICE / CLOUD_RUN_JOB: Cloud Run が自動で設定する

一時パスワードとパスワード設定リンクはどのレベルでも出力しない。
"""

import json
import logging
import os

# Cloud Logging の severity はレベル番号から引く（カスタムレベル名は DEFAULT）
_SEVERITY_BY_LEVEL = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARNING",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "CRITICAL",
}

# INFO だと通信ごとに出力されるクライアントライブラリ
_NOISY_LOGGERS = ("google.auth", "urllib3", "python_http_client")


class CloudLoggingFormatter(logging.Formatter):
    """Cloud Logging 向けの JSON フォーマッタ

    `extra={"extra_fields": {...}}` で渡した値（diocese, parish_id など）は
    トップレベルのキーとして出力され、ログエクスプローラで絞り込める。
    """

    def __init__(self, service: str = "") -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "severity": _SEVERITY_BY_LEVEL.get(record.levelno, "DEFAULT"),
            "message": record.getMessage(),
            "logger": record.name,
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logging.googleapis.com/sourceLocation": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        if self._service:
            entry["logging.googleapis.com/labels"] = {"service": self._service}
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(getattr(record, "extra_fields", None) or {})
        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging() -> None:
    """ルートロガーを初期化する（何度呼んでもハンドラは1つ）"""
    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    service = os.getenv("K_SERVICE") or os.getenv("CLOUD_RUN_JOB") or ""

    handler = logging.StreamHandler()
    if service:
        handler.setFormatter(CloudLoggingFormatter(service=service))
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-7s %(name)s | %(message)s")
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
