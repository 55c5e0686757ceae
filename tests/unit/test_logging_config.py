"""logging_config モジュールのテスト"""

import json
import logging
import os
import sys
from unittest.mock import patch

from parish_accounts.logging_config import CloudLoggingFormatter, setup_logging


def _make_record(message: str = "test message", level: int = logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="parish_accounts.services.account_creation",
        level=level,
        pathname="",
        lineno=0,
        msg=message,
        args=(),
        exc_info=exc_info,
    )


class TestCloudLoggingFormatter:
    def test_format_returns_valid_json(self):
        """フォーマット結果が有効なJSONで、必須フィールドを含むこと"""
        parsed = json.loads(CloudLoggingFormatter().format(_make_record("hello world")))

        assert parsed["message"] == "hello world"
        assert parsed["logger"] == "parish_accounts.services.account_creation"
        assert {"severity", "timestamp"} <= set(parsed)

    def test_severity_mapping(self):
        formatter = CloudLoggingFormatter()
        for level, severity in [
            (logging.DEBUG, "DEBUG"),
            (logging.WARNING, "WARNING"),
            (logging.ERROR, "ERROR"),
        ]:
            assert json.loads(formatter.format(_make_record(level=level)))["severity"] == severity

    def test_exception_info_included(self):
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(CloudLoggingFormatter().format(_make_record(exc_info=exc_info)))

        assert "ValueError" in parsed["exception"]

    def test_extra_fields_merged(self):
        """extra_fields で渡した構造化フィールドがトップレベルに出ること"""
        record = _make_record()
        record.extra_fields = {"diocese": "tagbilaran", "parish_id": "tagbilaran__loay__x"}

        parsed = json.loads(CloudLoggingFormatter().format(record))

        assert parsed["diocese"] == "tagbilaran"
        assert parsed["parish_id"] == "tagbilaran__loay__x"

    def test_non_ascii_message_kept(self):
        output = CloudLoggingFormatter().format(_make_record("Santo Niño Parish"))
        assert "Santo Niño Parish" in output

    def test_service_label(self):
        """サービス名が labels に入ること"""
        parsed = json.loads(CloudLoggingFormatter(service="parish-accounts").format(_make_record()))
        assert parsed["logging.googleapis.com/labels"] == {"service": "parish-accounts"}

    def test_custom_level_maps_to_default(self):
        parsed = json.loads(CloudLoggingFormatter().format(_make_record(level=25)))
        assert parsed["severity"] == "DEFAULT"


class TestSetupLogging:
    def test_uses_json_formatter_in_cloud_run(self):
        with patch.dict("os.environ", {"K_SERVICE": "parish-accounts"}, clear=False):
            setup_logging()

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CloudLoggingFormatter)

    def test_uses_text_formatter_in_local_env(self):
        env = {k: v for k, v in os.environ.items() if k not in ("K_SERVICE", "CLOUD_RUN_JOB")}
        with patch.dict("os.environ", env, clear=True):
            setup_logging()

        assert not isinstance(logging.getLogger().handlers[0].formatter, CloudLoggingFormatter)

    def test_log_level_respected(self):
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
            setup_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_client_library_loggers_quieted(self):
        with patch.dict("os.environ", {"LOG_LEVEL": "DEBUG"}, clear=False):
            setup_logging()
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_handlers_not_duplicated(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger().handlers) == 1
