"""ディレクトリ照会の失敗時ポリシーと再試行"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import TypeVar

from parish_accounts.domain.errors import TransientLookupError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LookupFailurePolicy(Enum):
    """照会に失敗した場合の扱い

    OPEN:   衝突なしとして続行する（入力中のライブチェック向け。既知のリスク）
    CLOSED: 指数バックオフで再試行し、尽きたら TransientLookupError を送出する
    """

    OPEN = "open"
    CLOSED = "closed"


def run_with_retries(
    fn: Callable[[], T],
    *,
    retries: int,
    backoff_seconds: float,
    label: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    TransientLookupError のみを対象に fn を再試行する。

    待ち時間は backoff_seconds * 2 ** (attempt - 1)。
    それ以外の例外はそのまま送出する。
    """
    attempts = max(1, 1 + retries)
    last_exc: TransientLookupError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransientLookupError as exc:
            last_exc = exc
            if attempt >= attempts:
                break
            sleep_for = max(0.0, backoff_seconds) * (2 ** (attempt - 1))
            logger.info(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                label,
                attempt,
                attempts,
                sleep_for,
                exc,
            )
            if sleep_for:
                sleep(sleep_for)
    assert last_exc is not None
    raise last_exc
