"""EmailUniquenessChecker - メールアドレスの一意性チェック

メールアドレスの一意性は司教区・教区に関係なくシステム全体で判定する。
status=active のレコードのみが対象（無効化されたアカウントのメールは再利用できる）。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from email_validator import EmailNotValidError, validate_email

from parish_accounts.domain.errors import TransientLookupError, ValidationError
from parish_accounts.domain.models import AccountStatus, FieldFilter, Fields
from parish_accounts.domain.ports import AccountDirectory
from parish_accounts.services.lookup import LookupFailurePolicy, run_with_retries

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """前後の空白を除去して小文字にする。空の場合は ValidationError"""
    normalized = (email or "").strip().lower()
    if not normalized:
        raise ValidationError("EMPTY_EMAIL", "Email address must not be empty")
    return normalized


def validate_email_address(email: str) -> str:
    """
    メールアドレスの形式を検証し、正規化した値を返す（到達性は確認しない）。

    Raises:
        ValidationError(EMPTY_EMAIL | INVALID_EMAIL)
    """
    normalized = normalize_email(email)
    try:
        validate_email(
            normalized,
            allow_smtputf8=True,
            check_deliverability=False,
            globally_deliverable=False,
        )
    except EmailNotValidError as e:
        raise ValidationError("INVALID_EMAIL", f"Invalid email address: {e}") from e
    return normalized


class EmailUniquenessChecker:
    """メールアドレスがアクティブなアカウントに使われていないかを判定する"""

    def __init__(
        self,
        directory: AccountDirectory,
        failure_policy: LookupFailurePolicy = LookupFailurePolicy.OPEN,
        retries: int = 2,
        backoff_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._directory = directory
        self._policy = failure_policy
        self._retries = retries
        self._backoff = backoff_seconds
        self._sleep = sleep

    def is_available(
        self, email: str, failure_policy: LookupFailurePolicy | None = None
    ) -> bool:
        """
        メールアドレスが利用可能なら True。

        OPEN ポリシーで照会に失敗した場合は True を返す（fail open）。

        Raises:
            ValidationError(EMPTY_EMAIL): 空の場合
            TransientLookupError: CLOSED ポリシーで照会が失敗し続けた場合
        """
        policy = failure_policy or self._policy
        normalized = normalize_email(email)
        filters = [
            FieldFilter(Fields.EMAIL, normalized),
            FieldFilter(Fields.STATUS, AccountStatus.ACTIVE.value),
        ]

        try:
            if policy is LookupFailurePolicy.CLOSED:
                hits = run_with_retries(
                    lambda: self._directory.query(filters),
                    retries=self._retries,
                    backoff_seconds=self._backoff,
                    label="Email lookup",
                    sleep=self._sleep,
                )
            else:
                hits = self._directory.query(filters)
        except TransientLookupError as e:
            if policy is LookupFailurePolicy.CLOSED:
                logger.error("Email lookup failed, blocking: email=%s, error=%s", normalized, e)
                raise
            logger.warning(
                "Email lookup failed, treating as available: email=%s, error=%s",
                normalized,
                e,
            )
            return True

        if hits:
            logger.debug("Email already in use: email=%s, uid=%s", normalized, hits[0].doc_id)
            return False
        return True
