"""Firebase Identity Adapter

IdentityProvider の Firebase Auth 実装。

アカウントはランダムな一時パスワードで作成し、
パスワード設定はリセットリンク（メール送信）で本人に行わせる。
一時パスワードとリンクはログに出さない。
"""

from __future__ import annotations

import logging
import secrets
import threading
import uuid
from typing import Protocol

import firebase_admin
import firebase_admin.auth as fb_auth
from firebase_admin import exceptions as fb_exceptions

from parish_accounts.domain.errors import DuplicateEmailError, IdentityIssuanceError
from parish_accounts.domain.ports import IdentityProvider

logger = logging.getLogger(__name__)


class CredentialMailer(Protocol):
    """パスワード設定リンクの送信先（SendGridCredentialMailer 等）"""

    def send_credential_setup(self, to_email: str, setup_link: str) -> None: ...


class FirebaseIdentityProvider(IdentityProvider):
    """Firebase Auth を使った IdentityProvider 実装"""

    def __init__(
        self,
        app: firebase_admin.App | None = None,
        mailer: CredentialMailer | None = None,
        continue_url: str = "",
    ) -> None:
        """
        Args:
            app: Firebase Admin アプリ（None の場合はデフォルトアプリ）
            mailer: リセットリンクの送信先。None の場合はリンク生成のみ
            continue_url: パスワード設定後のリダイレクト先
        """
        self._app = app
        self._mailer = mailer
        self._continue_url = continue_url

    def issue_identity(self, email: str) -> str:
        try:
            user = fb_auth.create_user(
                email=email,
                password=secrets.token_urlsafe(24),
                email_verified=False,
                app=self._app,
            )
        except fb_auth.EmailAlreadyExistsError as e:
            raise DuplicateEmailError(email) from e
        except (fb_exceptions.FirebaseError, ValueError) as e:
            raise IdentityIssuanceError(f"Failed to create auth user: {e}") from e
        return user.uid

    def revoke_identity(self, uid: str) -> None:
        try:
            fb_auth.delete_user(uid, app=self._app)
        except fb_auth.UserNotFoundError:
            logger.info("Auth user already absent: uid=%s", uid)
        except fb_exceptions.FirebaseError as e:
            raise IdentityIssuanceError(f"Failed to delete auth user {uid}: {e}") from e

    def trigger_credential_setup(self, email: str) -> None:
        settings = (
            fb_auth.ActionCodeSettings(url=self._continue_url)
            if self._continue_url
            else None
        )
        try:
            link = fb_auth.generate_password_reset_link(
                email, action_code_settings=settings, app=self._app
            )
        except (fb_exceptions.FirebaseError, ValueError) as e:
            raise IdentityIssuanceError(f"Failed to generate setup link: {e}") from e

        if self._mailer is None:
            logger.warning("No mailer configured, setup link not delivered: email=%s", email)
            return
        try:
            self._mailer.send_credential_setup(email, link)
        except Exception as e:
            raise IdentityIssuanceError(f"Failed to send setup email: {e}") from e
        logger.info("Credential setup email sent: email=%s", email)


class InMemoryIdentityProvider(IdentityProvider):
    """LOCAL_MODE とテスト用の IdentityProvider 実装"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.users: dict[str, str] = {}  # uid -> email
        self.setup_requests: list[str] = []

    def issue_identity(self, email: str) -> str:
        with self._lock:
            if email in self.users.values():
                raise DuplicateEmailError(email)
            uid = uuid.uuid4().hex
            self.users[uid] = email
        return uid

    def revoke_identity(self, uid: str) -> None:
        with self._lock:
            self.users.pop(uid, None)

    def trigger_credential_setup(self, email: str) -> None:
        with self._lock:
            self.setup_requests.append(email)
