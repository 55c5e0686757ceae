"""ドメイン固有の例外クラス"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parish_accounts.domain.models import AccountRecord


class ParishAccountsError(Exception):
    """Parish Accounts の基底例外"""

    pass


class ValidationError(ParishAccountsError):
    """入力値エラー（空の教区名・不正なメールアドレス等）。再試行不可"""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class TransientLookupError(ParishAccountsError):
    """ディレクトリ照会の一時的な失敗（ネットワーク・Firestore障害等）"""

    pass


class DirectoryWriteError(ParishAccountsError):
    """ディレクトリへの書き込み失敗"""

    pass


class ClaimConflictError(ParishAccountsError):
    """ストレージ層の一意性クレームが既に取得されている

    kind は "parish" または "email"。
    """

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"Uniqueness claim already held: kind={kind}, key={key}")
        self.kind = kind
        self.key = key


class CreationError(ParishAccountsError):
    """アカウント作成の失敗（基底）"""

    pass


class DuplicateParishError(CreationError):
    """同じ教区のアクティブなアカウントが既に存在する"""

    def __init__(self, existing: AccountRecord | None, municipality: str = "") -> None:
        self.existing = existing
        self.existing_email = existing.email if existing else ""
        self.municipality = municipality or (
            existing.parish_info.municipality if existing else ""
        )
        if self.existing_email:
            message = (
                f"An active account for this parish in {self.municipality} "
                f"already exists ({self.existing_email})"
            )
        else:
            message = "An active account for this parish already exists"
        super().__init__(message)


class DuplicateEmailError(CreationError):
    """メールアドレスが既にアクティブなアカウントに紐付いている"""

    def __init__(self, email: str) -> None:
        super().__init__(f"Email is already bound to an active account: {email}")
        self.email = email


class IdentityIssuanceError(CreationError):
    """外部ID（Firebase Auth）の発行・取り消しの失敗"""

    pass
