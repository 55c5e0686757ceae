"""Ports - 外部サービスのインターフェース定義（ABC）

各Port（抽象基底クラス）は外部サービスとの契約を定義します。
実装クラス（Adapter）はこれらのABCを継承し、全ての抽象メソッドを実装する必要があります。

ディレクトリへの書き込みは AccountCreationCoordinator（と範囲外の
無効化/再有効化操作）のみが行う。DuplicateResolver / EmailUniquenessChecker は
query() のみを使う。
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from parish_accounts.domain.models import (
    AccountRecord,
    AccountStatus,
    FieldFilter,
    StoredAccount,
    UniquenessClaims,
)


class AccountDirectory(ABC):
    """アカウントディレクトリ（Firestore の users コレクション等）

    全メソッドはブロッキングI/O。他の呼び出し元に対してアトミックとは限らない。
    一意性の最終的な保証は create() のクレームで行う。
    """

    @abstractmethod
    def query(self, filters: list[FieldFilter]) -> list[StoredAccount]:
        """等価フィルターの AND で照会。形状を問わず生のドキュメントを返す"""
        pass

    @abstractmethod
    def create(self, record: AccountRecord, claims: UniquenessClaims) -> None:
        """
        レコードと一意性クレームをアトミックに作成する。

        Raises:
            ClaimConflictError: 教区またはメールのクレームが既に存在する場合
            DirectoryWriteError: 書き込みに失敗した場合
        """
        pass

    @abstractmethod
    def set_status(self, uid: str, status: AccountStatus) -> None:
        """
        アカウントの状態を変更する（無効化でクレーム解放、再有効化でクレーム再取得）。

        Raises:
            KeyError: uid のレコードが存在しない場合
            ClaimConflictError: 再有効化時に教区/メールが別アカウントに使われている場合
        """
        pass


class IdentityProvider(ABC):
    """外部ID発行（Firebase Auth等）"""

    @abstractmethod
    def issue_identity(self, email: str) -> str:
        """メールアドレスに対してIDを発行し、subject id（uid）を返す"""
        pass

    @abstractmethod
    def revoke_identity(self, uid: str) -> None:
        """発行済みのIDを取り消す（補償処理用）"""
        pass

    @abstractmethod
    def trigger_credential_setup(self, email: str) -> None:
        """パスワード設定（リセットリンク送付等）を開始する"""
        pass
