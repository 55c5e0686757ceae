"""AccountCreationCoordinator - 教区秘書アカウントの作成

正規化・重複チェック・メール一意性チェック・ID発行・永続化を1つの操作にまとめる。
ディレクトリへの書き込みはこのクラスのみが行う。

処理フロー（各ステップは次のステップの前提条件）:
1. 入力検証と教区名の正規化
2. 重複判定を再実行（fail closed）→ 衝突なら DuplicateParishError
3. メール一意性チェックを再実行（fail closed）→ 使用中なら DuplicateEmailError
4. 外部ID（Firebase Auth）を発行
5. AccountRecord と一意性クレームをアトミックに永続化
   失敗した場合は発行済みIDを取り消す（孤立したIDを残さない）
6. パスワード設定を開始（失敗してもアカウントは残す）

UI からのライブチェック結果は信用せず、必ずここで再チェックする。
アプリ層のチェックは高速な事前チェックにすぎず、最終的な一意性は
ストレージ層のクレームで保証される。
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable

from parish_accounts.domain.errors import (
    ClaimConflictError,
    DirectoryWriteError,
    DuplicateEmailError,
    DuplicateParishError,
    IdentityIssuanceError,
    ValidationError,
)
from parish_accounts.domain.models import (
    ROLE_PARISH_SECRETARY,
    AccountRecord,
    AccountStatus,
    Conflict,
    CreatedBy,
    CreationResult,
    ParishInfo,
    UniquenessClaims,
)
from parish_accounts.domain.ports import AccountDirectory, IdentityProvider
from parish_accounts.services.canonicalizer import canonicalize
from parish_accounts.services.duplicate_resolver import DuplicateResolver, normalize_diocese
from parish_accounts.services.email_checker import (
    EmailUniquenessChecker,
    validate_email_address,
)
from parish_accounts.services.identifiers import format_parish_full_name, identifier_for
from parish_accounts.services.lookup import LookupFailurePolicy
from parish_accounts.services.municipalities import MunicipalityCatalog

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class AccountCreationCoordinator:
    """教区秘書アカウントの作成を統括する"""

    def __init__(
        self,
        directory: AccountDirectory,
        identity: IdentityProvider,
        resolver: DuplicateResolver,
        email_checker: EmailUniquenessChecker,
        municipality_catalog: MunicipalityCatalog | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        """
        Args:
            directory: アカウントディレクトリ（書き込み先）
            identity: 外部ID発行（Firebase Auth等）
            resolver: 重複判定
            email_checker: メール一意性チェック
            municipality_catalog: 指定時は市町村が司教区に属するかを検証する
            clock: 作成日時の取得（テスト用に差し替え可能）
        """
        self._directory = directory
        self._identity = identity
        self._resolver = resolver
        self._email_checker = email_checker
        self._catalog = municipality_catalog
        self._clock = clock

    def create_account(
        self,
        diocese_id: str,
        municipality: str,
        raw_name: str,
        email: str,
        created_by: CreatedBy | None = None,
    ) -> CreationResult:
        """
        教区秘書アカウントを作成する。

        Returns:
            CreationResult（作成されたレコードとパスワード設定の送信結果）

        Raises:
            ValidationError: 入力が空・不正な場合
            DuplicateParishError: 同じ教区のアクティブなアカウントが存在する場合
            DuplicateEmailError: メールアドレスが使用中の場合
            TransientLookupError: 重複チェックの照会が失敗し続けた場合
            IdentityIssuanceError: 外部IDの発行に失敗した場合
            DirectoryWriteError: 永続化に失敗した場合（発行済みIDは取り消し済み）
        """
        # 1. 入力検証
        diocese = normalize_diocese(diocese_id)
        if not diocese:
            raise ValidationError("EMPTY_DIOCESE", "Diocese must not be empty")
        municipality = " ".join((municipality or "").split())
        if not municipality:
            raise ValidationError("EMPTY_MUNICIPALITY", "Municipality must not be empty")
        canonical = canonicalize(raw_name)
        normalized_email = validate_email_address(email)
        if self._catalog is not None:
            municipality = self._check_municipality(diocese, municipality)

        parish_id = identifier_for(diocese, municipality, canonical)
        logger.info(
            "Creating parish account: diocese=%s, parish_id=%s, email=%s",
            diocese,
            parish_id,
            normalized_email,
        )

        # 2. 重複判定（fail closed）
        result = self._resolver.resolve(
            diocese, municipality, raw_name, failure_policy=LookupFailurePolicy.CLOSED
        )
        if isinstance(result, Conflict):
            raise DuplicateParishError(result.existing, result.stored_municipality)

        # 3. メール一意性（fail closed）
        if not self._email_checker.is_available(
            normalized_email, failure_policy=LookupFailurePolicy.CLOSED
        ):
            raise DuplicateEmailError(normalized_email)

        # 4. 外部ID発行
        uid = self._identity.issue_identity(normalized_email)
        logger.info("Identity issued: uid=%s, email=%s", uid, normalized_email)

        # 5. 永続化（失敗時は発行済みIDを取り消す）
        display_name = " ".join(raw_name.split())
        record = AccountRecord(
            uid=uid,
            email=normalized_email,
            role=ROLE_PARISH_SECRETARY,
            diocese_id=diocese,
            parish_identifier=parish_id,
            parish_info=ParishInfo(
                name=display_name,
                municipality=municipality,
                full_name=format_parish_full_name(display_name, municipality),
            ),
            status=AccountStatus.ACTIVE,
            created_at=self._clock(),
            created_by=created_by,
        )
        claims = UniquenessClaims(parish_key=parish_id, email=normalized_email)

        try:
            self._directory.create(record, claims)
        except ClaimConflictError as e:
            # 事前チェック後に別のリクエストが先に作成した（check-then-act の競合）
            logger.warning(
                "Uniqueness claim lost to a concurrent request: kind=%s, key=%s",
                e.kind,
                e.key,
            )
            self._compensate(uid)
            if e.kind == "email":
                raise DuplicateEmailError(normalized_email) from e
            raise self._parish_conflict(diocese, municipality, raw_name) from e
        except DirectoryWriteError:
            logger.exception("Failed to persist account: uid=%s", uid)
            self._compensate(uid)
            raise
        except Exception:
            # 想定外の失敗でも発行済みIDを残さない
            logger.exception("Unexpected error while persisting account: uid=%s", uid)
            self._compensate(uid)
            raise

        logger.info("Parish account created: uid=%s, parish_id=%s", uid, parish_id)

        # 6. パスワード設定の開始（失敗してもアカウントは有効）
        credential_setup_sent = True
        try:
            self._identity.trigger_credential_setup(normalized_email)
        except IdentityIssuanceError as e:
            credential_setup_sent = False
            logger.warning(
                "Credential setup could not be triggered: uid=%s, error=%s", uid, e
            )

        return CreationResult(record=record, credential_setup_sent=credential_setup_sent)

    # ── 内部処理 ─────────────────────────────────────────────────────────────

    def _check_municipality(self, diocese: str, municipality: str) -> str:
        spelling = self._catalog.canonical_spelling(diocese, municipality)
        if spelling is None:
            raise ValidationError(
                "UNKNOWN_MUNICIPALITY",
                f"{municipality} is not a municipality of the {diocese} diocese",
            )
        return spelling

    def _compensate(self, uid: str) -> None:
        """永続化に失敗した場合に発行済みIDを取り消す"""
        try:
            self._identity.revoke_identity(uid)
            logger.info("Revoked identity after failed write: uid=%s", uid)
        except IdentityIssuanceError:
            # 取り消しにも失敗した場合は手動対応が必要
            logger.exception("Orphaned identity could not be revoked: uid=%s", uid)

    def _parish_conflict(
        self, diocese: str, municipality: str, raw_name: str
    ) -> DuplicateParishError:
        """クレーム競合時に、メッセージ用に既存レコードを引き直す"""
        result = self._resolver.resolve(
            diocese, municipality, raw_name, failure_policy=LookupFailurePolicy.OPEN
        )
        if isinstance(result, Conflict):
            return DuplicateParishError(result.existing, result.stored_municipality)
        return DuplicateParishError(None, municipality)
