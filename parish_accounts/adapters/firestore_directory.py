"""Firestore Directory Adapter

AccountDirectory の Firestore 実装。

Firestore コレクション構造:
  users/{uid}                      ← アカウントレコード（3世代の形状が混在）
  parish_claims/{parishId}         ← アクティブな教区秘書の一意性クレーム
  email_claims/{sha256(email)}     ← アクティブなメールアドレスの一意性クレーム

クレームは users/{uid} と同じトランザクションで transaction.create() する。
同じキーへの同時作成はデータベース側で片方だけが成功する（compare-and-swap）。
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import firestore

from parish_accounts.domain.errors import (
    ClaimConflictError,
    DirectoryWriteError,
    TransientLookupError,
)
from parish_accounts.domain.models import (
    ROLE_PARISH_SECRETARY,
    AccountRecord,
    AccountStatus,
    FieldFilter,
    Fields,
    StoredAccount,
    UniquenessClaims,
)
from parish_accounts.domain.ports import AccountDirectory

logger = logging.getLogger(__name__)

_USERS = "users"
_PARISH_CLAIMS = "parish_claims"
_EMAIL_CLAIMS = "email_claims"

# transactional はコミットの再試行が尽きると最後の例外を ValueError に包んで送出する
_WRITE_ERRORS = (gexc.GoogleAPICallError, gexc.RetryError, ValueError)


def email_claim_id(email: str) -> str:
    """メールアドレスには "/" が含まれうるため、ハッシュをドキュメントIDにする"""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


class FirestoreAccountDirectory(AccountDirectory):
    """
    Firestore を使った AccountDirectory 実装。

    users コレクションと parish_claims / email_claims を管理する。
    """

    def __init__(self, db: firestore.Client) -> None:
        """
        Args:
            db: 初期化済みの Firestore クライアント
        """
        self._db = db

    # ── 照会 ─────────────────────────────────────────────────────────────────

    def query(self, filters: list[FieldFilter]) -> list[StoredAccount]:
        """等価フィルターの AND で users を照会する"""
        query = self._db.collection(_USERS)
        for f in filters:
            query = query.where(f.field, "==", f.value)
        try:
            return [
                StoredAccount(doc_id=snap.id, data=snap.to_dict() or {})
                for snap in query.stream()
            ]
        except (gexc.GoogleAPICallError, gexc.RetryError) as e:
            raise TransientLookupError(f"Firestore query failed: {e}") from e

    # ── 書き込み ─────────────────────────────────────────────────────────────

    def create(self, record: AccountRecord, claims: UniquenessClaims) -> None:
        """レコードとクレームを1トランザクションで作成する"""
        user_ref = self._db.collection(_USERS).document(record.uid)
        parish_ref = self._db.collection(_PARISH_CLAIMS).document(claims.parish_key)
        email_ref = self._db.collection(_EMAIL_CLAIMS).document(email_claim_id(claims.email))
        data = self._record_to_dict(record)

        @firestore.transactional
        def _create(transaction: firestore.Transaction) -> None:
            if parish_ref.get(transaction=transaction).exists:
                raise ClaimConflictError("parish", claims.parish_key)
            if email_ref.get(transaction=transaction).exists:
                raise ClaimConflictError("email", claims.email)
            transaction.create(parish_ref, self._claim(record.uid, parish_id=claims.parish_key))
            transaction.create(email_ref, self._claim(record.uid, email=claims.email))
            transaction.create(user_ref, data)

        try:
            _create(self._db.transaction())
        except ClaimConflictError:
            raise
        except _WRITE_ERRORS as e:
            raise DirectoryWriteError(f"Failed to create account {record.uid}: {e}") from e
        logger.info(
            "Created account: uid=%s, parish_id=%s", record.uid, record.parish_identifier
        )

    def set_status(self, uid: str, status: AccountStatus) -> None:
        """状態を変更し、クレームを解放/再取得する"""
        user_ref = self._db.collection(_USERS).document(uid)

        @firestore.transactional
        def _update(transaction: firestore.Transaction) -> None:
            snap = user_ref.get(transaction=transaction)
            if not snap.exists:
                raise KeyError(uid)
            data = snap.to_dict() or {}
            if data.get(Fields.STATUS) == status.value:
                return

            refs = self._claim_refs(data)
            if status is AccountStatus.ACTIVE:
                # 読み取りは全て書き込みより前に行う
                held = [(kind, key, ref, ref.get(transaction=transaction)) for kind, key, ref in refs]
                for kind, key, _, claim_snap in held:
                    if claim_snap.exists and (claim_snap.to_dict() or {}).get("uid") != uid:
                        raise ClaimConflictError(kind, key)
                for kind, key, ref, _ in held:
                    payload = {"parish_id": key} if kind == "parish" else {"email": key}
                    transaction.set(ref, self._claim(uid, **payload))
            else:
                held = [(ref, ref.get(transaction=transaction)) for _, _, ref in refs]
                for ref, claim_snap in held:
                    if claim_snap.exists and (claim_snap.to_dict() or {}).get("uid") == uid:
                        transaction.delete(ref)

            transaction.update(
                user_ref,
                {Fields.STATUS: status.value, "updatedAt": firestore.SERVER_TIMESTAMP},
            )

        try:
            _update(self._db.transaction())
        except (ClaimConflictError, KeyError):
            raise
        except _WRITE_ERRORS as e:
            raise DirectoryWriteError(f"Failed to update status for {uid}: {e}") from e
        logger.info("Updated account status: uid=%s, status=%s", uid, status.value)

    # ── 変換ヘルパー ──────────────────────────────────────────────────────────

    def _claim_refs(self, data: dict[str, Any]) -> list[tuple[str, str, Any]]:
        refs = []
        parish_id = data.get(Fields.PARISH_ID)
        if parish_id and data.get(Fields.ROLE) == ROLE_PARISH_SECRETARY:
            refs.append(("parish", parish_id, self._db.collection(_PARISH_CLAIMS).document(parish_id)))
        email = (data.get(Fields.EMAIL) or "").strip().lower()
        if email:
            refs.append(("email", email, self._db.collection(_EMAIL_CLAIMS).document(email_claim_id(email))))
        return refs

    @staticmethod
    def _claim(uid: str, **fields: str) -> dict:
        return {"uid": uid, **fields, "createdAt": firestore.SERVER_TIMESTAMP}

    @staticmethod
    def _record_to_dict(record: AccountRecord) -> dict:
        data: dict[str, Any] = {
            Fields.UID: record.uid,
            Fields.EMAIL: record.email,
            Fields.ROLE: record.role,
            Fields.DIOCESE: record.diocese_id,
            Fields.PARISH_ID: record.parish_identifier,
            Fields.PARISH_INFO: {
                Fields.PARISH_INFO_NAME: record.parish_info.name,
                Fields.PARISH_INFO_MUNICIPALITY: record.parish_info.municipality,
                Fields.PARISH_INFO_FULL_NAME: record.parish_info.full_name,
            },
            Fields.STATUS: record.status.value,
            Fields.CREATED_AT: record.created_at or firestore.SERVER_TIMESTAMP,
        }
        if record.created_by is not None:
            data[Fields.CREATED_BY] = {
                "uid": record.created_by.uid,
                "email": record.created_by.email,
                "name": record.created_by.name,
            }
        return data
