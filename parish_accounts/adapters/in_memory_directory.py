"""In-memory Directory Adapter

LOCAL_MODE とテスト用の AccountDirectory 実装。
Firestore 実装と同じクレームの意味論（教区/メールの一意性）を持つ。
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from parish_accounts.domain.errors import ClaimConflictError, TransientLookupError
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


def _get_path(data: dict[str, Any], path: str) -> Any:
    """"parishInfo.name" のようなドット区切りのパスを辿る"""
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class InMemoryAccountDirectory(AccountDirectory):
    """スレッドセーフなインメモリ実装"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._docs: dict[str, dict[str, Any]] = {}
        self._parish_claims: dict[str, str] = {}
        self._email_claims: dict[str, str] = {}
        # 次の query() 呼び出しを失敗させる回数（障害注入用）
        self.fail_next_queries = 0

    # ── 初期データ投入 ──────────────────────────────────────────────────────

    def seed(self, doc_id: str, data: dict[str, Any]) -> None:
        """
        既存ドキュメントをそのまま投入する（旧スキーマのレコード用）。

        現行スキーマのアクティブな教区秘書であればクレームも登録する。
        """
        with self._lock:
            self._docs[doc_id] = copy.deepcopy(data)
            if data.get(Fields.STATUS) == AccountStatus.ACTIVE.value:
                for kind, key in self._claim_keys(data):
                    self._claims(kind)[key] = doc_id

    # ── AccountDirectory ────────────────────────────────────────────────────

    def query(self, filters: list[FieldFilter]) -> list[StoredAccount]:
        with self._lock:
            if self.fail_next_queries > 0:
                self.fail_next_queries -= 1
                raise TransientLookupError("Injected lookup failure")
            return [
                StoredAccount(doc_id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in self._docs.items()
                if all(_get_path(data, f.field) == f.value for f in filters)
            ]

    def create(self, record: AccountRecord, claims: UniquenessClaims) -> None:
        email = claims.email.strip().lower()
        with self._lock:
            if claims.parish_key in self._parish_claims:
                raise ClaimConflictError("parish", claims.parish_key)
            if email in self._email_claims:
                raise ClaimConflictError("email", email)
            self._parish_claims[claims.parish_key] = record.uid
            self._email_claims[email] = record.uid
            self._docs[record.uid] = self._record_to_dict(record)
        logger.info(
            "Created account: uid=%s, parish_id=%s", record.uid, record.parish_identifier
        )

    def set_status(self, uid: str, status: AccountStatus) -> None:
        with self._lock:
            data = self._docs.get(uid)
            if data is None:
                raise KeyError(uid)
            if data.get(Fields.STATUS) == status.value:
                return
            keys = self._claim_keys(data)
            if status is AccountStatus.ACTIVE:
                for kind, key in keys:
                    holder = self._claims(kind).get(key)
                    if holder is not None and holder != uid:
                        raise ClaimConflictError(kind, key)
                for kind, key in keys:
                    self._claims(kind)[key] = uid
            else:
                for kind, key in keys:
                    if self._claims(kind).get(key) == uid:
                        del self._claims(kind)[key]
            data[Fields.STATUS] = status.value
        logger.info("Updated account status: uid=%s, status=%s", uid, status.value)

    # ── 内部処理 ─────────────────────────────────────────────────────────────

    def _claims(self, kind: str) -> dict[str, str]:
        return self._parish_claims if kind == "parish" else self._email_claims

    @staticmethod
    def _claim_keys(data: dict[str, Any]) -> list[tuple[str, str]]:
        keys = []
        parish_id = data.get(Fields.PARISH_ID)
        if parish_id and data.get(Fields.ROLE) == ROLE_PARISH_SECRETARY:
            keys.append(("parish", parish_id))
        email = (data.get(Fields.EMAIL) or "").strip().lower()
        if email:
            keys.append(("email", email))
        return keys

    @staticmethod
    def _record_to_dict(record: AccountRecord) -> dict[str, Any]:
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
            Fields.CREATED_AT: record.created_at,
        }
        if record.created_by is not None:
            data[Fields.CREATED_BY] = {
                "uid": record.created_by.uid,
                "email": record.created_by.email,
                "name": record.created_by.name,
            }
        return data
