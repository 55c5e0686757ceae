"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AccountStatus(Enum):
    """アカウントの状態（active ⇄ inactive のみ。削除状態はない）"""

    ACTIVE = "active"
    INACTIVE = "inactive"


class MatchStrategy(Enum):
    """重複判定がどの世代のレコード形状で一致したか"""

    DIRECT = "direct"  # 保存済み parishId と一致
    REGENERATED = "regenerated"  # parishInfo から再計算して一致
    LEGACY = "legacy"  # 自由記述の parish フィールドから再計算して一致


ROLE_PARISH_SECRETARY = "parish_secretary"
# 旧スキーマでは教区スタッフ全員が "parish" ロールだった
PARISH_ROLES = (ROLE_PARISH_SECRETARY, "parish")


class Fields:
    """users/{uid} ドキュメントのフィールド名"""

    UID = "uid"
    EMAIL = "email"
    ROLE = "role"
    DIOCESE = "diocese"
    STATUS = "status"
    PARISH_ID = "parishId"
    PARISH_INFO = "parishInfo"
    PARISH_INFO_NAME = "name"
    PARISH_INFO_MUNICIPALITY = "municipality"
    PARISH_INFO_FULL_NAME = "fullName"
    CREATED_AT = "createdAt"
    CREATED_BY = "createdBy"
    # 旧スキーマ（自由記述）
    LEGACY_PARISH = "parish"
    LEGACY_NAME = "name"
    LEGACY_MUNICIPALITY = "municipality"


@dataclass(frozen=True)
class CanonicalParishName:
    """正規化済みの教区名

    display は表示用（大文字小文字を保持）、key は比較用（casefold + 発音記号除去）。
    等価比較とハッシュは key のみで行う。
    """

    display: str = field(compare=False)  # 例: "Saint Joseph the Worker Parish"
    key: str  # 例: "saint joseph the worker parish"

    def __str__(self) -> str:
        return self.display


@dataclass(frozen=True)
class ParishInfo:
    """構造化された教区情報（parishInfo フィールド）"""

    name: str  # 例: "St. Joseph the Worker Parish"
    municipality: str  # 例: "Loay"
    full_name: str = ""  # 例: "St. Joseph the Worker Parish, Loay"


@dataclass(frozen=True)
class CreatedBy:
    """アカウントを作成したチャンセリーユーザー"""

    uid: str
    email: str = ""
    name: str = ""


@dataclass(frozen=True)
class AccountRecord:
    """教区秘書アカウント（users/{uid} に永続化）

    旧スキーマのレコードは parish_identifier が None になる。
    """

    uid: str  # Firebase Auth UID
    email: str  # 小文字に正規化済み
    role: str
    diocese_id: str  # 例: "tagbilaran"
    parish_identifier: str | None  # 例: "tagbilaran__loay__saint_joseph_the_worker_parish"
    parish_info: ParishInfo
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime.datetime | None = None
    created_by: CreatedBy | None = None

    @property
    def is_active(self) -> bool:
        return self.status is AccountStatus.ACTIVE


@dataclass(frozen=True)
class StoredAccount:
    """ディレクトリから読み出した生のドキュメント（形状は世代によって異なる）"""

    doc_id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class FieldFilter:
    """ディレクトリ照会の等価フィルター（例: FieldFilter("status", "active")）"""

    field: str
    value: Any


@dataclass(frozen=True)
class UniquenessClaims:
    """ストレージ層で予約する一意性キー"""

    parish_key: str  # parishId（教区IDの先頭要素がdioceseなのでそのままキーになる）
    email: str


@dataclass(frozen=True)
class SimilarParish:
    """他の市町村にある名前の似た教会（作成をブロックしない参考情報）"""

    uid: str
    name: str
    municipality: str
    email: str = ""


@dataclass(frozen=True)
class NoConflict:
    """重複なし

    degraded=True の場合、照会に失敗したため判定できていない（fail open）。
    """

    similar: tuple[SimilarParish, ...] = ()
    degraded: bool = False


@dataclass(frozen=True)
class Conflict:
    """アクティブな既存アカウントと衝突"""

    existing: AccountRecord
    matched_by: MatchStrategy
    stored_municipality: str  # 照会時の表記ではなく保存されている表記


ConflictResult = NoConflict | Conflict


@dataclass(frozen=True)
class CreationResult:
    """アカウント作成結果"""

    record: AccountRecord
    credential_setup_sent: bool = True
