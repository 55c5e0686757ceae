"""DuplicateResolver - 教区アカウントの重複判定

(diocese, municipality, 教区名) に対して、アクティブな教区秘書アカウントが
既に存在するかを判定する。3世代のレコード形状を書き換えずに照合する。

判定順序（最初に確定した時点で終了）:
  1. 直接一致      保存済み parishId == 新しいID
  2. 再計算一致    parishInfo{name, municipality} からIDを再計算して一致
  3. 旧形式一致    自由記述の parish/name + municipality からIDを再計算して一致
  4. 類似候補      他の市町村で名前が部分一致する教会（作成はブロックしない）

status=active のレコードのみを対象とする。読み取り専用で副作用はない。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from parish_accounts.domain.errors import TransientLookupError, ValidationError
from parish_accounts.domain.models import (
    PARISH_ROLES,
    ROLE_PARISH_SECRETARY,
    AccountStatus,
    Conflict,
    ConflictResult,
    FieldFilter,
    Fields,
    MatchStrategy,
    NoConflict,
    SimilarParish,
    StoredAccount,
)
from parish_accounts.domain.ports import AccountDirectory
from parish_accounts.services.canonicalizer import canonicalize, fold
from parish_accounts.services.identifiers import identifier_for
from parish_accounts.services.lookup import LookupFailurePolicy, run_with_retries
from parish_accounts.services.record_shapes import (
    ParishFields,
    RecordShape,
    classify_record,
    extract_display_fields,
    extract_free_text,
    extract_stored_identifier,
    extract_structured,
    to_account_record,
)

logger = logging.getLogger(__name__)


def normalize_diocese(diocese_id: str) -> str:
    return (diocese_id or "").strip().lower()


def _same_municipality(a: str, b: str) -> bool:
    return fold(" ".join(a.split())) == fold(" ".join(b.split()))


class DuplicateResolver:
    """
    教区の重複判定。

    failure_policy は resolve() ごとに上書きできる。ライブチェックは OPEN、
    AccountCreationCoordinator は CLOSED で呼び出す。
    """

    def __init__(
        self,
        directory: AccountDirectory,
        failure_policy: LookupFailurePolicy = LookupFailurePolicy.OPEN,
        retries: int = 2,
        backoff_seconds: float = 0.2,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            directory: アカウントディレクトリ（読み取りのみ使用）
            failure_policy: 照会失敗時のデフォルトポリシー
            retries: CLOSED 時の再試行回数
            backoff_seconds: CLOSED 時の初回待ち時間（以降倍々）
        """
        self._directory = directory
        self._policy = failure_policy
        self._retries = retries
        self._backoff = backoff_seconds
        self._sleep = sleep

    def resolve(
        self,
        diocese_id: str,
        municipality: str,
        raw_name: str,
        failure_policy: LookupFailurePolicy | None = None,
    ) -> ConflictResult:
        """
        重複判定を行う。

        Returns:
            Conflict: アクティブな既存アカウントと衝突した場合
            NoConflict: 衝突なし（類似候補を含む場合あり）

        Raises:
            ValidationError: 教区名・市町村・教区が空の場合
            TransientLookupError: CLOSED ポリシーで照会が失敗し続けた場合
        """
        policy = failure_policy or self._policy
        diocese = normalize_diocese(diocese_id)
        target_id = identifier_for(diocese, municipality, canonicalize(raw_name))

        try:
            return self._resolve(diocese, municipality, raw_name, target_id, policy)
        except TransientLookupError as e:
            if policy is LookupFailurePolicy.CLOSED:
                logger.error(
                    "Duplicate lookup failed, blocking: parish_id=%s, error=%s",
                    target_id,
                    e,
                )
                raise
            # fail open: 判定できないまま衝突なしとして扱う（既知のリスク）
            logger.warning(
                "Duplicate lookup failed, treating as no conflict: parish_id=%s, error=%s",
                target_id,
                e,
            )
            return NoConflict(degraded=True)

    # ── 内部処理 ─────────────────────────────────────────────────────────────

    def _resolve(
        self,
        diocese: str,
        municipality: str,
        raw_name: str,
        target_id: str,
        policy: LookupFailurePolicy,
    ) -> ConflictResult:
        # 1. 直接一致
        direct_hits = self._query(
            [
                FieldFilter(Fields.DIOCESE, diocese),
                FieldFilter(Fields.ROLE, ROLE_PARISH_SECRETARY),
                FieldFilter(Fields.STATUS, AccountStatus.ACTIVE.value),
                FieldFilter(Fields.PARISH_ID, target_id),
            ],
            policy,
        )
        if direct_hits:
            shape = classify_record(direct_hits[0])
            return self._conflict(shape, MatchStrategy.DIRECT, municipality)

        # 2〜4 は司教区内のアクティブなレコードを走査する
        shapes = [
            classify_record(stored)
            for stored in self._query(
                [
                    FieldFilter(Fields.DIOCESE, diocese),
                    FieldFilter(Fields.STATUS, AccountStatus.ACTIVE.value),
                ],
                policy,
            )
            if stored.data.get(Fields.ROLE) in PARISH_ROLES
        ]

        # 旧ロール "parish" のまま parishId を持つレコードは直接一致の照会に掛からない
        for shape in shapes:
            if extract_stored_identifier(shape) == target_id:
                return self._conflict(shape, MatchStrategy.DIRECT, municipality)

        # 2. 再計算一致
        for shape in shapes:
            structured = extract_structured(shape)
            if structured is None:
                continue
            if self._regenerate(diocese, structured, shape) == target_id:
                return self._conflict(shape, MatchStrategy.REGENERATED, structured.municipality)

        # 3. 旧形式一致
        for shape in shapes:
            free_text = extract_free_text(shape)
            if free_text is None:
                continue
            if self._regenerate(diocese, free_text, shape) == target_id:
                return self._conflict(shape, MatchStrategy.LEGACY, free_text.municipality)

        # 4. 類似候補
        return NoConflict(similar=self._similar(shapes, municipality, raw_name))

    def _query(
        self, filters: list[FieldFilter], policy: LookupFailurePolicy
    ) -> list[StoredAccount]:
        if policy is LookupFailurePolicy.OPEN:
            return self._directory.query(filters)
        return run_with_retries(
            lambda: self._directory.query(filters),
            retries=self._retries,
            backoff_seconds=self._backoff,
            label="Duplicate lookup",
            sleep=self._sleep,
        )

    @staticmethod
    def _regenerate(diocese: str, fields: ParishFields, shape: RecordShape) -> str | None:
        try:
            return identifier_for(diocese, fields.municipality, canonicalize(fields.name))
        except ValidationError:
            logger.debug("Skipping record with unusable parish fields: doc_id=%s", shape.stored.doc_id)
            return None

    @staticmethod
    def _conflict(shape: RecordShape, strategy: MatchStrategy, municipality: str) -> Conflict:
        fields = extract_display_fields(shape)
        stored_municipality = fields.municipality if fields else municipality
        existing = to_account_record(shape)
        logger.info(
            "Duplicate parish found: uid=%s, matched_by=%s, municipality=%s",
            existing.uid,
            strategy.value,
            stored_municipality,
        )
        return Conflict(
            existing=existing,
            matched_by=strategy,
            stored_municipality=stored_municipality,
        )

    @staticmethod
    def _similar(
        shapes: list[RecordShape], municipality: str, raw_name: str
    ) -> tuple[SimilarParish, ...]:
        needle = fold(" ".join(raw_name.split()))
        similar: list[SimilarParish] = []
        seen: set[str] = set()
        for shape in shapes:
            fields = extract_display_fields(shape)
            if fields is None or _same_municipality(fields.municipality, municipality):
                continue
            stored_name = fold(" ".join(fields.name.split()))
            if needle not in stored_name and stored_name not in needle:
                continue
            record = to_account_record(shape)
            if record.uid in seen:
                continue
            seen.add(record.uid)
            similar.append(
                SimilarParish(
                    uid=record.uid,
                    name=fields.name,
                    municipality=fields.municipality,
                    email=record.email,
                )
            )
        return tuple(similar)
