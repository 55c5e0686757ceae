"""保存済みレコードの形状（スキーマ世代）

同じ「教区アカウント」という概念が、スキーマの変遷により3種類の形で保存されている。

  CurrentShape          parishId あり（parishInfo も通常あり）
  LegacyStructuredShape parishId なし、parishInfo{name, municipality} あり
  LegacyFreeTextShape   parishId も parishInfo もなし、自由記述の parish/name と
                        別フィールドの municipality のみ

古いレコードは書き換えずに照合する。各形状から (市町村, 教区名) を取り出す
抽出関数を用意し、同じ正規化とID比較に流す。
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Any

from parish_accounts.domain.models import (
    AccountRecord,
    AccountStatus,
    CreatedBy,
    Fields,
    ParishInfo,
    StoredAccount,
)
from parish_accounts.services.identifiers import format_parish_full_name


@dataclass(frozen=True)
class ParishFields:
    """ID再計算に使う (市町村, 教区名) の組"""

    municipality: str
    name: str


@dataclass(frozen=True)
class CurrentShape:
    stored: StoredAccount
    parish_identifier: str
    structured: ParishFields | None = None


@dataclass(frozen=True)
class LegacyStructuredShape:
    stored: StoredAccount
    structured: ParishFields


@dataclass(frozen=True)
class LegacyFreeTextShape:
    stored: StoredAccount
    free_text: ParishFields


@dataclass(frozen=True)
class UnrecognizedShape:
    """教区を特定できるフィールドがないレコード（照合対象外）"""

    stored: StoredAccount


RecordShape = CurrentShape | LegacyStructuredShape | LegacyFreeTextShape | UnrecognizedShape


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _structured_fields(data: dict[str, Any]) -> ParishFields | None:
    info = data.get(Fields.PARISH_INFO)
    if not isinstance(info, dict):
        return None
    name = _text(info.get(Fields.PARISH_INFO_NAME))
    municipality = _text(info.get(Fields.PARISH_INFO_MUNICIPALITY))
    if not name or not municipality:
        return None
    return ParishFields(municipality=municipality, name=name)


def _free_text_fields(data: dict[str, Any]) -> ParishFields | None:
    name = _text(data.get(Fields.LEGACY_PARISH)) or _text(data.get(Fields.LEGACY_NAME))
    municipality = _text(data.get(Fields.LEGACY_MUNICIPALITY))
    if not name or not municipality:
        return None
    return ParishFields(municipality=municipality, name=name)


def classify_record(stored: StoredAccount) -> RecordShape:
    """生のドキュメントを形状に分類する"""
    data = stored.data or {}
    parish_identifier = _text(data.get(Fields.PARISH_ID))
    structured = _structured_fields(data)
    if parish_identifier:
        return CurrentShape(stored, parish_identifier, structured)
    if structured:
        return LegacyStructuredShape(stored, structured)
    free_text = _free_text_fields(data)
    if free_text:
        return LegacyFreeTextShape(stored, free_text)
    return UnrecognizedShape(stored)


# ── 抽出関数 ─────────────────────────────────────────────────────────────────


def extract_stored_identifier(shape: RecordShape) -> str | None:
    """保存済みの parishId（現行形状のみ）"""
    if isinstance(shape, CurrentShape):
        return shape.parish_identifier
    return None


def extract_structured(shape: RecordShape) -> ParishFields | None:
    """parishInfo の (市町村, 教区名)"""
    if isinstance(shape, (CurrentShape, LegacyStructuredShape)):
        return shape.structured
    return None


def extract_free_text(shape: RecordShape) -> ParishFields | None:
    """自由記述フィールドの (市町村, 教区名)。parishId も parishInfo もない場合のみ"""
    if isinstance(shape, LegacyFreeTextShape):
        return shape.free_text
    return None


def extract_display_fields(shape: RecordShape) -> ParishFields | None:
    """表示・類似検索用の (市町村, 教区名)。形状を問わず取れるものを返す"""
    return extract_structured(shape) or extract_free_text(shape)


# ── 変換 ─────────────────────────────────────────────────────────────────────


def _status(value: Any) -> AccountStatus:
    try:
        return AccountStatus(value)
    except ValueError:
        return AccountStatus.INACTIVE


def _created_by(value: Any) -> CreatedBy | None:
    if not isinstance(value, dict) or not value.get("uid"):
        return None
    return CreatedBy(
        uid=value["uid"],
        email=value.get("email") or "",
        name=value.get("name") or "",
    )


def to_account_record(shape: RecordShape) -> AccountRecord:
    """形状を問わず AccountRecord のビューに変換する（衝突メッセージ用）"""
    data = shape.stored.data or {}
    fields = extract_display_fields(shape)
    info = data.get(Fields.PARISH_INFO) if isinstance(data.get(Fields.PARISH_INFO), dict) else {}
    name = fields.name if fields else _text(data.get(Fields.LEGACY_PARISH))
    municipality = fields.municipality if fields else ""
    full_name = _text(info.get(Fields.PARISH_INFO_FULL_NAME))
    if not full_name and name and municipality:
        full_name = format_parish_full_name(name, municipality)
    created_at = data.get(Fields.CREATED_AT)

    return AccountRecord(
        uid=_text(data.get(Fields.UID)) or shape.stored.doc_id,
        email=_text(data.get(Fields.EMAIL)).lower(),
        role=_text(data.get(Fields.ROLE)),
        diocese_id=_text(data.get(Fields.DIOCESE)),
        parish_identifier=extract_stored_identifier(shape),
        parish_info=ParishInfo(name=name, municipality=municipality, full_name=full_name),
        status=_status(data.get(Fields.STATUS)),
        created_at=created_at if isinstance(created_at, datetime.datetime) else None,
        created_by=_created_by(data.get(Fields.CREATED_BY)),
    )
