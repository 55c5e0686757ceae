"""旧スキーマの教区秘書アカウントに parishId / parishInfo を補完するスクリプト

実行方法:
    # Firestore Emulator で検証する場合
    FIRESTORE_EMULATOR_HOST=localhost:8080 python scripts/backfill_parish_ids.py --dry-run

    # 本番実行
    python scripts/backfill_parish_ids.py

    # 市町村が保存されていないアカウントを個別に補完
    python scripts/backfill_parish_ids.py --uid abc123 --municipality Loay

処理内容:
  1. parishId または parishInfo が無い教区アカウントを抽出
  2. 保存済みの教区名・市町村（または --municipality）から parishId を計算
  3. 別のアカウントが同じ parishId を持っていれば中止（上書きしない）
  4. users/{uid} に parishId / parishInfo / migratedAt を書き込み
  5. アクティブな教区秘書であれば一意性クレームも作成

注意:
  - 既に parishId と parishInfo があるアカウントはスキップ（冪等）
  - 重複判定はこのスクリプトの実行有無に関わらず旧形式のレコードも照合する
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass

from google.cloud import firestore

from parish_accounts.adapters.firestore_directory import email_claim_id
from parish_accounts.domain.errors import ValidationError
from parish_accounts.domain.models import (
    PARISH_ROLES,
    ROLE_PARISH_SECRETARY,
    AccountStatus,
    Fields,
    StoredAccount,
)
from parish_accounts.services.canonicalizer import canonicalize
from parish_accounts.services.identifiers import format_parish_full_name, identifier_for
from parish_accounts.services.record_shapes import (
    ParishFields,
    classify_record,
    extract_free_text,
    extract_structured,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)

_USERS = "users"
_PARISH_CLAIMS = "parish_claims"
_EMAIL_CLAIMS = "email_claims"


@dataclass(frozen=True)
class BackfillPlan:
    """1アカウント分の補完内容"""

    uid: str
    parish_id: str
    name: str
    municipality: str
    claim: bool  # アクティブな教区秘書ならクレームも作成する
    email: str = ""


def plan_backfill(
    stored: StoredAccount, municipality_override: str | None = None
) -> BackfillPlan | None:
    """
    補完内容を計算する。

    Returns:
        BackfillPlan。補完不要・補完不能の場合は None
    """
    data = stored.data
    uid = data.get(Fields.UID) or stored.doc_id
    if data.get(Fields.ROLE) not in PARISH_ROLES:
        return None
    if data.get(Fields.PARISH_ID) and data.get(Fields.PARISH_INFO):
        logger.info("SKIP uid=%s (already has parishId=%s)", uid, data[Fields.PARISH_ID])
        return None

    shape = classify_record(stored)
    fields = extract_structured(shape) or extract_free_text(shape)
    if fields is None:
        # parishId だけがあるレコード、または市町村が保存されていないレコード
        name = data.get(Fields.LEGACY_PARISH) or data.get(Fields.LEGACY_NAME)
        municipality = municipality_override or data.get(Fields.LEGACY_MUNICIPALITY)
        if not isinstance(name, str) or not name.strip() or not isinstance(municipality, str):
            logger.warning("SKIP uid=%s (no parish name or municipality to derive from)", uid)
            return None
        fields = ParishFields(municipality=municipality, name=name)
    elif municipality_override:
        fields = ParishFields(municipality=municipality_override, name=fields.name)

    diocese = (data.get(Fields.DIOCESE) or "").strip().lower()
    try:
        parish_id = identifier_for(diocese, fields.municipality, canonicalize(fields.name))
    except ValidationError as e:
        logger.warning("SKIP uid=%s (%s)", uid, e.message)
        return None

    name = " ".join(fields.name.split())
    municipality = " ".join(fields.municipality.split())
    return BackfillPlan(
        uid=uid,
        parish_id=parish_id,
        name=name,
        municipality=municipality,
        claim=(
            data.get(Fields.ROLE) == ROLE_PARISH_SECRETARY
            and data.get(Fields.STATUS) == AccountStatus.ACTIVE.value
        ),
        email=(data.get(Fields.EMAIL) or "").strip().lower(),
    )


def apply_backfill(db: firestore.Client, plan: BackfillPlan, dry_run: bool) -> bool:
    """
    補完を書き込む。

    Returns:
        書き込んだ（dry_run では書き込み可能だった）場合 True
    """
    holders = [
        snap.id
        for snap in db.collection(_USERS)
        .where(Fields.PARISH_ID, "==", plan.parish_id)
        .stream()
        if snap.id != plan.uid
    ]
    if holders:
        logger.error(
            "REFUSE uid=%s (parishId=%s already held by %s)",
            plan.uid,
            plan.parish_id,
            ", ".join(holders),
        )
        return False

    logger.info(
        "BACKFILL uid=%s → parishId=%s (dry_run=%s)", plan.uid, plan.parish_id, dry_run
    )
    if dry_run:
        return True

    batch = db.batch()
    batch.update(
        db.collection(_USERS).document(plan.uid),
        {
            Fields.PARISH_ID: plan.parish_id,
            Fields.PARISH_INFO: {
                Fields.PARISH_INFO_NAME: plan.name,
                Fields.PARISH_INFO_MUNICIPALITY: plan.municipality,
                Fields.PARISH_INFO_FULL_NAME: format_parish_full_name(
                    plan.name, plan.municipality
                ),
            },
            "updatedAt": firestore.SERVER_TIMESTAMP,
            "migratedAt": firestore.SERVER_TIMESTAMP,
            "migratedBy": "backfill_parish_ids",
        },
    )
    if plan.claim:
        batch.set(
            db.collection(_PARISH_CLAIMS).document(plan.parish_id),
            {"uid": plan.uid, "parish_id": plan.parish_id, "createdAt": firestore.SERVER_TIMESTAMP},
        )
        if plan.email:
            batch.set(
                db.collection(_EMAIL_CLAIMS).document(email_claim_id(plan.email)),
                {"uid": plan.uid, "email": plan.email, "createdAt": firestore.SERVER_TIMESTAMP},
            )
    batch.commit()
    return True


def run(
    db: firestore.Client,
    uid: str | None = None,
    municipality: str | None = None,
    dry_run: bool = False,
) -> dict[str, int]:
    """対象アカウントを補完し、件数を返す"""
    if uid:
        snap = db.collection(_USERS).document(uid).get()
        if not snap.exists:
            logger.error("User not found: uid=%s", uid)
            return {"backfilled": 0, "skipped": 0, "errors": 1}
        snaps = [snap]
    else:
        snaps = [
            snap
            for role in PARISH_ROLES
            for snap in db.collection(_USERS).where(Fields.ROLE, "==", role).stream()
        ]
        logger.info("Found %d parish accounts", len(snaps))

    counts = {"backfilled": 0, "skipped": 0, "errors": 0}
    for snap in snaps:
        stored = StoredAccount(doc_id=snap.id, data=snap.to_dict() or {})
        try:
            plan = plan_backfill(stored, municipality_override=municipality)
            if plan is None:
                counts["skipped"] += 1
            elif apply_backfill(db, plan, dry_run=dry_run):
                counts["backfilled"] += 1
            else:
                counts["errors"] += 1
        except Exception:
            logger.exception("Backfill failed for uid=%s", snap.id)
            counts["errors"] += 1

    logger.info(
        "Backfill complete: backfilled=%d, skipped=%d, errors=%d",
        counts["backfilled"],
        counts["skipped"],
        counts["errors"],
    )
    if dry_run:
        logger.info("DRY RUN: No changes were made")
    return counts


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Backfill parishId/parishInfo on legacy parish accounts"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run without making any changes (preview only)",
    )
    parser.add_argument(
        "--uid",
        type=str,
        default=None,
        help="Backfill only this specific uid (optional)",
    )
    parser.add_argument(
        "--municipality",
        type=str,
        default=None,
        help="Municipality to use when the record does not store one (use with --uid)",
    )
    args = parser.parse_args()

    if args.municipality and not args.uid:
        parser.error("--municipality requires --uid")

    run(firestore.Client(), uid=args.uid, municipality=args.municipality, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
