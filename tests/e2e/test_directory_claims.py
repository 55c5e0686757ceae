"""FirestoreAccountDirectory の E2E テスト

Firestore Emulator 上でトランザクションによるクレーム予約と
ステータス変更時のクレーム解放・再取得を検証する。
"""

from __future__ import annotations

import pytest

from parish_accounts.adapters.firestore_directory import email_claim_id
from parish_accounts.domain.errors import ClaimConflictError
from parish_accounts.domain.models import (
    AccountRecord,
    AccountStatus,
    FieldFilter,
    Fields,
    ParishInfo,
    UniquenessClaims,
)
from tests.helpers import legacy_free_text_doc

pytestmark = pytest.mark.e2e

_PARISH_ID = "tagbilaran__loay__saint_joseph_the_worker_parish"


def _record(uid: str, email: str, parish_id: str = _PARISH_ID) -> AccountRecord:
    return AccountRecord(
        uid=uid,
        email=email,
        role="parish_secretary",
        diocese_id="tagbilaran",
        parish_identifier=parish_id,
        parish_info=ParishInfo(
            name="Saint Joseph the Worker Parish",
            municipality="Loay",
            full_name="Saint Joseph the Worker Parish, Loay",
        ),
        status=AccountStatus.ACTIVE,
    )


def _claims(record: AccountRecord) -> UniquenessClaims:
    return UniquenessClaims(parish_key=record.parish_identifier, email=record.email)


class TestCreate:
    def test_create_writes_user_and_claims(self, e2e_directory, firestore_client):
        record = _record("uid-1", "loay@parish.ph")

        e2e_directory.create(record, _claims(record))

        user = firestore_client.collection("users").document("uid-1").get()
        assert user.exists
        assert user.to_dict()[Fields.PARISH_ID] == _PARISH_ID
        parish_claim = firestore_client.collection("parish_claims").document(_PARISH_ID).get()
        assert parish_claim.to_dict()["uid"] == "uid-1"
        email_claim = (
            firestore_client.collection("email_claims")
            .document(email_claim_id("loay@parish.ph"))
            .get()
        )
        assert email_claim.to_dict()["uid"] == "uid-1"

    def test_second_create_for_same_parish_is_rejected(self, e2e_directory, firestore_client):
        first = _record("uid-1", "loay@parish.ph")
        second = _record("uid-2", "other@parish.ph")
        e2e_directory.create(first, _claims(first))

        with pytest.raises(ClaimConflictError):
            e2e_directory.create(second, _claims(second))

        assert not firestore_client.collection("users").document("uid-2").get().exists

    def test_second_create_for_same_email_is_rejected(self, e2e_directory):
        first = _record("uid-1", "loay@parish.ph")
        second = _record("uid-2", "LOAY@parish.ph", parish_id="tagbilaran__dauis__holy_cross")
        e2e_directory.create(first, _claims(first))

        with pytest.raises(ClaimConflictError):
            e2e_directory.create(second, _claims(second))


class TestQuery:
    def test_query_matches_legacy_documents(self, e2e_directory, firestore_client):
        firestore_client.collection("users").document("legacy").set(
            legacy_free_text_doc("legacy", "old@parish.ph", "Holy Cross", "Loay")
        )

        results = e2e_directory.query(
            [
                FieldFilter(Fields.DIOCESE, "tagbilaran"),
                FieldFilter(Fields.STATUS, "active"),
            ]
        )

        assert [r.doc_id for r in results] == ["legacy"]


class TestSetStatus:
    def test_deactivate_releases_claims(self, e2e_directory, firestore_client):
        record = _record("uid-1", "loay@parish.ph")
        e2e_directory.create(record, _claims(record))

        e2e_directory.set_status("uid-1", AccountStatus.INACTIVE)

        assert not firestore_client.collection("parish_claims").document(_PARISH_ID).get().exists
        replacement = _record("uid-2", "new@parish.ph")
        e2e_directory.create(replacement, _claims(replacement))

    def test_reactivate_conflicts_with_replacement(self, e2e_directory):
        record = _record("uid-1", "loay@parish.ph")
        e2e_directory.create(record, _claims(record))
        e2e_directory.set_status("uid-1", AccountStatus.INACTIVE)
        replacement = _record("uid-2", "new@parish.ph")
        e2e_directory.create(replacement, _claims(replacement))

        with pytest.raises(ClaimConflictError):
            e2e_directory.set_status("uid-1", AccountStatus.ACTIVE)

    def test_unknown_uid(self, e2e_directory):
        with pytest.raises(KeyError):
            e2e_directory.set_status("missing", AccountStatus.INACTIVE)
