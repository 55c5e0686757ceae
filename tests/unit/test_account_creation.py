"""AccountCreationCoordinator のユニットテスト"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import RetryError

from parish_accounts.domain.errors import (
    ClaimConflictError,
    DirectoryWriteError,
    DuplicateEmailError,
    DuplicateParishError,
    IdentityIssuanceError,
    TransientLookupError,
    ValidationError,
)
from parish_accounts.domain.models import (
    AccountStatus,
    CreatedBy,
    NoConflict,
    UniquenessClaims,
)
from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker
from tests.helpers import FIXED_NOW, legacy_free_text_doc


@pytest.fixture
def mocked_coordinator(mock_directory, mock_identity, no_sleep):
    """ディレクトリと IdentityProvider をモックにした Coordinator"""
    return AccountCreationCoordinator(
        directory=mock_directory,
        identity=mock_identity,
        resolver=DuplicateResolver(mock_directory, sleep=no_sleep),
        email_checker=EmailUniquenessChecker(mock_directory, sleep=no_sleep),
        clock=lambda: FIXED_NOW,
    )


class TestCreateAccount:
    def test_success(self, coordinator, directory, identity):
        """正常系: レコードが永続化され、パスワード設定が開始されること"""
        # Act
        result = coordinator.create_account(
            "Tagbilaran",
            " Loay ",
            "  St.  Joseph the Worker Parish ",
            "A@Parish.ph",
            created_by=CreatedBy(uid="chancery-1", email="c@chancery.ph"),
        )

        # Assert
        record = result.record
        assert result.credential_setup_sent is True
        assert record.uid in identity.users
        assert record.email == "a@parish.ph"
        assert record.role == "parish_secretary"
        assert record.diocese_id == "tagbilaran"
        assert record.parish_identifier == "tagbilaran__loay__saint_joseph_the_worker_parish"
        assert record.parish_info.name == "St. Joseph the Worker Parish"
        assert record.parish_info.municipality == "Loay"
        assert record.parish_info.full_name == "St. Joseph the Worker Parish, Loay"
        assert record.status is AccountStatus.ACTIVE
        assert record.created_at == FIXED_NOW
        assert record.created_by.uid == "chancery-1"
        assert identity.setup_requests == ["a@parish.ph"]

        stored = directory.query([])
        assert len(stored) == 1
        assert stored[0].data["parishId"] == record.parish_identifier
        assert stored[0].data["parishInfo"]["fullName"] == "St. Joseph the Worker Parish, Loay"

    @pytest.mark.parametrize(
        "diocese,municipality,name,email,code",
        [
            ("", "Loay", "Holy Cross", "a@parish.ph", "EMPTY_DIOCESE"),
            ("tagbilaran", " ", "Holy Cross", "a@parish.ph", "EMPTY_MUNICIPALITY"),
            ("tagbilaran", "Loay", "", "a@parish.ph", "EMPTY_NAME"),
            ("tagbilaran", "Loay", "Holy Cross", "", "EMPTY_EMAIL"),
            ("tagbilaran", "Loay", "Holy Cross", "not-an-email", "INVALID_EMAIL"),
        ],
    )
    def test_validation_errors(self, coordinator, identity, diocese, municipality, name, email, code):
        """入力エラーは ValidationError になり、IDは発行されないこと"""
        with pytest.raises(ValidationError) as exc_info:
            coordinator.create_account(diocese, municipality, name, email)
        assert exc_info.value.code == code
        assert identity.users == {}

    def test_duplicate_parish_rejected_before_issuing_identity(self, coordinator, directory, identity):
        """重複判定で衝突した場合は DuplicateParishError になること"""
        directory.seed("legacy", legacy_free_text_doc("legacy", "old@parish.ph", "St Joseph the Worker Parish", "LOAY"))

        with pytest.raises(DuplicateParishError) as exc_info:
            coordinator.create_account("tagbilaran", "Loay", "Saint Joseph the Worker Parish", "new@parish.ph")

        assert exc_info.value.existing_email == "old@parish.ph"
        assert exc_info.value.municipality == "LOAY"
        assert "old@parish.ph" in str(exc_info.value)
        assert identity.users == {}

    def test_duplicate_email_rejected(self, coordinator, directory, identity):
        directory.seed("legacy", legacy_free_text_doc("legacy", "a@parish.ph", "Holy Cross", "Ubay", diocese="talibon"))

        with pytest.raises(DuplicateEmailError):
            coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        assert identity.users == {}

    def test_lookup_failure_blocks_creation(self, coordinator, directory, identity, no_sleep):
        """照会が失敗し続けた場合は作成しない（fail closed）"""
        directory.fail_next_queries = 100

        with pytest.raises(TransientLookupError):
            coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        assert identity.users == {}
        assert no_sleep.call_count == 2

    def test_unknown_municipality_rejected_with_catalog(
        self, directory, identity, resolver, email_checker, catalog
    ):
        coordinator = AccountCreationCoordinator(
            directory, identity, resolver, email_checker, municipality_catalog=catalog
        )
        with pytest.raises(ValidationError) as exc_info:
            coordinator.create_account("tagbilaran", "Ubay", "Holy Cross", "a@parish.ph")
        assert exc_info.value.code == "UNKNOWN_MUNICIPALITY"

    def test_catalog_spelling_is_stored(self, directory, identity, resolver, email_checker, catalog):
        """カタログ上の表記で保存されること"""
        coordinator = AccountCreationCoordinator(
            directory, identity, resolver, email_checker, municipality_catalog=catalog
        )
        result = coordinator.create_account("tagbilaran", "garcia  hernandez", "Holy Cross", "a@parish.ph")
        assert result.record.parish_info.municipality == "Garcia Hernandez"


class TestCompensation:
    def test_claim_conflict_on_parish_revokes_identity(self, mocked_coordinator, mock_directory, mock_identity):
        """書き込み時に教区クレームを失った場合、発行済みIDを取り消すこと"""
        mock_directory.create.side_effect = ClaimConflictError("parish", "tagbilaran__loay__holy_cross")

        with pytest.raises(DuplicateParishError) as exc_info:
            mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        mock_identity.revoke_identity.assert_called_once_with("new-uid")
        mock_identity.trigger_credential_setup.assert_not_called()
        assert exc_info.value.municipality == "Loay"

    def test_claim_conflict_on_email_revokes_identity(self, mocked_coordinator, mock_directory, mock_identity):
        mock_directory.create.side_effect = ClaimConflictError("email", "a@parish.ph")

        with pytest.raises(DuplicateEmailError):
            mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        mock_identity.revoke_identity.assert_called_once_with("new-uid")

    def test_write_failure_revokes_identity(self, mocked_coordinator, mock_directory, mock_identity):
        """永続化に失敗した場合、孤立したIDを残さないこと"""
        mock_directory.create.side_effect = DirectoryWriteError("deadline exceeded")

        with pytest.raises(DirectoryWriteError):
            mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        mock_identity.revoke_identity.assert_called_once_with("new-uid")

    @pytest.mark.parametrize(
        "error",
        [
            RetryError("retry deadline exceeded", cause=None),
            ValueError("Failed to commit transaction in 5 attempts."),
            RuntimeError("unexpected adapter failure"),
        ],
    )
    def test_unexpected_write_failure_revokes_identity(
        self, mocked_coordinator, mock_directory, mock_identity, error
    ):
        """型付けされていない書き込み失敗でも発行済みIDを取り消し、例外をそのまま送出すること"""
        mock_directory.create.side_effect = error

        with pytest.raises(type(error)):
            mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        mock_identity.revoke_identity.assert_called_once_with("new-uid")
        mock_identity.trigger_credential_setup.assert_not_called()

    def test_revoke_failure_is_logged(self, mocked_coordinator, mock_directory, mock_identity, caplog):
        """取り消しにも失敗した場合はエラーログを残し、元の例外を送出すること"""
        mock_directory.create.side_effect = DirectoryWriteError("unavailable")
        mock_identity.revoke_identity.side_effect = IdentityIssuanceError("auth down")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(DirectoryWriteError):
                mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        assert "Orphaned identity could not be revoked: uid=new-uid" in caplog.text

    def test_identity_issuance_failure_writes_nothing(self, mocked_coordinator, mock_directory, mock_identity):
        mock_identity.issue_identity.side_effect = IdentityIssuanceError("quota exceeded")

        with pytest.raises(IdentityIssuanceError):
            mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        mock_directory.create.assert_not_called()

    def test_credential_setup_failure_keeps_account(self, mocked_coordinator, mock_directory, mock_identity):
        """パスワード設定の開始に失敗してもアカウントは残ること"""
        mock_identity.trigger_credential_setup.side_effect = IdentityIssuanceError("mail down")

        result = mocked_coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")

        assert result.credential_setup_sent is False
        mock_identity.revoke_identity.assert_not_called()
        record, claims = mock_directory.create.call_args.args
        assert record.uid == "new-uid"
        assert claims == UniquenessClaims(parish_key="tagbilaran__loay__holy_cross", email="a@parish.ph")


class TestConcurrentCreation:
    def test_stale_precheck_is_caught_by_claims(self, directory, identity):
        """事前チェックをすり抜けても、ストレージ層のクレームで2件目が拒否されること"""
        resolver = MagicMock(spec=DuplicateResolver)
        resolver.resolve.return_value = NoConflict()
        checker = MagicMock(spec=EmailUniquenessChecker)
        checker.is_available.return_value = True
        coordinator = AccountCreationCoordinator(directory, identity, resolver, checker)

        first = coordinator.create_account("tagbilaran", "Loay", "Holy Cross", "a@parish.ph")
        with pytest.raises(DuplicateParishError):
            coordinator.create_account("tagbilaran", "loay", "holy cross", "b@parish.ph")

        assert list(identity.users) == [first.record.uid]

    def test_parallel_requests_create_one_account(self, coordinator, directory, identity):
        """同じ教区への同時作成は1件だけ成功すること"""
        barrier = threading.Barrier(5)

        def create(i: int):
            barrier.wait()
            try:
                return coordinator.create_account("tagbilaran", "Loay", "Holy Cross", f"s{i}@parish.ph")
            except DuplicateParishError as e:
                return e

        with ThreadPoolExecutor(max_workers=5) as pool:
            outcomes = list(pool.map(create, range(5)))

        successes = [o for o in outcomes if not isinstance(o, DuplicateParishError)]
        assert len(successes) == 1
        assert len(directory.query([])) == 1
        assert list(identity.users) == [successes[0].record.uid]
