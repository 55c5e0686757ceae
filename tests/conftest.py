"""共通テストフィクスチャ

全テストから利用可能なモックオブジェクトとサンプルデータを提供。

モックの作成:
- MagicMock(spec=ABC) でABCのメソッドシグネチャを保持
- 重複判定・作成フローはインメモリのディレクトリで実際に動かす
"""

from unittest.mock import MagicMock

import pytest

from parish_accounts.adapters.firebase_identity import InMemoryIdentityProvider
from parish_accounts.adapters.in_memory_directory import InMemoryAccountDirectory
from parish_accounts.domain.models import (
    AccountRecord,
    AccountStatus,
    ParishInfo,
)
from parish_accounts.domain.ports import AccountDirectory, IdentityProvider
from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker
from parish_accounts.services.municipalities import MunicipalityCatalog
from tests.helpers import FIXED_NOW

# ========== サンプルデータ ==========


@pytest.fixture
def sample_record() -> AccountRecord:
    """サンプルの教区秘書アカウント"""
    return AccountRecord(
        uid="uid-loay",
        email="loay@parish.ph",
        role="parish_secretary",
        diocese_id="tagbilaran",
        parish_identifier="tagbilaran__loay__saint_joseph_the_worker_parish",
        parish_info=ParishInfo(
            name="St. Joseph the Worker Parish",
            municipality="Loay",
            full_name="St. Joseph the Worker Parish, Loay",
        ),
        status=AccountStatus.ACTIVE,
    )


# ========== ディレクトリ / サービス ==========


@pytest.fixture
def directory() -> InMemoryAccountDirectory:
    """空のインメモリディレクトリ"""
    return InMemoryAccountDirectory()


@pytest.fixture
def identity() -> InMemoryIdentityProvider:
    """インメモリの IdentityProvider"""
    return InMemoryIdentityProvider()


@pytest.fixture
def no_sleep() -> MagicMock:
    """再試行の待ち時間を記録するだけの sleep"""
    return MagicMock()


@pytest.fixture
def resolver(directory, no_sleep) -> DuplicateResolver:
    return DuplicateResolver(directory, retries=2, backoff_seconds=0.2, sleep=no_sleep)


@pytest.fixture
def email_checker(directory, no_sleep) -> EmailUniquenessChecker:
    return EmailUniquenessChecker(directory, retries=2, backoff_seconds=0.2, sleep=no_sleep)


@pytest.fixture
def catalog() -> MunicipalityCatalog:
    """同梱の市町村カタログ"""
    return MunicipalityCatalog.load()


@pytest.fixture
def coordinator(directory, identity, resolver, email_checker) -> AccountCreationCoordinator:
    """インメモリのアダプタで組み立てた AccountCreationCoordinator"""
    return AccountCreationCoordinator(
        directory=directory,
        identity=identity,
        resolver=resolver,
        email_checker=email_checker,
        clock=lambda: FIXED_NOW,
    )


# ========== モックフィクスチャ ==========


@pytest.fixture
def mock_directory() -> MagicMock:
    """AccountDirectory のモック（照会結果は空）"""
    mock = MagicMock(spec=AccountDirectory)
    mock.query.return_value = []
    return mock


@pytest.fixture
def mock_identity() -> MagicMock:
    """IdentityProvider のモック"""
    mock = MagicMock(spec=IdentityProvider)
    mock.issue_identity.return_value = "new-uid"
    return mock
