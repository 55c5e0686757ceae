"""E2E テスト用フィクスチャ

Firestore Emulator に接続し、実際の FirestoreAccountDirectory を使ってテストする。
Firebase Auth は dependency_overrides でバイパスし、ID発行はインメモリで代替する。

前提: FIRESTORE_EMULATOR_HOST 環境変数が設定されていること
  例: FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/e2e/ -m e2e -v
"""

from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient
from google.cloud import firestore

from parish_accounts.adapters.firebase_identity import InMemoryIdentityProvider
from parish_accounts.adapters.firestore_directory import FirestoreAccountDirectory
from parish_accounts.config import AppConfig
from parish_accounts.entrypoints.api import deps
from parish_accounts.entrypoints.api.app import app
from parish_accounts.entrypoints.api.deps import AuthInfo
from parish_accounts.entrypoints.factory import create_services
from tests.helpers import chancery_doc

CHANCERY_UID = "e2e-chancery"

_COLLECTIONS = ("users", "parish_claims", "email_claims")


@pytest.fixture(scope="session")
def firestore_client():
    """Firestore Emulator に接続するクライアント（セッション共有）"""
    if not os.environ.get("FIRESTORE_EMULATOR_HOST"):
        pytest.skip("FIRESTORE_EMULATOR_HOST is not set")
    return firestore.Client(project="test-project")


@pytest.fixture(autouse=True)
def _cleanup_firestore(firestore_client):
    """各テスト後に Emulator のデータをクリーンアップ"""
    yield
    for collection_name in _COLLECTIONS:
        for doc in firestore_client.collection(collection_name).stream():
            doc.reference.delete()


@pytest.fixture
def e2e_directory(firestore_client) -> FirestoreAccountDirectory:
    return FirestoreAccountDirectory(firestore_client)


@pytest.fixture
def e2e_services(e2e_directory):
    return create_services(
        AppConfig(project_id="test-project", local_mode=True),
        directory=e2e_directory,
        identity=InMemoryIdentityProvider(),
    )


@pytest.fixture
def e2e_client(firestore_client, e2e_services):
    """認証バイパス + 実 Firestore の TestClient

    - get_auth_info: AuthInfo(CHANCERY_UID) を固定返却（Firebase Auth をバイパス）
    - CHANCERY_UID のチャンセリーユーザーを事前登録（ロールチェックを通過）
    """
    firestore_client.collection("users").document(CHANCERY_UID).set(chancery_doc(CHANCERY_UID))

    app.dependency_overrides[deps.get_services] = lambda: e2e_services
    app.dependency_overrides[deps.get_auth_info] = lambda: AuthInfo(
        uid=CHANCERY_UID, email="e2e@chancery.ph", display_name="E2E Chancery"
    )

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
