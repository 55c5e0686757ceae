"""Factory - 依存性注入の組み立て

全AdapterとServiceを組み立て、ParishAccountServices を生成する。

LOCAL_MODE:
  FIRESTORE_EMULATOR_HOST が設定されていればエミュレーター上の Firestore、
  なければインメモリのディレクトリを使う。ID発行は常にインメモリ。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials as fb_creds
from google.cloud import firestore

from parish_accounts.adapters.email_notifier import EmailConfig, SendGridCredentialMailer
from parish_accounts.adapters.firebase_identity import (
    FirebaseIdentityProvider,
    InMemoryIdentityProvider,
)
from parish_accounts.adapters.firestore_directory import FirestoreAccountDirectory
from parish_accounts.adapters.in_memory_directory import InMemoryAccountDirectory
from parish_accounts.config import AppConfig
from parish_accounts.domain.ports import AccountDirectory, IdentityProvider
from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker
from parish_accounts.services.lookup import LookupFailurePolicy
from parish_accounts.services.municipalities import MunicipalityCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParishAccountServices:
    """組み立て済みのサービス一式"""

    directory: AccountDirectory
    identity: IdentityProvider
    resolver: DuplicateResolver
    email_checker: EmailUniquenessChecker
    coordinator: AccountCreationCoordinator
    catalog: MunicipalityCatalog


def get_firebase_app(project_id: str = "") -> firebase_admin.App:
    """Firebase Admin を初期化する（プロセス内で1回のみ）"""
    try:
        # 既に初期化済み
        return firebase_admin.get_app()
    except ValueError:
        cred = fb_creds.ApplicationDefault()
        app = firebase_admin.initialize_app(
            cred,
            options={"projectId": project_id} if project_id else {},
        )
        logger.info("Firebase Admin initialized project=%s", project_id)
        return app


def create_directory(config: AppConfig) -> AccountDirectory:
    """設定に応じた AccountDirectory を返す"""
    if config.local_mode and not os.environ.get("FIRESTORE_EMULATOR_HOST"):
        logger.warning("LOCAL_MODE: using in-memory account directory")
        return InMemoryAccountDirectory()
    db = firestore.Client(project=config.project_id or None)
    logger.info("Firestore client initialized")
    return FirestoreAccountDirectory(db)


def create_identity_provider(config: AppConfig) -> IdentityProvider:
    """設定に応じた IdentityProvider を返す"""
    if config.local_mode:
        logger.warning("LOCAL_MODE: using in-memory identity provider")
        return InMemoryIdentityProvider()

    mailer = None
    if config.sendgrid_api_key:
        mailer = SendGridCredentialMailer(
            EmailConfig(api_key=config.sendgrid_api_key, from_email=config.mail_from_email)
        )
        logger.info("SendGrid credential mailer enabled")
    else:
        logger.warning("SENDGRID_API_KEY not set, setup links will not be emailed")

    return FirebaseIdentityProvider(
        app=get_firebase_app(config.project_id),
        mailer=mailer,
        continue_url=config.password_reset_continue_url,
    )


def create_services(
    config: AppConfig | None = None,
    directory: AccountDirectory | None = None,
    identity: IdentityProvider | None = None,
) -> ParishAccountServices:
    """
    ParishAccountServices を生成（全依存を組み立て）。

    Args:
        config: アプリケーション設定（Noneの場合は環境変数から読み込み）
        directory: 差し替え用（None の場合は設定から生成）
        identity: 差し替え用（None の場合は設定から生成）

    Raises:
        ValueError: 必須設定が不足している場合
    """
    if config is None:
        config = AppConfig.from_env()

    logger.info(
        "Creating services: project_id=%s, local_mode=%s, lookup_failure_policy=%s",
        config.project_id,
        config.local_mode,
        config.lookup_failure_policy,
    )

    directory = directory or create_directory(config)
    identity = identity or create_identity_provider(config)
    catalog = MunicipalityCatalog.load(config.municipalities_path or None)

    policy = LookupFailurePolicy(config.lookup_failure_policy)
    resolver = DuplicateResolver(
        directory,
        failure_policy=policy,
        retries=config.lookup_retries,
        backoff_seconds=config.lookup_retry_backoff_seconds,
    )
    email_checker = EmailUniquenessChecker(
        directory,
        failure_policy=policy,
        retries=config.lookup_retries,
        backoff_seconds=config.lookup_retry_backoff_seconds,
    )
    coordinator = AccountCreationCoordinator(
        directory=directory,
        identity=identity,
        resolver=resolver,
        email_checker=email_checker,
        municipality_catalog=catalog if config.strict_municipalities else None,
    )

    logger.info("Services created successfully")
    return ParishAccountServices(
        directory=directory,
        identity=identity,
        resolver=resolver,
        email_checker=email_checker,
        coordinator=coordinator,
        catalog=catalog,
    )
