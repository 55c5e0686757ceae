"""FastAPI 依存性注入

Firebase Auth JWT 検証とサービスの初期化を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出して
チャンセリーのコンテキストとサービスインスタンスを受け取る。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import firebase_admin.auth as fb_auth
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from parish_accounts.domain.errors import TransientLookupError
from parish_accounts.domain.models import AccountStatus, FieldFilter, Fields
from parish_accounts.entrypoints.factory import (
    ParishAccountServices,
    create_services,
    get_firebase_app,
)
from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker
from parish_accounts.services.municipalities import MunicipalityCatalog

logger = logging.getLogger(__name__)

ROLE_CHANCERY_OFFICE = "chancery_office"

# ── サービス（プロセス内で1回のみ組み立て） ──────────────────────────────────────

_services: ParishAccountServices | None = None


def get_services() -> ParishAccountServices:
    global _services
    if _services is None:
        _services = create_services()
    return _services


def get_resolver(
    services: ParishAccountServices = Depends(get_services),
) -> DuplicateResolver:
    """DuplicateResolver を返す依存関数"""
    return services.resolver


def get_email_checker(
    services: ParishAccountServices = Depends(get_services),
) -> EmailUniquenessChecker:
    """EmailUniquenessChecker を返す依存関数"""
    return services.email_checker


def get_coordinator(
    services: ParishAccountServices = Depends(get_services),
) -> AccountCreationCoordinator:
    """AccountCreationCoordinator を返す依存関数"""
    return services.coordinator


def get_catalog(
    services: ParishAccountServices = Depends(get_services),
) -> MunicipalityCatalog:
    """MunicipalityCatalog を返す依存関数"""
    return services.catalog


# ── 認証 ────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuthInfo:
    """検証済み ID トークンの内容"""

    uid: str
    email: str
    display_name: str


_bearer = HTTPBearer()

# 失効済み・無効化済みユーザーのトークンも拒否する
_REJECTED_TOKEN_ERRORS = (
    fb_auth.InvalidIdTokenError,
    fb_auth.UserDisabledError,
    fb_auth.CertificateFetchError,
    ValueError,
)


async def get_auth_info(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
) -> AuthInfo:
    """
    Bearer の Firebase ID トークンを検証する。

    Raises:
        HTTPException(401): 検証できないトークン
    """
    app = get_firebase_app()
    try:
        claims = fb_auth.verify_id_token(creds.credentials, app=app, check_revoked=True)
    except _REJECTED_TOKEN_ERRORS as e:
        logger.warning("ID token rejected: %s", type(e).__name__)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="INVALID_ID_TOKEN",
        ) from e

    return AuthInfo(
        uid=claims["uid"],
        email=(claims.get("email") or "").lower(),
        display_name=claims.get("name") or "",
    )


# ── チャンセリーコンテキスト ──────────────────────────────────────────────────


@dataclass(frozen=True)
class ChanceryContext:
    """認証済みチャンセリーユーザーのコンテキスト"""

    uid: str
    email: str
    display_name: str
    diocese: str


async def require_chancery(
    auth_info: AuthInfo = Depends(get_auth_info),
    services: ParishAccountServices = Depends(get_services),
) -> ChanceryContext:
    """
    users/{uid} を参照し、アクティブなチャンセリーユーザーであることを要求する。

    Raises:
        HTTPException(403): chancery_office ロールでない場合
        HTTPException(503): ユーザー情報を取得できない場合
    """
    try:
        hits = services.directory.query([FieldFilter(Fields.UID, auth_info.uid)])
    except TransientLookupError as e:
        logger.error("Failed to load caller profile: uid=%s, error=%s", auth_info.uid, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account directory is temporarily unavailable",
        ) from e

    data = hits[0].data if hits else {}
    if (
        data.get(Fields.ROLE) != ROLE_CHANCERY_OFFICE
        or data.get(Fields.STATUS, AccountStatus.ACTIVE.value) != AccountStatus.ACTIVE.value
    ):
        logger.warning("Chancery role required: uid=%s", auth_info.uid)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CHANCERY_ROLE_REQUIRED",
        )

    return ChanceryContext(
        uid=auth_info.uid,
        email=data.get(Fields.EMAIL) or auth_info.email,
        display_name=data.get("name") or auth_info.display_name,
        diocese=(data.get(Fields.DIOCESE) or "").strip().lower(),
    )


def ensure_same_diocese(ctx: ChanceryContext, diocese: str) -> str:
    """
    チャンセリーは自分の司教区のみ操作できる。

    Returns:
        正規化済みの司教区ID

    Raises:
        HTTPException(403): 別の司教区を指定した場合
    """
    normalized = (diocese or "").strip().lower()
    if normalized != ctx.diocese:
        logger.warning(
            "Cross-diocese access denied: uid=%s, own=%s, requested=%s",
            ctx.uid,
            ctx.diocese,
            normalized,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="DIOCESE_MISMATCH",
        )
    return normalized
