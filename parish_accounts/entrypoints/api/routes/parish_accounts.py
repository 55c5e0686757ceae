"""教区秘書アカウント API ルート

GET  /api/parish-accounts/duplicates          → 200 { status, existing, similar, degraded, seq }
GET  /api/parish-accounts/email-availability  → 200 { email, available, seq }
POST /api/parish-accounts                     → 201 { uid, email, parish_id, ... }

duplicates / email-availability は入力中のライブチェック用（fail open）。
seq はそのまま返すので、呼び出し側は古いレスポンスを破棄できる。
POST は必ずサーバー側で再チェックする（fail closed）。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from parish_accounts.domain.errors import (
    DirectoryWriteError,
    DuplicateEmailError,
    DuplicateParishError,
    IdentityIssuanceError,
    TransientLookupError,
    ValidationError,
)
from parish_accounts.domain.models import Conflict, CreatedBy
from parish_accounts.entrypoints.api.deps import (
    ChanceryContext,
    ensure_same_diocese,
    get_coordinator,
    get_email_checker,
    get_resolver,
    require_chancery,
)
from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/parish-accounts", tags=["parish-accounts"])


# ── リクエスト/レスポンスモデル ─────────────────────────────────────────────────


class ExistingAccountResponse(BaseModel):
    uid: str
    email: str
    parish_name: str
    municipality: str
    matched_by: str


class SimilarParishResponse(BaseModel):
    uid: str
    name: str
    municipality: str
    email: str


class DuplicateCheckResponse(BaseModel):
    status: str  # "no_conflict" | "conflict"
    existing: ExistingAccountResponse | None = None
    similar: list[SimilarParishResponse] = []
    degraded: bool = False
    seq: int | None = None


class EmailAvailabilityResponse(BaseModel):
    email: str
    available: bool
    seq: int | None = None


class CreateParishAccountRequest(BaseModel):
    diocese: str
    municipality: str
    parish_name: str
    email: str


class ParishAccountResponse(BaseModel):
    uid: str
    email: str
    role: str
    diocese: str
    parish_id: str | None
    parish_name: str
    municipality: str
    full_name: str
    status: str
    credential_setup_sent: bool


# ── エラー変換 ───────────────────────────────────────────────────────────────────


def _validation_error(e: ValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"code": e.code, "message": e.message},
    )


def _lookup_unavailable(e: TransientLookupError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"code": "LOOKUP_UNAVAILABLE", "message": str(e)},
    )


# ── エンドポイント ────────────────────────────────────────────────────────────────


@router.get("/duplicates", response_model=DuplicateCheckResponse)
def check_duplicates(
    diocese: str = Query(...),
    municipality: str = Query(...),
    name: str = Query(...),
    seq: int | None = Query(None),
    ctx: ChanceryContext = Depends(require_chancery),
    resolver: DuplicateResolver = Depends(get_resolver),
) -> DuplicateCheckResponse:
    """入力中の教区名に対する重複判定（ライブチェック）"""
    diocese_id = ensure_same_diocese(ctx, diocese)
    try:
        result = resolver.resolve(diocese_id, municipality, name)
    except ValidationError as e:
        raise _validation_error(e) from e
    except TransientLookupError as e:
        raise _lookup_unavailable(e) from e

    if isinstance(result, Conflict):
        existing = result.existing
        return DuplicateCheckResponse(
            status="conflict",
            existing=ExistingAccountResponse(
                uid=existing.uid,
                email=existing.email,
                parish_name=existing.parish_info.name,
                municipality=result.stored_municipality,
                matched_by=result.matched_by.value,
            ),
            seq=seq,
        )

    return DuplicateCheckResponse(
        status="no_conflict",
        similar=[
            SimilarParishResponse(
                uid=s.uid, name=s.name, municipality=s.municipality, email=s.email
            )
            for s in result.similar
        ],
        degraded=result.degraded,
        seq=seq,
    )


@router.get("/email-availability", response_model=EmailAvailabilityResponse)
def check_email_availability(
    email: str = Query(...),
    seq: int | None = Query(None),
    ctx: ChanceryContext = Depends(require_chancery),
    checker: EmailUniquenessChecker = Depends(get_email_checker),
) -> EmailAvailabilityResponse:
    """メールアドレスの利用可否（ライブチェック）"""
    try:
        available = checker.is_available(email)
    except ValidationError as e:
        raise _validation_error(e) from e
    except TransientLookupError as e:
        raise _lookup_unavailable(e) from e
    return EmailAvailabilityResponse(
        email=email.strip().lower(), available=available, seq=seq
    )


@router.post(
    "", status_code=status.HTTP_201_CREATED, response_model=ParishAccountResponse
)
def create_parish_account(
    body: CreateParishAccountRequest,
    ctx: ChanceryContext = Depends(require_chancery),
    coordinator: AccountCreationCoordinator = Depends(get_coordinator),
) -> ParishAccountResponse:
    """
    教区秘書アカウントを作成する。

    409: 教区またはメールアドレスが既にアクティブなアカウントに使われている
    422: 入力エラー
    503: 重複チェックの照会・書き込みに失敗した（再試行可能）
    502: Firebase Auth でのID発行に失敗した
    """
    diocese_id = ensure_same_diocese(ctx, body.diocese)
    try:
        result = coordinator.create_account(
            diocese_id,
            body.municipality,
            body.parish_name,
            body.email,
            created_by=CreatedBy(uid=ctx.uid, email=ctx.email, name=ctx.display_name),
        )
    except ValidationError as e:
        raise _validation_error(e) from e
    except DuplicateParishError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "DUPLICATE_PARISH",
                "message": str(e),
                "existing_email": e.existing_email,
                "municipality": e.municipality,
            },
        ) from e
    except DuplicateEmailError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "DUPLICATE_EMAIL", "message": str(e)},
        ) from e
    except TransientLookupError as e:
        raise _lookup_unavailable(e) from e
    except DirectoryWriteError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "DIRECTORY_WRITE_FAILED", "message": str(e)},
        ) from e
    except IdentityIssuanceError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"code": "IDENTITY_ISSUANCE_FAILED", "message": str(e)},
        ) from e

    record = result.record
    logger.info(
        "Parish account created via API: uid=%s, parish_id=%s, created_by=%s",
        record.uid,
        record.parish_identifier,
        ctx.uid,
    )
    return ParishAccountResponse(
        uid=record.uid,
        email=record.email,
        role=record.role,
        diocese=record.diocese_id,
        parish_id=record.parish_identifier,
        parish_name=record.parish_info.name,
        municipality=record.parish_info.municipality,
        full_name=record.parish_info.full_name,
        status=record.status.value,
        credential_setup_sent=result.credential_setup_sent,
    )
