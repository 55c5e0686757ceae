"""FastAPI アプリケーション

チャンセリー管理画面向けの教区秘書アカウント API。
Cloud Run Service として動作し、Firebase Auth の ID トークンで認証する。

  GET  /api/parish-accounts/duplicates           重複チェック（入力中のライブ判定）
  GET  /api/parish-accounts/email-availability   メールアドレスの空き確認
  POST /api/parish-accounts                      アカウント作成
  GET  /api/municipalities/{diocese}             市町村一覧
  GET  /health                                   認証不要

起動:
    uvicorn parish_accounts.entrypoints.api.app:app --port 8000
"""

from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from parish_accounts.entrypoints.api.routes import municipalities, parish_accounts
from parish_accounts.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

API_PREFIX = "/api"
_DEFAULT_ORIGINS = ["http://localhost:3000"]


def cors_origins() -> list[str]:
    """CORS_ORIGINS（カンマ区切り）を読む。未設定ならローカルの管理画面のみ"""
    origins = [o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()]
    return origins or list(_DEFAULT_ORIGINS)


async def _json_500(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """未処理例外を JSON の 500 にする"""
    try:
        return await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled exception: %s %s",
            request.method,
            request.url.path,
            extra={"extra_fields": {"http_method": request.method, "path": request.url.path}},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    application = FastAPI(
        title="Parish Accounts API",
        description="教区秘書アカウントの重複判定と作成",
        version="1.0.0",
    )

    # 後から追加したミドルウェアが外側になる。500 にも CORS ヘッダーが付くよう先に登録する
    application.middleware("http")(_json_500)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    application.include_router(parish_accounts.router, prefix=API_PREFIX)
    application.include_router(municipalities.router, prefix=API_PREFIX)

    @application.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return application


app = create_app()
