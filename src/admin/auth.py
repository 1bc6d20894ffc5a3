"""管理 API 鉴权: Authorization: Bearer <token> 或 X-CareBridge-Token: <token>"""

from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, Request

import config.settings as settings
from logger import logger

TOKEN_HEADER = "X-CareBridge-Token"


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.headers.get(TOKEN_HEADER, "").strip() or None


async def require_admin_auth(request: Request) -> str:
    expected = settings.ADMIN_AUTH_TOKEN
    if not expected:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    token = extract_token(request)
    if token is None or not hmac.compare_digest(token, expected):
        logger.warning(f"管理 API 鉴权失败: {request.method} {request.url.path}")
        raise HTTPException(status_code=401, detail="未授权")
    return "admin-token"


AdminAuth = Depends(require_admin_auth)


def warn_if_unprotected() -> None:
    if not settings.ADMIN_AUTH_TOKEN:
        logger.warning("未配置 ADMIN_AUTH_TOKEN，管理 API 只开放健康检查")
