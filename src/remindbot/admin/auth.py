from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from remindbot.logger import logger


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    token_header = request.headers.get("X-RemindBot-Token", "").strip()
    return token_header or None


async def require_auth(request: Request) -> dict[str, str]:
    """校验 Bearer token；未配置 token 时不做鉴权"""
    expected: str = request.app.state.control.auth_token
    if not expected:
        return {"auth": "none", "user": "anonymous"}

    token = extract_token(request)
    if token and hmac.compare_digest(token, expected):
        return {"auth": "token", "user": "trigger-token"}

    logger.warning(f"鉴权失败: path={request.url.path}, client={request.client.host if request.client else '-'}")
    raise HTTPException(status_code=401, detail="未授权")
