import base64
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from app.core import auth_utils

SECRET = "unit-test-secret"


def _creds(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _hs256(payload: dict) -> str:
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _rs256_like(payload: dict) -> str:
    """
    只需三段 JWT 结构即可让 jose 解析 header；签名不会被校验（走 Auth API 分支）。
    """

    def b64url(raw: bytes) -> str:
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("utf-8")

    header = b64url(json.dumps({"alg": "RS256", "typ": "JWT"}).encode())
    body = b64url(json.dumps(payload).encode())
    return f"{header}.{body}.{b64url(b'sig')}"


@pytest.fixture(autouse=True)
def _secret(monkeypatch):
    monkeypatch.setattr(auth_utils, "SUPABASE_JWT_SECRET", SECRET)


@pytest.mark.asyncio
async def test_hs256_token_is_decoded_locally():
    exp = datetime.now(timezone.utc) + timedelta(minutes=5)
    token = _hs256({"sub": "user-1", "email": "u@example.com", "aud": "authenticated", "exp": exp})
    user = await auth_utils.get_current_user(_creds(token))
    assert user == {"id": "user-1", "email": "u@example.com"}


@pytest.mark.asyncio
async def test_expired_token_is_401():
    exp = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = _hs256({"sub": "user-1", "aud": "authenticated", "exp": exp})
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(_creds(token))
    assert exc.value.detail == "Token invalid or expired"


@pytest.mark.asyncio
async def test_wrong_audience_is_401():
    token = _hs256({"sub": "user-1", "aud": "anon"})
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(_creds(token))
    assert exc.value.status_code == 401


@pytest.mark.asyncio
async def test_missing_sub_is_401():
    token = _hs256({"email": "u@example.com", "aud": "authenticated"})
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(_creds(token))
    assert exc.value.detail == "Invalid token payload"


@pytest.mark.asyncio
async def test_non_hs256_token_uses_auth_api(monkeypatch):
    fake = SimpleNamespace(
        auth=SimpleNamespace(
            get_user=lambda _t: SimpleNamespace(user=SimpleNamespace(id="user-2", email="v@example.com"))
        )
    )
    monkeypatch.setattr(auth_utils, "supabase", fake)
    user = await auth_utils.get_current_user(_creds(_rs256_like({"sub": "user-2"})))
    assert user == {"id": "user-2", "email": "v@example.com"}


@pytest.mark.asyncio
async def test_auth_api_failure_is_401_not_500(monkeypatch):
    def boom(_token):
        raise RuntimeError("network down")

    monkeypatch.setattr(auth_utils, "supabase", SimpleNamespace(auth=SimpleNamespace(get_user=boom)))
    with pytest.raises(HTTPException) as exc:
        await auth_utils.get_current_user(_creds(_rs256_like({"sub": "user-2"})))
    assert exc.value.status_code == 401
