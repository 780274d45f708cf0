import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Import app from the correct location
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from main import app

# === 全局测试配置 ===
# 中文注释:
# 1. 显式使用 pytest_asyncio.fixture 解决 STRICT 模式下的生成器问题。
# 2. 每个测试结束后清空 dependency_overrides，避免鉴权/服务替身串到下一个用例。
# 3. JWT 令牌使用与后端一致的 HS256 secret 生成。

TEST_USER_ID = "00000000-0000-0000-0000-000000000000"


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


def generate_test_token(
    user_id: str = TEST_USER_ID,
    *,
    email: str = "test@example.com",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    生成用于测试的 JWT 令牌（与 SUPABASE_JWT_SECRET 同一 secret）
    """
    secret = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": now + expires_in,
        "iat": now,
        "role": "authenticated",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_token() -> str:
    return generate_test_token()


@pytest.fixture
def expired_token() -> str:
    return generate_test_token(expires_in=timedelta(hours=-1))


@pytest.fixture
def invalid_token() -> str:
    return "invalid.jwt.token"
