import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
from uuid import uuid4

import jwt
import pytest
from supabase import Client, create_client

# 中文注释:
# - 集成测试直连真实 Supabase（需 doi_reservations / payments 等表与唯一约束已迁移）。
# - 环境变量缺失或网络不可达时整体 skip，不影响本地单元测试。


@dataclass(frozen=True)
class TestUser:
    """
    集成测试用户：只生成后端可解码的 JWT，不创建 Auth 账号
    """

    id: str
    email: str
    token: str


@pytest.fixture(scope="session")
def supabase_url() -> str:
    url = (os.environ.get("SUPABASE_URL") or "").strip()
    if not url:
        pytest.skip("SUPABASE_URL must be set for integration tests")
    return url


@pytest.fixture(scope="session")
def supabase_service_key() -> str:
    key = (
        os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        or os.environ.get("SUPABASE_ANON_KEY")
        or os.environ.get("SUPABASE_KEY")
        or ""
    ).strip()
    if not key:
        pytest.skip("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) must be set for integration tests")
    return key


@pytest.fixture(scope="session")
def supabase_admin_client(supabase_url: str, supabase_service_key: str) -> Client:
    client = create_client(supabase_url, supabase_service_key)
    try:
        # 中文注释: session 级探测，表未迁移或网络不可达时统一 skip。
        client.table("doi_reservations").select("id").limit(1).execute()
    except Exception as e:
        pytest.skip(f"Supabase is not reachable or doi_reservations is missing: {e}")
    return client


@pytest.fixture(scope="session")
def jwt_secret() -> str:
    # 与 app.core.auth_utils 默认值保持一致
    return os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")


@pytest.fixture
def make_test_user(jwt_secret: str) -> Callable[[Optional[str]], TestUser]:
    def _make(email: Optional[str] = None) -> TestUser:
        user_id = str(uuid4())
        user_email = email or f"test_user_{user_id[:8]}@example.com"
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": user_email,
            "aud": "authenticated",
            "exp": now + timedelta(hours=1),
            "iat": now,
            "role": "authenticated",
        }
        return TestUser(id=user_id, email=user_email, token=jwt.encode(payload, jwt_secret, algorithm="HS256"))

    return _make


@pytest.fixture
def set_admin_emails(monkeypatch: pytest.MonkeyPatch) -> Callable[[Iterable[str]], None]:
    """
    临时设置 ADMIN_EMAILS（首次访问时授予 admin/editor）
    """

    def _set(emails: Iterable[str]) -> None:
        monkeypatch.setenv("ADMIN_EMAILS", ",".join([e.strip() for e in emails if e.strip()]))

    return _set
