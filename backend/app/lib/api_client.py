import os
from typing import Any, Callable, Optional

from supabase import Client, create_client

from app.core.config import app_config

url: str = app_config.supabase_url

# 中文注释:
# - 匿名 key 兼容两种变量名（SUPABASE_ANON_KEY 优先，SUPABASE_KEY 兜底）。
# - service_role key 仅后端持有，用于绕过 RLS 的写入（DOI 预留、支付回调等）。
anon_key: str = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY") or ""
service_role_key: str = app_config.supabase_key


class _LazyDocumentClient:
    """
    延迟创建 Supabase Client。

    中文注释:
    - import 阶段不连接数据库，缺少环境变量时模块依然可导入（单元测试会 monkeypatch 替换）。
    - 第一次访问属性时才真正创建 client，配置缺失会在此时抛出清晰的 RuntimeError。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)

    def __repr__(self) -> str:
        state = "connected" if self._client is not None else "lazy"
        return f"<{self._name} ({state})>"


def _require_url() -> str:
    if not url:
        raise RuntimeError("SUPABASE_URL is required")
    return url


def _create_public_client() -> Client:
    if not anon_key:
        raise RuntimeError("SUPABASE_ANON_KEY or SUPABASE_KEY is required")
    return create_client(_require_url(), anon_key)


def _create_admin_client() -> Client:
    admin_key = service_role_key or anon_key
    if not admin_key:
        raise RuntimeError("SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY) is required")
    return create_client(_require_url(), admin_key)


supabase: Client = _LazyDocumentClient(_create_public_client, name="supabase")  # type: ignore[assignment]

supabase_admin: Client = _LazyDocumentClient(_create_admin_client, name="supabase_admin")  # type: ignore[assignment]
