import pytest
from main import app

# === API 路径一致性测试 ===

EXPECTED_ROUTES = {
    ("GET", "/"),
    # DOI
    ("POST", "/api/v1/doi/validate"),
    ("GET", "/api/v1/doi/parse/{doi:path}"),
    ("POST", "/api/v1/doi/reserve/manuscript"),
    ("POST", "/api/v1/doi/reserve/correction"),
    ("GET", "/api/v1/doi/unique"),
    # APC 费用
    ("GET", "/api/v1/fee-config"),
    ("PUT", "/api/v1/fee-config"),
    ("POST", "/api/v1/fee-config/reset"),
    ("GET", "/api/v1/fee-config/public"),
    ("POST", "/api/v1/fee-config/calculate"),
    # 支付
    ("POST", "/api/v1/payments"),
    ("GET", "/api/v1/payments/mine"),
    ("POST", "/api/v1/payments/webhook"),
    ("GET", "/api/v1/payments/{payment_id}"),
    ("POST", "/api/v1/payments/{payment_id}/intent"),
    ("POST", "/api/v1/payments/{payment_id}/confirm"),
    ("POST", "/api/v1/payments/{payment_id}/waive"),
    # 卷 / 期
    ("POST", "/api/v1/volumes"),
    ("GET", "/api/v1/volumes"),
    ("GET", "/api/v1/volumes/{volume_id}"),
    ("PATCH", "/api/v1/volumes/{volume_id}/status"),
    ("POST", "/api/v1/volumes/{volume_id}/publish"),
    ("POST", "/api/v1/volumes/{volume_id}/issues"),
    ("POST", "/api/v1/issues/{issue_id}/manuscripts"),
    ("DELETE", "/api/v1/issues/{issue_id}/manuscripts/{manuscript_id}"),
    ("POST", "/api/v1/issues/{issue_id}/publish"),
    ("GET", "/api/v1/public/volumes"),
    ("GET", "/api/v1/public/volumes/{volume_number}/issues/{issue_number}"),
    # 稿件 / 编辑加工
    ("GET", "/api/v1/manuscripts/{manuscript_id}"),
    ("PATCH", "/api/v1/manuscripts/{manuscript_id}/status"),
    ("POST", "/api/v1/manuscripts/{manuscript_id}/publish"),
    ("POST", "/api/v1/manuscripts/{manuscript_id}/copy-editor"),
    ("POST", "/api/v1/manuscripts/{manuscript_id}/copy-edit/stage"),
    # 勘误
    ("POST", "/api/v1/corrections"),
    ("GET", "/api/v1/corrections"),
    ("GET", "/api/v1/corrections/public"),
    ("GET", "/api/v1/corrections/{correction_id}"),
    ("POST", "/api/v1/corrections/{correction_id}/review"),
    ("POST", "/api/v1/corrections/{correction_id}/publish"),
    # 用户 / 角色 / 通知
    ("GET", "/api/v1/users/me"),
    ("PUT", "/api/v1/users/me"),
    ("POST", "/api/v1/users/me/active-role"),
    ("GET", "/api/v1/users/{user_id}"),
    ("PUT", "/api/v1/users/{user_id}/roles"),
    ("GET", "/api/v1/notifications"),
    ("PATCH", "/api/v1/notifications/{notification_id}/read"),
    ("POST", "/api/v1/notifications/read-all"),
}


def _actual_routes() -> set[tuple[str, str]]:
    actual = set()
    for route in app.routes:
        methods = getattr(route, "methods", None)
        if not methods or not hasattr(route, "path"):
            continue
        for method in methods:
            if method in {"HEAD", "OPTIONS"}:
                continue
            actual.add((method, route.path))
    return actual


def test_api_paths_match_expected():
    """验证关键 API 路径与方法存在且无尾随斜杠偏差"""
    missing = EXPECTED_ROUTES - _actual_routes()
    assert not missing, f"Missing routes: {sorted(missing)}"


@pytest.mark.parametrize("path", ["/api/v1/payments/", "/api/v1/volumes/", "/api/v1/corrections/"])
def test_no_trailing_slash_variants(path):
    assert not any(p == path for _, p in _actual_routes())
