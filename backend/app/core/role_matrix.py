from __future__ import annotations

from typing import Iterable

# 中文注释：
# - 集中定义“角色 -> 动作”权限矩阵，路由只声明动作，不再散落 role 字符串判断。
# - 历史数据中的 `copy-editor` 写法在 normalize_roles 中统一为 `copy_editor`。

ADMIN_ROLE = "admin"

# 优先级从高到低：移除当前 active_role 时按此顺序挑选新的 active_role。
ROLE_PRECEDENCE: tuple[str, ...] = ("admin", "editor", "copy_editor", "reviewer", "author")

KNOWN_ROLES: frozenset[str] = frozenset(ROLE_PRECEDENCE)

ROLE_ACTIONS: dict[str, set[str]] = {
    "author": {
        "manuscript:submit",
        "manuscript:view_own",
        "copy_edit:author_review",
        "payment:create",
        "payment:pay",
        "correction:submit",
    },
    # 审稿流程不在本服务内，reviewer 仅作为可分配的角色存在。
    "reviewer": set(),
    "copy_editor": {
        "copy_edit:view",
        "copy_edit:edit",
    },
    "editor": {
        "manuscript:view_all",
        "manuscript:update_status",
        "copy_edit:view",
        "copy_edit:assign",
        "publication:manage",
        "doi:reserve",
        "correction:review",
        "correction:publish",
        "payment:confirm",
        "payment:waive",
    },
    ADMIN_ROLE: {
        "*",
    },
}


def normalize_role(raw: object) -> str:
    return str(raw or "").strip().lower().replace("-", "_")


def normalize_roles(roles: Iterable[str] | None) -> set[str]:
    """
    将输入角色归一化（小写、去空、`-` 转 `_`）。
    """
    out: set[str] = set()
    for raw in roles or []:
        role = normalize_role(raw)
        if not role:
            continue
        out.add(role)
    return out


def order_roles(roles: Iterable[str] | None) -> list[str]:
    """
    按 ROLE_PRECEDENCE 排序；未知角色排在末尾并按字母序保持稳定。
    """
    normalized = normalize_roles(roles)
    known = [r for r in ROLE_PRECEDENCE if r in normalized]
    unknown = sorted(normalized - KNOWN_ROLES)
    return known + unknown


def can_perform_action(*, action: str, roles: Iterable[str] | None) -> bool:
    """
    判定角色集合是否可执行某动作。

    中文注释：
    - admin 拥有全局通配权限；
    - 其余角色按 ROLE_ACTIONS 显式授权。
    """
    normalized = normalize_roles(roles)
    if ADMIN_ROLE in normalized:
        return True

    for role in normalized:
        allowed = ROLE_ACTIONS.get(role) or set()
        if "*" in allowed or action in allowed:
            return True
    return False


def list_allowed_actions(roles: Iterable[str] | None) -> set[str]:
    normalized = normalize_roles(roles)
    if ADMIN_ROLE in normalized:
        return {"*"}

    actions: set[str] = set()
    for role in normalized:
        actions.update(ROLE_ACTIONS.get(role) or set())
    return actions
