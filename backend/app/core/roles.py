import logging
import os
from typing import Callable, Iterable, Mapping, Optional, Set

from fastapi import Depends, HTTPException

from app.core.auth_utils import get_current_user
from app.core.role_matrix import KNOWN_ROLES, can_perform_action, normalize_role, order_roles
from app.lib.api_client import supabase

logger = logging.getLogger("journalflow.roles")

DEFAULT_ROLE = "author"

LEGACY_ROLE_FIELDS = ("role", "current_active_role")


class RoleInvariantError(ValueError):
    """角色变更会破坏 `active_role ∈ roles` 或 `roles 非空` 时抛出。"""


def _parse_admin_emails() -> Set[str]:
    raw = os.environ.get("ADMIN_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def _is_admin_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.strip().lower() in _parse_admin_emails()


def resolve_roles(
    roles: Iterable[str] | None,
    active_role: Optional[str] = None,
    *,
    legacy_role: Optional[str] = None,
) -> tuple[list[str], str]:
    """
    把任意来源的角色数据折叠为 (roles, active_role)。

    中文注释:
    - 历史数据同时存在 `role`（单值）、`roles`（数组）、`current_active_role` 三份状态。
    - roles 非空时以 roles 为唯一权威；旧的 role 仅在 roles 为空时迁移一次。
    - 未知角色丢弃，空集合回退为 ['author']。
    - active_role 若不在集合中，则取优先级最高的角色。
    """
    ordered = [r for r in order_roles(roles or []) if r in KNOWN_ROLES]
    if not ordered and legacy_role:
        ordered = [r for r in order_roles([legacy_role]) if r in KNOWN_ROLES]
    if not ordered:
        ordered = [DEFAULT_ROLE]

    candidate = normalize_role(active_role or legacy_role)
    if candidate not in ordered:
        candidate = ordered[0]
    return ordered, candidate


def normalize_profile_roles(row: Mapping) -> dict:
    roles, active = resolve_roles(
        row.get("roles"),
        row.get("active_role") or row.get("current_active_role"),
        legacy_role=row.get("role"),
    )
    out = {k: v for k, v in row.items() if k not in LEGACY_ROLE_FIELDS}
    out["roles"] = roles
    out["active_role"] = active
    return out


def legacy_role_cleanup(row: Mapping) -> dict:
    """旧字段仍有值时返回置空补丁，随 roles 一起写回。"""
    return {k: None for k in LEGACY_ROLE_FIELDS if row.get(k) is not None}


def switch_active_role(roles: Iterable[str], role: str) -> str:
    target = normalize_role(role)
    if target not in set(roles or []):
        raise RoleInvariantError(f"Role '{role}' is not held by this user")
    return target


def apply_role_change(
    roles: Iterable[str],
    active_role: str,
    *,
    action: str,
    role: Optional[str] = None,
    new_roles: Optional[Iterable[str]] = None,
) -> tuple[list[str], str]:
    """
    管理员角色变更（add / remove / set），返回满足不变量的 (roles, active_role)。
    """
    current = order_roles(roles)

    if action == "add":
        target = normalize_role(role)
        if target not in KNOWN_ROLES:
            raise RoleInvariantError(f"Unknown role '{role}'")
        updated = order_roles([*current, target])
    elif action == "remove":
        target = normalize_role(role)
        updated = [r for r in current if r != target]
    elif action == "set":
        updated = order_roles(new_roles or [])
        unknown = [r for r in updated if r not in KNOWN_ROLES]
        if unknown:
            raise RoleInvariantError(f"Unknown roles: {', '.join(unknown)}")
    else:
        raise RoleInvariantError(f"Unsupported role action '{action}'")

    if not updated:
        raise RoleInvariantError("A user must keep at least one role")

    active = normalize_role(active_role)
    if active not in updated:
        active = updated[0]
    return updated, active


async def get_current_profile(current_user: dict = Depends(get_current_user)) -> dict:
    """
    获取当前用户的 profile（含 roles / active_role）。

    中文注释:
    1) 首次访问时自动创建 user_profiles 记录，默认 roles=['author']。
    2) 若 email 在 ADMIN_EMAILS 中，则补齐 admin/editor 权限，便于本地/演示测试。
    3) 读到旧结构（role / current_active_role）时顺手回写为新结构。
    """
    user_id = current_user["id"]
    email = current_user.get("email")

    seed_roles = ["author"]
    if _is_admin_email(email):
        seed_roles = ["admin", "editor", "author"]

    try:
        resp = supabase.table("user_profiles").select("*").eq("id", user_id).execute()
        existing = (resp.data or [None])[0]
        if existing:
            normalized = normalize_profile_roles(existing)
            cleanup = legacy_role_cleanup(existing)
            if _is_admin_email(email):
                normalized["roles"], normalized["active_role"] = resolve_roles(
                    [*seed_roles, *normalized["roles"]], normalized["active_role"]
                )
            changed = (
                normalized["roles"] != existing.get("roles")
                or normalized["active_role"] != existing.get("active_role")
                or bool(cleanup)
            )
            if changed:
                supabase.table("user_profiles").update(
                    {"roles": normalized["roles"], "active_role": normalized["active_role"], **cleanup}
                ).eq("id", user_id).execute()
            return normalized

        roles, active = resolve_roles(seed_roles, DEFAULT_ROLE)
        inserted = (
            supabase.table("user_profiles")
            .insert({"id": user_id, "email": email, "roles": roles, "active_role": active})
            .execute()
        )
        row = (inserted.data or [{"id": user_id, "email": email, "roles": roles, "active_role": active}])[0]
        return normalize_profile_roles(row)
    except Exception as e:
        logger.warning("Failed to fetch/create user profile: %s", e)
        # 最小化降级：至少把用户身份返回给上层
        roles, active = resolve_roles(seed_roles, DEFAULT_ROLE)
        return {"id": user_id, "email": email, "roles": roles, "active_role": active}


def require_any_role(required: Iterable[str]) -> Callable[[dict], dict]:
    required_set = {normalize_role(r) for r in required}

    async def _dep(profile: dict = Depends(get_current_profile)) -> dict:
        roles = set(profile.get("roles") or [])
        if not roles.intersection(required_set):
            raise HTTPException(status_code=403, detail="Insufficient role")
        return profile

    return _dep


def require_action(action: str) -> Callable[[dict], dict]:
    async def _dep(profile: dict = Depends(get_current_profile)) -> dict:
        if not can_perform_action(action=action, roles=profile.get("roles")):
            raise HTTPException(status_code=403, detail=f"Not allowed: {action}")
        return profile

    return _dep
