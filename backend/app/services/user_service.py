from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException

from app.core.role_matrix import list_allowed_actions
from app.core.roles import (
    RoleInvariantError,
    apply_role_change,
    legacy_role_cleanup,
    normalize_profile_roles,
    switch_active_role,
)
from app.lib.api_client import supabase_admin
from app.models.user import ProfileUpdate, RoleUpdateRequest
from app.services.notification_service import NotificationService
from app.services.service_common import require_one, update_one

logger = logging.getLogger("journalflow.users")

PROFILES_TABLE = "user_profiles"


def profile_response(profile: dict[str, Any]) -> dict[str, Any]:
    out = normalize_profile_roles(profile)
    out["allowed_actions"] = sorted(list_allowed_actions(out["roles"]))
    return out


class UserService:
    """
    用户资料与角色管理。

    中文注释:
    - 所有写入都以 roles + active_role 两个字段为准，旧的 role / current_active_role 不再写。
    - 切换视角只改 active_role；管理员改 roles 时 active_role 必要时回落到剩余最高角色。
    """

    def __init__(self, *, client: Any | None = None, notifications: NotificationService | None = None):
        self.client = client or supabase_admin
        self.notifications = notifications or NotificationService(client=self.client)

    def update_profile(self, user_id: str, payload: ProfileUpdate) -> dict[str, Any]:
        data = payload.model_dump(exclude_unset=True)
        if not data:
            raise HTTPException(status_code=400, detail="No profile fields to update")
        row = update_one(self.client, PROFILES_TABLE, user_id, data, label="Profile")
        return profile_response(row)

    def switch_active_role(self, profile: dict[str, Any], role: str) -> dict[str, Any]:
        try:
            active = switch_active_role(profile.get("roles") or [], role)
        except RoleInvariantError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        row = update_one(self.client, PROFILES_TABLE, str(profile["id"]), {"active_role": active}, label="Profile")
        return profile_response({**profile, **row})

    def update_roles(self, user_id: str, payload: RoleUpdateRequest, *, admin_id: str) -> dict[str, Any]:
        raw = require_one(self.client, PROFILES_TABLE, user_id, label="User")
        target = normalize_profile_roles(raw)
        try:
            roles, active = apply_role_change(
                target["roles"],
                target["active_role"],
                action=payload.action,
                role=payload.role,
                new_roles=payload.roles,
            )
        except RoleInvariantError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        # 管理员不能移除自己的 admin 角色
        if user_id == admin_id and "admin" in target["roles"] and "admin" not in roles:
            raise HTTPException(status_code=400, detail="Admins cannot remove their own admin role")

        row = update_one(
            self.client,
            PROFILES_TABLE,
            user_id,
            {"roles": roles, "active_role": active, **legacy_role_cleanup(raw)},
            label="User",
        )
        logger.info("Roles for %s changed by %s: %s (active=%s)", user_id, admin_id, roles, active)

        if roles != target["roles"]:
            self.notifications.create_notification(
                user_id=user_id,
                type="admin_action",
                title="Your roles were updated",
                message=f"Your roles are now: {', '.join(roles)}.",
                metadata={"changed_by": admin_id, "action": payload.action},
            )
        return profile_response({**target, **row})

    def get_user(self, user_id: str) -> dict[str, Any]:
        return profile_response(require_one(self.client, PROFILES_TABLE, user_id, label="User"))


def get_user_service() -> UserService:
    return UserService()
