from fastapi import APIRouter, Body, Depends

from app.core.roles import get_current_profile, require_any_role
from app.models.user import ActiveRoleSwitch, ProfileUpdate, RoleUpdateRequest
from app.services.user_service import UserService, get_user_service, profile_response

router = APIRouter(prefix="/users", tags=["User Profile"])


@router.get("/me")
async def get_me(profile: dict = Depends(get_current_profile)):
    """
    当前登录用户的 profile（roles / active_role / allowed_actions）

    中文注释: profile 首次访问自动创建，旧结构在读取时已折叠为 roles + active_role。
    """
    return {"success": True, "data": profile_response(profile)}


@router.put("/me")
async def update_me(
    payload: ProfileUpdate = Body(...),
    profile: dict = Depends(get_current_profile),
    service: UserService = Depends(get_user_service),
):
    return {"success": True, "data": service.update_profile(profile["id"], payload)}


@router.post("/me/active-role")
async def switch_active_role(
    payload: ActiveRoleSwitch,
    profile: dict = Depends(get_current_profile),
    service: UserService = Depends(get_user_service),
):
    """
    切换当前视角，目标角色必须已持有
    """
    return {"success": True, "data": service.switch_active_role(profile, payload.role)}


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    _admin: dict = Depends(require_any_role(["admin"])),
    service: UserService = Depends(get_user_service),
):
    return {"success": True, "data": service.get_user(user_id)}


@router.put("/{user_id}/roles")
async def update_user_roles(
    user_id: str,
    payload: RoleUpdateRequest,
    admin: dict = Depends(require_any_role(["admin"])),
    service: UserService = Depends(get_user_service),
):
    """
    管理员调整用户角色（add / remove / set），保证 roles 非空且 active_role ∈ roles
    """
    return {"success": True, "data": service.update_roles(user_id, payload, admin_id=admin["id"])}
