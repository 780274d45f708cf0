from fastapi import APIRouter, Depends, HTTPException

from app.core.auth_utils import get_current_user
from app.core.roles import require_any_role
from app.models.fee_config import FeeCalculateRequest, FeeConfig
from app.services.fee_config_service import (
    FeeConfigMissing,
    FeeConfigService,
    get_fee_config_service,
)

router = APIRouter(prefix="/fee-config", tags=["Fee Configuration"])


@router.get("")
async def get_fee_config(
    _profile: dict = Depends(require_any_role(["admin"])),
    service: FeeConfigService = Depends(get_fee_config_service),
):
    """
    当前生效的 APC 配置（仅管理员）
    """
    try:
        config = service.get_active_config()
    except FeeConfigMissing as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "data": config.model_dump(mode="json")}


@router.put("")
async def update_fee_config(
    payload: FeeConfig,
    profile: dict = Depends(require_any_role(["admin"])),
    service: FeeConfigService = Depends(get_fee_config_service),
):
    saved = service.save_config(payload, user_id=profile["id"])
    return {"success": True, "data": saved.model_dump(mode="json")}


@router.post("/reset")
async def reset_fee_config(
    profile: dict = Depends(require_any_role(["admin"])),
    service: FeeConfigService = Depends(get_fee_config_service),
):
    """
    恢复内置默认配置（基础费 2000 USD + 默认国家减免）
    """
    saved = service.reset_to_default(user_id=profile["id"])
    return {"success": True, "data": saved.model_dump(mode="json")}


@router.get("/public")
async def get_public_fees(service: FeeConfigService = Depends(get_fee_config_service)):
    """
    公开费用表（无需登录）
    """
    try:
        return {"success": True, "data": service.public_summary()}
    except FeeConfigMissing as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/calculate")
async def calculate_fee(
    payload: FeeCalculateRequest,
    _current_user: dict = Depends(get_current_user),
    service: FeeConfigService = Depends(get_fee_config_service),
):
    try:
        result = service.calculate(payload.article_type, payload.country, payload.institution)
    except FeeConfigMissing as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "data": result.model_dump()}
