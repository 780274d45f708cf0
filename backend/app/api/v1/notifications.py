from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.auth_utils import get_current_user
from app.services.notification_service import NotificationService, get_notification_service

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    current_user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """
    获取当前用户的通知列表
    """
    rows = service.list_for_user(user_id=current_user["id"], unread_only=unread_only, limit=limit)
    return {"success": True, "data": rows}


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    updated = service.mark_read(user_id=current_user["id"], notification_id=notification_id)
    if updated is None:
        # 中文注释: 不存在或不属于当前用户
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True, "data": updated}


@router.post("/read-all")
async def mark_all_notifications_read(
    current_user: dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = service.mark_all_read(user_id=current_user["id"])
    return {"success": True, "data": {"updated": count}}
