from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from app.lib.api_client import supabase_admin
from app.services.service_common import first_row, now_iso, rows_of

logger = logging.getLogger("journalflow.notifications")


class NotificationService:
    """
    通知服务：封装 notifications 表的读写

    中文注释:
    1) 写入使用 supabase_admin（service_role），避免 RLS 导致写入失败。
    2) 通知是“尽力而为”：写入失败只记日志，不影响主流程（发布、支付回调等）。
    3) 读取/更新始终带 recipient_id 过滤，防止越权读取他人通知。
    """

    def __init__(self, client: Any | None = None):
        self.client = client or supabase_admin

    def create_notification(
        self,
        *,
        user_id: str,
        type: str,
        title: str,
        message: str,
        manuscript_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        priority: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        payload = {
            "recipient_id": user_id,
            "type": type,
            "title": title,
            "message": message,
            "manuscript_id": manuscript_id,
            "payment_id": payment_id,
            "priority": priority,
            "metadata": metadata or {},
            "is_read": False,
        }
        try:
            res = self.client.table("notifications").insert(payload).execute()
            return first_row(res)
        except APIError as e:
            # 展示用的 mock 用户不在 auth.users 中，外键冲突（23503）静默忽略
            text = str(e).lower()
            code = str(getattr(e, "code", "") or "").lower()
            if "23503" in code or "23503" in text:
                return None
            logger.warning("[Notifications] create failed: %s", e)
            return None
        except Exception as e:
            logger.warning("[Notifications] create failed: %s", e)
            return None

    def list_for_user(self, *, user_id: str, unread_only: bool = False, limit: int = 20) -> List[Dict[str, Any]]:
        query = self.client.table("notifications").select("*").eq("recipient_id", user_id)
        if unread_only:
            query = query.eq("is_read", False)
        res = query.order("created_at", desc=True).limit(limit).execute()
        return rows_of(res)

    def mark_read(self, *, user_id: str, notification_id: str) -> Optional[Dict[str, Any]]:
        res = (
            self.client.table("notifications")
            .update({"is_read": True, "read_at": now_iso()})
            .eq("id", notification_id)
            .eq("recipient_id", user_id)
            .execute()
        )
        return first_row(res)

    def mark_all_read(self, *, user_id: str) -> int:
        res = (
            self.client.table("notifications")
            .update({"is_read": True, "read_at": now_iso()})
            .eq("recipient_id", user_id)
            .eq("is_read", False)
            .execute()
        )
        return len(rows_of(res))


def get_notification_service() -> NotificationService:
    return NotificationService()
