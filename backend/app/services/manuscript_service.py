from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException

from app.lib.api_client import supabase_admin
from app.models.manuscript import CopyEditingStage, ManuscriptStatus
from app.services.notification_service import NotificationService
from app.services.service_common import require_one, timeline_event, update_one

logger = logging.getLogger("journalflow.manuscripts")

# 作者只能在 author-review 阶段做两种选择
_AUTHOR_STAGE_TARGETS = {CopyEditingStage.AUTHOR_APPROVED.value, CopyEditingStage.COPY_EDITING.value}


class ManuscriptService:
    """
    稿件状态与文字编辑（copy-editing）子状态流转。

    中文注释:
    - 顶层 status 与 copy_editing_stage 相互独立，各自校验。
    - 已发布稿件受保护：update_status 不允许改回非 published 状态。
    """

    def __init__(self, *, client: Any | None = None, notifications: NotificationService | None = None):
        self.client = client or supabase_admin
        self.notifications = notifications or NotificationService(client=self.client)

    def get(self, manuscript_id: str) -> dict[str, Any]:
        return require_one(self.client, "manuscripts", manuscript_id, label="Manuscript")

    def update_status(
        self,
        manuscript_id: str,
        status: str,
        *,
        actor_id: str,
        comment: Optional[str] = None,
    ) -> dict[str, Any]:
        try:
            target = ManuscriptStatus.normalize(status)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        manuscript = self.get(manuscript_id)
        current = str(manuscript.get("status") or "")
        if current == ManuscriptStatus.PUBLISHED.value and target != current:
            raise HTTPException(status_code=400, detail="Published manuscripts cannot change status")
        if target == ManuscriptStatus.PUBLISHED.value and current != target:
            raise HTTPException(status_code=400, detail="Use the publish endpoint to publish a manuscript")

        description = f"Status changed from {current or 'unknown'} to {target}"
        if comment:
            description += f": {comment}"
        updated = update_one(
            self.client,
            "manuscripts",
            manuscript_id,
            {
                "status": target,
                "timeline": [
                    *(manuscript.get("timeline") or []),
                    timeline_event("status_changed", description, actor_id),
                ],
            },
            label="Manuscript",
        )
        author_id = manuscript.get("author_id")
        if author_id and target != current:
            self.notifications.create_notification(
                user_id=str(author_id),
                manuscript_id=manuscript_id,
                type="manuscript_status",
                title="Manuscript status updated",
                message=f"\"{manuscript.get('title') or 'Manuscript'}\" is now {target}.",
            )
        return updated

    def assign_copy_editor(
        self,
        manuscript_id: str,
        copy_editor_id: str,
        *,
        actor_id: str,
        notes: Optional[str] = None,
    ) -> dict[str, Any]:
        manuscript = self.get(manuscript_id)
        stage = manuscript.get("copy_editing_stage")
        if stage not in (None, "", CopyEditingStage.COPY_EDITING.value):
            raise HTTPException(status_code=400, detail=f"Cannot reassign copy editor at stage {stage}")

        updated = update_one(
            self.client,
            "manuscripts",
            manuscript_id,
            {
                "assigned_copy_editor": copy_editor_id,
                "copy_editing_stage": CopyEditingStage.COPY_EDITING.value,
                "status": ManuscriptStatus.IN_COPY_EDITING.value,
                "timeline": [
                    *(manuscript.get("timeline") or []),
                    timeline_event("copy_editor_assigned", notes or "Copy editor assigned", actor_id),
                ],
            },
            label="Manuscript",
        )
        self.notifications.create_notification(
            user_id=copy_editor_id,
            manuscript_id=manuscript_id,
            type="copy_edit_assigned",
            title="New copy-editing assignment",
            message=f"You have been assigned to copy-edit \"{manuscript.get('title') or 'Manuscript'}\".",
        )
        return updated

    def advance_copy_editing_stage(
        self,
        manuscript_id: str,
        target: CopyEditingStage,
        *,
        actor_id: str,
        actor_roles: set[str],
        comment: Optional[str] = None,
    ) -> dict[str, Any]:
        manuscript = self.get(manuscript_id)
        current = manuscript.get("copy_editing_stage")
        allowed = CopyEditingStage.allowed_next(current)
        if target.value not in allowed:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid copy-editing transition: {current or 'none'} -> {target.value}",
            )

        is_staff = bool(actor_roles.intersection({"admin", "editor", "copy_editor"}))
        is_author = str(manuscript.get("author_id") or "") == str(actor_id)
        if current == CopyEditingStage.AUTHOR_REVIEW.value and target.value in _AUTHOR_STAGE_TARGETS:
            if not (is_author or "admin" in actor_roles):
                raise HTTPException(status_code=403, detail="Only the author can respond to the copy-edit review")
        elif not is_staff:
            raise HTTPException(status_code=403, detail="Only copy editors or editors can change this stage")

        updates: dict[str, Any] = {
            "copy_editing_stage": target.value,
            "timeline": [
                *(manuscript.get("timeline") or []),
                timeline_event(
                    f"copy_edit_{target.value}",
                    comment or f"Copy-editing stage moved to {target.value}",
                    actor_id,
                ),
            ],
        }
        if target == CopyEditingStage.AUTHOR_APPROVED:
            updates["status"] = ManuscriptStatus.COPY_EDITING_COMPLETE.value
        elif target == CopyEditingStage.READY_FOR_PRODUCTION:
            updates["status"] = ManuscriptStatus.READY_FOR_PUBLICATION.value

        updated = update_one(self.client, "manuscripts", manuscript_id, updates, label="Manuscript")

        author_id = manuscript.get("author_id")
        if target == CopyEditingStage.AUTHOR_REVIEW and author_id:
            self.notifications.create_notification(
                user_id=str(author_id),
                manuscript_id=manuscript_id,
                type="draft_ready",
                title="Copy-edited draft ready for your review",
                message=f"Please review the copy-edited draft of \"{manuscript.get('title') or 'Manuscript'}\".",
                priority="high",
            )
        elif target == CopyEditingStage.COPY_EDITING and manuscript.get("assigned_copy_editor"):
            self.notifications.create_notification(
                user_id=str(manuscript["assigned_copy_editor"]),
                manuscript_id=manuscript_id,
                type="copy_edit_assigned",
                title="Author requested copy-edit changes",
                message=comment or "The author requested further changes to the copy-edited draft.",
            )
        logger.info("Manuscript %s copy-editing stage %s -> %s", manuscript_id, current, target.value)
        return updated


def get_manuscript_service() -> ManuscriptService:
    return ManuscriptService()
