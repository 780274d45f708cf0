from fastapi import APIRouter, Depends, HTTPException

from app.core.role_matrix import can_perform_action
from app.core.roles import get_current_profile, require_action
from app.models.manuscript import (
    CopyEditorAssignment,
    CopyEditStageUpdate,
    ManuscriptPublishRequest,
    ManuscriptStatusUpdate,
)
from app.services.manuscript_service import ManuscriptService, get_manuscript_service
from app.services.publishing_service import PublishingService, get_publishing_service

router = APIRouter(prefix="/manuscripts", tags=["Manuscripts"])


@router.get("/{manuscript_id}")
async def get_manuscript(
    manuscript_id: str,
    profile: dict = Depends(get_current_profile),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    """
    稿件详情：作者本人、指派的文字编辑或具备 manuscript:view_all 的角色可见
    """
    manuscript = service.get(manuscript_id)
    user_id = str(profile["id"])
    is_owner = str(manuscript.get("author_id") or "") == user_id
    is_copy_editor = str(manuscript.get("assigned_copy_editor") or "") == user_id
    if not (is_owner or is_copy_editor or can_perform_action(action="manuscript:view_all", roles=profile.get("roles"))):
        raise HTTPException(status_code=403, detail="Forbidden")
    return {"success": True, "data": manuscript}


@router.patch("/{manuscript_id}/status")
async def update_manuscript_status(
    manuscript_id: str,
    payload: ManuscriptStatusUpdate,
    profile: dict = Depends(require_action("manuscript:update_status")),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    updated = service.update_status(manuscript_id, payload.status, actor_id=profile["id"], comment=payload.comment)
    return {"success": True, "data": updated}


@router.post("/{manuscript_id}/publish")
async def publish_manuscript(
    manuscript_id: str,
    payload: ManuscriptPublishRequest,
    profile: dict = Depends(require_action("publication:manage")),
    service: PublishingService = Depends(get_publishing_service),
):
    """
    单篇发布：沿用已有 DOI，否则按卷年份预留新的 DOI
    """
    result = service.publish_manuscript(
        manuscript_id,
        volume=payload.volume,
        issue=payload.issue,
        pages=payload.pages,
        actor_id=profile["id"],
    )
    return {"success": True, "data": result}


@router.post("/{manuscript_id}/copy-editor")
async def assign_copy_editor(
    manuscript_id: str,
    payload: CopyEditorAssignment,
    profile: dict = Depends(require_action("copy_edit:assign")),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    updated = service.assign_copy_editor(
        manuscript_id,
        payload.copy_editor_id,
        actor_id=profile["id"],
        notes=payload.notes,
    )
    return {"success": True, "data": updated}


@router.post("/{manuscript_id}/copy-edit/stage")
async def advance_copy_editing_stage(
    manuscript_id: str,
    payload: CopyEditStageUpdate,
    profile: dict = Depends(get_current_profile),
    service: ManuscriptService = Depends(get_manuscript_service),
):
    """
    文字编辑子状态流转；作者只能在 author-review 阶段确认或退回
    """
    updated = service.advance_copy_editing_stage(
        manuscript_id,
        payload.stage,
        actor_id=str(profile["id"]),
        actor_roles=set(profile.get("roles") or []),
        comment=payload.comment,
    )
    return {"success": True, "data": updated}
