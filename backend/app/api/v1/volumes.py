from fastapi import APIRouter, Body, Depends, HTTPException

from app.core.roles import require_action
from app.models.volume import (
    IssueAssignManuscripts,
    IssueCreate,
    VolumeCreate,
    VolumeStatus,
)
from app.services.publishing_service import PublishingService, get_publishing_service
from app.services.volume_service import VolumeService, get_volume_service

router = APIRouter(tags=["Volumes & Issues"])

_manage = require_action("publication:manage")


@router.post("/volumes", status_code=201)
async def create_volume(
    payload: VolumeCreate,
    profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.create_volume(payload, user_id=profile["id"])}


@router.get("/volumes")
async def list_volumes(
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.list_volumes()}


@router.get("/volumes/{volume_id}")
async def get_volume(
    volume_id: str,
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.get_volume(volume_id)}


@router.patch("/volumes/{volume_id}/status")
async def update_volume_status(
    volume_id: str,
    status: VolumeStatus = Body(..., embed=True),
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    """
    draft / open / closed；发布请走 /volumes/{id}/publish
    """
    if status == VolumeStatus.PUBLISHED:
        raise HTTPException(status_code=400, detail="Use the publish endpoint to publish a volume")
    return {"success": True, "data": service.update_volume_status(volume_id, status)}


@router.post("/volumes/{volume_id}/publish")
async def publish_volume(
    volume_id: str,
    profile: dict = Depends(_manage),
    service: PublishingService = Depends(get_publishing_service),
):
    return {"success": True, "data": service.publish_volume(volume_id, actor_id=profile["id"])}


@router.post("/volumes/{volume_id}/issues", status_code=201)
async def add_issue(
    volume_id: str,
    payload: IssueCreate,
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.add_issue(volume_id, payload)}


@router.post("/issues/{issue_id}/manuscripts")
async def assign_manuscripts(
    issue_id: str,
    payload: IssueAssignManuscripts,
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.assign_manuscripts(issue_id, payload.manuscript_ids)}


@router.delete("/issues/{issue_id}/manuscripts/{manuscript_id}")
async def remove_manuscript(
    issue_id: str,
    manuscript_id: str,
    _profile: dict = Depends(_manage),
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.remove_manuscript(issue_id, manuscript_id)}


@router.post("/issues/{issue_id}/publish")
async def publish_issue(
    issue_id: str,
    profile: dict = Depends(_manage),
    service: PublishingService = Depends(get_publishing_service),
):
    """
    整期发布：issue 内所有稿件必须处于 author-approved，缺 DOI 的稿件在此时预留
    """
    return {"success": True, "data": service.publish_issue(issue_id, actor_id=profile["id"])}


# --- 公开只读 ---


@router.get("/public/volumes")
async def list_public_volumes(service: VolumeService = Depends(get_volume_service)):
    return {"success": True, "data": service.list_volumes(published_only=True)}


@router.get("/public/volumes/{volume_number}/issues/{issue_number}")
async def get_public_issue(
    volume_number: int,
    issue_number: int,
    service: VolumeService = Depends(get_volume_service),
):
    return {"success": True, "data": service.get_public_issue(volume_number, issue_number)}
