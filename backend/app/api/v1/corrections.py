from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from app.core.roles import require_action
from app.models.correction import CorrectionCreate, CorrectionReview, CorrectionStatus
from app.services.correction_service import CorrectionService, get_correction_service

router = APIRouter(prefix="/corrections", tags=["Corrections"])


@router.post("", status_code=201)
async def submit_correction(
    payload: CorrectionCreate,
    profile: dict = Depends(require_action("correction:submit")),
    service: CorrectionService = Depends(get_correction_service),
):
    return {"success": True, "data": service.create(payload, user_id=profile["id"])}


@router.get("")
async def list_corrections(
    status: Optional[CorrectionStatus] = Query(None),
    _profile: dict = Depends(require_action("correction:review")),
    service: CorrectionService = Depends(get_correction_service),
):
    rows = service.list_corrections(status=status.value if status else None)
    return {"success": True, "data": rows}


@router.get("/public")
async def list_public_corrections(service: CorrectionService = Depends(get_correction_service)):
    """
    已发布的勘误/撤稿声明（无需登录）
    """
    return {"success": True, "data": service.list_corrections(public_only=True)}


@router.get("/{correction_id}")
async def get_correction(
    correction_id: str,
    _profile: dict = Depends(require_action("correction:review")),
    service: CorrectionService = Depends(get_correction_service),
):
    return {"success": True, "data": service.get(correction_id)}


@router.post("/{correction_id}/review")
async def review_correction(
    correction_id: str,
    payload: CorrectionReview,
    profile: dict = Depends(require_action("correction:review")),
    service: CorrectionService = Depends(get_correction_service),
):
    updated = service.review(
        correction_id,
        decision=payload.decision,
        reviewer_id=profile["id"],
        notes=payload.notes,
    )
    return {"success": True, "data": updated}


@router.post("/{correction_id}/publish")
async def publish_correction(
    correction_id: str,
    year: Optional[int] = Body(None, embed=True, ge=1000, le=9999),
    profile: dict = Depends(require_action("correction:publish")),
    service: CorrectionService = Depends(get_correction_service),
):
    """
    发布已批准的勘误；无 DOI 时按发布年份预留 YYYY00SSS 形式的 DOI
    """
    return {"success": True, "data": service.publish(correction_id, actor_id=profile["id"], year=year)}
