from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.doi_generator import DOIFormatError
from app.core.roles import require_action
from app.models.doi import (
    CorrectionDOIReserveRequest,
    DOIReservation,
    DOIUniqueResult,
    DOIValidateRequest,
    DOIValidationResult,
    ManuscriptDOIReserveRequest,
    ParsedDOI,
)
from app.services.doi_service import (
    DOIReservationConflict,
    DOISequenceExhausted,
    DOIService,
    get_doi_service,
)

router = APIRouter(prefix="/doi", tags=["DOI"])


@router.post("/validate", response_model=DOIValidationResult)
async def validate_doi(request: DOIValidateRequest, service: DOIService = Depends(get_doi_service)):
    """
    校验 DOI 是否符合本刊格式（稿件 / 勘误两种形式）
    """
    return service.describe(request.doi.strip())


@router.get("/parse/{doi:path}", response_model=ParsedDOI)
async def parse_doi(doi: str, service: DOIService = Depends(get_doi_service)):
    parsed = service.parse(doi)
    if parsed is None:
        raise HTTPException(status_code=404, detail="DOI does not match the journal format")
    return parsed


@router.post("/reserve/manuscript", response_model=DOIReservation, status_code=201)
async def reserve_manuscript_doi(
    request: ManuscriptDOIReserveRequest,
    _profile: dict = Depends(require_action("doi:reserve")),
    service: DOIService = Depends(get_doi_service),
):
    """
    预留下一个稿件 DOI（并发安全：唯一约束 + 重试）
    """
    try:
        return service.reserve_manuscript_doi(request.year, request.volume, request.issue)
    except DOIFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (DOISequenceExhausted, DOIReservationConflict) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/reserve/correction", response_model=DOIReservation, status_code=201)
async def reserve_correction_doi(
    request: CorrectionDOIReserveRequest,
    _profile: dict = Depends(require_action("doi:reserve")),
    service: DOIService = Depends(get_doi_service),
):
    try:
        return service.reserve_correction_doi(request.year)
    except DOIFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (DOISequenceExhausted, DOIReservationConflict) as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/unique", response_model=DOIUniqueResult)
async def check_doi_unique(
    doi: str = Query(..., min_length=1),
    exclude_id: Optional[str] = Query(None),
    service: DOIService = Depends(get_doi_service),
):
    return DOIUniqueResult(doi=doi, unique=service.is_doi_unique(doi, exclude_id=exclude_id))
