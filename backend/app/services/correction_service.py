from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException

from app.lib.api_client import supabase_admin
from app.models.correction import CorrectionCreate, CorrectionStatus
from app.services.doi_service import DOIReservationConflict, DOISequenceExhausted, DOIService
from app.services.service_common import (
    first_row,
    now_iso,
    require_one,
    rows_of,
    timeline_event,
    update_one,
)

logger = logging.getLogger("journalflow.corrections")


class CorrectionService:
    """
    勘误 / 撤稿 / 关注声明。

    中文注释:
    - 只有 approved 的勘误可以发布；发布时若无 DOI，则按发布年份预留 `YYYY00SSS` 形式的 DOI。
    """

    def __init__(self, *, client: Any | None = None, doi_service: DOIService | None = None):
        self.client = client or supabase_admin
        self.doi = doi_service or DOIService(client=self.client)

    def create(self, payload: CorrectionCreate, *, user_id: str) -> dict[str, Any]:
        manuscript = require_one(self.client, "manuscripts", payload.manuscript_id, label="Manuscript", columns="id,status")
        if manuscript.get("status") != "published":
            raise HTTPException(status_code=400, detail="Corrections can only be filed against published manuscripts")

        row = {
            **payload.model_dump(mode="json"),
            "submitted_by": user_id,
            "status": CorrectionStatus.PENDING.value,
            "is_public": False,
            "timeline": [timeline_event("submitted", "Correction submitted", user_id)],
            "created_at": now_iso(),
        }
        resp = self.client.table("corrections").insert(row).execute()
        return first_row(resp) or row

    def list_corrections(self, *, status: Optional[str] = None, public_only: bool = False) -> list[dict[str, Any]]:
        query = self.client.table("corrections").select("*")
        if status:
            query = query.eq("status", status)
        if public_only:
            query = query.eq("is_public", True)
        return rows_of(query.order("created_at", desc=True).execute())

    def get(self, correction_id: str) -> dict[str, Any]:
        return require_one(self.client, "corrections", correction_id, label="Correction")

    def review(self, correction_id: str, *, decision: str, reviewer_id: str, notes: Optional[str]) -> dict[str, Any]:
        correction = self.get(correction_id)
        if correction.get("status") not in (CorrectionStatus.PENDING.value, CorrectionStatus.UNDER_REVIEW.value):
            raise HTTPException(status_code=400, detail=f"Correction in status {correction.get('status')} cannot be reviewed")

        status = CorrectionStatus.APPROVED if decision == "approve" else CorrectionStatus.REJECTED
        return update_one(
            self.client,
            "corrections",
            correction_id,
            {
                "status": status.value,
                "reviewed_by": reviewer_id,
                "review_notes": notes or "",
                "timeline": [
                    *(correction.get("timeline") or []),
                    timeline_event(status.value, notes or f"Correction {status.value}", reviewer_id),
                ],
            },
            label="Correction",
        )

    def publish(self, correction_id: str, *, actor_id: str, year: Optional[int] = None) -> dict[str, Any]:
        correction = self.get(correction_id)
        if correction.get("status") == CorrectionStatus.PUBLISHED.value:
            raise HTTPException(status_code=400, detail="Correction is already published")
        if correction.get("status") != CorrectionStatus.APPROVED.value:
            raise HTTPException(status_code=400, detail="Only approved corrections can be published")

        publish_year = int(year or datetime.now(timezone.utc).year)
        doi = str(correction.get("doi") or "").strip()
        if not doi:
            try:
                doi = self.doi.generate_correction_doi(publish_year, owner_id=correction_id)
            except (DOISequenceExhausted, DOIReservationConflict) as e:
                raise HTTPException(status_code=409, detail=str(e)) from e

        updated = update_one(
            self.client,
            "corrections",
            correction_id,
            {
                "status": CorrectionStatus.PUBLISHED.value,
                "published_date": now_iso(),
                "is_public": True,
                "doi": doi,
                "timeline": [
                    *(correction.get("timeline") or []),
                    timeline_event("published", f"Correction published with DOI: {doi}", actor_id),
                ],
            },
            label="Correction",
        )
        logger.info("Correction %s published as %s", correction_id, doi)
        return updated


def get_correction_service() -> CorrectionService:
    return CorrectionService()
