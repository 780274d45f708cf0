from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import HTTPException

from app.core.doi_generator import DOIFormatError
from app.lib.api_client import supabase_admin
from app.models.manuscript import CopyEditingStage, ManuscriptStatus, ProductionStage
from app.models.volume import VolumeStatus
from app.services.doi_service import DOIReservationConflict, DOISequenceExhausted, DOIService
from app.services.notification_service import NotificationService
from app.services.service_common import (
    now_iso,
    require_one,
    rows_of,
    timeline_event,
    update_one,
)
from app.services.volume_service import VolumeService

logger = logging.getLogger("journalflow.publishing")


class PublishingService:
    """
    发布门控：单篇发布、整期发布、整卷发布。

    中文注释:
    1. 整期发布前必须确认 issue 内所有稿件 copy_editing_stage == author-approved。
    2. DOI 一律走 DOIService 预留（唯一约束 + 重试），不再 count+1。
    3. 已有 DOI 的稿件复用原 DOI，但仍需确认未被其它文档占用。
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        doi_service: DOIService | None = None,
        volume_service: VolumeService | None = None,
        notifications: NotificationService | None = None,
    ):
        self.client = client or supabase_admin
        self.doi = doi_service or DOIService(client=self.client)
        self.volumes = volume_service or VolumeService(client=self.client)
        self.notifications = notifications or NotificationService(client=self.client)

    def _existing_doi(self, manuscript: dict[str, Any]) -> Optional[str]:
        existing = str(manuscript.get("doi") or "").strip()
        if not existing:
            return None
        if not self.doi.is_doi_unique(existing, exclude_id=str(manuscript["id"])):
            raise HTTPException(status_code=409, detail=f"DOI {existing} is already used by another record")
        return existing

    def _reserve_doi(self, manuscript: dict[str, Any], *, year: int, volume: int, issue: int) -> str:
        try:
            return self.doi.generate_manuscript_doi(year, volume, issue, owner_id=str(manuscript["id"]))
        except DOIFormatError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except (DOISequenceExhausted, DOIReservationConflict) as e:
            raise HTTPException(status_code=409, detail=str(e)) from e

    def _assign_doi(self, manuscript: dict[str, Any], *, year: int, volume: int, issue: int) -> str:
        return self._existing_doi(manuscript) or self._reserve_doi(manuscript, year=year, volume=volume, issue=issue)

    def _notify_published(self, manuscript: dict[str, Any], doi: str) -> None:
        author_id = manuscript.get("author_id") or manuscript.get("submitted_by")
        if not author_id:
            return
        self.notifications.create_notification(
            user_id=str(author_id),
            manuscript_id=str(manuscript["id"]),
            type="manuscript_status",
            title="Your article has been published",
            message=f"\"{manuscript.get('title') or 'Manuscript'}\" is now published with DOI {doi}.",
            priority="high",
        )

    def publish_manuscript(
        self,
        manuscript_id: str,
        *,
        volume: int,
        issue: Optional[int],
        pages: Optional[str],
        actor_id: str,
    ) -> dict[str, Any]:
        volume_doc = self.volumes.get_volume_by_number(volume)
        if not volume_doc:
            raise HTTPException(status_code=404, detail="Volume not found")

        manuscript = require_one(self.client, "manuscripts", manuscript_id, label="Manuscript")
        issue_number = int(issue or 1)
        doi = self._assign_doi(manuscript, year=int(volume_doc["year"]), volume=volume, issue=issue_number)

        description = f"Published in Volume {volume}, Issue {issue_number}"
        if pages:
            description += f", pages {pages}"
        description += f" with DOI: {doi}"

        updates: dict[str, Any] = {
            "status": ManuscriptStatus.PUBLISHED.value,
            "published_date": now_iso(),
            "volume": volume,
            "issue": issue_number,
            "doi": doi,
            "timeline": [*(manuscript.get("timeline") or []), timeline_event("published", description, actor_id)],
        }
        if pages:
            updates["pages"] = pages

        updated = update_one(self.client, "manuscripts", manuscript_id, updates, label="Manuscript")
        logger.info("Manuscript %s published as %s", manuscript_id, doi)
        self._notify_published(updated, doi)
        return {"manuscript": updated, "doi": doi}

    def publish_issue(self, issue_id: str, *, actor_id: str) -> dict[str, Any]:
        volume, issue = self.volumes.find_volume_for_issue(issue_id)
        if issue.get("is_published"):
            raise HTTPException(status_code=400, detail="Issue is already published")

        ids = list(issue.get("manuscripts") or [])
        if not ids:
            raise HTTPException(status_code=400, detail="Cannot publish issue without assigned manuscripts")

        resp = self.client.table("manuscripts").select("*").in_("id", ids).execute()
        manuscripts = rows_of(resp)
        approved = [
            m for m in manuscripts if m.get("copy_editing_stage") == CopyEditingStage.AUTHOR_APPROVED.value
        ]
        if len(approved) != len(ids):
            not_approved = len(ids) - len(approved)
            raise HTTPException(
                status_code=400,
                detail=f'Cannot publish issue. {not_approved} manuscript(s) are not in "author-approved" status.',
            )

        year = int(volume["year"])
        volume_number = int(volume["number"])
        issue_number = int(issue["number"])
        published_at = now_iso()
        published: list[dict[str, Any]] = []

        # 中文注释: 先校验已有 DOI、再预留缺失 DOI，全部成功后才写稿件；任一失败则不发布任何一篇。
        dois = {str(m["id"]): self._existing_doi(m) for m in approved}
        for manuscript in approved:
            ms_id = str(manuscript["id"])
            if not dois[ms_id]:
                dois[ms_id] = self._reserve_doi(manuscript, year=year, volume=volume_number, issue=issue_number)

        for manuscript in approved:
            doi = dois[str(manuscript["id"])]
            updates = {
                "status": ManuscriptStatus.PUBLISHED.value,
                "copy_editing_stage": CopyEditingStage.READY_FOR_PRODUCTION.value,
                "production_stage": ProductionStage.COMPLETED.value,
                "published_date": published_at,
                "volume": volume_number,
                "issue": issue_number,
                "doi": doi,
                "timeline": [
                    *(manuscript.get("timeline") or []),
                    timeline_event(
                        "published",
                        f"Published in Volume {volume_number}, Issue {issue_number} with DOI: {doi}",
                        actor_id,
                    ),
                ],
            }
            row = update_one(self.client, "manuscripts", str(manuscript["id"]), updates, label="Manuscript")
            published.append(row)
            self._notify_published(row, doi)

        issue["is_published"] = True
        issue["published_date"] = published_at
        self.volumes.save_issues(volume, list(volume.get("issues") or []))

        count = len(published)
        noun = "article" if count == 1 else "articles"
        logger.info("Issue %s of volume %s published with %s %s", issue_number, volume_number, count, noun)
        return {
            "message": f"Issue {issue_number} published successfully with {count} {noun}",
            "issue": issue,
            "volume": {"number": volume_number, "year": year, "title": volume.get("title")},
            "published_manuscripts": [
                {"id": m.get("id"), "title": m.get("title"), "doi": m.get("doi"), "status": m.get("status")}
                for m in published
            ],
            "article_count": count,
        }

    def publish_volume(self, volume_id: str, *, actor_id: str) -> dict[str, Any]:
        volume = self.volumes.get_volume(volume_id)
        if volume.get("is_published"):
            raise HTTPException(status_code=400, detail="Volume is already published")
        if not any(i.get("is_published") for i in volume.get("issues") or []):
            raise HTTPException(status_code=400, detail="Cannot publish a volume without published issues")

        updated = update_one(
            self.client,
            "volumes",
            volume_id,
            {
                "status": VolumeStatus.PUBLISHED.value,
                "is_published": True,
                "published_date": now_iso(),
                "last_modified_by": actor_id,
            },
            label="Volume",
        )
        logger.info("Volume %s published by %s", volume.get("number"), actor_id)
        return updated


def get_publishing_service() -> PublishingService:
    return PublishingService()
