from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import uuid4

from fastapi import HTTPException

from app.lib.api_client import supabase_admin
from app.models.volume import IssueCreate, VolumeCreate, VolumeStatus
from app.services.service_common import (
    first_row,
    is_unique_violation,
    now_iso,
    require_one,
    rows_of,
    update_one,
)

logger = logging.getLogger("journalflow.volumes")

VOLUMES_TABLE = "volumes"


def find_issue(volume: dict[str, Any], issue_id: str) -> Optional[dict[str, Any]]:
    for issue in volume.get("issues") or []:
        if str(issue.get("id")) == str(issue_id):
            return issue
    return None


class VolumeService:
    """
    卷/期管理。

    中文注释:
    - 期（issue）以 jsonb 数组嵌在卷文档里，一个 issue 只属于一个 volume。
    - 对 issues 的任何修改都是“读出整卷 -> 修改 -> 单文档写回”。
    """

    def __init__(self, client: Any | None = None):
        self.client = client or supabase_admin

    def create_volume(self, payload: VolumeCreate, *, user_id: str) -> dict[str, Any]:
        existing = self.get_volume_by_number(payload.number)
        if existing:
            raise HTTPException(status_code=409, detail=f"Volume {payload.number} already exists")

        row = {
            **payload.model_dump(mode="json"),
            "is_published": False,
            "issues": [],
            "created_by": user_id,
            "created_at": now_iso(),
        }
        try:
            resp = self.client.table(VOLUMES_TABLE).insert(row).execute()
        except Exception as e:
            if is_unique_violation(e):
                raise HTTPException(status_code=409, detail=f"Volume {payload.number} already exists") from e
            raise
        return first_row(resp) or row

    def list_volumes(self, *, published_only: bool = False) -> list[dict[str, Any]]:
        query = self.client.table(VOLUMES_TABLE).select("*")
        if published_only:
            query = query.eq("is_published", True)
        volumes = rows_of(query.order("year", desc=True).order("number", desc=True).execute())
        if published_only:
            for volume in volumes:
                volume["issues"] = [i for i in volume.get("issues") or [] if i.get("is_published")]
        return volumes

    def get_volume(self, volume_id: str) -> dict[str, Any]:
        return require_one(self.client, VOLUMES_TABLE, volume_id, label="Volume")

    def get_volume_by_number(self, number: int) -> Optional[dict[str, Any]]:
        resp = self.client.table(VOLUMES_TABLE).select("*").eq("number", int(number)).limit(1).execute()
        return first_row(resp)

    def find_volume_for_issue(self, issue_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
        resp = (
            self.client.table(VOLUMES_TABLE)
            .select("*")
            .contains("issues", [{"id": str(issue_id)}])
            .limit(1)
            .execute()
        )
        volume = first_row(resp)
        issue = find_issue(volume, issue_id) if volume else None
        if not volume or not issue:
            raise HTTPException(status_code=404, detail="Issue not found")
        return volume, issue

    def save_issues(self, volume: dict[str, Any], issues: list[dict[str, Any]]) -> dict[str, Any]:
        return update_one(self.client, VOLUMES_TABLE, str(volume["id"]), {"issues": issues}, label="Volume")

    def update_volume_status(self, volume_id: str, status: VolumeStatus) -> dict[str, Any]:
        updates: dict[str, Any] = {"status": status.value}
        if status == VolumeStatus.CLOSED:
            updates["closed_date"] = now_iso()
        return update_one(self.client, VOLUMES_TABLE, volume_id, updates, label="Volume")

    def add_issue(self, volume_id: str, payload: IssueCreate) -> dict[str, Any]:
        volume = self.get_volume(volume_id)
        if volume.get("status") == VolumeStatus.PUBLISHED.value:
            raise HTTPException(status_code=400, detail="Cannot add issues to a published volume")

        issues = list(volume.get("issues") or [])
        if any(int(i.get("number") or 0) == payload.number for i in issues):
            raise HTTPException(
                status_code=409,
                detail=f"Issue {payload.number} already exists in volume {volume.get('number')}",
            )

        issue = {
            "id": str(uuid4()),
            "number": payload.number,
            "title": payload.title,
            "description": payload.description,
            "is_published": False,
            "published_date": None,
            "manuscripts": [],
        }
        issues.append(issue)
        issues.sort(key=lambda i: int(i.get("number") or 0))
        self.save_issues(volume, issues)
        return issue

    def assign_manuscripts(self, issue_id: str, manuscript_ids: list[str]) -> dict[str, Any]:
        volume, issue = self.find_volume_for_issue(issue_id)
        if issue.get("is_published"):
            raise HTTPException(status_code=400, detail="Cannot assign manuscripts to a published issue")

        wanted = list(dict.fromkeys(str(m) for m in manuscript_ids))
        resp = self.client.table("manuscripts").select("id,status").in_("id", wanted).execute()
        found = {str(r["id"]): r for r in rows_of(resp)}
        missing = [m for m in wanted if m not in found]
        if missing:
            raise HTTPException(status_code=404, detail=f"Manuscripts not found: {', '.join(missing)}")
        rejected = [m for m in wanted if found[m].get("status") == "rejected"]
        if rejected:
            raise HTTPException(status_code=400, detail=f"Rejected manuscripts cannot be scheduled: {', '.join(rejected)}")

        issues = list(volume.get("issues") or [])
        for other in issues:
            if other is issue:
                continue
            clash = set(other.get("manuscripts") or []).intersection(wanted)
            if clash:
                raise HTTPException(
                    status_code=409,
                    detail=f"Manuscripts already assigned to issue {other.get('number')}: {', '.join(sorted(clash))}",
                )

        issue["manuscripts"] = list(dict.fromkeys([*(issue.get("manuscripts") or []), *wanted]))
        self.save_issues(volume, issues)

        (
            self.client.table("manuscripts")
            .update({"volume": volume.get("number"), "issue": issue.get("number"), "updated_at": now_iso()})
            .in_("id", wanted)
            .execute()
        )
        return issue

    def remove_manuscript(self, issue_id: str, manuscript_id: str) -> dict[str, Any]:
        volume, issue = self.find_volume_for_issue(issue_id)
        if issue.get("is_published"):
            raise HTTPException(status_code=400, detail="Cannot remove manuscripts from a published issue")

        current = list(issue.get("manuscripts") or [])
        if manuscript_id not in current:
            raise HTTPException(status_code=404, detail="Manuscript is not assigned to this issue")

        issue["manuscripts"] = [m for m in current if m != manuscript_id]
        self.save_issues(volume, list(volume.get("issues") or []))
        (
            self.client.table("manuscripts")
            .update({"volume": None, "issue": None, "updated_at": now_iso()})
            .eq("id", manuscript_id)
            .execute()
        )
        return issue

    def get_public_issue(self, volume_number: int, issue_number: int) -> dict[str, Any]:
        volume = self.get_volume_by_number(volume_number)
        if not volume:
            raise HTTPException(status_code=404, detail="Volume not found")
        issue = next(
            (
                i
                for i in volume.get("issues") or []
                if int(i.get("number") or 0) == int(issue_number) and i.get("is_published")
            ),
            None,
        )
        if not issue:
            raise HTTPException(status_code=404, detail="Issue not found")

        ids = list(issue.get("manuscripts") or [])
        articles: list[dict[str, Any]] = []
        if ids:
            resp = (
                self.client.table("manuscripts")
                .select("id,title,authors,doi,pages,published_date,status")
                .in_("id", ids)
                .eq("status", "published")
                .execute()
            )
            articles = rows_of(resp)
        return {
            "volume": {"number": volume.get("number"), "year": volume.get("year"), "title": volume.get("title")},
            "issue": issue,
            "articles": articles,
        }


def get_volume_service() -> VolumeService:
    return VolumeService()
