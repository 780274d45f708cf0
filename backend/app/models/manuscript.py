from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ManuscriptStatus(str, Enum):
    """
    稿件顶层生命周期状态（submission → review → copy-editing → production → published）。

    中文注释:
    - 数据库存储为字符串；服务层 normalize 后再写入。
    - 已发布稿件受“发布保护”，不允许被改回其它状态。
    """

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under-review"
    REVISION_REQUESTED = "revision-requested"
    MAJOR_REVISION_REQUESTED = "major-revision-requested"
    MINOR_REVISION_REQUESTED = "minor-revision-requested"
    UNDER_EDITORIAL_REVIEW = "under-editorial-review"
    REVIEWED = "reviewed"
    ACCEPTED = "accepted"
    ACCEPTED_AWAITING_COPY_EDIT = "accepted-awaiting-copy-edit"
    IN_COPY_EDITING = "in-copy-editing"
    COPY_EDITING_COMPLETE = "copy-editing-complete"
    READY_FOR_PUBLICATION = "ready-for-publication"
    REJECTED = "rejected"
    PAYMENT_REQUIRED = "payment-required"
    PAYMENT_SUBMITTED = "payment-submitted"
    IN_PRODUCTION = "in-production"
    PUBLISHED = "published"

    @classmethod
    def normalize(cls, value: Optional[str]) -> str:
        raw = str(value or "").strip().lower().replace("_", "-")
        try:
            return cls(raw).value
        except ValueError as e:
            raise ValueError(f"Unknown manuscript status: {value}") from e


class CopyEditingStage(str, Enum):
    """
    录用后的文字编辑子状态，独立于顶层 status。
    """

    COPY_EDITING = "copy-editing"
    AUTHOR_REVIEW = "author-review"
    AUTHOR_APPROVED = "author-approved"
    READY_FOR_PRODUCTION = "ready-for-production"

    @classmethod
    def allowed_next(cls, current: Optional[str]) -> set[str]:
        """
        - (未开始) -> copy-editing
        - copy-editing -> author-review
        - author-review -> author-approved / copy-editing（作者要求修改）
        - author-approved -> ready-for-production
        """
        c = (current or "").strip().lower()
        if not c:
            return {cls.COPY_EDITING.value}
        if c == cls.COPY_EDITING.value:
            return {cls.AUTHOR_REVIEW.value}
        if c == cls.AUTHOR_REVIEW.value:
            return {cls.AUTHOR_APPROVED.value, cls.COPY_EDITING.value}
        if c == cls.AUTHOR_APPROVED.value:
            return {cls.READY_FOR_PRODUCTION.value}
        return set()


class ProductionStage(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ManuscriptPublishRequest(BaseModel):
    volume: int = Field(..., ge=1, le=99)
    issue: Optional[int] = Field(None, ge=1, le=99)
    pages: Optional[str] = Field(None, max_length=32)


class ManuscriptStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=2000)


class CopyEditStageUpdate(BaseModel):
    stage: CopyEditingStage
    comment: Optional[str] = Field(None, max_length=2000)


class CopyEditorAssignment(BaseModel):
    copy_editor_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=2000)
