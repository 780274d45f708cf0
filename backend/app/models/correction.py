from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class CorrectionType(str, Enum):
    CORRECTION = "correction"
    RETRACTION = "retraction"
    EXPRESSION_OF_CONCERN = "expression-of-concern"
    ERRATUM = "erratum"


class CorrectionStatus(str, Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under-review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class CorrectionSection(BaseModel):
    section: str = Field(..., min_length=1)
    original: str = Field(..., min_length=1)
    corrected: str = Field(..., min_length=1)


class CorrectionCreate(BaseModel):
    manuscript_id: str = Field(..., min_length=1)
    type: CorrectionType
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    sections: List[CorrectionSection] = Field(default_factory=list)


class CorrectionReview(BaseModel):
    decision: Literal["approve", "reject"]
    notes: Optional[str] = Field(None, max_length=2000)
