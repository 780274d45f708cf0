from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class VolumeStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"
    PUBLISHED = "published"


class VolumeCreate(BaseModel):
    number: int = Field(..., ge=1, le=99)
    year: int = Field(..., ge=1000, le=9999)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    status: VolumeStatus = VolumeStatus.DRAFT


class IssueCreate(BaseModel):
    number: int = Field(..., ge=1, le=99)
    title: str = ""
    description: str = ""


class IssueAssignManuscripts(BaseModel):
    manuscript_ids: List[str] = Field(..., min_length=1)


class Issue(BaseModel):
    id: str
    number: int
    title: str = ""
    description: str = ""
    is_published: bool = False
    published_date: Optional[str] = None
    manuscripts: List[str] = Field(default_factory=list)


class Volume(BaseModel):
    id: str
    number: int
    year: int
    title: str
    description: str = ""
    status: VolumeStatus = VolumeStatus.DRAFT
    is_published: bool = False
    published_date: Optional[str] = None
    issues: List[Issue] = Field(default_factory=list)
