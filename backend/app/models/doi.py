from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DOIType(str, Enum):
    MANUSCRIPT = "manuscript"
    CORRECTION = "correction"


class ParsedDOI(BaseModel):
    type: DOIType
    year: int
    volume: Optional[int] = None
    issue: Optional[int] = None
    sequence: int


class DOIValidateRequest(BaseModel):
    doi: str = Field(..., min_length=1)


class DOIValidationResult(BaseModel):
    doi: str
    valid: bool
    parsed: Optional[ParsedDOI] = None
    url: Optional[str] = None


class ManuscriptDOIReserveRequest(BaseModel):
    year: int = Field(..., ge=1000, le=9999)
    volume: int = Field(..., ge=1, le=99)
    issue: int = Field(1, ge=1, le=99)


class CorrectionDOIReserveRequest(BaseModel):
    year: int = Field(..., ge=1000, le=9999)


class DOIReservation(BaseModel):
    doi: str
    scope: str
    sequence: int
    kind: DOIType
    attempts: int = 1


class DOIUniqueResult(BaseModel):
    doi: str
    unique: bool
