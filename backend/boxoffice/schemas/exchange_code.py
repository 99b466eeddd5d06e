"""
Pydantic schemas for exchange code administration and lookup.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class ValidateCodesRequest(BaseModel):
    codes: list[str] = Field(..., max_length=50)


class CodeCheckResponse(BaseModel):
    code: str
    valid: bool
    already_used: bool
    performer_name: Optional[str] = None

    model_config = {"from_attributes": True}


class ValidateCodesResponse(BaseModel):
    all_valid: bool
    results: list[CodeCheckResponse]


class ExchangeCodeCreate(BaseModel):
    code: Optional[str] = Field(None, max_length=64)
    performer_name: Optional[str] = Field(None, max_length=255)
    session_id: Optional[int] = None
    volume: Optional[str] = Field(None, max_length=50)


class BatchGenerateRequest(BaseModel):
    performer_name: str = Field(..., min_length=1, max_length=255)
    codes_per_session: dict[int, int]
    volume: Optional[str] = Field(None, max_length=50)


class BatchGenerateResponse(BaseModel):
    count: int
    codes: list[str]


class ExchangeCodeResponse(BaseModel):
    id: int
    code: str
    performer_name: Optional[str]
    session_id: Optional[int]
    is_used: bool
    used_at: Optional[datetime]
    order_id: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class CodeStatsResponse(BaseModel):
    total: int
    used: int
    unused: int
