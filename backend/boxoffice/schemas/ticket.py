"""
Pydantic schemas for tickets and door check-in.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class TicketResponse(BaseModel):
    id: int
    order_id: int
    ticket_type: str
    code: str
    is_exchanged: bool
    is_used: bool
    used_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TicketCodeRequest(BaseModel):
    ticket_code: str = Field(..., min_length=1, max_length=255)


class CheckInResponse(BaseModel):
    message: str
    ticket: TicketResponse
    customer_name: str
    performance_label: Optional[str]


class VerifyResponse(BaseModel):
    valid: bool
    reason: Optional[str] = None
    ticket: Optional[TicketResponse] = None
    customer_name: Optional[str] = None
    performance_label: Optional[str] = None


class TicketStatsResponse(BaseModel):
    total: int
    used: int
    unused: int
    by_type: dict[str, int]


class CheckInDayStatsResponse(BaseModel):
    date: str
    total: int
    by_type: dict[str, int]
