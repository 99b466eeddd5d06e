"""
Pydantic schemas for performance and session request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import TIER_ORDER


class PerformanceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    volume: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=2000)
    general_price: int = Field(..., ge=0)
    reserved_price: int = Field(..., ge=0)
    vip1_price: Optional[int] = Field(None, ge=0)
    vip2_price: Optional[int] = Field(None, ge=0)


class PerformanceResponse(BaseModel):
    id: int
    title: str
    volume: Optional[str]
    description: Optional[str]
    general_price: int
    reserved_price: int
    vip1_price: Optional[int]
    vip2_price: Optional[int]
    created_at: datetime

    model_config = {"from_attributes": True}


class SessionCreate(BaseModel):
    show_number: int = Field(1, ge=1)
    starts_at: datetime
    doors_open_at: Optional[datetime] = None
    venue_name: Optional[str] = Field(None, max_length=255)
    venue_address: Optional[str] = Field(None, max_length=500)
    sale_status: SaleStatus = SaleStatus.NOT_ON_SALE
    sale_start_at: Optional[datetime] = None
    sale_end_at: Optional[datetime] = None
    general_capacity: int = Field(0, ge=0, le=100000)
    reserved_capacity: int = Field(0, ge=0, le=100000)
    vip1_capacity: int = Field(0, ge=0, le=100000)
    vip2_capacity: int = Field(0, ge=0, le=100000)

    model_config = {"use_enum_values": True}


class SessionUpdate(BaseModel):
    starts_at: Optional[datetime] = None
    doors_open_at: Optional[datetime] = None
    venue_name: Optional[str] = Field(None, max_length=255)
    venue_address: Optional[str] = Field(None, max_length=500)
    sale_status: Optional[SaleStatus] = None
    sale_start_at: Optional[datetime] = None
    sale_end_at: Optional[datetime] = None
    general_capacity: Optional[int] = Field(None, ge=0, le=100000)
    reserved_capacity: Optional[int] = Field(None, ge=0, le=100000)
    vip1_capacity: Optional[int] = Field(None, ge=0, le=100000)
    vip2_capacity: Optional[int] = Field(None, ge=0, le=100000)

    model_config = {"use_enum_values": True}


class TierAvailability(BaseModel):
    tier: str
    price: Optional[int]
    capacity: int
    sold: int
    available: int


class SessionResponse(BaseModel):
    id: int
    performance_id: int
    performance_title: str
    show_number: int
    starts_at: datetime
    doors_open_at: Optional[datetime]
    venue_name: Optional[str]
    venue_address: Optional[str]
    sale_status: SaleStatus
    sale_start_at: Optional[datetime]
    sale_end_at: Optional[datetime]
    tiers: list[TierAvailability]

    @classmethod
    def from_session(cls, session) -> "SessionResponse":
        performance = session.performance
        return cls(
            id=session.id,
            performance_id=session.performance_id,
            performance_title=performance.title,
            show_number=session.show_number,
            starts_at=session.starts_at,
            doors_open_at=session.doors_open_at,
            venue_name=session.venue_name,
            venue_address=session.venue_address,
            sale_status=session.sale_status,
            sale_start_at=session.sale_start_at,
            sale_end_at=session.sale_end_at,
            tiers=[
                TierAvailability(
                    tier=tier.value,
                    price=performance.price_for(tier),
                    capacity=session.capacity(tier),
                    sold=session.sold(tier),
                    available=session.available(tier),
                )
                for tier in TIER_ORDER
                if session.capacity(tier) > 0
            ],
        )
