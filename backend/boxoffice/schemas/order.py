"""
Pydantic schemas for checkout, orders and payment notifications.
"""

from datetime import date, datetime
from typing import Literal, Optional
from pydantic import BaseModel, EmailStr, Field

from boxoffice.domain.states import OrderStatus
from boxoffice.schemas.ticket import TicketResponse


class CheckoutRequest(BaseModel):
    session_id: int
    general_quantity: int = Field(0, ge=0)
    reserved_quantity: int = Field(0, ge=0)
    vip1_quantity: int = Field(0, ge=0)
    vip2_quantity: int = Field(0, ge=0)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: Optional[str] = Field(None, max_length=50)
    exchange_codes: list[str] = Field(default_factory=list, max_length=10)
    performance_label: Optional[str] = Field(None, max_length=255)


class OrderResponse(BaseModel):
    id: int
    session_id: int
    performance_date: date
    performance_label: Optional[str]
    general_quantity: int
    reserved_quantity: int
    vip1_quantity: int
    vip2_quantity: int
    general_price: int
    reserved_price: int
    vip1_price: Optional[int]
    vip2_price: Optional[int]
    exchanged_quantity: int
    discounted_general_count: int
    discount_amount: int
    subtotal_amount: int
    total_amount: int
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    status: OrderStatus
    payment_reference: Optional[str]
    created_at: datetime
    paid_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    expired_at: Optional[datetime]
    tickets: list[TicketResponse] = []

    model_config = {"from_attributes": True}


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment_reference: Optional[str]
    payment_url: Optional[str]
    payment_required: bool


class PaymentNotification(BaseModel):
    reference: str = Field(..., min_length=1, max_length=255)
    outcome: Literal["paid", "failed", "expired"]


class ExpireSweepResponse(BaseModel):
    expired_order_ids: list[int]


class OrderStatsResponse(BaseModel):
    total_orders: int
    total_revenue: int
    total_tickets: int
    discounted_tickets: int
