"""
Door endpoints: check-in, verification and attendance stats.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.ticket import (
    CheckInDayStatsResponse,
    CheckInResponse,
    TicketCodeRequest,
    TicketResponse,
    TicketStatsResponse,
    VerifyResponse,
)
from boxoffice.services import ticket_service

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("/check-in", response_model=CheckInResponse)
async def check_in_endpoint(request: TicketCodeRequest, db: AsyncSession = Depends(get_db)):
    """
    Admit the holder of a ticket.

    A code that was already scanned answers 409 ALREADY_USED with the time
    of the first scan, never a second success.
    """
    ticket = await ticket_service.check_in(db, request.ticket_code)
    return CheckInResponse(
        message="Checked in",
        ticket=TicketResponse.model_validate(ticket),
        customer_name=ticket.order.customer_name,
        performance_label=ticket.order.performance_label,
    )


@router.post("/verify", response_model=VerifyResponse)
async def verify_endpoint(request: TicketCodeRequest, db: AsyncSession = Depends(get_db)):
    """Same checks as check-in, without marking the ticket used."""
    check = await ticket_service.verify(db, request.ticket_code)
    if check.ticket is None:
        return VerifyResponse(valid=check.valid, reason=check.reason.value if check.reason else None)
    return VerifyResponse(
        valid=check.valid,
        reason=check.reason.value if check.reason else None,
        ticket=TicketResponse.model_validate(check.ticket),
        customer_name=check.ticket.order.customer_name,
        performance_label=check.ticket.order.performance_label,
    )


@router.get("/stats", response_model=TicketStatsResponse)
async def ticket_stats_endpoint(db: AsyncSession = Depends(get_db)):
    return await ticket_service.ticket_stats(db)


@router.get("/stats/checkins", response_model=CheckInDayStatsResponse)
async def checkin_stats_endpoint(
    day: Optional[date] = Query(None, description="UTC date, defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    return await ticket_service.checkin_stats_for_day(db, day)


@router.get("/{ticket_code}", response_model=TicketResponse)
async def get_ticket_endpoint(ticket_code: str, db: AsyncSession = Depends(get_db)):
    return await ticket_service.get_ticket(db, ticket_code)
