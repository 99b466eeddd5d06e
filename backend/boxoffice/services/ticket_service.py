"""
Ticket issuance and door check-in.

Check-in is a one-way UNUSED -> USED transition done with a guarded UPDATE
(WHERE is_used = false). When two scanners read the same code at once,
both may pass the read-side checks, but only one UPDATE matches the row;
the other sees rowcount 0 and reports AlreadyUsedError. A repeated scan is
never reported as success: door staff need to know a code came back.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import (
    AlreadyUsedError,
    ErrorCode,
    InvalidOrderError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_checkin
from boxoffice.db.base import as_utc, utcnow
from boxoffice.domain.states import OrderStatus
from boxoffice.domain.tiers import TIER_ORDER, Tier
from boxoffice.models.order import Order
from boxoffice.models.ticket import Ticket

logger = get_logger(__name__)


@dataclass(frozen=True)
class TicketCheck:
    """Outcome of a non-mutating verification."""

    valid: bool
    ticket: Optional[Ticket] = None
    reason: Optional[ErrorCode] = None


def new_ticket_code() -> str:
    return str(uuid.uuid4())


def normalize_ticket_code(raw: str) -> str:
    return (raw or "").strip().lower()


def build_tickets(order: Order) -> list[Ticket]:
    """One ticket per purchased unit; the first `exchanged_quantity` general units are exchanged."""
    tickets = []
    for tier in TIER_ORDER:
        for index in range(order.quantities.get(tier, 0)):
            tickets.append(
                Ticket(
                    order_id=order.id,
                    ticket_type=tier.value,
                    code=new_ticket_code(),
                    is_exchanged=tier is Tier.GENERAL and index < order.exchanged_quantity,
                    is_used=False,
                )
            )
    return tickets


async def issue_tickets(db: AsyncSession, order: Order) -> list[Ticket]:
    tickets = build_tickets(order)
    db.add_all(tickets)
    await db.flush()
    logger.info("tickets_issued", order_id=order.id, count=len(tickets))
    return tickets


async def get_ticket(db: AsyncSession, raw_code: str) -> Ticket:
    code = normalize_ticket_code(raw_code)
    if not code:
        raise ValidationError("Ticket code is required")
    ticket = await _load_ticket(db, code)
    if ticket is None:
        raise NotFoundError("Ticket", code)
    return ticket


async def verify(db: AsyncSession, raw_code: str) -> TicketCheck:
    """Run the check-in checks without changing anything."""
    code = normalize_ticket_code(raw_code)
    if not code:
        raise ValidationError("Ticket code is required")
    ticket = await _load_ticket(db, code)
    if ticket is None:
        return TicketCheck(valid=False, reason=ErrorCode.NOT_FOUND)
    if ticket.order.status != OrderStatus.PAID.value:
        return TicketCheck(valid=False, ticket=ticket, reason=ErrorCode.INVALID_ORDER)
    if ticket.is_used:
        return TicketCheck(valid=False, ticket=ticket, reason=ErrorCode.ALREADY_USED)
    return TicketCheck(valid=True, ticket=ticket)


async def check_in(db: AsyncSession, raw_code: str) -> Ticket:
    """Mark a ticket used. Exactly one of any number of concurrent scans succeeds."""
    code = normalize_ticket_code(raw_code)
    if not code:
        raise ValidationError("Ticket code is required")

    ticket = await _load_ticket(db, code)
    if ticket is None:
        record_checkin("not_found")
        logger.warning("checkin_unknown_code", code=code)
        raise NotFoundError("Ticket", code)

    if ticket.order.status != OrderStatus.PAID.value:
        record_checkin("invalid_order")
        logger.warning("checkin_invalid_order", code=code, order_id=ticket.order_id, status=ticket.order.status)
        raise InvalidOrderError("Ticket does not belong to a paid order", current=ticket.order.status)

    if ticket.is_used:
        record_checkin("already_used")
        logger.warning("checkin_repeat", code=code, used_at=str(ticket.used_at))
        raise AlreadyUsedError(code, as_utc(ticket.used_at))

    result = await db.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id, Ticket.is_used.is_(False))
        .values(is_used=True, used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    ticket = await _load_ticket(db, code)
    if result.rowcount == 0:
        record_checkin("already_used")
        logger.warning("checkin_race_lost", code=code)
        raise AlreadyUsedError(code, as_utc(ticket.used_at))

    record_checkin("checked_in")
    logger.info("ticket_checked_in", code=code, order_id=ticket.order_id, ticket_type=ticket.ticket_type)
    return ticket


async def ticket_stats(db: AsyncSession) -> dict:
    rows = await db.execute(
        select(Ticket.ticket_type, Ticket.is_used, func.count(Ticket.id)).group_by(Ticket.ticket_type, Ticket.is_used)
    )
    stats = {"total": 0, "used": 0, "unused": 0, "by_type": {tier.value: 0 for tier in TIER_ORDER}}
    for ticket_type, is_used, count in rows.all():
        stats["total"] += count
        stats["used" if is_used else "unused"] += count
        stats["by_type"][ticket_type] = stats["by_type"].get(ticket_type, 0) + count
    return stats


async def checkin_stats_for_day(db: AsyncSession, day: Optional[date] = None) -> dict:
    """Per-tier check-ins within one UTC calendar day."""
    day = day or utcnow().date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    rows = await db.execute(
        select(Ticket.ticket_type, func.count(Ticket.id))
        .where(Ticket.is_used.is_(True), Ticket.used_at >= start, Ticket.used_at < end)
        .group_by(Ticket.ticket_type)
    )
    by_type = {tier.value: 0 for tier in TIER_ORDER}
    for ticket_type, count in rows.all():
        by_type[ticket_type] = count
    return {"date": day.isoformat(), "total": sum(by_type.values()), "by_type": by_type}


async def _load_ticket(db: AsyncSession, code: str) -> Optional[Ticket]:
    result = await db.execute(
        select(Ticket)
        .where(Ticket.code == code)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()
