"""
Inventory ledger: per-session, per-tier sold counters.

CONCURRENCY STRATEGY: Guarded Conditional UPDATE
================================================

Problem:
  Two buyers race for the last general seat. Both read general_sold=1,
  capacity=2, both write general_sold=2... or worse, both succeed on a
  read-then-write and the tier ends up at 3/2.

Solution:
  Every tier in one purchase is checked and incremented by a single
  UPDATE on the session row:

    UPDATE performance_sessions
       SET general_sold = general_sold + :g, reserved_sold = reserved_sold + :r
     WHERE id = :session_id
       AND general_sold + :g <= general_capacity
       AND reserved_sold + :r <= reserved_capacity

  - One statement, one row: the database applies it atomically. On
    PostgreSQL the second writer blocks on the row lock, then re-evaluates
    the WHERE clause against the committed row and matches nothing.
  - rowcount == 0 means at least one guard failed; nothing was incremented
    for any tier (all-or-nothing across tiers). We re-read the row to name
    the first tier that cannot cover the request.
  - No version column: the guard is the capacity itself. If the re-read
    shows room in every requested tier (a release committed between the
    UPDATE and the re-read), the UPDATE is issued again, up to
    MAX_RESERVE_ATTEMPTS times.
  - The CHECK constraints on the table are the final safety net.

release() is the mirror image with a `sold >= :n` guard, so it can never
drive a counter negative. A release that does not match means the caller
is returning seats that were never held, which is reported as LedgerError
rather than ignored.

Both operations run inside the caller's transaction; if anything later in
the same unit of work fails the increment is rolled back with it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import (
    LedgerError,
    NotFoundError,
    ReservationConflictError,
    SoldOutError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_reservation
from boxoffice.db.base import utcnow
from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import TIER_ORDER, TierQuantities, normalize_quantities
from boxoffice.models.performance import PerformanceSession

logger = get_logger(__name__)

MAX_RESERVE_ATTEMPTS = 3


@dataclass(frozen=True)
class Reservation:
    """Seats held in the ledger for one purchase."""

    session_id: int
    quantities: TierQuantities
    reserved_at: datetime = field(default_factory=utcnow)

    @property
    def total(self) -> int:
        return sum(self.quantities.values())


async def get_session_row(db: AsyncSession, session_id: int) -> PerformanceSession:
    """Read the session's current counters, bypassing any stale identity-map copy."""
    result = await db.execute(
        select(PerformanceSession)
        .where(PerformanceSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise NotFoundError("Session", session_id)
    return session


async def reserve(db: AsyncSession, session_id: int, quantities: Mapping) -> Reservation:
    """
    Atomically hold seats across every requested tier, or none of them.

    Raises SoldOutError naming the first tier (in tier order) that cannot
    cover the request.
    """
    requested = normalize_quantities(quantities)
    if not requested:
        raise ValidationError("At least one ticket must be requested")

    guards = []
    values = {}
    for tier, count in requested.items():
        sold = getattr(PerformanceSession, tier.sold_column)
        capacity = getattr(PerformanceSession, tier.capacity_column)
        guards.append(sold + count <= capacity)
        values[tier.sold_column] = sold + count

    for attempt in range(1, MAX_RESERVE_ATTEMPTS + 1):
        result = await db.execute(
            update(PerformanceSession)
            .where(and_(PerformanceSession.id == session_id, *guards))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            break

        session = await get_session_row(db, session_id)
        for tier in TIER_ORDER:
            count = requested.get(tier, 0)
            if count and session.available(tier) < count:
                record_reservation("sold_out")
                logger.warning(
                    "reservation_rejected",
                    session_id=session_id,
                    tier=tier.value,
                    requested=count,
                    available=session.available(tier),
                )
                raise SoldOutError(tier.value, count, max(session.available(tier), 0))

        # Guard failed but the re-read shows room: the row changed between
        # the two statements.
        logger.info("reservation_retry", session_id=session_id, attempt=attempt)
    else:
        record_reservation("conflict")
        raise ReservationConflictError(
            "Seats changed while reserving. Please try again.",
            session_id=session_id,
        )

    await _mark_sold_out_if_full(db, session_id)
    record_reservation("reserved")
    logger.info(
        "seats_reserved",
        session_id=session_id,
        quantities={tier.value: count for tier, count in requested.items()},
    )
    return Reservation(session_id=session_id, quantities=requested)


async def release(db: AsyncSession, session_id: int, quantities: Mapping) -> None:
    """Return held seats to the session. Never drives a counter below zero."""
    returning = normalize_quantities(quantities)
    if not returning:
        return

    guards = []
    values = {}
    for tier, count in returning.items():
        sold = getattr(PerformanceSession, tier.sold_column)
        guards.append(sold >= count)
        values[tier.sold_column] = sold - count

    result = await db.execute(
        update(PerformanceSession)
        .where(and_(PerformanceSession.id == session_id, *guards))
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        session = await get_session_row(db, session_id)
        logger.error(
            "release_mismatch",
            session_id=session_id,
            releasing={tier.value: count for tier, count in returning.items()},
            sold={tier.value: session.sold(tier) for tier in returning},
        )
        raise LedgerError(
            f"Cannot release seats that were never reserved on session {session_id}",
            session_id=session_id,
        )

    # Room again: a session that filled up goes back on sale.
    await db.execute(
        update(PerformanceSession)
        .where(
            PerformanceSession.id == session_id,
            PerformanceSession.sale_status == SaleStatus.SOLD_OUT.value,
        )
        .values(sale_status=SaleStatus.ON_SALE.value)
        .execution_options(synchronize_session=False)
    )
    record_reservation("released")
    logger.info(
        "seats_released",
        session_id=session_id,
        quantities={tier.value: count for tier, count in returning.items()},
    )


async def _mark_sold_out_if_full(db: AsyncSession, session_id: int) -> None:
    """Flip ON_SALE -> SOLD_OUT once every offered tier is full."""
    full = [
        getattr(PerformanceSession, tier.sold_column) >= getattr(PerformanceSession, tier.capacity_column)
        for tier in TIER_ORDER
    ]
    result = await db.execute(
        update(PerformanceSession)
        .where(
            PerformanceSession.id == session_id,
            PerformanceSession.sale_status == SaleStatus.ON_SALE.value,
            *full,
        )
        .values(sale_status=SaleStatus.SOLD_OUT.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("session_sold_out", session_id=session_id)
