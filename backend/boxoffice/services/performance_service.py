"""
Performance catalogue: performances, sessions and their admin edits.

Sold counters are never written here. Capacity edits go through a guarded
UPDATE (WHERE sold <= new_capacity) so an admin cannot shrink a tier below
what the ledger has already handed out.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import NotFoundError, ValidationError
from boxoffice.core.logging import get_logger
from boxoffice.db.base import as_utc
from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import TIER_ORDER, Tier
from boxoffice.models.performance import Performance, PerformanceSession
from boxoffice.schemas.performance import PerformanceCreate, SessionCreate, SessionUpdate

logger = get_logger(__name__)


async def create_performance(db: AsyncSession, data: PerformanceCreate) -> Performance:
    performance = Performance(**data.model_dump())
    db.add(performance)
    await db.flush()
    await db.refresh(performance)
    logger.info("performance_created", performance_id=performance.id, title=performance.title)
    return performance


async def get_performance(db: AsyncSession, performance_id: int) -> Performance:
    performance = await db.get(Performance, performance_id)
    if performance is None:
        raise NotFoundError("Performance", performance_id)
    return performance


def _check_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and as_utc(end) <= as_utc(start):
        raise ValidationError("Sale end must be after sale start")


async def create_session(db: AsyncSession, performance_id: int, data: SessionCreate) -> PerformanceSession:
    performance = await get_performance(db, performance_id)
    _check_window(data.sale_start_at, data.sale_end_at)
    for tier in (Tier.VIP1, Tier.VIP2):
        if getattr(data, tier.capacity_column) and performance.price_for(tier) is None:
            raise ValidationError(f"Tier {tier.value} has capacity but no price on the performance")

    session = PerformanceSession(performance_id=performance_id, **data.model_dump())
    session.sale_status = SaleStatus(data.sale_status).value
    for tier in TIER_ORDER:
        setattr(session, tier.sold_column, 0)
    db.add(session)
    await db.flush()
    logger.info("session_created", session_id=session.id, performance_id=performance_id)
    return await get_session(db, session.id)


async def get_session(db: AsyncSession, session_id: int) -> PerformanceSession:
    result = await db.execute(
        select(PerformanceSession)
        .where(PerformanceSession.id == session_id)
        .execution_options(populate_existing=True)
    )
    session = result.unique().scalar_one_or_none()
    if session is None:
        raise NotFoundError("Session", session_id)
    return session


async def update_session(db: AsyncSession, session_id: int, data: SessionUpdate) -> PerformanceSession:
    session = await get_session(db, session_id)
    changes = data.model_dump(exclude_unset=True)

    _check_window(
        changes.get("sale_start_at", session.sale_start_at),
        changes.get("sale_end_at", session.sale_end_at),
    )

    for tier in TIER_ORDER:
        new_capacity = changes.pop(tier.capacity_column, None)
        if new_capacity is None:
            continue
        sold = getattr(PerformanceSession, tier.sold_column)
        result = await db.execute(
            update(PerformanceSession)
            .where(PerformanceSession.id == session_id, sold <= new_capacity)
            .values({tier.capacity_column: new_capacity})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await get_session(db, session_id)
            raise ValidationError(
                f"{tier.value} capacity cannot drop below the {current.sold(tier)} seats already sold",
                tier=tier.value,
                sold=current.sold(tier),
            )

    if "sale_status" in changes and changes["sale_status"] is not None:
        changes["sale_status"] = SaleStatus(changes["sale_status"]).value

    if changes:
        await db.execute(
            update(PerformanceSession)
            .where(PerformanceSession.id == session_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
    logger.info("session_updated", session_id=session_id, fields=sorted(data.model_dump(exclude_unset=True)))
    return await get_session(db, session_id)


async def list_on_sale_sessions(db: AsyncSession) -> list[PerformanceSession]:
    result = await db.execute(
        select(PerformanceSession)
        .where(PerformanceSession.sale_status.in_([SaleStatus.ON_SALE.value, SaleStatus.SOLD_OUT.value]))
        .order_by(PerformanceSession.starts_at.asc())
    )
    return list(result.unique().scalars().all())
