"""
Tests for the performance catalogue and admin session edits.
"""

from datetime import datetime, timezone, timedelta

import pytest

from boxoffice.core.errors import NotFoundError, ValidationError
from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import Tier
from boxoffice.schemas.performance import PerformanceCreate, SessionCreate, SessionUpdate
from boxoffice.services import inventory_service, performance_service

STARTS_AT = datetime.now(timezone.utc) + timedelta(days=7)


@pytest.mark.asyncio
async def test_create_session_starts_unsold(tx):
    performance = await tx(
        performance_service.create_performance,
        PerformanceCreate(title="Noh Evening", general_price=3000, reserved_price=5000),
    )
    session = await tx(
        performance_service.create_session,
        performance.id,
        SessionCreate(starts_at=STARTS_AT, general_capacity=100, reserved_capacity=20),
    )

    assert session.sale_status == SaleStatus.NOT_ON_SALE.value
    assert session.sold(Tier.GENERAL) == 0
    assert session.available(Tier.RESERVED) == 20
    assert session.performance.title == "Noh Evening"


@pytest.mark.asyncio
async def test_vip_capacity_requires_price(tx):
    performance = await tx(
        performance_service.create_performance,
        PerformanceCreate(title="Noh Evening", general_price=3000, reserved_price=5000),
    )
    with pytest.raises(ValidationError):
        await tx(
            performance_service.create_session,
            performance.id,
            SessionCreate(starts_at=STARTS_AT, general_capacity=10, vip1_capacity=2),
        )


@pytest.mark.asyncio
async def test_sale_window_must_be_ordered(tx, session_id):
    with pytest.raises(ValidationError):
        await tx(
            performance_service.update_session,
            session_id,
            SessionUpdate(sale_start_at=STARTS_AT, sale_end_at=STARTS_AT - timedelta(days=1)),
        )


@pytest.mark.asyncio
async def test_capacity_edit_guarded_by_sold(tx, session_id):
    await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 4})

    with pytest.raises(ValidationError):
        await tx(performance_service.update_session, session_id, SessionUpdate(general_capacity=3))

    session = await tx(performance_service.update_session, session_id, SessionUpdate(general_capacity=4))
    assert session.capacity(Tier.GENERAL) == 4
    assert session.sold(Tier.GENERAL) == 4


@pytest.mark.asyncio
async def test_list_on_sale_sessions(tx, make_session):
    on_sale = await make_session()
    await make_session(sale_status=SaleStatus.CLOSED)
    sold_out = await make_session(general=1, reserved=0, vip1=0)
    await tx(inventory_service.reserve, sold_out, {Tier.GENERAL: 1})

    listed = await tx(performance_service.list_on_sale_sessions)
    assert sorted(s.id for s in listed) == sorted([on_sale, sold_out])


@pytest.mark.asyncio
async def test_unknown_ids(tx, database):
    with pytest.raises(NotFoundError):
        await tx(performance_service.get_performance, 404)
    with pytest.raises(NotFoundError):
        await tx(performance_service.get_session, 404)
