"""
Tests for the inventory ledger, including concurrent reservations.
"""

import asyncio
from types import SimpleNamespace

import pytest

from boxoffice.core.errors import (
    LedgerError,
    NotFoundError,
    ReservationConflictError,
    SoldOutError,
    ValidationError,
)
from boxoffice.db.session import session_scope
from boxoffice.domain.states import SaleStatus
from boxoffice.domain.tiers import Tier
from boxoffice.services import inventory_service


async def _reserve(session_id, quantities):
    async with session_scope() as db:
        return await inventory_service.reserve(db, session_id, quantities)


@pytest.mark.asyncio
async def test_reserve_increments_sold(tx, session_id):
    reservation = await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 3, Tier.VIP1: 1})
    assert reservation.quantities == {Tier.GENERAL: 3, Tier.VIP1: 1}

    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 3
    assert session.sold(Tier.VIP1) == 1
    assert session.sold(Tier.RESERVED) == 0


@pytest.mark.asyncio
async def test_reserve_all_or_nothing(tx, session_id):
    """A short tier rejects the whole request and names that tier."""
    with pytest.raises(SoldOutError) as exc_info:
        await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 2, Tier.VIP1: 3})
    assert exc_info.value.tier == "VIP1"
    assert exc_info.value.available == 2

    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 0
    assert session.sold(Tier.VIP1) == 0


@pytest.mark.asyncio
async def test_reserve_names_first_short_tier(tx, make_session):
    session_id = await make_session(general=1, reserved=1, vip1=1)
    with pytest.raises(SoldOutError) as exc_info:
        await tx(inventory_service.reserve, session_id, {Tier.VIP1: 2, Tier.RESERVED: 2})
    assert exc_info.value.tier == "RESERVED"


@pytest.mark.asyncio
async def test_reserve_tier_without_capacity(tx, session_id):
    with pytest.raises(SoldOutError):
        await tx(inventory_service.reserve, session_id, {Tier.VIP2: 1})


@pytest.mark.asyncio
async def test_reserve_then_release_restores_sold(tx, session_id):
    await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 4, Tier.RESERVED: 2})
    await tx(inventory_service.release, session_id, {Tier.GENERAL: 4, Tier.RESERVED: 2})

    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 0
    assert session.sold(Tier.RESERVED) == 0


@pytest.mark.asyncio
async def test_release_more_than_sold_is_reported(tx, session_id):
    await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 1})
    with pytest.raises(LedgerError):
        await tx(inventory_service.release, session_id, {Tier.GENERAL: 2})

    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 1


@pytest.mark.asyncio
async def test_reserve_validates_input(tx, session_id):
    with pytest.raises(ValidationError):
        await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 0})
    with pytest.raises(ValidationError):
        await tx(inventory_service.reserve, session_id, {Tier.GENERAL: -1})


@pytest.mark.asyncio
async def test_reserve_unknown_session(tx):
    with pytest.raises(NotFoundError):
        await tx(inventory_service.reserve, 9999, {Tier.GENERAL: 1})


@pytest.mark.asyncio
async def test_session_flips_sold_out_and_back(tx, make_session):
    session_id = await make_session(general=2, reserved=1, vip1=0)
    await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 2, Tier.RESERVED: 1})
    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sale_status == SaleStatus.SOLD_OUT.value

    await tx(inventory_service.release, session_id, {Tier.RESERVED: 1})
    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sale_status == SaleStatus.ON_SALE.value


@pytest.mark.asyncio
async def test_concurrent_reserves_never_oversell(tx, make_session):
    """20 buyers race for 5 seats: exactly 5 single-seat reserves succeed."""
    session_id = await make_session(general=5, reserved=0, vip1=0)

    results = await asyncio.gather(
        *[_reserve(session_id, {Tier.GENERAL: 1}) for _ in range(20)],
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, inventory_service.Reservation)]
    sold_out = [r for r in results if isinstance(r, SoldOutError)]
    assert len(succeeded) == 5
    assert len(sold_out) == 15

    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 5


@pytest.mark.asyncio
async def test_concurrent_reserves_for_last_seats(tx, make_session):
    """Two buyers each want both remaining seats: one wins, sold stays at capacity."""
    session_id = await make_session(general=2, reserved=0, vip1=0)

    results = await asyncio.gather(
        _reserve(session_id, {Tier.GENERAL: 2}),
        _reserve(session_id, {Tier.GENERAL: 2}),
        return_exceptions=True,
    )

    assert sum(isinstance(r, inventory_service.Reservation) for r in results) == 1
    assert sum(isinstance(r, SoldOutError) for r in results) == 1
    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 2


@pytest.mark.asyncio
async def test_reserve_retries_when_release_lands_between_update_and_reread(tx, make_session, monkeypatch):
    """A release committed after the failed UPDATE must not turn into a false sold-out."""
    session_id = await make_session(general=10, reserved=1)
    await tx(inventory_service.reserve, session_id, {Tier.RESERVED: 1})

    original_reread = inventory_service.get_session_row
    rereads = []

    async def reread_after_release(db, sid):
        if not rereads:
            await inventory_service.release(db, sid, {Tier.RESERVED: 1})
        rereads.append(sid)
        return await original_reread(db, sid)

    monkeypatch.setattr(inventory_service, "get_session_row", reread_after_release)

    reservation = await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 1, Tier.RESERVED: 1})
    assert reservation.quantities == {Tier.GENERAL: 1, Tier.RESERVED: 1}
    assert len(rereads) == 1

    monkeypatch.setattr(inventory_service, "get_session_row", original_reread)
    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 1
    assert session.sold(Tier.RESERVED) == 1


@pytest.mark.asyncio
async def test_reserve_gives_up_after_repeated_conflicts(tx, make_session, monkeypatch):
    session_id = await make_session(general=1, reserved=0, vip1=0)
    await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 1})

    original_reread = inventory_service.get_session_row
    rereads = []

    async def reread_showing_room(db, sid):
        rereads.append(sid)
        return SimpleNamespace(available=lambda tier: 5)

    monkeypatch.setattr(inventory_service, "get_session_row", reread_showing_room)

    with pytest.raises(ReservationConflictError) as exc_info:
        await tx(inventory_service.reserve, session_id, {Tier.GENERAL: 1})
    assert exc_info.value.status_code == 409
    assert len(rereads) == inventory_service.MAX_RESERVE_ATTEMPTS

    monkeypatch.setattr(inventory_service, "get_session_row", original_reread)
    session = await tx(inventory_service.get_session_row, session_id)
    assert session.sold(Tier.GENERAL) == 1
