"""
Tests for the order lifecycle: checkout, payment, cancellation and expiry.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from boxoffice.core.errors import (
    CodeAlreadyUsedError,
    CodeNotFoundError,
    InvalidStateError,
    NotFoundError,
    SoldOutError,
    ValidationError,
)
from boxoffice.db.base import utcnow
from boxoffice.db.session import session_scope
from boxoffice.domain.states import OrderStatus, SaleStatus
from boxoffice.domain.tiers import Tier
from boxoffice.models import Order, PerformanceSession
from boxoffice.services import exchange_code_service, inventory_service, order_service, ticket_service


async def _sold(tx, session_id, tier=Tier.GENERAL):
    session = await tx(inventory_service.get_session_row, session_id)
    return session.sold(tier)


async def _checkout(session_id, quantities, customer, **kwargs):
    async with session_scope() as db:
        return await order_service.create_order(db, session_id, quantities, customer, **kwargs)


@pytest.mark.asyncio
async def test_create_order_holds_seats(tx, session_id, buyer):
    order = await tx(order_service.create_order, session_id, {"GENERAL": 2, "VIP1": 1}, buyer)

    assert order.status == OrderStatus.PENDING.value
    assert order.general_quantity == 2
    assert order.vip1_quantity == 1
    assert order.general_price == 4000
    assert order.vip1_price == 10000
    assert order.total_amount == 18000
    assert order.performance_label == "Kabuki Night #1"
    assert order.tickets == []
    assert await _sold(tx, session_id) == 2
    assert await _sold(tx, session_id, Tier.VIP1) == 1


@pytest.mark.asyncio
async def test_exchange_code_discount_scenario(tx, session_id, buyer, exchange_codes):
    """One general ticket at 4000 with one code: discount 500, total 3500."""
    order = await tx(
        order_service.create_order, session_id, {"GENERAL": 1}, buyer, exchange_codes=[" vol2-aaaaa "]
    )
    assert order.total_amount == 3500
    assert order.discounted_general_count == 1
    assert order.discount_amount == 500
    assert order.exchanged_quantity == 1

    codes = await tx(exchange_code_service.list_codes, is_used=True)
    assert [(c.code, c.order_id) for c in codes] == [("VOL2-AAAAA", order.id)]


@pytest.mark.asyncio
async def test_sold_out_creates_no_order(tx, make_session, buyer):
    session_id = await make_session(general=1)
    with pytest.raises(SoldOutError) as exc_info:
        await tx(order_service.create_order, session_id, {"GENERAL": 2}, buyer)
    assert exc_info.value.tier == "GENERAL"

    assert await tx(order_service.list_orders) == []
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_sold_out_leaves_code_unused(tx, make_session, buyer, exchange_codes):
    session_id = await make_session(general=1)
    with pytest.raises(SoldOutError):
        await tx(order_service.create_order, session_id, {"GENERAL": 2}, buyer, exchange_codes=["VOL2-AAAAA"])
    checks = await tx(exchange_code_service.validate_batch, ["VOL2-AAAAA"])
    assert checks[0].already_used is False


@pytest.mark.asyncio
async def test_concurrent_checkouts_for_last_two_seats(tx, make_session, buyer):
    """Two buyers each want both seats: one PENDING order, one SoldOutError, sold stays 2."""
    session_id = await make_session(general=2, reserved=0, vip1=0)

    results = await asyncio.gather(
        _checkout(session_id, {"GENERAL": 2}, buyer),
        _checkout(session_id, {"GENERAL": 2}, buyer),
        return_exceptions=True,
    )

    orders = [r for r in results if isinstance(r, Order)]
    assert len(orders) == 1
    assert orders[0].status == OrderStatus.PENDING.value
    assert sum(isinstance(r, SoldOutError) for r in results) == 1
    assert await _sold(tx, session_id) == 2
    assert len(await tx(order_service.list_orders)) == 1


@pytest.mark.asyncio
async def test_concurrent_checkouts_with_same_code(tx, session_id, buyer, exchange_codes):
    results = await asyncio.gather(
        *[_checkout(session_id, {"GENERAL": 1}, buyer, exchange_codes=["VOL2-BBBBB"]) for _ in range(4)],
        return_exceptions=True,
    )
    assert sum(isinstance(r, Order) for r in results) == 1
    assert sum(isinstance(r, CodeAlreadyUsedError) for r in results) == 3
    assert await _sold(tx, session_id) == 1


@pytest.mark.asyncio
async def test_checkout_validation(tx, session_id, buyer, exchange_codes):
    with pytest.raises(ValidationError):
        await tx(order_service.create_order, session_id, {"GENERAL": 0}, buyer)
    with pytest.raises(ValidationError):
        await tx(order_service.create_order, session_id, {"GENERAL": 11}, buyer)
    with pytest.raises(ValidationError):
        await tx(order_service.create_order, session_id, {"VIP2": 1}, buyer)
    with pytest.raises(ValidationError):
        await tx(
            order_service.create_order,
            session_id,
            {"GENERAL": 1},
            order_service.CustomerInfo(name="", email="hanako@tickets.co.jp"),
        )
    with pytest.raises(ValidationError):
        await tx(
            order_service.create_order,
            session_id,
            {"GENERAL": 1},
            order_service.CustomerInfo(name="Hanako", email="not-an-email"),
        )
    with pytest.raises(ValidationError):
        await tx(
            order_service.create_order,
            session_id,
            {"GENERAL": 2},
            buyer,
            exchange_codes=["VOL2-AAAAA", "vol2-aaaaa"],
        )
    with pytest.raises(ValidationError):
        await tx(
            order_service.create_order,
            session_id,
            {"GENERAL": 1},
            buyer,
            exchange_codes=["VOL2-AAAAA", "VOL2-BBBBB"],
        )
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_checkout_unknown_code(tx, session_id, buyer):
    with pytest.raises(CodeNotFoundError):
        await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer, exchange_codes=["NOPE-00000"])
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_checkout_unknown_session(tx, buyer):
    with pytest.raises(NotFoundError):
        await tx(order_service.create_order, 12345, {"GENERAL": 1}, buyer)


@pytest.mark.asyncio
async def test_checkout_requires_open_sale(tx, make_session, buyer):
    not_on_sale = await make_session(sale_status=SaleStatus.NOT_ON_SALE)
    with pytest.raises(InvalidStateError):
        await tx(order_service.create_order, not_on_sale, {"GENERAL": 1}, buyer)

    now = datetime.now(timezone.utc)
    not_started = await make_session(sale_start_at=now + timedelta(days=1))
    with pytest.raises(InvalidStateError):
        await tx(order_service.create_order, not_started, {"GENERAL": 1}, buyer)

    ended = await make_session(sale_start_at=now - timedelta(days=2), sale_end_at=now - timedelta(days=1))
    with pytest.raises(InvalidStateError):
        await tx(order_service.create_order, ended, {"GENERAL": 1}, buyer)

    open_window = await make_session(sale_start_at=now - timedelta(days=1), sale_end_at=now + timedelta(days=1))
    order = await tx(order_service.create_order, open_window, {"GENERAL": 1}, buyer)
    assert order.status == OrderStatus.PENDING.value


@pytest.mark.asyncio
async def test_confirm_payment_issues_tickets(tx, session_id, buyer, exchange_codes):
    order = await tx(
        order_service.create_order, session_id, {"GENERAL": 2, "RESERVED": 1}, buyer, exchange_codes=["VOL2-CCCCC"]
    )
    paid = await tx(order_service.confirm_payment, order.id)

    assert paid.status == OrderStatus.PAID.value
    assert paid.paid_at is not None
    assert len(paid.tickets) == 3
    assert sorted(t.ticket_type for t in paid.tickets) == ["GENERAL", "GENERAL", "RESERVED"]
    assert sum(t.is_exchanged for t in paid.tickets) == 1
    assert all(not t.is_used for t in paid.tickets)
    assert len({t.code for t in paid.tickets}) == 3
    # Seats were already counted at checkout.
    assert await _sold(tx, session_id) == 2


@pytest.mark.asyncio
async def test_confirm_payment_is_idempotent(tx, paid_order):
    again = await tx(order_service.confirm_payment, paid_order.id)
    assert again.status == OrderStatus.PAID.value
    assert [t.code for t in again.tickets] == [t.code for t in paid_order.tickets]
    assert (await tx(ticket_service.ticket_stats))["total"] == 3


@pytest.mark.asyncio
async def test_concurrent_confirmations_issue_one_ticket_set(tx, pending_order):
    async def confirm():
        async with session_scope() as db:
            return await order_service.confirm_payment(db, pending_order.id)

    results = await asyncio.gather(confirm(), confirm(), confirm())
    assert all(r.status == OrderStatus.PAID.value for r in results)
    assert (await tx(ticket_service.ticket_stats))["total"] == 1


@pytest.mark.asyncio
async def test_only_the_winning_confirmation_reports_a_change(tx, pending_order):
    async def settle():
        async with session_scope() as db:
            return await order_service.settle_payment(db, pending_order.id)

    results = await asyncio.gather(settle(), settle(), settle())
    assert all(r.order.status == OrderStatus.PAID.value for r in results)
    assert sum(r.changed for r in results) == 1


@pytest.mark.asyncio
async def test_settle_payment_outcome_reports_change_once(tx, session_id, buyer):
    paid = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    failed = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    for order in (paid, failed):
        await tx(order_service.attach_payment_reference, order.id, f"ref-{order.id}")

    first = await tx(order_service.settle_payment_outcome, f"ref-{paid.id}", "paid")
    repeat = await tx(order_service.settle_payment_outcome, f"ref-{paid.id}", "paid")
    assert (first.changed, repeat.changed) == (True, False)

    first = await tx(order_service.settle_payment_outcome, f"ref-{failed.id}", "failed")
    repeat = await tx(order_service.settle_payment_outcome, f"ref-{failed.id}", "failed")
    assert (first.changed, repeat.changed) == (True, False)
    assert repeat.order.status == OrderStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_expire_stale_orders(tx, session_id, buyer):
    first = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    second = await tx(order_service.create_order, session_id, {"RESERVED": 2}, buyer)
    paid = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    await tx(order_service.confirm_payment, paid.id)

    assert await order_service.expire_stale_orders() == []

    expired = await order_service.expire_stale_orders(now=utcnow() + timedelta(minutes=31))
    assert expired == [first.id, second.id]
    assert await _sold(tx, session_id) == 1
    assert await _sold(tx, session_id, Tier.RESERVED) == 0


@pytest.mark.asyncio
async def test_expire_stale_orders_keeps_progress_past_a_failing_order(tx, make_session, buyer):
    """A ledger error on one order leaves the other expiries committed."""
    broken_session = await make_session()
    healthy_session = await make_session()
    broken = await tx(order_service.create_order, broken_session, {"GENERAL": 1}, buyer)
    healthy = await tx(order_service.create_order, healthy_session, {"GENERAL": 1}, buyer)

    async def lose_counter(db):
        await db.execute(
            update(PerformanceSession).where(PerformanceSession.id == broken_session).values(general_sold=0)
        )

    await tx(lose_counter)

    expired = await order_service.expire_stale_orders(now=utcnow() + timedelta(minutes=31))
    assert expired == [healthy.id]

    assert (await tx(order_service.get_order, broken.id)).status == OrderStatus.PENDING.value
    assert (await tx(order_service.get_order, healthy.id)).status == OrderStatus.EXPIRED.value
    assert await _sold(tx, healthy_session) == 0


@pytest.mark.asyncio
async def test_cancel_releases_seats(tx, session_id, pending_order):
    assert await _sold(tx, session_id) == 1
    cancelled = await tx(order_service.cancel_order, pending_order.id)
    assert cancelled.status == OrderStatus.CANCELLED.value
    assert cancelled.cancelled_at is not None
    assert await _sold(tx, session_id) == 0

    again = await tx(order_service.cancel_order, pending_order.id)
    assert again.status == OrderStatus.CANCELLED.value
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_cancel_paid_order_is_noop(tx, session_id, paid_order):
    result = await tx(order_service.cancel_order, paid_order.id)
    assert result.status == OrderStatus.PAID.value
    assert await _sold(tx, session_id) == 2


@pytest.mark.asyncio
async def test_confirm_cancelled_order_fails(tx, pending_order):
    await tx(order_service.cancel_order, pending_order.id)
    with pytest.raises(InvalidStateError):
        await tx(order_service.confirm_payment, pending_order.id)


@pytest.mark.asyncio
async def test_expired_order_scenario(tx, session_id, pending_order):
    """A lapsed PENDING order expires, releases its seat and can no longer be paid."""
    later = utcnow() + timedelta(minutes=31)
    expired = await tx(order_service.expire_order, pending_order.id, now=later)

    assert expired.status == OrderStatus.EXPIRED.value
    assert expired.expired_at is not None
    assert await _sold(tx, session_id) == 0
    with pytest.raises(InvalidStateError):
        await tx(order_service.confirm_payment, pending_order.id)

    again = await tx(order_service.expire_order, pending_order.id, now=later)
    assert again.status == OrderStatus.EXPIRED.value
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_expire_inside_hold_is_refused(tx, session_id, pending_order):
    with pytest.raises(InvalidStateError):
        await tx(order_service.expire_order, pending_order.id)
    assert await _sold(tx, session_id) == 1


@pytest.mark.asyncio
async def test_concurrent_cancel_and_expire_release_once(tx, session_id, pending_order):
    later = utcnow() + timedelta(minutes=31)

    async def cancel():
        async with session_scope() as db:
            return await order_service.cancel_order(db, pending_order.id)

    async def expire():
        async with session_scope() as db:
            return await order_service.expire_order(db, pending_order.id, now=later)

    results = await asyncio.gather(cancel(), expire(), cancel())
    assert len({r.status for r in results}) == 1
    assert await _sold(tx, session_id) == 0


@pytest.mark.asyncio
async def test_payment_outcomes(tx, session_id, buyer):
    paid = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    failed = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    lapsed = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    for order in (paid, failed, lapsed):
        await tx(order_service.attach_payment_reference, order.id, f"ref-{order.id}")

    result = await tx(order_service.apply_payment_outcome, f"ref-{paid.id}", "paid")
    assert result.status == OrderStatus.PAID.value
    result = await tx(order_service.apply_payment_outcome, f"ref-{paid.id}", "paid")
    assert len(result.tickets) == 1

    result = await tx(order_service.apply_payment_outcome, f"ref-{failed.id}", "failed")
    assert result.status == OrderStatus.CANCELLED.value

    # Provider-reported expiry does not wait for the hold.
    result = await tx(order_service.apply_payment_outcome, f"ref-{lapsed.id}", "expired")
    assert result.status == OrderStatus.EXPIRED.value

    assert await _sold(tx, session_id) == 1

    with pytest.raises(NotFoundError):
        await tx(order_service.apply_payment_outcome, "ref-unknown", "paid")
    with pytest.raises(ValidationError):
        await tx(order_service.apply_payment_outcome, f"ref-{paid.id}", "refunded")


@pytest.mark.asyncio
async def test_codes_stay_bound_after_cancel(tx, session_id, buyer, exchange_codes):
    order = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer, exchange_codes=["VOL2-AAAAA"])
    await tx(order_service.cancel_order, order.id)

    check = (await tx(exchange_code_service.validate_batch, ["VOL2-AAAAA"]))[0]
    assert check.already_used is True


@pytest.mark.asyncio
async def test_order_stats(tx, session_id, buyer, exchange_codes):
    order = await tx(order_service.create_order, session_id, {"GENERAL": 2}, buyer, exchange_codes=["VOL2-AAAAA"])
    await tx(order_service.confirm_payment, order.id)
    await tx(order_service.create_order, session_id, {"RESERVED": 1}, buyer)

    stats = await tx(order_service.order_stats)
    assert stats == {
        "total_orders": 1,
        "total_revenue": 7500,
        "total_tickets": 2,
        "discounted_tickets": 1,
    }


@pytest.mark.asyncio
async def test_list_orders_filters(tx, session_id, make_session, buyer):
    other_session = await make_session()
    a = await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)
    b = await tx(order_service.create_order, other_session, {"GENERAL": 1}, buyer)
    await tx(order_service.cancel_order, b.id)

    pending = await tx(order_service.list_orders, status=OrderStatus.PENDING)
    assert [o.id for o in pending] == [a.id]
    by_session = await tx(order_service.list_orders, session_id=other_session)
    assert [o.id for o in by_session] == [b.id]
