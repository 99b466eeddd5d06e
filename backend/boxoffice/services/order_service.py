"""
Order lifecycle: checkout, payment confirmation, cancellation and expiry.

    PENDING --confirm_payment--> PAID
    PENDING --cancel_order-----> CANCELLED   (seats released)
    PENDING --expire_order-----> EXPIRED     (seats released)

Every transition is a guarded UPDATE pinned to status = 'PENDING'. The
caller that gets rowcount 1 owns the transition and performs its side
effects (ticket issue, seat release); a caller that gets rowcount 0 lost a
race or is a duplicate delivery and re-reads the settled order instead.

Each public function except expire_stale_orders() runs inside the
caller's transaction. The request scope commits on success and rolls back
on any exception, so checkout's reserve + insert + code redemption and
confirmation's status flip + code binding + ticket issue are never seen
half-done. Buyer notification is not a side effect of this module: the
route that received Transition.changed notifies after its commit.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    BoxOfficeError,
    CodeAlreadyUsedError,
    CodeNotFoundError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_order_transition
from boxoffice.db.base import as_utc, utcnow
from boxoffice.db.session import session_scope
from boxoffice.domain.states import OrderStatus, SaleStatus, ensure_order_transition
from boxoffice.domain.tiers import TIER_ORDER, normalize_quantities, total_quantity
from boxoffice.models.order import Order
from boxoffice.services import exchange_code_service, inventory_service, ticket_service
from boxoffice.services.pricing_service import DiscountPolicy, calculate_price

logger = get_logger(__name__)
settings = get_settings()

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    """An order after a lifecycle call. `changed` is true only for the caller whose UPDATE moved it."""

    order: Order
    changed: bool


class PaymentOutcome:
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"

    ALL = (PAID, FAILED, EXPIRED)


def _validate_customer(customer: CustomerInfo) -> CustomerInfo:
    name = (customer.name or "").strip()
    email = (customer.email or "").strip()
    if not name:
        raise ValidationError("Customer name is required")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email address is required")
    phone = customer.phone.strip() if customer.phone else None
    return CustomerInfo(name=name, email=email, phone=phone or None)


def _ensure_sale_open(session, now: datetime) -> None:
    status = SaleStatus(session.sale_status)
    if status not in (SaleStatus.ON_SALE, SaleStatus.SOLD_OUT):
        raise InvalidStateError(f"Session {session.id} is not on sale", current=status.value)
    start = as_utc(session.sale_start_at)
    end = as_utc(session.sale_end_at)
    if start is not None and now < start:
        raise InvalidStateError(f"Sales for session {session.id} have not started", current=status.value)
    if end is not None and now > end:
        raise InvalidStateError(f"Sales for session {session.id} have ended", current=status.value)


async def create_order(
    db: AsyncSession,
    session_id: int,
    quantities: Mapping,
    customer: CustomerInfo,
    exchange_codes: Iterable[str] = (),
    performance_label: Optional[str] = None,
    now: Optional[datetime] = None,
    policy: Optional[DiscountPolicy] = None,
) -> Order:
    """
    Price, reserve and persist a PENDING order.

    On SoldOutError nothing is written: the ledger UPDATE matched no row
    and no order exists yet.
    """
    now = now or utcnow()
    policy = policy or DiscountPolicy.from_settings()

    requested = normalize_quantities(quantities)
    count = total_quantity(requested)
    if count <= 0:
        raise ValidationError("Select at least one ticket")
    if count > settings.MAX_TICKETS_PER_ORDER:
        raise ValidationError(f"At most {settings.MAX_TICKETS_PER_ORDER} tickets can be bought at once")
    customer = _validate_customer(customer)

    codes = [exchange_code_service.normalize_code(code) for code in exchange_codes]
    codes = [code for code in codes if code]
    if len(set(codes)) != len(codes):
        raise ValidationError("The same exchange code was entered twice")

    session = await inventory_service.get_session_row(db, session_id)
    _ensure_sale_open(session, now)

    performance = session.performance
    unit_prices = {tier: performance.price_for(tier) for tier in TIER_ORDER}
    for tier in requested:
        if session.capacity(tier) <= 0 or unit_prices[tier] is None:
            raise ValidationError(f"Tier {tier.value} is not offered for this session")

    breakdown = calculate_price(unit_prices, requested, policy, exchange_count=len(codes))

    # Fail on bad codes before touching inventory; redeem() below is the
    # authoritative check.
    for check in await exchange_code_service.validate_batch(db, codes):
        if not check.valid:
            raise CodeNotFoundError(check.code)
        if check.already_used:
            raise CodeAlreadyUsedError(check.code)

    await inventory_service.reserve(db, session_id, requested)

    order = Order(
        session_id=session_id,
        performance_date=as_utc(session.starts_at).date(),
        performance_label=performance_label or f"{performance.title} #{session.show_number}",
        exchanged_quantity=len(codes),
        discounted_general_count=breakdown.discounted_general_count,
        discount_amount=breakdown.discount_amount,
        subtotal_amount=breakdown.subtotal,
        total_amount=breakdown.total,
        customer_name=customer.name,
        customer_email=customer.email,
        customer_phone=customer.phone,
        status=OrderStatus.PENDING.value,
    )
    for tier in TIER_ORDER:
        setattr(order, tier.quantity_column, requested.get(tier, 0))
        setattr(order, tier.price_column, unit_prices[tier])
    db.add(order)
    await db.flush()

    for code in codes:
        await exchange_code_service.redeem(db, code, order.id)

    record_order_transition(OrderStatus.PENDING.value)
    logger.info(
        "order_created",
        order_id=order.id,
        session_id=session_id,
        quantities={tier.value: qty for tier, qty in requested.items()},
        exchange_codes=len(codes),
        total=breakdown.total,
    )
    return await get_order(db, order.id)


async def get_order(db: AsyncSession, order_id: int) -> Order:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.unique().scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


async def get_order_by_payment_reference(db: AsyncSession, reference: str) -> Order:
    order_id = await db.scalar(select(Order.id).where(Order.payment_reference == reference))
    if order_id is None:
        raise NotFoundError("Payment", reference)
    return await get_order(db, order_id)


async def attach_payment_reference(db: AsyncSession, order_id: int, reference: str) -> Order:
    await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(payment_reference=reference)
        .execution_options(synchronize_session=False)
    )
    return await get_order(db, order_id)


async def settle_payment(db: AsyncSession, order_id: int, now: Optional[datetime] = None) -> Transition:
    """
    PENDING -> PAID, issuing one ticket per unit.

    Idempotent: a repeat delivery for a PAID order returns it untouched
    with changed=False. Of two concurrent confirmations only the one whose
    UPDATE matched sees changed=True, so only it should notify the buyer.
    """
    now = now or utcnow()
    order = await get_order(db, order_id)
    if order.status == OrderStatus.PAID.value:
        logger.info("payment_confirmation_repeat", order_id=order_id)
        return Transition(order, changed=False)
    ensure_order_transition(order.status, OrderStatus.PAID)

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(status=OrderStatus.PAID.value, paid_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        order = await get_order(db, order_id)
        if order.status == OrderStatus.PAID.value:
            logger.info("payment_confirmation_repeat", order_id=order_id)
            return Transition(order, changed=False)
        ensure_order_transition(order.status, OrderStatus.PAID)

    await exchange_code_service.bind_to_order(db, order_id)
    await ticket_service.issue_tickets(db, order)

    record_order_transition(OrderStatus.PAID.value)
    logger.info("order_paid", order_id=order_id, total=order.total_amount, tickets=order.ticket_count)
    return Transition(await get_order(db, order_id), changed=True)


async def confirm_payment(db: AsyncSession, order_id: int, now: Optional[datetime] = None) -> Order:
    """PENDING -> PAID. See settle_payment()."""
    return (await settle_payment(db, order_id, now)).order


async def cancel_order(db: AsyncSession, order_id: int, now: Optional[datetime] = None) -> Order:
    """PENDING -> CANCELLED and release the held seats. No-op on a settled order."""
    return (await _close_pending(db, order_id, OrderStatus.CANCELLED, now or utcnow())).order


async def expire_order(
    db: AsyncSession,
    order_id: int,
    now: Optional[datetime] = None,
    enforce_hold: bool = True,
) -> Order:
    """
    PENDING -> EXPIRED and release the held seats. No-op on a settled order.

    With enforce_hold, an order still inside its hold window is refused;
    provider-reported expiry passes enforce_hold=False.
    """
    now = now or utcnow()
    if enforce_hold:
        order = await get_order(db, order_id)
        if order.status == OrderStatus.PENDING.value and not hold_lapsed(order, now):
            raise InvalidStateError(
                f"Order {order_id} is still inside its {settings.ORDER_HOLD_MINUTES} minute hold",
                current=order.status,
            )
    return (await _close_pending(db, order_id, OrderStatus.EXPIRED, now)).order


def hold_lapsed(order: Order, now: datetime) -> bool:
    return as_utc(order.created_at) + timedelta(minutes=settings.ORDER_HOLD_MINUTES) <= now


async def _close_pending(db: AsyncSession, order_id: int, target: OrderStatus, now: datetime) -> Transition:
    order = await get_order(db, order_id)
    if order.status != OrderStatus.PENDING.value:
        logger.info("order_close_noop", order_id=order_id, status=order.status, requested=target.value)
        return Transition(order, changed=False)
    ensure_order_transition(order.status, target)

    stamp = {"cancelled_at": now} if target is OrderStatus.CANCELLED else {"expired_at": now}
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
        .values(status=target.value, **stamp)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        order = await get_order(db, order_id)
        logger.info("order_close_noop", order_id=order_id, status=order.status, requested=target.value)
        return Transition(order, changed=False)

    await inventory_service.release(db, order.session_id, order.quantities)

    record_order_transition(target.value)
    logger.info("order_closed", order_id=order_id, status=target.value)
    return Transition(await get_order(db, order_id), changed=True)


async def settle_payment_outcome(db: AsyncSession, reference: str, outcome: str) -> Transition:
    """Route a provider notification to the matching transition."""
    if outcome not in PaymentOutcome.ALL:
        raise ValidationError(f"Unknown payment outcome: {outcome}")
    order = await get_order_by_payment_reference(db, reference)
    if outcome == PaymentOutcome.PAID:
        return await settle_payment(db, order.id)
    if outcome == PaymentOutcome.FAILED:
        return await _close_pending(db, order.id, OrderStatus.CANCELLED, utcnow())
    return await _close_pending(db, order.id, OrderStatus.EXPIRED, utcnow())


async def apply_payment_outcome(db: AsyncSession, reference: str, outcome: str) -> Order:
    return (await settle_payment_outcome(db, reference, outcome)).order


async def find_expirable_order_ids(db: AsyncSession, now: Optional[datetime] = None) -> list[int]:
    now = now or utcnow()
    cutoff = now - timedelta(minutes=settings.ORDER_HOLD_MINUTES)
    result = await db.execute(
        select(Order.id)
        .where(Order.status == OrderStatus.PENDING.value, Order.created_at <= cutoff)
        .order_by(Order.id)
    )
    return list(result.scalars().all())


async def expire_stale_orders(now: Optional[datetime] = None) -> list[int]:
    """
    Expire every PENDING order whose hold has lapsed. Returns the expired ids.

    Opens its own transactions: candidates are read once, then each order
    is expired and committed on its own, so a failure on one order does not
    roll back the orders released before it.
    """
    now = now or utcnow()
    async with session_scope() as db:
        candidates = await find_expirable_order_ids(db, now)

    expired = []
    for order_id in candidates:
        try:
            async with session_scope() as db:
                order = await expire_order(db, order_id, now=now)
        except BoxOfficeError as e:
            logger.error("order_expiry_failed", order_id=order_id, code=e.code.value, error=e.message)
            continue
        if order.status == OrderStatus.EXPIRED.value:
            expired.append(order_id)

    if expired:
        logger.info("stale_orders_expired", count=len(expired))
    return expired


async def list_orders(
    db: AsyncSession,
    status: Optional[OrderStatus] = None,
    session_id: Optional[int] = None,
) -> list[Order]:
    query = select(Order)
    if status is not None:
        query = query.where(Order.status == OrderStatus(status).value)
    if session_id is not None:
        query = query.where(Order.session_id == session_id)
    result = await db.execute(query.order_by(Order.created_at.desc(), Order.id.desc()))
    return list(result.unique().scalars().all())


async def order_stats(db: AsyncSession) -> dict:
    """Totals over PAID orders."""
    row = (
        await db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_amount), 0),
                func.coalesce(
                    func.sum(
                        Order.general_quantity + Order.reserved_quantity + Order.vip1_quantity + Order.vip2_quantity
                    ),
                    0,
                ),
                func.coalesce(func.sum(Order.discounted_general_count), 0),
            ).where(Order.status == OrderStatus.PAID.value)
        )
    ).one()
    return {
        "total_orders": row[0],
        "total_revenue": row[1],
        "total_tickets": row[2],
        "discounted_tickets": row[3],
    }
