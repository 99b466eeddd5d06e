"""
Checkout and order lifecycle endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.metrics import checkout_latency
from boxoffice.db.session import get_db
from boxoffice.domain.states import OrderStatus
from boxoffice.domain.tiers import Tier
from boxoffice.jobs import run_expiry_sweep
from boxoffice.schemas.order import (
    CheckoutRequest,
    CheckoutResponse,
    ExpireSweepResponse,
    OrderResponse,
    OrderStatsResponse,
)
from boxoffice.services import order_service
from boxoffice.services.cache_service import invalidate_session_cache
from boxoffice.services.gateway_factory import get_notifier, get_payment_gateway
from boxoffice.services.interfaces import PaymentGateway, TicketNotifier, deliver_tickets
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("/", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
async def checkout(
    checkout_data: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: TicketNotifier = Depends(get_notifier),
):
    """
    Reserve seats, redeem exchange codes and open a payment.

    The whole checkout is one transaction: a sold-out tier or a bad code
    leaves no order, no held seats and no consumed codes behind.
    """
    with checkout_latency.time():
        order = await order_service.create_order(
            db,
            session_id=checkout_data.session_id,
            quantities={
                Tier.GENERAL: checkout_data.general_quantity,
                Tier.RESERVED: checkout_data.reserved_quantity,
                Tier.VIP1: checkout_data.vip1_quantity,
                Tier.VIP2: checkout_data.vip2_quantity,
            },
            customer=order_service.CustomerInfo(
                name=checkout_data.customer_name,
                email=checkout_data.customer_email,
                phone=checkout_data.customer_phone,
            ),
            exchange_codes=checkout_data.exchange_codes,
            performance_label=checkout_data.performance_label,
        )

        paid = None
        if order.total_amount == 0:
            paid = await order_service.settle_payment(db, order.id)
            order = paid.order
            payment_reference, payment_url = None, None
        else:
            payment = await gateway.start_payment(
                order_id=order.id,
                amount=order.total_amount,
                customer_email=order.customer_email,
                description=order.performance_label or f"Order {order.id}",
            )
            order = await order_service.attach_payment_reference(db, order.id, payment.reference)
            payment_reference, payment_url = payment.reference, payment.redirect_url

    await db.commit()
    if paid is not None and paid.changed:
        await deliver_tickets(notifier, order)
    await invalidate_session_cache()
    return CheckoutResponse(
        order=OrderResponse.model_validate(order),
        payment_reference=payment_reference,
        payment_url=payment_url,
        payment_required=order.total_amount > 0,
    )


@router.get("/", response_model=list[OrderResponse])
async def list_orders_endpoint(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    session_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.list_orders(db, status=order_status, session_id=session_id)


@router.get("/stats", response_model=OrderStatsResponse)
async def order_stats_endpoint(db: AsyncSession = Depends(get_db)):
    return await order_service.order_stats(db)


@router.post("/expire-stale", response_model=ExpireSweepResponse)
async def expire_stale_endpoint():
    """Expire every PENDING order whose hold has lapsed, each in its own transaction."""
    return ExpireSweepResponse(expired_order_ids=await run_expiry_sweep())


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order_endpoint(order_id: int, db: AsyncSession = Depends(get_db)):
    return await order_service.get_order(db, order_id)


@router.post("/{order_id}/confirm-payment", response_model=OrderResponse)
async def confirm_payment_endpoint(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    notifier: TicketNotifier = Depends(get_notifier),
):
    """Mark the order PAID and issue its tickets. Safe to repeat; only the first call notifies."""
    paid = await order_service.settle_payment(db, order_id)
    await db.commit()
    if paid.changed:
        await deliver_tickets(notifier, paid.order)
    return paid.order


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order_endpoint(order_id: int, db: AsyncSession = Depends(get_db)):
    """Cancel a PENDING order and release its seats. Settled orders are returned unchanged."""
    order = await order_service.cancel_order(db, order_id)
    await invalidate_session_cache()
    return order


@router.post("/{order_id}/expire", response_model=OrderResponse)
async def expire_order_endpoint(order_id: int, db: AsyncSession = Depends(get_db)):
    """Expire a PENDING order whose hold has lapsed and release its seats."""
    order = await order_service.expire_order(db, order_id)
    await invalidate_session_cache()
    return order
