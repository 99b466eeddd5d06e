"""
Payment provider notifications.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.domain.states import OrderStatus
from boxoffice.schemas.order import OrderResponse, PaymentNotification
from boxoffice.services import order_service
from boxoffice.services.cache_service import invalidate_session_cache
from boxoffice.services.gateway_factory import get_notifier
from boxoffice.services.interfaces import TicketNotifier, deliver_tickets
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/notifications", response_model=OrderResponse)
async def payment_notification(
    notification: PaymentNotification,
    db: AsyncSession = Depends(get_db),
    notifier: TicketNotifier = Depends(get_notifier),
):
    """
    Apply a provider-reported outcome to the order holding this reference.

    Providers redeliver; a repeated notification returns the settled order.
    """
    logger.info(
        "payment_notification_received",
        reference=notification.reference,
        outcome=notification.outcome,
    )
    result = await order_service.settle_payment_outcome(db, notification.reference, notification.outcome)
    await db.commit()

    if result.changed and result.order.status == OrderStatus.PAID.value:
        await deliver_tickets(notifier, result.order)
    elif result.changed:
        await invalidate_session_cache()
    return result.order
