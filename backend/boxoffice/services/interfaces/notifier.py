"""
Ticket notification interface.
Outbound email lives outside the core; the default implementation logs.
"""

from abc import ABC, abstractmethod

from boxoffice.core.logging import get_logger

logger = get_logger(__name__)


class TicketNotifier(ABC):
    @abstractmethod
    async def send_tickets(self, order) -> None:
        """Deliver the issued ticket codes of a PAID order to its buyer."""
        pass


class LoggingNotifier(TicketNotifier):
    """Records what would have been sent."""

    async def send_tickets(self, order) -> None:
        logger.info(
            "tickets_notification",
            order_id=order.id,
            email=order.customer_email,
            ticket_codes=[ticket.code for ticket in order.tickets],
        )


async def deliver_tickets(notifier: TicketNotifier, order) -> None:
    """
    Send tickets for an order whose PAID state is already committed.

    A delivery failure does not undo the payment; it is logged for a resend.
    """
    try:
        await notifier.send_tickets(order)
    except Exception as e:
        logger.error("tickets_notification_failed", order_id=order.id, error=str(e))
