"""
Collaborator interfaces for dependency inversion.
Allows swapping payment and notification providers without touching the core.
"""

from .payment import PaymentGateway, PaymentSession
from .manual_payment import ManualPaymentGateway
from .notifier import LoggingNotifier, TicketNotifier, deliver_tickets

__all__ = ['PaymentGateway', 'PaymentSession', 'ManualPaymentGateway', 'TicketNotifier', 'LoggingNotifier',
           'deliver_tickets']
