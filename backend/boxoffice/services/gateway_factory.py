"""
Collaborator factory.
Configures which payment gateway and ticket notifier the API uses.
"""

from typing import Optional

from boxoffice.core.config import get_settings
from boxoffice.services.interfaces import LoggingNotifier, ManualPaymentGateway, PaymentGateway, TicketNotifier


def build_payment_gateway(name: Optional[str] = None) -> PaymentGateway:
    """
    Get the configured payment gateway.

    Selected by PAYMENT_GATEWAY. Only "manual" ships with the core; a
    provider integration registers itself here.
    """
    name = name or get_settings().PAYMENT_GATEWAY
    if name == "manual":
        return ManualPaymentGateway()
    raise ValueError(f"Unknown payment gateway: {name}")


# Singleton instances
_gateway: Optional[PaymentGateway] = None
_notifier: Optional[TicketNotifier] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway


def get_notifier() -> TicketNotifier:
    global _notifier
    if _notifier is None:
        _notifier = LoggingNotifier()
    return _notifier
