"""
Manual payment gateway - no external provider.
"""

import secrets

from boxoffice.core.config import get_settings
from boxoffice.services.interfaces.payment import PaymentGateway, PaymentSession


class ManualPaymentGateway(PaymentGateway):
    """
    Issues an opaque reference and a redirect to the box office's own pay page.

    Use when:
    - Running locally or in tests
    - Payment is taken at a counter and confirmed by staff
    """

    name = "manual"

    async def start_payment(self, order_id: int, amount: int, customer_email: str, description: str) -> PaymentSession:
        reference = f"manual_{order_id}_{secrets.token_hex(8)}"
        base_url = get_settings().PAYMENT_REDIRECT_BASE_URL.rstrip("/")
        return PaymentSession(reference=reference, redirect_url=f"{base_url}/{reference}")
