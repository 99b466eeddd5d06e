"""
Payment gateway interface.
The core only starts a payment and later receives its outcome; the
provider's wire protocol stays behind this boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PaymentSession:
    reference: str
    redirect_url: Optional[str] = None


class PaymentGateway(ABC):
    """
    Interface for payment providers.

    Implementations:
    - ManualPaymentGateway: no external provider; outcomes are posted to
      /payments/notifications by staff tooling or a test harness
    """

    name: str = "abstract"

    @abstractmethod
    async def start_payment(self, order_id: int, amount: int, customer_email: str, description: str) -> PaymentSession:
        """
        Open a payment for a PENDING order.

        Args:
            order_id: Order the payment settles
            amount: Amount to charge in minor currency units
            customer_email: Where the provider sends its receipt
            description: Line shown to the buyer

        Returns:
            PaymentSession whose reference the provider will quote back
        """
        pass
