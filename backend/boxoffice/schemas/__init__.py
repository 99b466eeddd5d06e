from boxoffice.schemas.performance import (
    PerformanceCreate, PerformanceResponse, SessionCreate, SessionUpdate, SessionResponse,
)
from boxoffice.schemas.ticket import TicketResponse, TicketCodeRequest, CheckInResponse, VerifyResponse
from boxoffice.schemas.order import CheckoutRequest, CheckoutResponse, OrderResponse, PaymentNotification
from boxoffice.schemas.exchange_code import (
    ValidateCodesRequest, ValidateCodesResponse, ExchangeCodeCreate, ExchangeCodeResponse, BatchGenerateRequest,
)

__all__ = [
    "PerformanceCreate", "PerformanceResponse", "SessionCreate", "SessionUpdate", "SessionResponse",
    "TicketResponse", "TicketCodeRequest", "CheckInResponse", "VerifyResponse",
    "CheckoutRequest", "CheckoutResponse", "OrderResponse", "PaymentNotification",
    "ValidateCodesRequest", "ValidateCodesResponse", "ExchangeCodeCreate", "ExchangeCodeResponse",
    "BatchGenerateRequest",
]
