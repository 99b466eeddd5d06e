from boxoffice.models.performance import Performance, PerformanceSession
from boxoffice.models.order import Order
from boxoffice.models.ticket import Ticket
from boxoffice.models.exchange_code import ExchangeCode

__all__ = ["Performance", "PerformanceSession", "Order", "Ticket", "ExchangeCode"]
