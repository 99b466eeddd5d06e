"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from boxoffice.api.routes import exchange_codes, orders, payments, performances, sessions, tickets

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(performances.router)
api_router.include_router(sessions.router)
api_router.include_router(orders.router)
api_router.include_router(payments.router)
api_router.include_router(exchange_codes.router)
api_router.include_router(tickets.router)
