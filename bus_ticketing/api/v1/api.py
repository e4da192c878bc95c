"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from bus_ticketing.api.v1.endpoints import (
    payment,
    tickets,
    health
)

api_router = APIRouter()

api_router.include_router(payment.router, prefix="/payments", tags=["payments"])
api_router.include_router(tickets.router, prefix="/tickets", tags=["tickets"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
