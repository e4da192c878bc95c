"""
Pydantic schemas for request and response validation
"""

from bus_ticketing.schemas.payment import (
    GatewayNotification,
    GatewayStatus,
    NotificationAck,
    PaymentSessionCreate,
    PaymentSessionResponse,
    PaymentStatusQuery,
    PaymentStatusResult
)
from bus_ticketing.schemas.ticket import (
    TicketVerifyRequest,
    TicketVerifyResponse,
    ValidationHistoryResponse
)
from bus_ticketing.schemas.response import (
    ErrorResponse,
    HealthResponse
)

__all__ = [
    "GatewayNotification",
    "GatewayStatus",
    "NotificationAck",
    "PaymentSessionCreate",
    "PaymentSessionResponse",
    "PaymentStatusQuery",
    "PaymentStatusResult",
    "TicketVerifyRequest",
    "TicketVerifyResponse",
    "ValidationHistoryResponse",
    "ErrorResponse",
    "HealthResponse"
]
