"""
Custom application exceptions
"""

from typing import Optional, Dict, Any


class BusTicketingException(Exception):
    """Base exception for the bus ticketing application"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidNotificationError(BusTicketingException):
    """Gateway notification is structurally invalid"""

    def __init__(self, message: str = "Incomplete notification payload", details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="INVALID_NOTIFICATION",
            status_code=400,
            details=details
        )


class SignatureMismatchError(BusTicketingException):
    """Gateway notification signature does not match"""

    def __init__(self, transaction_id: str):
        super().__init__(
            message="Invalid notification signature",
            code="INVALID_SIGNATURE",
            status_code=401,
            details={"transaction_id": transaction_id}
        )


class NotFoundError(BusTicketingException):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id {identifier} not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404
        )


class ValidationError(BusTicketingException):
    """Validation errors"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=details
        )


class TicketNotIssuableError(BusTicketingException):
    """E-ticket requested for a booking that is not confirmed"""

    def __init__(self, reference_code: str, status: Any):
        super().__init__(
            message="Ticket is only available for confirmed bookings",
            code="TICKET_NOT_ISSUABLE",
            status_code=400,
            details={"reference_code": reference_code, "status": str(status)}
        )


class ThrottledError(BusTicketingException):
    """Identical request repeated too quickly"""

    def __init__(self, window: int):
        super().__init__(
            message="Too many similar requests in a short time. Please wait a moment.",
            code="REQUEST_THROTTLED",
            status_code=429,
            details={"window_seconds": window}
        )


class ConfigurationError(BusTicketingException):
    """Server is missing required configuration"""

    def __init__(self, setting: str):
        super().__init__(
            message="Server configuration error. Contact the administrator.",
            code="CONFIGURATION_ERROR",
            status_code=500,
            details={"setting": setting}
        )


class PaymentGatewayError(BusTicketingException):
    """Payment gateway call failed"""

    def __init__(self, message: str = "Payment gateway is unavailable", gateway_status: Optional[int] = None):
        details = {"service": "placetopay"}
        if gateway_status is not None:
            details["gateway_status"] = gateway_status
        super().__init__(
            message=message,
            code="PAYMENT_GATEWAY_ERROR",
            status_code=502,
            details=details
        )
