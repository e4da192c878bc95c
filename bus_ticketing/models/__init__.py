"""
Database models
"""

from bus_ticketing.models.route import Route, Schedule
from bus_ticketing.models.booking import Booking, BookingSeat, BookingStatus
from bus_ticketing.models.payment import Payment, PaymentStatus
from bus_ticketing.models.notification_log import PaymentNotificationLog
from bus_ticketing.models.ticket_validation import TicketValidation, TicketCodeType

__all__ = [
    "Route",
    "Schedule",
    "Booking",
    "BookingSeat",
    "BookingStatus",
    "Payment",
    "PaymentStatus",
    "PaymentNotificationLog",
    "TicketValidation",
    "TicketCodeType"
]
