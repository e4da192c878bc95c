"""
Payment model for gateway transactions
"""

from sqlalchemy import Column, String, Numeric, Enum, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship
import enum

from bus_ticketing.models.base import BaseModel


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Payment(BaseModel):
    """
    One payment attempt tied to exactly one booking
    """
    __tablename__ = "payments"

    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, unique=True, index=True)
    # Gateway session id; null until the checkout session exists
    gateway_request_id = Column(String(64), nullable=True, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    status = Column(
        Enum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True
    )
    # Last gateway payload seen for this payment, stored verbatim as JSON text
    gateway_payload = Column(Text)

    # Relationships
    booking = relationship("Booking", back_populates="payment")

    def __repr__(self):
        return f"<Payment(id={self.id}, booking_id={self.booking_id}, amount={self.amount}, status={self.status})>"
