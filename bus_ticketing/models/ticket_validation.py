"""
Ticket validation history
"""

from sqlalchemy import Column, String, ForeignKey, Enum, DateTime, Uuid
from sqlalchemy.orm import relationship
import enum

from bus_ticketing.models.base import BaseModel


class TicketCodeType(str, enum.Enum):
    QR = "qr"
    BARCODE = "barcode"


class TicketValidation(BaseModel):
    """
    One successful on-site ticket check
    """
    __tablename__ = "ticket_validations"

    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    validated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    code_type = Column(Enum(TicketCodeType), nullable=False)
    code = Column(String(64), nullable=False)

    booking = relationship("Booking")

    def __repr__(self):
        return f"<TicketValidation(booking_id={self.booking_id}, type={self.code_type}, at={self.validated_at})>"
