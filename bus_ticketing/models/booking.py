"""
Booking and BookingSeat models
"""

from sqlalchemy import Column, String, ForeignKey, Enum, Numeric, DateTime, Date, Boolean, Integer, Uuid
from sqlalchemy.orm import relationship
import enum

from bus_ticketing.models.base import BaseModel


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(BaseModel):
    """
    Seat reservation for a scheduled trip
    """
    __tablename__ = "bookings"

    schedule_id = Column(Uuid(as_uuid=True), ForeignKey("schedules.id"), nullable=True, index=True)
    reference_code = Column(String(40), unique=True, nullable=False, index=True)
    barcode = Column(String(64), unique=True, nullable=True, index=True)
    # Nullable: rows imported without a status are treated as pending
    status = Column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=True,
        index=True
    )
    trip_date = Column(Date, nullable=False)
    passenger_name = Column(String(200))
    passenger_email = Column(String(255))
    ticket_validated = Column(Boolean, default=False, nullable=False)
    validated_at = Column(DateTime(timezone=True))

    # Relationships
    schedule = relationship("Schedule", back_populates="bookings")
    booking_seats = relationship("BookingSeat", back_populates="booking", cascade="all, delete-orphan")
    payment = relationship("Payment", back_populates="booking", uselist=False)

    def __repr__(self):
        return f"<Booking(id={self.id}, reference={self.reference_code}, status={self.status})>"


class BookingSeat(BaseModel):
    """
    Seat line of a booking
    """
    __tablename__ = "booking_seats"

    booking_id = Column(Uuid(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="booking_seats")

    def __repr__(self):
        return f"<BookingSeat(booking_id={self.booking_id}, seat={self.seat_number}, price={self.price})>"
