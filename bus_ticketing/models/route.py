"""
Route and Schedule models
"""

from sqlalchemy import Column, String, ForeignKey, Numeric, Integer, Time, Boolean, Uuid
from sqlalchemy.orm import relationship

from bus_ticketing.models.base import BaseModel


class Route(BaseModel):
    """
    Origin/destination pair served by the company
    """
    __tablename__ = "routes"

    origin = Column(String(120), nullable=False, index=True)
    destination = Column(String(120), nullable=False, index=True)
    distance_km = Column(Numeric(8, 2))
    estimated_duration_minutes = Column(Integer)

    schedules = relationship("Schedule", back_populates="route", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Route(id={self.id}, {self.origin} -> {self.destination})>"


class Schedule(BaseModel):
    """
    Recurring departure of a bus on a route
    """
    __tablename__ = "schedules"

    route_id = Column(Uuid(as_uuid=True), ForeignKey("routes.id"), nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    bus_number = Column(String(20), nullable=False)
    bus_type = Column(String(40))
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    route = relationship("Route", back_populates="schedules")
    bookings = relationship("Booking", back_populates="schedule")

    def __repr__(self):
        return f"<Schedule(id={self.id}, route_id={self.route_id}, departure={self.departure_time}, bus={self.bus_number})>"
