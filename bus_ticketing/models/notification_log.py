"""
Audit log of gateway notifications
"""

from sqlalchemy import Column, String, Boolean, Text, Uuid

from bus_ticketing.models.base import BaseModel


class PaymentNotificationLog(BaseModel):
    """
    Append-only record of every notification the reconciler acted on,
    including the ones it could not resolve to a booking
    """
    __tablename__ = "payment_notification_logs"

    transaction_id = Column(String(64), nullable=False, index=True)
    reference = Column(String(64), index=True)
    gateway_status = Column(String(40), nullable=False)
    payload = Column(Text, nullable=False)
    payment_id = Column(Uuid(as_uuid=True), nullable=True)
    booking_id = Column(Uuid(as_uuid=True), nullable=True)
    processed = Column(Boolean, default=False, nullable=False, index=True)
    note = Column(String(255))

    def __repr__(self):
        return (
            f"<PaymentNotificationLog(id={self.id}, transaction_id={self.transaction_id}, "
            f"status={self.gateway_status}, processed={self.processed})>"
        )
