"""
Base model class with common fields
"""

from sqlalchemy import Column, DateTime, Uuid, func
import uuid

from bus_ticketing.core.database import Base


class BaseModel(Base):
    """
    Abstract base model with common fields
    """
    __abstract__ = True
    # Load server-generated timestamps at flush; async sessions cannot lazy load
    __mapper_args__ = {"eager_defaults": True}

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False
    )
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )
