"""
Ticket verification schemas
"""

from typing import List, Optional
from datetime import date, datetime
from uuid import UUID
import enum

from pydantic import BaseModel, Field

from bus_ticketing.schemas.base import BaseSchema


class VerificationStatus(str, enum.Enum):
    VALID = "VALID"
    USED = "USED"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"


class TicketVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class TicketInfo(BaseSchema):
    id: UUID
    reference_code: str
    trip_date: date
    departure_time: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    bus_number: Optional[str] = None
    bus_type: Optional[str] = None
    seats: str = ""
    used_at: Optional[datetime] = None


class TicketVerifyResponse(BaseSchema):
    success: bool = True
    status: VerificationStatus
    message: str
    ticket: Optional[TicketInfo] = None


class ValidationRecord(BaseSchema):
    id: UUID
    validated_at: datetime
    code_type: str
    code: str
    reference_code: str = "N/A"
    route: str = "N/A"
    trip_date: Optional[date] = None
    departure_time: str = "N/A"
    bus_number: str = "N/A"


class ValidationHistoryResponse(BaseSchema):
    success: bool = True
    records: List[ValidationRecord]
    total: int
