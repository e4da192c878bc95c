"""
Payment schemas: gateway notifications, checkout sessions and status polling
"""

from typing import Any, Dict, Optional, Union
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator

from bus_ticketing.models.payment import PaymentStatus
from bus_ticketing.models.booking import BookingStatus
from bus_ticketing.schemas.base import BaseSchema, IDSchema, TimestampSchema


def _coerce_identifier(value: Any) -> Any:
    # The gateway sends requestId as a number
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    if isinstance(value, str):
        return value.strip()
    return value


def _signed_text(value: Any) -> Optional[str]:
    # Text the sender hashed: numbers as the gateway prints them, strings untouched
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float, str)):
        return str(value)
    return None


class GatewayStatus(BaseModel):
    """Status block shared by notifications and session queries"""
    model_config = ConfigDict(extra="allow")

    status: str = Field(..., min_length=1)
    reason: Optional[Union[str, int]] = None
    message: Optional[str] = None
    date: Optional[str] = None

    @field_validator("status")
    @classmethod
    def normalize_status(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("status must not be empty")
        return v


class GatewayNotification(BaseModel):
    """Asynchronous push notification from the payment gateway"""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    request_id: str = Field(..., alias="requestId", min_length=1)
    reference: Optional[str] = None
    signature: Optional[str] = None
    status: GatewayStatus

    # requestId and status.status exactly as received, before normalization
    _signed_request_id: Optional[str] = PrivateAttr(default=None)
    _signed_status: Optional[str] = PrivateAttr(default=None)

    @field_validator("request_id", mode="before")
    @classmethod
    def coerce_request_id(cls, v):
        return _coerce_identifier(v)

    @model_validator(mode="wrap")
    @classmethod
    def keep_signed_values(cls, data, handler):
        notification = handler(data)
        if isinstance(data, dict):
            notification._signed_request_id = _signed_text(data.get("requestId"))
            status = data.get("status")
            if isinstance(status, dict):
                notification._signed_status = _signed_text(status.get("status"))
        return notification

    @property
    def signed_request_id(self) -> str:
        return self._signed_request_id if self._signed_request_id is not None else self.request_id

    @property
    def signed_status(self) -> str:
        return self._signed_status if self._signed_status is not None else self.status.status

    @field_validator("reference", "signature", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class NotificationAck(BaseModel):
    """Body returned to the gateway"""
    status: str
    transaction_id: Optional[str] = None
    payment_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None


class PaymentSessionCreate(BaseModel):
    """Checkout session request"""
    reference: str = Field(..., min_length=1, max_length=40)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    description: str = Field("Bus ticket", min_length=1, max_length=250)
    return_url: str = Field(..., min_length=1)
    notification_url: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    expiration_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)
    buyer_email: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_surname: Optional[str] = None
    buyer_document_type: Optional[str] = None
    buyer_document: Optional[str] = None
    buyer_mobile: Optional[str] = None


class PaymentSessionResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    request_id: str = Field(..., alias="requestId")
    process_url: Optional[str] = Field(None, alias="processUrl")
    status: Optional[Dict[str, Any]] = None

    @field_validator("request_id", mode="before")
    @classmethod
    def coerce_request_id(cls, v):
        return _coerce_identifier(v)


class PaymentStatusQuery(BaseModel):
    """Polling request from the payment result page"""
    booking_id: UUID
    request_id: Optional[str] = None

    @field_validator("request_id", mode="before")
    @classmethod
    def coerce_request_id(cls, v):
        v = _coerce_identifier(v)
        return v or None


class PaymentResponse(IDSchema, TimestampSchema):
    booking_id: UUID
    gateway_request_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: PaymentStatus


class BookingStatusResponse(IDSchema):
    reference_code: str
    status: Optional[BookingStatus] = None


class StatusDetail(BaseSchema):
    status: str
    message: str = ""


class PaymentStatusResult(BaseSchema):
    success: bool = True
    payment_status: StatusDetail
    payment: PaymentResponse
    booking: BookingStatusResponse
    from_cache: bool = False
    checked_at: datetime
