"""
Gateway status codes to payment/booking states

Shared by the push notification handler and the status polling endpoint so the
two paths cannot drift apart.
"""

from dataclasses import dataclass
from typing import Any, Optional

from bus_ticketing.models.booking import BookingStatus
from bus_ticketing.models.payment import PaymentStatus

APPROVED_CODES = frozenset({"APPROVED", "APPROVED_PARTIAL"})
REJECTED_CODES = frozenset({"REJECTED", "REJECTED_PARTIAL"})
PENDING_CODE = "PENDING"

FINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.APPROVED, PaymentStatus.REJECTED})


@dataclass(frozen=True)
class StatusTransition:
    payment_status: PaymentStatus
    # None leaves the booking as it is
    booking_status: Optional[BookingStatus]


@dataclass(frozen=True)
class GatewayStatusSnapshot:
    status: str
    message: str = ""


def map_gateway_status(code: Optional[str]) -> StatusTransition:
    """Unknown and pending codes keep the payment pending"""
    code = (code or "").strip().upper()
    if code in APPROVED_CODES:
        return StatusTransition(PaymentStatus.APPROVED, BookingStatus.CONFIRMED)
    if code in REJECTED_CODES:
        return StatusTransition(PaymentStatus.REJECTED, BookingStatus.CANCELLED)
    return StatusTransition(PaymentStatus.PENDING, None)


def resolve_booking_status(
    transition: StatusTransition,
    current: Optional[BookingStatus]
) -> BookingStatus:
    if transition.booking_status is not None:
        return transition.booking_status
    return current or BookingStatus.PENDING


def _status_block(value: Any) -> Optional[GatewayStatusSnapshot]:
    if isinstance(value, dict) and value.get("status"):
        return GatewayStatusSnapshot(
            status=str(value["status"]),
            message=str(value.get("message") or "")
        )
    return None


def normalize_gateway_response(payload: Any) -> GatewayStatusSnapshot:
    """
    Reduce a gateway session response to its status code and message.

    Known shapes: a root ``status`` object, a ``payment`` list whose first
    entry carries the status, or a single ``payment`` object. Anything else
    is reported as pending.
    """
    if not isinstance(payload, dict):
        return GatewayStatusSnapshot(PENDING_CODE)

    snapshot = _status_block(payload.get("status"))
    if snapshot:
        return snapshot

    payment = payload.get("payment")
    if isinstance(payment, list):
        if payment and isinstance(payment[0], dict):
            snapshot = _status_block(payment[0].get("status"))
    elif isinstance(payment, dict):
        snapshot = _status_block(payment.get("status"))

    return snapshot or GatewayStatusSnapshot(PENDING_CODE)
