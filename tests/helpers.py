"""
Test doubles and payload builders shared by the test modules
"""

from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import Select, Update
from sqlalchemy.exc import OperationalError

from bus_ticketing.core.exceptions import PaymentGatewayError
from bus_ticketing.core.security import compute_notification_signature

SECRET = "test-secret"


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-process stand-in for PlaceToPayClient"""

    def __init__(self):
        self.status_responses: Dict[str, Any] = {}
        self.session_response: Dict[str, Any] = {
            "status": {"status": "OK", "reason": "PC", "message": "Session created"},
            "requestId": "REQ-NEW",
            "processUrl": "https://checkout.test/spa/session/REQ-NEW",
        }
        self.fail = False
        self.status_calls: List[str] = []
        self.session_calls: List[Dict[str, Any]] = []

    async def get_session_status(self, request_id: str) -> Dict[str, Any]:
        self.status_calls.append(request_id)
        if self.fail:
            raise PaymentGatewayError("Gateway unreachable")
        return self.status_responses[request_id]

    async def create_session(self, **kwargs) -> Dict[str, Any]:
        self.session_calls.append(kwargs)
        if self.fail:
            raise PaymentGatewayError("Gateway unreachable", gateway_status=503)
        return self.session_response


def signed_notification(
    request_id: str,
    status: str,
    reference: Optional[str] = None,
    status_date: str = "2025-06-01T10:00:00-05:00",
    secret: str = SECRET
) -> Dict[str, Any]:
    """Notification body the way the gateway sends it"""
    body = {
        "requestId": request_id,
        "status": {
            "status": status,
            "reason": "00",
            "message": f"Transaction {status.lower()}",
            "date": status_date,
        },
        "signature": compute_notification_signature(request_id, status, status_date, secret),
    }
    if reference is not None:
        body["reference"] = reference
    return body


def failing_session_override(session_factory, should_fail: Callable[[Any], bool]):
    """
    get_session override whose sessions raise OperationalError for matching
    statements and run everything else normally
    """

    async def override():
        async with session_factory() as session:
            execute = session.execute

            async def failing_execute(statement, *args, **kwargs):
                if should_fail(statement):
                    raise OperationalError(str(statement), {}, Exception("database is locked"))
                return await execute(statement, *args, **kwargs)

            session.execute = failing_execute
            yield session

    return override


def is_payment_update(statement) -> bool:
    return isinstance(statement, Update) and statement.table.name == "payments"


def is_payment_select(statement) -> bool:
    return isinstance(statement, Select) and "payments" in {
        getattr(table, "name", None) for table in statement.get_final_froms()
    }
