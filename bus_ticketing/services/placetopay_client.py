"""
PlaceToPay checkout client
Creates checkout sessions and queries their status
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from bus_ticketing.config import settings
from bus_ticketing.core.exceptions import ConfigurationError, PaymentGatewayError
from bus_ticketing.core.security import build_gateway_auth

logger = logging.getLogger(__name__)


class PlaceToPayClient:
    """Thin async wrapper over the checkout REST API"""

    def __init__(
        self,
        base_url: str,
        login: str,
        secret_key: str,
        timeout: float = 15.0,
        locale: str = "es_EC",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not login:
            raise ConfigurationError("PLACETOPAY_LOGIN")
        if not secret_key:
            raise ConfigurationError("PLACETOPAY_SECRET_KEY")
        self.base_url = base_url.rstrip("/")
        self.login = login
        self.secret_key = secret_key
        self.timeout = timeout
        self.locale = locale
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "PlaceToPayClient":
        return cls(
            base_url=settings.PLACETOPAY_URL,
            login=settings.PLACETOPAY_LOGIN,
            secret_key=settings.PLACETOPAY_SECRET_KEY,
            timeout=settings.PLACETOPAY_TIMEOUT_SECONDS,
            locale=settings.PLACETOPAY_LOCALE,
        )

    def _auth(self) -> Dict[str, str]:
        return build_gateway_auth(self.login, self.secret_key)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Accept": "application/json"}
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Gateway returned {e.response.status_code} for {path}: {e.response.text[:500]}"
            )
            raise PaymentGatewayError(
                f"Gateway rejected the request ({e.response.status_code})",
                gateway_status=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Gateway request to {path} failed: {e}")
            raise PaymentGatewayError(f"Error communicating with the payment gateway: {e}") from e
        except ValueError as e:
            logger.error(f"Gateway response for {path} is not JSON: {e}")
            raise PaymentGatewayError("Gateway returned an unreadable response") from e

    async def create_session(
        self,
        reference: str,
        amount: Decimal,
        description: str,
        return_url: str,
        notification_url: Optional[str] = None,
        currency: str = "USD",
        expiration_minutes: int = 60,
        ip_address: str = "127.0.0.1",
        user_agent: str = "Mozilla/5.0",
        buyer: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Open a checkout session; the response carries requestId and processUrl"""
        expiration = datetime.now(timezone.utc) + timedelta(minutes=expiration_minutes)
        payload: Dict[str, Any] = {
            "auth": self._auth(),
            "locale": self.locale,
            "payment": {
                "reference": reference,
                "description": description,
                "amount": {"currency": currency, "total": float(amount)},
            },
            "expiration": expiration.isoformat(timespec="seconds"),
            "returnUrl": return_url,
            "ipAddress": ip_address,
            "userAgent": user_agent,
        }
        if notification_url:
            payload["notificationUrl"] = notification_url
        if buyer:
            payload["buyer"] = buyer

        logger.info(
            f"Creating checkout session for {reference} ({amount} {currency})",
            extra={"reference": reference}
        )
        data = await self._post("/api/session", payload)
        logger.info(
            f"Checkout session created: requestId={data.get('requestId') if isinstance(data, dict) else None}",
            extra={"reference": reference}
        )
        return data

    async def get_session_status(self, request_id: str) -> Dict[str, Any]:
        """Query a checkout session; returns the raw gateway payload"""
        request_id = str(request_id)
        data = await self._post(f"/api/session/{request_id}", {"auth": self._auth()})
        status = (data.get("status") or {}) if isinstance(data, dict) else {}
        logger.info(
            f"Session {request_id} status: {status.get('status', 'UNKNOWN')}",
            extra={"transaction_id": request_id}
        )
        return data


def build_buyer(
    email: Optional[str],
    name: Optional[str] = None,
    surname: Optional[str] = None,
    document_type: Optional[str] = None,
    document: Optional[str] = None,
    mobile: Optional[str] = None
) -> Optional[Dict[str, str]]:
    """Buyer block; the gateway requires every field once email is present"""
    if not email:
        return None
    return {
        "email": email,
        "name": name or "Cliente",
        "surname": surname or "Web",
        "documentType": document_type or "CI",
        "document": document or "0000000000",
        "mobile": mobile or "0000000000",
    }
