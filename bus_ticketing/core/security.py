"""
Gateway request authentication and notification signatures
"""

import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timezone
from typing import Dict, Optional


def compute_notification_signature(
    transaction_id: str,
    status: str,
    status_date: str,
    secret_key: str
) -> str:
    """sha1(requestId + status + date + secretKey) as lowercase hex"""
    raw = f"{transaction_id}{status}{status_date}{secret_key}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def verify_notification_signature(
    signature: str,
    transaction_id: str,
    status: str,
    status_date: str,
    secret_key: str
) -> bool:
    expected = compute_notification_signature(transaction_id, status, status_date, secret_key)
    return hmac.compare_digest(expected, signature.strip().lower())


def build_gateway_auth(
    login: str,
    secret_key: str,
    raw_nonce: Optional[str] = None,
    seed: Optional[str] = None
) -> Dict[str, str]:
    """
    Authentication block sent with every gateway call.

    tranKey = base64(sha256(nonce + seed + secretKey)), nonce is sent base64
    encoded and seed is the current time in ISO 8601.
    """
    raw_nonce = raw_nonce or str(secrets.randbelow(1_000_000_000))
    seed = seed or datetime.now(timezone.utc).isoformat(timespec="seconds")

    digest = hashlib.sha256(f"{raw_nonce}{seed}{secret_key}".encode("utf-8")).digest()
    return {
        "login": login,
        "tranKey": base64.b64encode(digest).decode("ascii"),
        "nonce": base64.b64encode(raw_nonce.encode("utf-8")).decode("ascii"),
        "seed": seed,
    }
