"""
Security helpers: HTTP Basic auth for dashboard routes and
signature/freshness checks for inbound stock webhooks.
"""

import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from stocksync.core.config import get_settings

security = HTTPBasic()


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf8"), expected.encode("utf8"))


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """
    HTTP Basic check against BASIC_AUTH_USERNAME / BASIC_AUTH_PASSWORD.

    Production refuses to serve dashboard routes without a configured
    password; development falls back to "changeme".
    """
    settings = get_settings()
    password = settings.BASIC_AUTH_PASSWORD
    if not password:
        if settings.ENVIRONMENT == "production":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Basic auth password not configured",
            )
        password = "changeme"

    # Both comparisons always run
    username_ok = _matches(credentials.username, settings.BASIC_AUTH_USERNAME)
    password_ok = _matches(credentials.password, password)
    if not (username_ok and password_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def require_auth():
    """
    Dependency to require authentication
    Usage: app.include_router(router, dependencies=[require_auth()])
    """
    return Depends(get_current_username)


# --- Webhook envelope ---

def canonical_webhook_body(envelope: Dict[str, Any]) -> bytes:
    """
    Rebuild the exact bytes the stock-connector plugin signed.

    The plugin signs PHP's json_encode() of the envelope before the signature
    is attached: compact separators, "/" escaped as "\\/", non-ASCII as \\uXXXX.
    Key order is kept as received.
    """
    unsigned = {key: value for key, value in envelope.items() if key != "signature"}
    encoded = json.dumps(unsigned, separators=(",", ":"), ensure_ascii=True)
    return encoded.replace("/", "\\/").encode("utf-8")


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """HMAC-SHA256(secret, body) compared in constant time"""
    if not signature or not secret:
        return False
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(signature.lower(), expected_signature)


def parse_webhook_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_timestamp_fresh(timestamp: datetime, now: datetime, tolerance_seconds: int) -> bool:
    """True when the timestamp is within the tolerance window in either direction"""
    return abs(now - timestamp) <= timedelta(seconds=tolerance_seconds)


def generate_webhook_secret() -> str:
    return secrets.token_hex(32)
