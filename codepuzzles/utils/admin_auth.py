import base64
import binascii
import logging
import time
from typing import Optional

from fastapi import Cookie, HTTPException

from codepuzzles.config import settings

logger = logging.getLogger(__name__)

ADMIN_COOKIE_NAME = "admin_token"
ADMIN_COOKIE_MAX_AGE = 60 * 60 * 24 * 7


def build_admin_token(password: str, issued_at_ms: Optional[int] = None) -> str:
    """Cookie value: base64 of ``<issued-at-ms>:<password>``."""
    if issued_at_ms is None:
        issued_at_ms = int(time.time() * 1000)
    return base64.b64encode(f"{issued_at_ms}:{password}".encode("utf-8")).decode("ascii")


def is_admin_token_valid(token: Optional[str]) -> bool:
    admin_password = settings.admin_password
    if not admin_password or not token:
        return False

    try:
        decoded = base64.b64decode(token).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return False

    parts = decoded.split(":")
    # The password itself may contain ':'
    return len(parts) >= 2 and ":".join(parts[1:]) == admin_password


async def verify_admin_token(admin_token: Optional[str] = Cookie(None)) -> None:
    """Gate admin routes on the ``admin_token`` cookie."""
    if not is_admin_token_valid(admin_token):
        logger.warning("🔒 Rejected admin request with missing or invalid token")
        raise HTTPException(401, "Unauthorized")
