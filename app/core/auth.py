"""
JWT bearer tokens for the API.

Tokens are issued by the external auth service (login, refresh and password
flows live there). This module only encodes and verifies the payload the API
relies on: the user id and the role.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Contents of an access token"""
    user_id: int
    role: str
    exp: int  # Unix timestamp, JWT standard


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    """Create a signed access token"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not set, cannot sign tokens")
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.debug(
        "JWT token created",
        extra_data={"user_id": user_id, "role": role},
    )
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify an access token, returning None if it is invalid or expired"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty, tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
