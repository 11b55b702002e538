"""
JWT Token handling for authentication
Tokens are issued by the account service; this module only needs to read them
(and mint them for the seed script and tests).
"""
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import settings


class TokenData:
    """Decoded token data structure"""
    def __init__(
        self,
        user_id: str,
        email: Optional[str],
        exp: datetime,
        iat: datetime,
    ):
        self.user_id = user_id
        self.email = email
        self.exp = exp
        self.iat = iat


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User's unique identifier
        email: User's email address
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta if expires_delta else timedelta(hours=settings.JWT_EXPIRE_HOURS))

    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[TokenData]:
    """
    Decode and validate a JWT token.

    Returns:
        TokenData object if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError:  # includes ExpiredSignatureError
        return None

    if payload.get("type") != "access" or not payload.get("sub"):
        return None

    return TokenData(
        user_id=payload["sub"],
        email=payload.get("email"),
        exp=datetime.fromtimestamp(payload.get("exp", 0), tz=timezone.utc),
        iat=datetime.fromtimestamp(payload.get("iat", 0), tz=timezone.utc),
    )
