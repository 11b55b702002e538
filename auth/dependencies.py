"""
FastAPI dependencies for authentication
The pipeline only needs "who is asking": a user id, or None for anonymous requests.
"""
from typing import Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .jwt_handler import decode_token

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)

# Cookie name for session token
SESSION_COOKIE_NAME = "session"


def get_token_from_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    """
    Extract JWT token from request (Authorization header first, then session cookie).
    """
    if credentials and credentials.credentials:
        return credentials.credentials

    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        return token

    return None


async def get_current_user_id_optional(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """
    Get the current user id if authenticated, None otherwise.
    An invalid or expired token is treated as anonymous.
    """
    token = get_token_from_request(request, credentials)
    if not token:
        return None

    token_data = decode_token(token)
    if not token_data:
        return None

    request.state.user_id = token_data.user_id
    return token_data.user_id


async def get_current_user_id(
    user_id: Optional[str] = Depends(get_current_user_id_optional),
) -> str:
    """
    Get the current user id.

    Raises:
        HTTPException: 401 if not authenticated
    """
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id
