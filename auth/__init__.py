"""
Authentication and authorization for Grounded Insight
"""

from .jwt_handler import create_access_token, decode_token
from .dependencies import get_current_user_id, get_current_user_id_optional
from .permissions import can_read

__all__ = [
    # JWT
    "create_access_token",
    "decode_token",
    # Dependencies
    "get_current_user_id",
    "get_current_user_id_optional",
    # Analysis access
    "can_read",
]
