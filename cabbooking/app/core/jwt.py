"""
JWT token utilities for authentication.

Tokens are issued by the identity service; this backend only verifies them.
The payload carries sub, user_id and role.
"""

from datetime import timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from cabbooking.app.core.clock import utcnow
from cabbooking.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload to encode (sub, user_id, role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decoded payload if the signature and expiry are valid, None otherwise."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
