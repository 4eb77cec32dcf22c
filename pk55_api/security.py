"""
Password hashing and bearer-token helpers for the admin endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pk55_api.config import Settings, get_settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(plain: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or get_settings().password_salt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode()


def check_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        logger.warning("Rejecting login against a malformed password hash")
        return False


def create_access_token(user_id: str, settings: Optional[Settings] = None) -> str:
    """Create a signed JWT identifying ``user_id``."""
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expires_hours)
    payload = {"userId": user_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> str:
    """Return the user id carried by ``token`` or raise ``jwt.PyJWTError``."""
    settings = settings or get_settings()
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    user_id = payload.get("userId")
    if not user_id:
        raise jwt.InvalidTokenError("token has no userId claim")
    return user_id


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Resolve the user id from a bearer token or raise ``HTTPException``."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(credentials.credentials, settings)
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
