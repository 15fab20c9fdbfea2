from __future__ import annotations

from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import AuthError
from .settings import get_settings
from .utils import utcnow

_security = HTTPBearer(auto_error=False)

_ALGORITHM = "HS256"


def _password_bytes(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes
    return password.encode("utf-8")[:72]


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Hash a password with bcrypt using the configured cost factor."""
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds)).decode("ascii")


# PUBLIC_INTERFACE
def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("ascii"))
    except ValueError:
        # Malformed stored hash
        return False


# PUBLIC_INTERFACE
def issue_token(user_id: str) -> str:
    """Sign a bearer token for `user_id`, valid for JWT_EXPIRES_DAYS."""
    settings = get_settings()
    now = utcnow()
    payload = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=_ALGORITHM)


# PUBLIC_INTERFACE
def decode_token(token: str) -> str:
    """
    Verify a bearer token and return the user id it was issued for.

    Raises:
        AuthError if the token is malformed, badly signed or expired.
    """
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Invalid token") from e

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        raise AuthError("Invalid token")
    return user_id


# PUBLIC_INTERFACE
async def get_current_user_id(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
) -> str:
    """
    FastAPI dependency resolving the bearer credential to an owner id.

    Raises:
        HTTPException(401) if the credential is missing, invalid or expired.
    """
    if creds is None or not creds.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_token(creds.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
