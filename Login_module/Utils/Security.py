from datetime import timedelta
from typing import Dict, Any, Optional
import secrets
import jwt
from fastapi import HTTPException

from config import settings
from Login_module.Utils.datetime_utils import now_utc

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _secret_key() -> str:
    if not settings.SECRET_KEY:
        raise ValueError("SECRET_KEY is missing in environment")
    return settings.SECRET_KEY


def generate_token_family() -> str:
    """
    Returns a new refresh-token family identifier.
    One family is issued per login session and survives every rotation.
    """
    return secrets.token_urlsafe(32)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[int] = None) -> str:
    """
    Creates a JWT access token with expiration timestamp.
    """
    to_encode = data.copy()
    expire = now_utc() + timedelta(
        seconds=(expires_delta or settings.ACCESS_TOKEN_EXPIRE_SECONDS)
    )
    to_encode.update({"exp": expire, "type": ACCESS_TOKEN_TYPE})
    return jwt.encode(to_encode, _secret_key(), algorithm=settings.ALGORITHM)


def create_refresh_token(user_id: int, token_family: str, expires_delta: Optional[int] = None) -> str:
    """
    Creates a JWT refresh token bound to a session's token family.
    """
    expire = now_utc() + timedelta(
        seconds=(expires_delta or settings.REFRESH_TOKEN_EXPIRE_SECONDS)
    )
    payload = {
        "sub": str(user_id),
        "family": token_family,
        "jti": secrets.token_hex(16),
        "exp": expire,
        "type": REFRESH_TOKEN_TYPE,
    }
    return jwt.encode(payload, _secret_key(), algorithm=settings.ALGORITHM)


def _decode(token: str, expected_type: str) -> Dict[str, Any]:
    try:
        decoded = jwt.decode(token, _secret_key(), algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    if decoded.get("type") != expected_type:
        raise HTTPException(status_code=401, detail="Invalid token type")
    return decoded


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decodes and validates JWT access token.
    Raises HTTPException for invalid or expired tokens.
    """
    return _decode(token, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> Dict[str, Any]:
    return _decode(token, REFRESH_TOKEN_TYPE)
