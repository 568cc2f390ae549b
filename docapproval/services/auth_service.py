from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from docapproval.config import settings

logger = structlog.get_logger()

# ---------- JWT key loading ----------

_private_key: Optional[str] = None
_public_key: Optional[str] = None


def _uses_key_pair() -> bool:
    return settings.JWT_ALGORITHM.startswith(("RS", "ES"))


def _signing_key() -> str:
    global _private_key
    if not _uses_key_pair():
        return settings.JWT_SECRET_KEY
    if _private_key is None:
        with open(settings.JWT_PRIVATE_KEY_PATH, "r") as f:
            _private_key = f.read()
    return _private_key


def _verification_key() -> str:
    global _public_key
    if not _uses_key_pair():
        return settings.JWT_SECRET_KEY
    if _public_key is None:
        with open(settings.JWT_PUBLIC_KEY_PATH, "r") as f:
            _public_key = f.read()
    return _public_key


# ---------- token generation ----------

def create_access_token(
    user_id: str,
    role: str,
    email: str,
) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "email": email,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "type": "access",
    }
    return jwt.encode(claims, _signing_key(), algorithm=settings.JWT_ALGORITHM)


# ---------- token verification ----------

def verify_access_token(token: str) -> dict:
    """Verify an access token and return its claims. Raises JWTError on failure."""
    payload = jwt.decode(token, _verification_key(), algorithms=[settings.JWT_ALGORITHM])
    if payload.get("type") != "access":
        raise JWTError("Not an access token")
    return payload
