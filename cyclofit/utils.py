import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import settings


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp, the form stored in the database."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values, e.g. timestamps read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _secret_configured() -> bool:
    return bool(settings.SECRET_KEY) and settings.SECRET_KEY != "change-me-in-prod"


# =========================
# JWT Token Handling
# =========================
def create_jwt_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    """Create JWT access token. Issuing tokens belongs to the identity provider;
    this exists for tooling and tests."""
    to_encode = data.copy()
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode.update({"exp": datetime.now(timezone.utc) + timedelta(minutes=minutes), "type": "access"})

    if not _secret_configured():
        raise ValueError("SECRET_KEY not properly configured")

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: Optional[str]):
    """Decode and verify JWT token"""
    if not token or not _secret_configured():
        return None
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


# =========================
# Signed object links
# =========================
def create_object_token(key: str, expires_in: int) -> str:
    if not _secret_configured():
        raise ValueError("SECRET_KEY not properly configured")
    payload = {
        "key": key,
        "type": "object",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_object_token(token: str, key: str) -> bool:
    """True when token is an unexpired signature for exactly this key."""
    if not token or not _secret_configured():
        return False
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.InvalidTokenError:
        return False
    return payload.get("type") == "object" and payload.get("key") == key
