import hashlib
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import jwt

from app.core.config import settings

ALGO = "HS256"

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime | None) -> datetime | None:
    # Rows written by other clients may come back naive; they are stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def pii_hash(value: str, purpose: str = "pii") -> str:
    raw = (settings.LOGIN_KEY_PEPPER + ":" + purpose + ":" + value).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()

def create_access_token_for_session(sub: str, sid: str) -> str:
    exp = now_utc() + timedelta(minutes=settings.JWT_ACCESS_MINUTES)
    payload = {"sub": sub, "type": "access", "sid": sid, "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)

def create_refresh_token_for_session(sub: str, sid: str) -> str:
    exp = now_utc() + timedelta(days=settings.JWT_REFRESH_DAYS)
    payload = {"sub": sub, "type": "refresh", "sid": sid, "exp": exp}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGO])

def hash_refresh_token(token: str) -> str:
    raw = (settings.JWT_SECRET + ":" + token).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()

def hash_password(password: str) -> str:
    raw = password.encode("utf-8")
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")

def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
