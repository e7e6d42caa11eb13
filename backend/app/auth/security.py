from datetime import datetime, timedelta
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ENV = settings.ENV
JWT_SECRET = settings.JWT_SECRET
if not JWT_SECRET and ENV != "dev":
    raise RuntimeError("JWT_SECRET is not set")
if not JWT_SECRET:
    JWT_SECRET = "dev-change-me"
JWT_ALG = "HS256"
JWT_EXPIRY_SECONDS = settings.JWT_EXPIRY_SECONDS


def _ensure_bcrypt_limit(password: str) -> None:
    # bcrypt limit is 72 BYTES, not characters
    if len(password.encode("utf-8")) > 72:
        raise ValueError("Password too long (max 72 bytes).")


def hash_password(password: str) -> str:
    _ensure_bcrypt_limit(password)
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    _ensure_bcrypt_limit(password)
    return pwd_context.verify(password, password_hash)


def create_access_token(payload: Dict[str, Any], now: datetime | None = None) -> tuple[str, datetime]:
    issued_at = now or datetime.utcnow()
    expires_at = issued_at + timedelta(seconds=JWT_EXPIRY_SECONDS)
    to_encode = dict(payload)
    to_encode["iat"] = issued_at
    to_encode["exp"] = expires_at
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG), expires_at


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def decode_token_ignoring_expiry(token: str) -> Dict[str, Any]:
    """Signature-checked decode used by the refresh grant; an expired token still passes."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG], options={"verify_exp": False})


__all__ = [
    "JWTError",
    "create_access_token",
    "decode_token",
    "decode_token_ignoring_expiry",
    "hash_password",
    "verify_password",
]
