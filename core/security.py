# app/core/security.py
import hashlib
import secrets
import uuid
from datetime import datetime, timedelta

from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from passlib.context import CryptContext

from core.config import settings
from core.exceptions import TokenExpired, TokenInvalid

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def create_access_token(subject: str, expires_minutes: int = None, extra_data: dict = None):
    """Short-lived bearer token signed with JWT_SECRET."""
    if expires_minutes is None:
        expires_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES

    now = datetime.utcnow()
    payload = {
        "sub": subject,
        "exp": now + timedelta(minutes=expires_minutes),
        "type": ACCESS,
        "iat": now
    }

    if extra_data:
        payload.update(extra_data)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def create_refresh_token(subject: str, expires_days: int = None):
    """Long-lived refresh token signed with its own secret."""
    if expires_days is None:
        expires_days = settings.REFRESH_TOKEN_EXPIRE_DAYS

    now = datetime.utcnow()
    payload = {
        "sub": subject,
        "exp": now + timedelta(days=expires_days),
        "type": REFRESH,
        "iat": now,
        "jti": str(uuid.uuid4())
    }
    return jwt.encode(payload, settings.JWT_REFRESH_SECRET, algorithm=settings.ALGORITHM)


def create_token_pair(subject: str, extra_data: dict = None) -> dict:
    return {
        "access_token": create_access_token(subject, extra_data=extra_data),
        "refresh_token": create_refresh_token(subject),
        "token_type": "bearer",
    }


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def decode_token(token: str, token_type: str = ACCESS) -> str:
    """Verify signature, expiry and type; return the subject."""
    secret = settings.JWT_SECRET if token_type == ACCESS else settings.JWT_REFRESH_SECRET
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenInvalid()

    subject = payload.get("sub")
    if not subject or payload.get("type") != token_type:
        raise TokenInvalid()
    return subject


# ---------- one-time tokens (password reset, email verification) ----------

def generate_one_time_token() -> str:
    return secrets.token_hex(32)


def hash_one_time_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
