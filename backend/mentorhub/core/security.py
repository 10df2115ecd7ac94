from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt
from passlib.context import CryptContext
from mentorhub.core.config import settings

# CryptContext handles password hashing using bcrypt
# 'deprecated="auto"' allows passlib to handle deprecation warnings automatically
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# Claim carrying the user id inside the token
USER_ID_CLAIM = "userId"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    # Raises ValueError when the stored hash is malformed
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def token_lifetime(remember_me: bool) -> timedelta:
    """7 days by default, 30 days when the user asked to be remembered"""
    if remember_me:
        return timedelta(days=settings.REMEMBER_ME_EXPIRE_DAYS)
    return timedelta(days=settings.TOKEN_EXPIRE_DAYS)


def create_access_token(
    user_id: int,
    remember_me: bool = False,
    issued_at: Optional[datetime] = None,
) -> str:
    """Create a signed JWT for a user id with an explicit expiry"""
    if not settings.JWT_SECRET:
        raise RuntimeError("JWT_SECRET is not set")

    # issued_at lets tests build tokens as if they were signed in the past
    now = issued_at or datetime.now(timezone.utc)
    to_encode = {
        USER_ID_CLAIM: user_id,
        "iat": now,
        "exp": now + token_lifetime(remember_me),
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT token.

    Raises jose.ExpiredSignatureError for expired tokens and jose.JWTError
    for anything else that fails verification.
    """
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
