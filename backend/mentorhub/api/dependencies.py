import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import ExpiredSignatureError, JWTError

from mentorhub.core import database
from mentorhub.core.config import settings
from mentorhub.core.errors import ConfigurationError
from mentorhub.core.security import USER_ID_CLAIM, decode_access_token

logger = logging.getLogger(__name__)

# OAuth2 password bearer scheme - extracts token from Authorization header
# auto_error=False so a missing token gets our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

JWT_SECRET_MISSING_MESSAGE = (
    "Server configuration error: JWT_SECRET is not set. "
    "Please configure it in the server environment."
)


def require_jwt_secret() -> None:
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not set")
        raise ConfigurationError(JWT_SECRET_MISSING_MESSAGE)


def require_auth_configuration() -> None:
    """
    Fail fast with 503 when login/register cannot possibly succeed.

    Runs before body validation, so a misconfigured server never reports
    a client-side 400 instead.
    """
    if not database.is_configured():
        raise ConfigurationError(database.DATABASE_NOT_CONFIGURED_MESSAGE)
    require_jwt_secret()


async def get_current_user_id(token: str | None = Depends(oauth2_scheme)) -> int:
    """
    Resolve the authenticated user id from the bearer token.

    The token is self-contained, so no database lookup happens here; every
    protected query filters by the returned id. 401 when no token is sent,
    403 when the token is expired or fails verification.
    """
    require_jwt_secret()

    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token expired")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    user_id = payload.get(USER_ID_CLAIM)
    # bool is an int subclass; reject it explicitly
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token")

    return user_id
