import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from mentorhub.api.dependencies import get_current_user_id, require_auth_configuration
from mentorhub.api.schemas import CamelModel
from mentorhub.core.config import settings
from mentorhub.core.database import classify_database_error, get_db, session_scope
from mentorhub.core.errors import AppError, OperationTimeoutError
from mentorhub.core.security import create_access_token, get_password_hash, verify_password
from mentorhub.core.timeouts import run_blocking_with_timeout
from mentorhub.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

# Same text for unknown email and wrong password so callers can't enumerate accounts
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
USER_EXISTS_MESSAGE = "User already exists"


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str | None = None
    remember_me: bool = False


class LoginRequest(CamelModel):
    email: EmailStr
    password: str
    remember_me: bool = False


class UserSummary(BaseModel):
    id: int
    email: str
    name: str | None

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    user: UserSummary
    token: str


class VerifyResponse(UserSummary):
    valid: bool = True


def _issue_token(user_id: int, remember_me: bool) -> str:
    try:
        return create_access_token(user_id, remember_me=remember_me)
    except Exception:
        logger.exception("JWT signing failed for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate authentication token",
        )


def _auth_response(user: User, remember_me: bool) -> dict:
    return {
        "user": UserSummary.model_validate(user).model_dump(),
        "token": _issue_token(user.id, remember_me),
    }


def _register_user(payload: RegisterRequest) -> dict:
    """Blocking part of registration: collision check, hash, insert, sign"""
    with session_scope() as db:
        try:
            existing = db.query(User.id).filter(User.email == payload.email).first()
        except SQLAlchemyError as exc:
            raise classify_database_error(exc, "Registration lookup")
        if existing:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=USER_EXISTS_MESSAGE)

        try:
            password_hash = get_password_hash(payload.password)
        except (ValueError, TypeError):
            logger.exception("Password hashing failed during registration")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to hash password",
            )

        user = User(email=payload.email, password_hash=password_hash, name=payload.name)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Two registrations passed the lookup together; the unique index decides
            db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=USER_EXISTS_MESSAGE)
        except SQLAlchemyError as exc:
            db.rollback()
            raise classify_database_error(exc, "Registration insert")
        # Refresh to load auto-generated fields (id, timestamps) from database
        db.refresh(user)

        logger.info("Registered user %s", user.id)
        return _auth_response(user, payload.remember_me)


def _login_user(payload: LoginRequest) -> dict:
    """Blocking part of login: lookup, password check, sign"""
    with session_scope() as db:
        try:
            user = db.query(User).filter(User.email == payload.email).first()
        except SQLAlchemyError as exc:
            raise classify_database_error(exc, "Login lookup")

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=INVALID_CREDENTIALS_MESSAGE,
            )

        if not user.password_hash:
            logger.error("User %s has no password hash", user.id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="User account error. Please contact support.",
            )

        try:
            is_valid = verify_password(payload.password, user.password_hash)
        except (ValueError, TypeError):
            logger.exception("Password verification failed for user %s", user.id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Password verification failed",
            )

        if not is_valid:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=INVALID_CREDENTIALS_MESSAGE,
            )

        return _auth_response(user, payload.remember_me)


async def _run_auth_operation(
    operation: Callable[..., dict],
    payload: BaseModel,
    operation_name: str,
) -> dict:
    """
    Run a blocking auth operation under the hosting-mode timeout.

    A timer trip becomes a 504 carrying the likely cause. Work still running
    in the worker thread is abandoned; nothing it produces reaches the client.
    """
    timeout_seconds = settings.operation_timeout_seconds()
    try:
        return await run_blocking_with_timeout(
            operation,
            payload,
            timeout_seconds=timeout_seconds,
            operation_name=operation_name,
        )
    except OperationTimeoutError as exc:
        logger.error("%s timed out after %.1fs", operation_name, timeout_seconds)
        raise AppError(status.HTTP_504_GATEWAY_TIMEOUT, str(exc), code="TIMEOUT")
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("%s failed unexpectedly", operation_name)
        detail = f"{operation_name} failed. Please try again later."
        if settings.DEBUG:
            detail = f"{operation_name} failed: {exc}"
        raise AppError(status.HTTP_500_INTERNAL_SERVER_ERROR, detail)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth_configuration)],
)
async def register(payload: RegisterRequest):
    """Register a new user and sign them in"""
    return await _run_auth_operation(_register_user, payload, "Registration")


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(require_auth_configuration)],
)
async def login(payload: LoginRequest):
    """Login and get access token"""
    return await _run_auth_operation(_login_user, payload, "Login")


@router.get("/verify", response_model=VerifyResponse)
def verify(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Confirm the bearer token and return the user it belongs to"""
    try:
        user = db.query(User).filter(User.id == user_id).first()
    except SQLAlchemyError as exc:
        raise classify_database_error(exc, "Token verification")

    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    return user
