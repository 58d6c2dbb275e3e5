"""Authentication endpoints for password-based auth.

Register, login, logout and current-user lookup. Sessions are HS256 JWTs
in an httpOnly cookie.

Security considerations:
- login: constant-time comparison via DUMMY_HASH prevents user enumeration
- register: bcrypt cost 12, email uniqueness, ledger row created with the user
- logout: cookie deleted with the same attributes it was set with
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from sqlalchemy.exc import IntegrityError

from creditflow.api.deps import CurrentUserId, DbSession
from creditflow.core.auth import (
    clear_auth_cookie,
    create_jwt,
    hash_password,
    set_auth_cookie,
    validate_password_strength,
    verify_password,
)
from creditflow.core.config import settings
from creditflow.core.errors import ConflictError, UnauthorizedError
from creditflow.core.rate_limiting import limiter
from creditflow.core.responses import DataResponse
from creditflow.models import User
from creditflow.repositories.credit_repository import CreditRepository
from creditflow.repositories.user_repository import UserRepository

router = APIRouter()


# ===================================================================
# Request models
# ===================================================================


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    name: str | None = Field(None, max_length=255)


def _user_to_response(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
    }


def _issue_session(response: Response, user: User) -> None:
    token = create_jwt(
        user_id=str(user.id),
        secret=settings.auth_secret.get_secret_value(),
    )
    set_auth_cookie(response, token)


# ===================================================================
# POST /auth/register
# ===================================================================


@router.post("/register", status_code=201)
@limiter.limit(lambda: settings.rate_limit_auth)
async def register(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: RegisterRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Register a new user with email + password and sign them in.

    Creates the user's empty credit ledger in the same transaction.
    """
    validate_password_strength(body.password)

    try:
        user = await UserRepository.create(
            db,
            email=body.email,
            password_hash=hash_password(body.password),
            name=body.name,
        )
        await CreditRepository.create_ledger(db, user.id)
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(
            code="EMAIL_ALREADY_EXISTS",
            message="Email already registered",
        ) from exc

    await db.commit()
    _issue_session(response, user)
    return DataResponse(data=_user_to_response(user))


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
@limiter.limit(lambda: settings.rate_limit_auth)
async def login(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: LoginRequest,
    response: Response,
    db: DbSession,
) -> DataResponse[dict]:
    """Verify email + password and issue the JWT cookie."""
    user = await UserRepository.get_by_email(db, body.email)
    if user is None:
        # Security: still run one bcrypt comparison against DUMMY_HASH.
        verify_password(body.password, None)
        raise UnauthorizedError("Invalid email or password")
    if not verify_password(body.password, user.password_hash):
        raise UnauthorizedError("Invalid email or password")

    await UserRepository.update(db, user.id, last_signed_in=datetime.now(UTC))
    await db.commit()

    _issue_session(response, user)
    return DataResponse(data=_user_to_response(user))


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(response: Response) -> DataResponse[dict]:
    """Clear the auth cookie. Succeeds without a session."""
    clear_auth_cookie(response)
    return DataResponse(data={"message": "Logged out"})


# ===================================================================
# GET /auth/me
# ===================================================================


@router.get("/me")
async def get_me(user_id: CurrentUserId, db: DbSession) -> DataResponse[dict]:
    """Return the authenticated user."""
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise UnauthorizedError()
    return DataResponse(data=_user_to_response(user))
