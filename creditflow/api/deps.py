"""Shared dependencies for API endpoints.

Authentication (JWT cookie), database session and payment gateway
dependencies. Tests override get_db and get_gateway.
"""

import uuid
from datetime import UTC
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.auth import decode_jwt
from creditflow.core.database import get_db
from creditflow.models import User
from creditflow.providers.factory import get_payment_gateway
from creditflow.providers.payments.base import PaymentGateway

# Generic 401 detail. Never says why auth failed (expired, bad sig, etc.).
_UNAUTHORIZED_DETAIL = {
    "code": "UNAUTHORIZED",
    "message": "Authentication required",
}


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=_UNAUTHORIZED_DETAIL,
    )


async def get_current_user_id(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> uuid.UUID:
    """Get current user ID from the JWT cookie.

    Validation steps:
    1. Read JWT from cookie
    2. Decode + verify signature (HS256)
    3. Verify exp, aud, iss claims
    4. Extract sub as UUID
    5. Check token_invalidated_before (revocation)

    Args:
        request: HTTP request (injected by FastAPI).
        db: Database session for revocation check (injected).

    Returns:
        UUID of the current authenticated user.

    Raises:
        HTTPException: 401 for any auth failure.
    """
    from creditflow.core.config import settings

    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        raise _unauthorized()

    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
        raise _unauthorized() from exc

    # Security: iat is required for revocation check. A JWT without iat
    # would bypass token_invalidated_before entirely.
    iat = payload.get("iat")
    if iat is None:
        raise _unauthorized()

    result = await db.execute(
        select(User.id, User.token_invalidated_before).where(User.id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        raise _unauthorized()

    invalidated_before = row[1]
    if invalidated_before is not None:
        if invalidated_before.tzinfo is None:
            invalidated_before = invalidated_before.replace(tzinfo=UTC)
        if iat < invalidated_before.timestamp():
            raise _unauthorized()

    return user_id


def get_gateway() -> PaymentGateway:
    """Payment gateway singleton (overridden in tests)."""
    return get_payment_gateway()


# Reusable type aliases for dependency injection
CurrentUserId = Annotated[uuid.UUID, Depends(get_current_user_id)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Gateway = Annotated[PaymentGateway, Depends(get_gateway)]
