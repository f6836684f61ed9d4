"""
FastAPI dependencies for authentication.

The permission check endpoint accepts anonymous callers (an anonymous
actor is reported as still loading, never as denied), so the base
dependency resolves to ``None`` without credentials and
``get_current_user`` layers the 401 on top of it.
"""
from typing import Annotated, Optional
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.auth import authenticate
from app.utils import get_logger


log = get_logger(__name__)
security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Optional[User]:
    """
    Resolve the caller from a bearer JWT, or None when no token was sent.

    This dependency:
    1. Has Appwrite confirm the token belongs to the account it names
    2. Looks up or creates the user in the local database
    3. Updates last_login_at

    Raises:
        HTTPException: 401 for a bad token, 403 for a deactivated account
    """
    if credentials is None:
        return None

    identity = await authenticate(credentials.credentials)

    result = await db.execute(
        select(User).where(User.appwrite_id == identity.appwrite_id)
    )
    user = result.scalar_one_or_none()
    now = datetime.now(timezone.utc)

    if user is None:
        user = User(
            appwrite_id=identity.appwrite_id,
            email=identity.email,
            name=identity.name,
            last_login_at=now,
        )
        db.add(user)
        log.info("Created local user for appwrite id %s", identity.appwrite_id)
    else:
        user.last_login_at = now
    await db.commit()
    await db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


async def get_current_user(
    user: Annotated[Optional[User], Depends(get_optional_user)]
) -> User:
    """
    Require an authenticated user.

    Usage:
        @router.get("/owner")
        async def owner(user: User = Depends(get_current_user)):
            ...
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
