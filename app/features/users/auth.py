"""
Authentication utilities for Appwrite JWT verification.

A bearer JWT is trusted only after Appwrite itself accepts it: the token is
sent back to Appwrite as the caller's session and the account it resolves to
must be the one the token names.
"""
from dataclasses import dataclass
import jwt
from fastapi import HTTPException, status
from fastapi.concurrency import run_in_threadpool
from appwrite.client import Client
from appwrite.services.account import Account
from appwrite.exception import AppwriteException

from app.core import config
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class AppwriteIdentity:
    """The Appwrite account behind a verified token."""
    appwrite_id: str
    email: str
    name: str


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite JWT and return its payload.

    Only the shape and expiry are checked here; the signature belongs to
    Appwrite, and ``authenticate`` has Appwrite confirm the token.

    Raises:
        HTTPException: 401 if the token is malformed or expired
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _session_client(token: str) -> Client:
    client = Client()
    client.set_endpoint(config.APPWRITE_ENDPOINT)
    client.set_project(config.APPWRITE_PROJECT_ID)
    client.set_jwt(token)
    return client


async def authenticate(token: str) -> AppwriteIdentity:
    """
    Resolve a bearer JWT to the Appwrite account it was issued for.

    The Appwrite SDK is synchronous, so the call runs in the threadpool.

    Raises:
        HTTPException: 401 if the token is invalid, Appwrite rejects it, or
            it names a different account than the session belongs to
    """
    payload = verify_jwt_token(token)
    claimed_id = payload.get("userId")
    if not claimed_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        account = await run_in_threadpool(Account(_session_client(token)).get)
    except AppwriteException as e:
        log.warning("Appwrite rejected token for %s: %s", claimed_id, e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Failed to verify session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if account.id != claimed_id:
        log.warning("Token names %s but its session belongs to %s", claimed_id, account.id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token does not match its session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AppwriteIdentity(
        appwrite_id=account.id,
        email=account.email or "",
        name=account.name or "Unknown",
    )
