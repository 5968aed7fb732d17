#!/usr/bin/env python3
"""Reusable FastAPI dependency functions for authentication, RBAC and the allocator."""

import datetime
from typing import Annotated, Callable, Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from accend.auth import decode_token
from accend.clock import utcnow
from accend.config import settings
from accend.db import get_session
from accend.models import Role, User
from accend.services.allocator import BookingAllocator
from accend.services.booking_store import SqlBookingStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_clock() -> Callable[[], datetime.datetime]:
    """Dependency returning the wall clock; tests override it to move time."""
    return utcnow


Clock = Annotated[Callable[[], datetime.datetime], Depends(get_clock)]


async def get_current_user(
    bearer: Annotated[Optional[str], Depends(oauth2_scheme)],
    session_cookie: Annotated[Optional[str], Cookie(alias=settings.session_cookie_name)] = None,
    session: AsyncSession = Depends(get_session),
) -> User:
    """Decode the bearer token (or the session cookie) and return the active User row."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="UNAUTHENTICATED",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = bearer or session_cookie
    if not token:
        raise credentials_exc
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise credentials_exc
        user_id: str = payload.get("sub", "")
        if not user_id:
            raise credentials_exc
    except JWTError:
        raise credentials_exc

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise credentials_exc
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*allowed: Role):
    """
    Dependency factory that raises 403 unless the current user has one of the allowed roles.

    Usage::

        @router.get("/admin", dependencies=[Depends(require_roles(Role.admin))])
        async def list_everything(...): ...
    """
    async def _guard(user: CurrentUser):
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {[r.value for r in allowed]}",
            )
        return user
    return _guard


def get_allocator(clock: Clock, session: AsyncSession = Depends(get_session)) -> BookingAllocator:
    return BookingAllocator(
        SqlBookingStore(session),
        clock=clock,
        max_extension_minutes=settings.booking_max_extension_minutes,
        max_duration_minutes=settings.booking_max_duration_minutes,
    )


Allocator = Annotated[BookingAllocator, Depends(get_allocator)]
