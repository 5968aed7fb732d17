#!/usr/bin/env python3
"""Authentication routes: signup, login, refresh, logout, whoami."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accend.auth import (
    clear_session_cookie,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    session_claims,
    set_session_cookie,
    verify_password,
)
from accend.config import settings
from accend.db import get_session
from accend.deps import Clock, CurrentUser
from accend.errors import EmailExists, Forbidden, InvalidCredentials, InvalidName
from accend.models import Role, User
from accend.schemas.auth import (
    AuthPayload,
    LoginRequest,
    PublicUser,
    RefreshRequest,
    SignupRequest,
    TokenResponse,
    UpdateNameRequest,
    WhoAmIResponse,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])

logger = logging.getLogger(__name__)


async def _user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


def _issue(response: Response, user: User) -> AuthPayload:
    claims = session_claims(user)
    access = create_access_token(claims)
    set_session_cookie(response, access)
    return AuthPayload(
        user=PublicUser.model_validate(user),
        access_token=access,
        refresh_token=create_refresh_token(claims),
    )


async def _authenticate(session: AsyncSession, email: str, password: str, clock) -> User:
    user = await _user_by_email(session, email)
    if not user or not user.is_active or not verify_password(password, user.hashed_password):
        raise InvalidCredentials()
    user.last_login = clock()
    await session.commit()
    return user


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/signup", response_model=AuthPayload, status_code=201)
async def signup(
    body: SignupRequest,
    response: Response,
    clock: Clock,
    session: AsyncSession = Depends(get_session),
):
    """Create an account and sign it in."""
    if body.role == Role.admin and not settings.allow_admin_signup:
        raise Forbidden("Admin accounts cannot be self-registered")
    email = body.email.lower()
    if await _user_by_email(session, email):
        raise EmailExists()

    user = User(
        name=body.name,
        email=email,
        hashed_password=hash_password(body.password),
        role=body.role,
        access_level=settings.default_access_level,
        created_at=clock(),
    )
    session.add(user)
    await session.commit()
    logger.info("New %s account %s", user.role.value, user.email)
    return _issue(response, user)


@router.post("/login", response_model=AuthPayload)
async def login(
    body: LoginRequest,
    response: Response,
    clock: Clock,
    session: AsyncSession = Depends(get_session),
):
    """Exchange email + password for a session cookie and a token pair."""
    user = await _authenticate(session, body.email, body.password, clock)
    return _issue(response, user)


@router.post("/token", response_model=TokenResponse)
async def token(
    form: Annotated[OAuth2PasswordRequestForm, Depends()],
    clock: Clock,
    session: AsyncSession = Depends(get_session),
):
    """OAuth2 password flow for API clients; ``username`` is the email address."""
    try:
        user = await _authenticate(session, form.username, form.password, clock)
    except InvalidCredentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    claims = session_claims(user)
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, session: AsyncSession = Depends(get_session)):
    """Exchange a valid refresh token for a new access + refresh token pair."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired refresh token",
    )
    try:
        payload = decode_token(body.refresh_token)
        if payload.get("type") != "refresh":
            raise credentials_exc
        user_id: str = payload.get("sub", "")
    except JWTError:
        raise credentials_exc

    user = await session.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        raise credentials_exc

    claims = session_claims(user)
    return TokenResponse(
        access_token=create_access_token(claims),
        refresh_token=create_refresh_token(claims),
    )


@router.post("/logout")
async def logout(response: Response) -> dict:
    clear_session_cookie(response)
    return {"ok": True}


@router.get("/me", response_model=WhoAmIResponse)
async def whoami(current_user: CurrentUser):
    """Return the authenticated user's profile and permission list."""
    return WhoAmIResponse(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        access_level=current_user.access_level,
        permissions=current_user.role.permissions(),
    )


@router.patch("/me", response_model=PublicUser)
async def update_my_name(
    body: UpdateNameRequest,
    current_user: CurrentUser,
    session: AsyncSession = Depends(get_session),
):
    name = body.name.strip()
    if len(name) < 2:
        raise InvalidName("Name must be at least 2 characters")
    current_user.name = name
    await session.commit()
    return PublicUser.model_validate(current_user)
